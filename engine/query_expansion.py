"""
Query and tag expansion helpers.

Synonym and hierarchy tables for common developer vocabulary, used to widen
searches and to suggest tags for new content.
"""

from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from vectorizer import tokenize

TagSynonyms = Mapping[str, Sequence[str]]
TagHierarchy = Tuple[str, Sequence[str]]

DEFAULT_TAG_SYNONYMS: Dict[str, List[str]] = {
    "auth": ["authentication", "login", "signin", "oauth", "jwt"],
    "authentication": ["auth", "login", "signin", "oauth", "jwt"],
    "login": ["auth", "authentication", "signin"],
    "bug": ["issue", "defect", "problem", "error", "fault"],
    "issue": ["bug", "defect", "problem"],
    "error": ["bug", "issue", "exception", "failure"],
    "performance": ["perf", "optimization", "speed", "latency", "slow"],
    "perf": ["performance", "optimization", "speed"],
    "optimization": ["performance", "perf", "optimize"],
    "slow": ["performance", "latency", "speed"],
    "database": ["db", "storage", "persistence", "sql", "data-layer"],
    "db": ["database", "storage", "sql"],
    "storage": ["database", "db", "persistence"],
    "api": ["endpoint", "rest", "service", "backend"],
    "endpoint": ["api", "rest", "route"],
    "rest": ["api", "endpoint", "rest-api"],
    "test": ["testing", "unit-test", "integration-test", "spec"],
    "testing": ["test", "unit-test", "qa"],
    "frontend": ["ui", "ux", "client", "web"],
    "ui": ["frontend", "interface", "ux"],
    "ux": ["ui", "frontend", "user-experience"],
    "backend": ["server", "api", "service"],
    "server": ["backend", "service"],
    "docs": ["documentation", "readme", "guide"],
    "documentation": ["docs", "readme", "guide"],
    "config": ["configuration", "settings", "setup"],
    "configuration": ["config", "settings", "setup"],
    "security": ["vulnerability", "exploit", "cve", "secure"],
    "vulnerability": ["security", "exploit", "vuln"],
}

DEFAULT_TAG_HIERARCHIES: List[TagHierarchy] = [
    ("backend", ["api", "database", "server", "auth"]),
    ("frontend", ["ui", "ux", "component", "styling"]),
    ("testing", ["unit-test", "integration-test", "e2e-test", "test-fix"]),
    ("bug-fix", ["hotfix", "patch", "critical-fix"]),
    ("performance", ["optimization", "caching", "lazy-loading", "bundling"]),
    ("security", ["auth", "encryption", "vulnerability", "hardening"]),
]

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at",
        "to", "for", "of", "with", "by", "from", "is", "was",
        "are", "were", "be", "been", "being", "have", "has", "had",
    }
)


def expand_tag_synonyms(tag: str, synonyms: TagSynonyms = DEFAULT_TAG_SYNONYMS) -> List[str]:
    normalized = tag.lower()
    return [normalized] + list(synonyms.get(normalized, []))


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for value in values:
        if value not in seen:
            seen.add(value)
            out.append(value)
    return out


def expand_tags_synonyms(tags: Iterable[str], synonyms: TagSynonyms = DEFAULT_TAG_SYNONYMS) -> List[str]:
    expanded: List[str] = []
    for tag in tags:
        expanded.extend(expand_tag_synonyms(tag, synonyms))
    return _dedupe(expanded)


def parent_tags(tag: str, hierarchies: Sequence[TagHierarchy] = DEFAULT_TAG_HIERARCHIES) -> List[str]:
    normalized = tag.lower()
    return [parent for parent, children in hierarchies if normalized in children]


def child_tags(tag: str, hierarchies: Sequence[TagHierarchy] = DEFAULT_TAG_HIERARCHIES) -> List[str]:
    normalized = tag.lower()
    for parent, children in hierarchies:
        if parent == normalized:
            return list(children)
    return []


def expand_tags_hierarchical(
    tags: Iterable[str], hierarchies: Sequence[TagHierarchy] = DEFAULT_TAG_HIERARCHIES
) -> List[str]:
    """Add the children of every parent tag."""
    tags = [t.lower() for t in tags]
    expanded = list(tags)
    for tag in tags:
        expanded.extend(child_tags(tag, hierarchies))
    return _dedupe(expanded)


def expand_tags_full(
    tags: Iterable[str],
    synonyms: TagSynonyms = DEFAULT_TAG_SYNONYMS,
    hierarchies: Sequence[TagHierarchy] = DEFAULT_TAG_HIERARCHIES,
) -> List[str]:
    return expand_tags_hierarchical(expand_tags_synonyms(tags, synonyms), hierarchies)


def expand_query(query: str, synonyms: TagSynonyms = DEFAULT_TAG_SYNONYMS) -> Dict[str, object]:
    """Expand every query token with its synonyms."""
    tokens = tokenize(query)
    expanded: List[str] = []
    for token in tokens:
        expanded.append(token)
        expanded.extend(synonyms.get(token, []))
    expanded = _dedupe(expanded)
    return {
        "original": query,
        "tokens": tokens,
        "expanded": expanded,
        "expanded_query": " ".join(expanded),
    }


def score_expanded_query_match(content: str, expanded_terms: Sequence[str]) -> float:
    if not expanded_terms:
        return 0.0
    content_tokens = set(tokenize(content))
    matches = sum(1 for term in expanded_terms if term in content_tokens)
    return matches / len(expanded_terms)


def extract_key_terms(query: str) -> List[str]:
    """Non stop-word tokens, longest first."""
    terms = [t for t in tokenize(query) if t not in STOP_WORDS]
    return sorted(terms, key=len, reverse=True)


def suggest_tags(
    content: str,
    existing_tags: Iterable[str] = (),
    limit: int = 5,
    synonyms: TagSynonyms = DEFAULT_TAG_SYNONYMS,
) -> List[str]:
    """Suggest base tags whose name or synonyms appear in the content."""
    content_lower = content.lower()
    existing = {t.lower() for t in existing_tags}
    scores: Dict[str, int] = {}
    for base, syns in synonyms.items():
        if base in existing:
            continue
        score = 2 if base in content_lower else 0
        score += sum(1 for syn in syns if syn in content_lower)
        if score > 0:
            scores[base] = score
    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    return [tag for tag, _ in ranked[: max(0, limit)]]
