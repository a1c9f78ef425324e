"""Topic context reconstruction, emerging concepts and auto-link suggestions."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from models import KnowledgeNode, NodeType
from tag_stats import TagCooccurrence

_WORD_RE = re.compile(r"[a-z0-9]{4,}")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_NEXT_STEPS_RE = re.compile(r"^(?:Next\s*Actions?|Next Steps)\s*:\s*(.*)$", re.IGNORECASE)
_TAG_LIKE_PREFIXES = ("proj:", "ws:", "ticket:")


@dataclass
class EmergingConcept:
    keyword: str
    recent: int
    past: int
    lift: float


@dataclass
class ContextSummary:
    topic: str
    last_discussed: Optional[float] = None
    key_points: List[str] = field(default_factory=list)
    decisions: List[KnowledgeNode] = field(default_factory=list)
    open_questions: List[KnowledgeNode] = field(default_factory=list)
    next_steps: List[str] = field(default_factory=list)
    related_tags: List[str] = field(default_factory=list)


def _keyword_freq(nodes: Iterable[KnowledgeNode]) -> Dict[str, int]:
    freq: Dict[str, int] = {}
    for node in nodes:
        for word in _WORD_RE.findall(node.content.lower()):
            freq[word] = freq.get(word, 0) + 1
        for tag in node.tags:
            if len(tag) > 2:
                freq[tag] = freq.get(tag, 0) + 2
    return freq


def find_emerging_concepts(
    nodes: Sequence[KnowledgeNode],
    window_days: float = 7,
    min_recent: int = 2,
    min_lift: float = 2,
    now: Optional[float] = None,
    limit: int = 50,
) -> List[EmergingConcept]:
    """
    Keywords whose frequency in the recent window lifts above their history.

    lift = (recent + 1) / (past + 1)
    """
    now = time.time() if now is None else now
    cutoff = now - window_days * 86400.0
    recent = _keyword_freq(n for n in nodes if n.created_at >= cutoff)
    past = _keyword_freq(n for n in nodes if n.created_at < cutoff)

    concepts = []
    for keyword, count in recent.items():
        prev = past.get(keyword, 0)
        lift = (count + 1) / (prev + 1)
        if count >= min_recent and lift >= min_lift:
            concepts.append(EmergingConcept(keyword=keyword, recent=count, past=prev, lift=lift))
    concepts.sort(key=lambda c: c.lift, reverse=True)
    return concepts[: max(0, limit)]


def first_sentence(text: str, max_chars: int = 200) -> str:
    stripped = text.strip()
    if not stripped:
        return ""
    return _SENTENCE_SPLIT.split(stripped)[0][:max_chars]


def _is_tag_like(topic: str) -> bool:
    return topic.startswith(_TAG_LIKE_PREFIXES) or len(topic.split()) == 1


def reconstruct_context(
    nodes: Sequence[KnowledgeNode],
    topic: str,
    cooccurrence: Optional[TagCooccurrence] = None,
    expansion_limit: int = 5,
) -> ContextSummary:
    """
    Summarize what the knowledge base holds about a topic.

    When a co-occurrence table is supplied and the topic looks like a tag,
    nodes carrying strongly co-occurring tags are folded in as well.
    """
    needle = topic.strip().lower()
    if not needle:
        return ContextSummary(topic=topic)

    related_tags: List[str] = []
    if cooccurrence is not None and _is_tag_like(needle):
        related_tags = cooccurrence.expand([needle], expansion_limit)
    related = set(related_tags)

    matched = [
        n
        for n in nodes
        if needle in n.content.lower()
        or any(needle in tag for tag in n.tags)
        or related.intersection(n.tags)
    ]
    matched.sort(key=lambda n: n.updated_at, reverse=True)

    next_steps: List[str] = []
    for node in matched[:10]:
        for line in node.content.split("\n"):
            m = _NEXT_STEPS_RE.match(line.strip())
            if not m:
                continue
            for step in re.split(r"[;,]", m.group(1)):
                step = step.strip()
                if step:
                    next_steps.append(step)

    return ContextSummary(
        topic=topic,
        last_discussed=matched[0].updated_at if matched else None,
        key_points=[s for s in (first_sentence(n.content) for n in matched[:5]) if s],
        decisions=[n for n in matched if n.type == NodeType.DECISION][:5],
        open_questions=[n for n in matched if n.type == NodeType.QUESTION][:5],
        next_steps=next_steps,
        related_tags=related_tags,
    )


def find_auto_links(nodes: Iterable[KnowledgeNode], content: str, limit: int = 5) -> List[str]:
    """Ids of nodes sharing tags or words with new content (tag hit 2, word hit 1, need > 2)."""
    words = {w for w in re.sub(r"[^a-z0-9\s]", " ", content.lower()).split() if len(w) > 3}
    if not words:
        return []
    matches = []
    for node in nodes:
        score = sum(2 for tag in node.tags if tag in words)
        score += sum(1 for w in node.content.lower().split() if w in words)
        if score > 2:
            matches.append((node.id, score))
    matches.sort(key=lambda m: m[1], reverse=True)
    return [node_id for node_id, _ in matches[: max(0, limit)]]
