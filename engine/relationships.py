"""Relationship strength scoring, classification and edge maintenance."""

from __future__ import annotations

import hashlib
import re
import time
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np

from models import KnowledgeEdge, KnowledgeNode, Relation
from vectorizer import DEFAULT_DIM, cosine_similarity, similarity_matrix, vectorize

CONTENT_WEIGHT = 0.4
TEMPORAL_WEIGHT = 0.2
EXPLICIT_WEIGHT = 0.3
REINFORCEMENT_WEIGHT = 0.1

TEMPORAL_WINDOW_DAYS = 30.0
REFERENCE_CUE_SCORE = 0.6
TAG_OVERLAP_SATURATION = 3

TRIVIAL_TAGS = frozenset({"note", "notes", "misc", "general"})

_COMMIT_RE = re.compile(r"commit:([0-9a-f]{7,40})\b", re.IGNORECASE)
_REFERENCE_CUES = re.compile(r"\b(references|see also|as noted|refers to)\b", re.IGNORECASE)

# Checked in order; first match wins.
_CLASSIFIERS: Sequence[Tuple[re.Pattern, Relation]] = (
    (re.compile(r"\b(blocked by|blocks|waiting on|dependency)\b", re.IGNORECASE), Relation.BLOCKS),
    (re.compile(r"\b(builds on|derived from|extends|refactor of)\b", re.IGNORECASE), Relation.DERIVED_FROM),
    (re.compile(r"\b(duplicate\w*|same as)\b", re.IGNORECASE), Relation.DUPLICATES),
)


@dataclass(frozen=True)
class StrengthFactors:
    content: float
    temporal: float
    explicit_references: float
    # Feedback loop not implemented; kept so the weighting stays complete.
    reinforcement: float = 0.0

    @property
    def score(self) -> float:
        total = (
            self.content * CONTENT_WEIGHT
            + self.temporal * TEMPORAL_WEIGHT
            + self.explicit_references * EXPLICIT_WEIGHT
            + self.reinforcement * REINFORCEMENT_WEIGHT
        )
        return _clamp(total)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


def extract_commit_hashes(node: KnowledgeNode) -> Set[str]:
    hashes = set()
    for text in list(node.tags) + [node.content]:
        for match in _COMMIT_RE.finditer(text or ""):
            hashes.add(match.group(1).lower())
    return hashes


def _meaningful_tags(node: KnowledgeNode) -> Set[str]:
    return {tag for tag in node.tags if tag not in TRIVIAL_TAGS}


def temporal_proximity(a: KnowledgeNode, b: KnowledgeNode, now: Optional[float] = None) -> float:
    now = time.time() if now is None else now
    age_a = (now - a.updated_at) / 86400.0
    age_b = (now - b.updated_at) / 86400.0
    avg_age_days = (age_a + age_b) / 2.0
    return _clamp(1.0 - avg_age_days / TEMPORAL_WINDOW_DAYS)


def explicit_reference_score(a: KnowledgeNode, b: KnowledgeNode) -> float:
    if extract_commit_hashes(a) & extract_commit_hashes(b):
        return 1.0
    overlap = len(_meaningful_tags(a) & _meaningful_tags(b))
    if overlap > 0:
        return min(1.0, overlap / TAG_OVERLAP_SATURATION)
    if _REFERENCE_CUES.search(f"{a.content}\n{b.content}"):
        return REFERENCE_CUE_SCORE
    return 0.0


def compute_strength_factors(
    a: KnowledgeNode,
    b: KnowledgeNode,
    now: Optional[float] = None,
    dim: int = DEFAULT_DIM,
    content_similarity: Optional[float] = None,
) -> StrengthFactors:
    """
    Compute the individual relationship factors for a node pair.

    Args:
        a, b: Nodes to compare
        now: Reference time in epoch seconds (defaults to the current time)
        dim: Vector dimension for content similarity
        content_similarity: Precomputed content similarity, used by sweeps

    Returns:
        StrengthFactors with every factor in [0, 1]
    """
    if content_similarity is None:
        content_similarity = cosine_similarity(vectorize(a.content, dim), vectorize(b.content, dim))
    return StrengthFactors(
        content=_clamp(content_similarity),
        temporal=temporal_proximity(a, b, now),
        explicit_references=explicit_reference_score(a, b),
        reinforcement=0.0,
    )


def score_relationship(
    a: KnowledgeNode, b: KnowledgeNode, now: Optional[float] = None, dim: int = DEFAULT_DIM
) -> float:
    return compute_strength_factors(a, b, now=now, dim=dim).score


def classify_relationship(
    a: KnowledgeNode, b: KnowledgeNode, factors: Optional[StrengthFactors] = None
) -> Relation:
    combined = f"{a.content}\n{b.content}"
    for pattern, relation in _CLASSIFIERS:
        if pattern.search(combined):
            return relation
    explicit = factors.explicit_references if factors is not None else explicit_reference_score(a, b)
    if explicit >= REFERENCE_CUE_SCORE:
        return Relation.REFERENCES
    return Relation.RELATES_TO


def edge_id(source_id: str, target_id: str, relation: Relation) -> str:
    key = f"{source_id}|{target_id}|{Relation(relation).value}"
    return "edge-" + hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]


def _evidence(a: KnowledgeNode, b: KnowledgeNode, factors: StrengthFactors) -> List[str]:
    evidence = [f"content={factors.content:.2f}", f"temporal={factors.temporal:.2f}"]
    shared_commits = sorted(extract_commit_hashes(a) & extract_commit_hashes(b))
    if shared_commits:
        evidence.extend(f"commit:{sha}" for sha in shared_commits)
    shared_tags = sorted(_meaningful_tags(a) & _meaningful_tags(b))
    if shared_tags:
        evidence.append("shared tags: " + ", ".join(shared_tags))
    elif factors.explicit_references > 0 and not shared_commits:
        evidence.append("reference cue in content")
    return evidence


def _pair_key(a: str, b: str) -> Tuple[str, str]:
    return (a, b) if a <= b else (b, a)


def propose_relationships(
    nodes: Sequence[KnowledgeNode],
    existing_edges: Iterable[KnowledgeEdge] = (),
    threshold: float = 0.35,
    now: Optional[float] = None,
    dim: int = DEFAULT_DIM,
) -> List[KnowledgeEdge]:
    """
    Sweep every unordered node pair and propose edges for strong relationships.

    Pairs that are already linked in either direction are skipped. Nothing is
    written; the caller decides which proposals to persist.
    """
    now = time.time() if now is None else now
    nodes = list(nodes)
    if len(nodes) < 2:
        return []

    linked = {_pair_key(e.source_id, e.target_id) for e in existing_edges}
    sims = similarity_matrix([vectorize(n.content, dim) for n in nodes])

    proposals: List[KnowledgeEdge] = []
    for i in range(len(nodes)):
        for j in range(i + 1, len(nodes)):
            a, b = nodes[i], nodes[j]
            if a.id == b.id or _pair_key(a.id, b.id) in linked:
                continue
            factors = compute_strength_factors(a, b, now=now, dim=dim, content_similarity=float(sims[i, j]))
            strength = factors.score
            if strength < threshold:
                continue
            relation = classify_relationship(a, b, factors)
            proposals.append(
                KnowledgeEdge(
                    id=edge_id(a.id, b.id, relation),
                    source_id=a.id,
                    target_id=b.id,
                    relation=relation,
                    created_at=now,
                    strength=strength,
                    evidence=_evidence(a, b, factors),
                )
            )
            linked.add(_pair_key(a.id, b.id))

    proposals.sort(key=lambda e: e.strength, reverse=True)
    return proposals


def _edge_strength(
    edge: KnowledgeEdge, by_id: Dict[str, KnowledgeNode], now: float, dim: int
) -> Optional[float]:
    if edge.strength is not None:
        return edge.strength
    a = by_id.get(edge.source_id)
    b = by_id.get(edge.target_id)
    if a is None or b is None:
        return None
    return score_relationship(a, b, now=now, dim=dim)


def prune_weak_relationships(
    edges: Iterable[KnowledgeEdge],
    nodes: Iterable[KnowledgeNode],
    threshold: float = 0.15,
    now: Optional[float] = None,
    dim: int = DEFAULT_DIM,
) -> Tuple[List[KnowledgeEdge], List[KnowledgeEdge]]:
    """
    Split edges into (kept, pruned) by strength.

    Edges without a stored strength are rescored from their endpoints; edges
    that can't be scored at all are kept.
    """
    now = time.time() if now is None else now
    by_id = {n.id: n for n in nodes}
    kept: List[KnowledgeEdge] = []
    pruned: List[KnowledgeEdge] = []
    for edge in edges:
        strength = _edge_strength(edge, by_id, now, dim)
        if strength is not None and strength < threshold:
            pruned.append(edge)
        else:
            kept.append(edge)
    return kept, pruned


def reclassify_relationships(
    edges: Iterable[KnowledgeEdge], nodes: Iterable[KnowledgeNode]
) -> List[KnowledgeEdge]:
    """Return updated copies of the edges whose classified relation changed."""
    by_id = {n.id: n for n in nodes}
    changed: List[KnowledgeEdge] = []
    for edge in edges:
        a = by_id.get(edge.source_id)
        b = by_id.get(edge.target_id)
        if a is None or b is None:
            continue
        relation = classify_relationship(a, b)
        if relation != edge.relation:
            changed.append(replace(edge, relation=relation))
    return changed


def strongest_links(
    node: KnowledgeNode,
    candidates: Iterable[KnowledgeNode],
    limit: int = 5,
    now: Optional[float] = None,
    dim: int = DEFAULT_DIM,
) -> List[Tuple[KnowledgeNode, float]]:
    now = time.time() if now is None else now
    base = vectorize(node.content, dim)
    scored = []
    for other in candidates:
        if other.id == node.id:
            continue
        sim = float(np.dot(base, vectorize(other.content, dim)))
        factors = compute_strength_factors(node, other, now=now, dim=dim, content_similarity=sim)
        scored.append((other, factors.score))
    scored.sort(key=lambda item: item[1], reverse=True)
    return scored[: max(0, limit)]
