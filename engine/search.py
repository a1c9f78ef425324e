"""Retrieval: semantic search, similar-node lookup and blended ranking."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import numpy as np

from models import Importance, KnowledgeNode, NodeType, normalize_tags
from query_expansion import expand_query, expand_tags_full, score_expanded_query_match
from vectorizer import DEFAULT_DIM, node_similarity, vectorize

SEMANTIC_WEIGHT = 0.6
TAG_WEIGHT = 0.25
RECENCY_WEIGHT = 0.15
RECENCY_WINDOW_DAYS = 30.0
ANN_OVERFETCH = 3

EXPANDED_WEIGHTS = {"semantic": 0.40, "tags": 0.25, "terms": 0.15, "importance": 0.10, "recency": 0.10}
EXPANDED_RECENCY_WINDOW_DAYS = 60.0
IMPORTANCE_BOOST = {Importance.HIGH: 1.0, Importance.MEDIUM: 0.5, Importance.LOW: 0.0}


@dataclass
class ScoredNode:
    node: KnowledgeNode
    score: float


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


def semantic_search(
    query: str,
    nodes: Sequence[KnowledgeNode],
    index=None,
    limit: int = 10,
    dim: int = DEFAULT_DIM,
) -> List[ScoredNode]:
    """
    Rank nodes by similarity to a free-text query.

    Args:
        query: Search text
        nodes: Candidate nodes
        index: Optional ANN index over node vectors; ids missing from `nodes` are dropped
        limit: Maximum number of results
        dim: Vector dimension

    Returns:
        ScoredNode list, best first
    """
    if limit <= 0 or not query or not query.strip():
        return []
    q = vectorize(query, dim)

    if index is not None:
        by_id = {n.id: n for n in nodes}
        results = []
        for node_id, score in index.search(q, limit * ANN_OVERFETCH):
            node = by_id.get(node_id)
            if node is None:
                continue
            results.append(ScoredNode(node=node, score=float(score)))
            if len(results) >= limit:
                break
        return results

    if not nodes:
        return []
    matrix = np.vstack([vectorize(n.content, dim) for n in nodes])
    scores = matrix @ q
    order = np.argsort(-scores, kind="stable")[:limit]
    return [ScoredNode(node=nodes[i], score=float(scores[i])) for i in order]


def find_similar(
    node: KnowledgeNode,
    nodes: Iterable[KnowledgeNode],
    limit: int = 10,
    dim: int = DEFAULT_DIM,
) -> List[ScoredNode]:
    scored = [
        ScoredNode(node=other, score=node_similarity(node, other, dim))
        for other in nodes
        if other.id != node.id
    ]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored[: max(0, limit)]


def recency_score(node: KnowledgeNode, now: float, window_days: float = RECENCY_WINDOW_DAYS) -> float:
    age_days = max(0.0, (now - node.updated_at) / 86400.0)
    return _clamp(1.0 - age_days / window_days)


def rank_nodes(
    nodes: Iterable[KnowledgeNode],
    query: Optional[str] = None,
    tags: Optional[Iterable[str]] = None,
    node_type: Optional[NodeType] = None,
    limit: int = 20,
    now: Optional[float] = None,
    dim: int = DEFAULT_DIM,
    expand: bool = False,
) -> List[ScoredNode]:
    """
    Blend semantic match, tag overlap and recency into one score.

    With `expand`, query tokens are widened with synonyms and tags with
    synonyms and hierarchy children; the blend then also rewards expanded
    term matches and declared importance, over a longer recency window.
    """
    now = time.time() if now is None else now
    q = vectorize(query, dim) if query and query.strip() else None
    if expand:
        base_tags = normalize_tags(expand_tags_full(normalize_tags(tags)))
        terms = expand_query(query)["expanded"] if q is not None else []
    else:
        base_tags = normalize_tags(tags)
        terms = []

    scored: List[ScoredNode] = []
    for node in nodes:
        if node_type is not None and node.type != NodeType(node_type):
            continue
        semantic = _clamp(float(np.dot(q, vectorize(node.content, dim)))) if q is not None else 0.0
        tag_overlap = 0.0
        if base_tags:
            node_tags = set(node.tags)
            tag_overlap = sum(1 for t in base_tags if t in node_tags) / len(base_tags)
        if expand:
            score = (
                semantic * EXPANDED_WEIGHTS["semantic"]
                + tag_overlap * EXPANDED_WEIGHTS["tags"]
                + score_expanded_query_match(node.content, terms) * EXPANDED_WEIGHTS["terms"]
                + IMPORTANCE_BOOST.get(node.importance, 0.0) * EXPANDED_WEIGHTS["importance"]
                + recency_score(node, now, EXPANDED_RECENCY_WINDOW_DAYS) * EXPANDED_WEIGHTS["recency"]
            )
        else:
            score = (
                semantic * SEMANTIC_WEIGHT
                + tag_overlap * TAG_WEIGHT
                + recency_score(node, now) * RECENCY_WEIGHT
            )
        scored.append(ScoredNode(node=node, score=_clamp(score)))

    scored.sort(key=lambda s: s.score, reverse=True)
    return scored[: max(0, limit)]
