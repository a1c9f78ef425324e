"""Single-pass similarity clustering of knowledge nodes."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from models import KnowledgeNode
from vectorizer import DEFAULT_DIM, cosine_similarity, similarity_matrix, vectorize

DEFAULT_THRESHOLD = 0.55
MAX_KEYWORDS = 5

_KEYWORD_SPLIT = re.compile(r"[^a-z0-9\s]")


@dataclass
class TopicCluster:
    id: str
    name: str
    nodes: List[str]
    center_node: str
    coherence_score: float
    keywords: List[str] = field(default_factory=list)
    centroid: Optional[np.ndarray] = None

    @property
    def size(self) -> int:
        return len(self.nodes)


def keyword_tokens(text: str) -> List[str]:
    text = _KEYWORD_SPLIT.sub(" ", (text or "").lower())
    return [word for word in text.split() if len(word) > 3]


def extract_keywords(nodes: Sequence[KnowledgeNode], top_k: int = MAX_KEYWORDS) -> List[str]:
    """Most frequent content words across nodes, with tags counted twice."""
    freq: Dict[str, int] = {}
    for node in nodes:
        for token in keyword_tokens(node.content):
            freq[token] = freq.get(token, 0) + 1
        for tag in node.tags:
            key = tag.lower()
            if len(key) > 2:
                freq[key] = freq.get(key, 0) + 2
    # sorted() is stable, so equal counts keep first-seen order
    ranked = sorted(freq.items(), key=lambda item: item[1], reverse=True)
    return [word for word, _ in ranked[: max(0, top_k)]]


def cluster_by_similarity(
    nodes: Sequence[KnowledgeNode],
    similarity_threshold: float = DEFAULT_THRESHOLD,
    dim: int = DEFAULT_DIM,
    vectors: Optional[Sequence[np.ndarray]] = None,
) -> List[TopicCluster]:
    """
    Group nodes by assigning each one, in input order, to the most similar centroid.

    Reordering the input can change the clusters produced.

    Args:
        nodes: Nodes to cluster
        similarity_threshold: Minimum centroid similarity to join a cluster
        dim: Vector dimension when vectors are computed here
        vectors: Optional precomputed vectors aligned with `nodes`

    Returns:
        Clusters sorted by coherence, most coherent first
    """
    if not nodes:
        return []
    if vectors is None:
        vectors = [vectorize(node.content, dim) for node in nodes]
    elif len(vectors) != len(nodes):
        raise ValueError(f"Expected {len(nodes)} vectors, got {len(vectors)}")
    vecs = [np.asarray(v, dtype=np.float64) for v in vectors]

    members: List[List[int]] = []
    centers: List[np.ndarray] = []

    for idx, vec in enumerate(vecs):
        best_idx = -1
        best_sim = -1.0
        for c_idx, center in enumerate(centers):
            sim = cosine_similarity(vec, center)
            if sim > best_sim:
                best_sim = sim
                best_idx = c_idx

        if best_idx >= 0 and best_sim >= similarity_threshold:
            members[best_idx].append(idx)
            centers[best_idx] = np.mean([vecs[m] for m in members[best_idx]], axis=0)
        else:
            members.append([idx])
            centers.append(vec)

    clusters: List[TopicCluster] = []
    for c_idx, member_idx in enumerate(members):
        member_nodes = [nodes[m] for m in member_idx]
        sims = similarity_matrix([vecs[m] for m in member_idx])

        if len(member_idx) > 1:
            upper = sims[np.triu_indices(len(member_idx), k=1)]
            coherence = float(upper.mean())
        else:
            coherence = 1.0
        if not np.isfinite(coherence):
            coherence = 0.0

        # Summed similarity to every other member; argmax keeps the first on ties.
        totals = sims.sum(axis=1) - np.diag(sims)
        center_pos = int(np.argmax(totals))

        keywords = extract_keywords(member_nodes, MAX_KEYWORDS)
        clusters.append(
            TopicCluster(
                id=f"cluster-{c_idx + 1}",
                name=" ".join(keywords[:3]) or "cluster",
                nodes=[n.id for n in member_nodes],
                center_node=member_nodes[center_pos].id,
                coherence_score=coherence,
                keywords=keywords,
                centroid=centers[c_idx],
            )
        )

    clusters.sort(key=lambda c: c.coherence_score, reverse=True)
    return clusters
