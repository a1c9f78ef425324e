"""Session context selection for warmup.

Picks a bounded, diverse, importance-weighted subset of nodes so that a few
bursty workstreams do not drown out sparse but important entries such as
decisions, blockers and open questions. Whatever is left out is grouped into
similarity clusters so the excluded volume stays visible in aggregate.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from clustering import cluster_by_similarity
from models import Importance, KnowledgeNode, NodeType
from vectorizer import DEFAULT_DIM, normalize_vector, vectorize

IMPORTANCE_BASE: Dict[Importance, float] = {
    Importance.LOW: 0.5,
    Importance.MEDIUM: 1.5,
    Importance.HIGH: 3.0,
}
TYPE_BOOST: Dict[NodeType, float] = {
    NodeType.DECISION: 2.0,
    NodeType.QUESTION: 1.8,
    NodeType.INSIGHT: 1.5,
    NodeType.PROGRESS: 1.0,
}
BLOCKER_TAG = "blocker"
BLOCKER_BOOST = 2.5
MAINTENANCE_MARKERS = ("lint", "format", "fix")
MAINTENANCE_PENALTY = 0.6
HIGH_PRIORITY_TYPES = frozenset({NodeType.DECISION, NodeType.QUESTION, NodeType.INSIGHT})

_IMPORTANCE_RANK = {Importance.LOW: 0, Importance.MEDIUM: 1, Importance.HIGH: 2}


@dataclass
class SessionContextSettings:
    target_count: int = 20
    high_priority_share: float = 0.3
    min_high_priority: int = 3
    high_volume_threshold: float = 0.75
    high_volume_pair_ratio: float = 0.5
    high_volume_min_nodes: int = 3
    importance_weight: float = 0.7
    diversity_weight: float = 0.3
    strict_diversity: float = 0.3
    lenient_diversity: float = 0.1
    overflow_cluster_threshold: float = 0.7
    temporal_scale_hours: float = 24.0
    dim: int = DEFAULT_DIM


@dataclass
class ScoredNode:
    node: KnowledgeNode
    position: int
    importance: float
    temporal: float

    @property
    def total(self) -> float:
        return self.importance * self.temporal


@dataclass
class NodeGroup:
    kind: str
    nodes: List[KnowledgeNode]
    representative: KnowledgeNode
    importance: Importance
    summary: Optional[str] = None


@dataclass
class SessionSummary:
    total_nodes: int
    unique_workstreams: int
    high_volume_patterns: List[str] = field(default_factory=list)


@dataclass
class SessionContext:
    priority_nodes: List[KnowledgeNode]
    clusters: List[NodeGroup]
    summary: SessionSummary


def importance_weight(node: KnowledgeNode) -> float:
    weight = IMPORTANCE_BASE.get(node.importance, IMPORTANCE_BASE[Importance.MEDIUM])
    weight *= TYPE_BOOST.get(node.type, 1.0)
    if BLOCKER_TAG in node.tags:
        weight *= BLOCKER_BOOST
    if any(marker in tag for tag in node.tags for marker in MAINTENANCE_MARKERS):
        weight *= MAINTENANCE_PENALTY
    return weight


def temporal_weight(node: KnowledgeNode, now: float, scale_hours: float = 24.0) -> float:
    """exp(-hours/scale): 1.0 for fresh nodes, ~0.37 after a day, ~0.14 after two."""
    hours_since = max(0.0, (now - node.updated_at) / 3600.0)
    return math.exp(-hours_since / scale_hours)


def is_high_priority(node: KnowledgeNode) -> bool:
    return (
        node.type in HIGH_PRIORITY_TYPES
        or BLOCKER_TAG in node.tags
        or node.importance == Importance.HIGH
    )


def is_high_volume_pattern(
    sims: np.ndarray,
    threshold: float = 0.75,
    pair_ratio: float = 0.5,
    min_nodes: int = 3,
) -> bool:
    """True when more than `pair_ratio` of all member pairs are at least `threshold` similar."""
    n = sims.shape[0]
    if n < min_nodes:
        return False
    upper = sims[np.triu_indices(n, k=1)]
    if upper.size == 0:
        return False
    similar = int(np.count_nonzero(upper >= threshold))
    return similar / upper.size > pair_ratio


class SessionContextSelector:
    """Selects the node set injected at session warmup."""

    def __init__(self, settings: Optional[SessionContextSettings] = None):
        self.settings = settings if settings is not None else SessionContextSettings()

    def _vectors(self, nodes: Sequence[KnowledgeNode]) -> np.ndarray:
        dim = self.settings.dim
        return np.vstack([normalize_vector(vectorize(n.content, dim)) for n in nodes])

    def _workstreams(self, nodes: Sequence[KnowledgeNode]) -> Dict[str, List[int]]:
        buckets: Dict[str, List[int]] = {}
        for idx, node in enumerate(nodes):
            buckets.setdefault(node.workstream, []).append(idx)
        return buckets

    def high_volume_workstreams(
        self, nodes: Sequence[KnowledgeNode], sims: Optional[np.ndarray] = None
    ) -> List[str]:
        if not nodes:
            return []
        if sims is None:
            vectors = self._vectors(nodes)
            sims = vectors @ vectors.T
        s = self.settings
        flagged = []
        for label, members in self._workstreams(nodes).items():
            sub = sims[np.ix_(members, members)]
            if is_high_volume_pattern(sub, s.high_volume_threshold, s.high_volume_pair_ratio, s.high_volume_min_nodes):
                flagged.append(label)
        return flagged

    def score(self, nodes: Sequence[KnowledgeNode], now: Optional[float] = None) -> List[ScoredNode]:
        now = time.time() if now is None else now
        return [
            ScoredNode(
                node=node,
                position=idx,
                importance=importance_weight(node),
                temporal=temporal_weight(node, now, self.settings.temporal_scale_hours),
            )
            for idx, node in enumerate(nodes)
        ]

    def select(
        self,
        nodes: Sequence[KnowledgeNode],
        target_count: Optional[int] = None,
        now: Optional[float] = None,
    ) -> SessionContext:
        """
        Select a diverse, importance-ordered subset of nodes.

        Args:
            nodes: Every candidate node
            target_count: Number of nodes to select (defaults to settings)
            now: Reference time in epoch seconds, for reproducible selections

        Returns:
            SessionContext with the selected nodes, overflow groups and diagnostics
        """
        s = self.settings
        nodes = list(nodes)
        target = s.target_count if target_count is None else target_count
        target = max(0, int(target))

        if not nodes:
            return SessionContext(
                priority_nodes=[],
                clusters=[],
                summary=SessionSummary(total_nodes=0, unique_workstreams=0),
            )

        now = time.time() if now is None else now
        vectors = self._vectors(nodes)
        sims = vectors @ vectors.T

        workstreams = self._workstreams(nodes)
        high_volume = self.high_volume_workstreams(nodes, sims)

        scored = self.score(nodes, now)
        high_priority = sorted(
            (sn for sn in scored if is_high_priority(sn.node)), key=lambda sn: sn.total, reverse=True
        )
        regular = sorted(
            (sn for sn in scored if not is_high_priority(sn.node)), key=lambda sn: sn.total, reverse=True
        )

        selected: List[int] = []
        max_sim = np.zeros(len(nodes), dtype=np.float64)

        def take(position: int):
            selected.append(position)
            np.maximum(max_sim, sims[:, position], out=max_sim)

        quota = min(target, max(s.min_high_priority, int(math.floor(target * s.high_priority_share))))
        for sn in high_priority[:quota]:
            take(sn.position)

        pool = list(regular)
        while pool and len(selected) < target:
            unfilled = target - len(selected)
            required = s.lenient_diversity if unfilled < target * 0.5 else s.strict_diversity

            ranked = []
            for sn in pool:
                diversity = 1.0 if not selected else min(1.0, max(0.0, 1.0 - max_sim[sn.position]))
                combined = sn.total * (s.importance_weight + s.diversity_weight * diversity)
                ranked.append((combined, diversity, sn))
            ranked.sort(key=lambda item: item[0], reverse=True)

            pick = next((sn for _, diversity, sn in ranked if diversity > required), None)
            if pick is None:
                break
            take(pick.position)
            pool = [sn for sn in pool if sn is not pick]

        if len(selected) < target:
            chosen = set(selected)
            leftovers = sorted(
                (i for i in range(len(nodes)) if i not in chosen),
                key=lambda i: nodes[i].updated_at,
                reverse=True,
            )
            for position in leftovers[: target - len(selected)]:
                take(position)

        chosen = set(selected)
        overflow = [i for i in range(len(nodes)) if i not in chosen]
        groups = self._group_overflow([nodes[i] for i in overflow], vectors[overflow] if overflow else None)

        return SessionContext(
            priority_nodes=[nodes[i] for i in selected],
            clusters=groups,
            summary=SessionSummary(
                total_nodes=len(nodes),
                unique_workstreams=len(workstreams),
                high_volume_patterns=high_volume,
            ),
        )

    def _group_overflow(self, nodes: List[KnowledgeNode], vectors: Optional[np.ndarray]) -> List[NodeGroup]:
        if not nodes:
            return []
        clusters = cluster_by_similarity(
            nodes,
            similarity_threshold=self.settings.overflow_cluster_threshold,
            vectors=list(vectors),
        )
        groups: List[NodeGroup] = []
        for cluster in clusters:
            member_ids = set(cluster.nodes)
            members = [n for n in nodes if n.id in member_ids]
            if not members:
                continue
            representative = next((n for n in members if n.id == cluster.center_node), members[0])
            importance = max((n.importance for n in members), key=lambda imp: _IMPORTANCE_RANK[imp])
            summary = None
            if len(members) > 1:
                summary = f"{len(members)} related items: {', '.join(cluster.keywords)}"
            groups.append(
                NodeGroup(
                    kind="cluster" if len(members) > 1 else "individual",
                    nodes=members,
                    representative=representative,
                    importance=importance,
                    summary=summary,
                )
            )
        return groups


def select_session_context(
    nodes: Sequence[KnowledgeNode],
    target_count: Optional[int] = None,
    now: Optional[float] = None,
    settings: Optional[SessionContextSettings] = None,
) -> SessionContext:
    """Select with `target_count`, or the settings target when it is None."""
    return SessionContextSelector(settings).select(nodes, target_count=target_count, now=now)
