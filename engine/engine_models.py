"""Pydantic response payloads for engine results."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import Importance, KnowledgeEdge, KnowledgeNode, NodeType, Relation

SNIPPET_CHARS = 160


class NodeRefPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: NodeType
    importance: Importance
    tags: List[str] = Field(default_factory=list)
    snippet: str = ""
    updated_at: float = Field(alias="updatedAt")

    @classmethod
    def from_node(cls, node: KnowledgeNode) -> "NodeRefPayload":
        return cls(
            id=node.id,
            type=node.type,
            importance=node.importance,
            tags=list(node.tags),
            snippet=(node.content or "")[:SNIPPET_CHARS],
            updated_at=node.updated_at,
        )


class ScoredNodePayload(BaseModel):
    node: NodeRefPayload
    score: float


class SearchResponsePayload(BaseModel):
    total: int = 0
    results: List[ScoredNodePayload] = Field(default_factory=list)


class ClusterPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    nodes: List[str] = Field(default_factory=list)
    center_node: str = Field(alias="centerNode")
    coherence_score: float = Field(alias="coherenceScore")
    keywords: List[str] = Field(default_factory=list)


class ClustersResponsePayload(BaseModel):
    total: int = 0
    clusters: List[ClusterPayload] = Field(default_factory=list)


class NodeGroupPayload(BaseModel):
    kind: str
    node_ids: List[str] = Field(default_factory=list)
    representative_id: str
    importance: Importance
    summary: Optional[str] = None


class SessionSummaryPayload(BaseModel):
    total_nodes: int = 0
    unique_workstreams: int = 0
    high_volume_patterns: List[str] = Field(default_factory=list)


class SessionContextPayload(BaseModel):
    priority_nodes: List[NodeRefPayload] = Field(default_factory=list)
    clusters: List[NodeGroupPayload] = Field(default_factory=list)
    summary: SessionSummaryPayload = Field(default_factory=SessionSummaryPayload)


class PathHopPayload(BaseModel):
    source_id: str
    target_id: str
    relation: Relation
    edge_id: str
    forward: bool = True


class PathResultPayload(BaseModel):
    found: bool
    path: List[str] = Field(default_factory=list)
    length: int = 0
    hops: List[PathHopPayload] = Field(default_factory=list)
    message: Optional[str] = None


class StrengthFactorsPayload(BaseModel):
    content: float
    temporal: float
    explicit_references: float
    reinforcement: float = 0.0
    score: float
    relation: Relation


class RelationshipPayload(BaseModel):
    id: str
    source_id: str
    target_id: str
    relation: Relation
    strength: Optional[float] = None
    evidence: List[str] = Field(default_factory=list)

    @classmethod
    def from_edge(cls, edge: KnowledgeEdge) -> "RelationshipPayload":
        return cls(
            id=edge.id,
            source_id=edge.source_id,
            target_id=edge.target_id,
            relation=edge.relation,
            strength=edge.strength,
            evidence=list(edge.evidence),
        )


class RelationshipsResponsePayload(BaseModel):
    total: int = 0
    relationships: List[RelationshipPayload] = Field(default_factory=list)


class PruneResponsePayload(BaseModel):
    kept: int = 0
    pruned: List[RelationshipPayload] = Field(default_factory=list)


class EmergingConceptPayload(BaseModel):
    keyword: str
    recent: int
    past: int
    lift: float


class ContextSummaryPayload(BaseModel):
    topic: str
    last_discussed: Optional[float] = None
    key_points: List[str] = Field(default_factory=list)
    decisions: List[NodeRefPayload] = Field(default_factory=list)
    open_questions: List[NodeRefPayload] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list)
    related_tags: List[str] = Field(default_factory=list)


class GraphExportPayload(BaseModel):
    nodes: List[Dict[str, Any]] = Field(default_factory=list)
    edges: List[Dict[str, Any]] = Field(default_factory=list)
    statistics: Dict[str, Any] = Field(default_factory=dict)
