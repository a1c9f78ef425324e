"""Shared engine models for knowledge nodes and edges."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

GENERAL_WORKSTREAM = "general"


class NodeType(str, Enum):
    IDEA = "idea"
    DECISION = "decision"
    PROGRESS = "progress"
    INSIGHT = "insight"
    QUESTION = "question"
    SESSION = "session"


class Importance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Relation(str, Enum):
    REFERENCES = "references"
    RELATES_TO = "relates_to"
    DERIVED_FROM = "derived_from"
    BLOCKS = "blocks"
    DUPLICATES = "duplicates"
    RESOLVED_BY = "resolved_by"


def _timestamp() -> float:
    return time.time()


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Lower-case, trim and de-duplicate tags, keeping first-seen order."""
    seen = set()
    result: List[str] = []
    for tag in tags or []:
        norm = str(tag).strip().lower()
        if not norm or norm in seen:
            continue
        seen.add(norm)
        result.append(norm)
    return result


def workstream_tag(tags: Iterable[str]) -> Optional[str]:
    for tag in tags:
        if tag.startswith("ws:"):
            return tag
    return None


@dataclass
class KnowledgeNode:
    """A captured unit of knowledge."""

    id: str
    type: NodeType
    content: str = ""
    tags: List[str] = field(default_factory=list)
    importance: Importance = Importance.MEDIUM
    created_at: float = field(default_factory=_timestamp)
    updated_at: float = field(default_factory=_timestamp)
    embedding: Optional[List[float]] = None

    def __post_init__(self):
        self.type = NodeType(self.type)
        self.importance = Importance(self.importance or Importance.MEDIUM)
        self.tags = normalize_tags(self.tags)
        if self.updated_at < self.created_at:
            self.updated_at = self.created_at

    @property
    def workstream(self) -> str:
        return workstream_tag(self.tags) or GENERAL_WORKSTREAM


@dataclass
class KnowledgeEdge:
    """A directed, typed relationship between two nodes."""

    id: str
    source_id: str
    target_id: str
    relation: Relation
    created_at: float = field(default_factory=_timestamp)
    strength: Optional[float] = None
    evidence: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.relation = Relation(self.relation)
        if self.strength is not None:
            self.strength = min(1.0, max(0.0, float(self.strength)))


# Host payloads

Timestamp = Union[float, datetime]


def _to_epoch(value: Optional[Timestamp]) -> float:
    if value is None:
        return _timestamp()
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    return float(value)


class NodePayload(BaseModel):
    """Node dict as supplied by the storage collaborator."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: NodeType
    content: str = ""
    tags: List[str] = Field(default_factory=list)
    importance: Importance = Importance.MEDIUM
    created_at: Optional[Timestamp] = Field(default=None, alias="createdAt")
    updated_at: Optional[Timestamp] = Field(default=None, alias="updatedAt")
    embedding: Optional[List[float]] = None

    @field_validator("tags")
    @classmethod
    def _normalize(cls, value: List[str]) -> List[str]:
        return normalize_tags(value)

    @field_validator("importance", mode="before")
    @classmethod
    def _default_importance(cls, value):
        return Importance.MEDIUM if value is None else value

    def to_record(self) -> KnowledgeNode:
        created = _to_epoch(self.created_at)
        updated = _to_epoch(self.updated_at) if self.updated_at is not None else created
        return KnowledgeNode(
            id=self.id,
            type=self.type,
            content=self.content,
            tags=list(self.tags),
            importance=self.importance,
            created_at=created,
            updated_at=updated,
            embedding=list(self.embedding) if self.embedding else None,
        )


class EdgePayload(BaseModel):
    """Edge dict as supplied by the storage collaborator."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    source_id: str = Field(alias="fromNodeId")
    target_id: str = Field(alias="toNodeId")
    relation: Relation
    created_at: Optional[Timestamp] = Field(default=None, alias="createdAt")
    strength: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    evidence: List[str] = Field(default_factory=list)

    def to_record(self) -> KnowledgeEdge:
        return KnowledgeEdge(
            id=self.id,
            source_id=self.source_id,
            target_id=self.target_id,
            relation=self.relation,
            created_at=_to_epoch(self.created_at),
            strength=self.strength,
            evidence=list(self.evidence),
        )
