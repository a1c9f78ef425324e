"""
Unit tests for node and edge models and host payloads.
"""

import os
import sys
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../engine"))

from engine_models import ClusterPayload, NodeRefPayload
from models import (
    EdgePayload,
    Importance,
    KnowledgeEdge,
    KnowledgeNode,
    NodePayload,
    NodeType,
    Relation,
    normalize_tags,
    workstream_tag,
)


class TestKnowledgeNode:
    """Test suite for KnowledgeNode."""

    def test_tags_are_normalized(self):
        """Test lower-casing, trimming and de-duplication in order."""
        assert normalize_tags([" Git", "git", "HOOKS ", "", "ws:Core"]) == ["git", "hooks", "ws:core"]
        node = KnowledgeNode(id="a", type="idea", tags=["B", "a", "b"])
        assert node.tags == ["b", "a"]

    def test_enums_are_coerced(self):
        """Test that string values become enums and importance defaults to medium."""
        node = KnowledgeNode(id="a", type="decision", importance=None)
        assert node.type == NodeType.DECISION
        assert node.importance == Importance.MEDIUM

    def test_update_never_before_create(self):
        """Test that updated_at is clamped up to created_at."""
        node = KnowledgeNode(id="a", type="idea", created_at=200.0, updated_at=100.0)
        assert node.updated_at == 200.0

    def test_workstream(self):
        """Test the first ws: tag names the workstream, else general."""
        assert KnowledgeNode(id="a", type="idea", tags=["x", "ws:api", "ws:ui"]).workstream == "ws:api"
        assert KnowledgeNode(id="b", type="idea").workstream == "general"
        assert workstream_tag(["none"]) is None

    def test_invalid_type(self):
        """Test that unknown node types are rejected."""
        with pytest.raises(ValueError):
            KnowledgeNode(id="a", type="memo")


class TestKnowledgeEdge:
    """Test suite for KnowledgeEdge."""

    def test_strength_is_clamped(self):
        """Test strength stays within [0, 1]."""
        assert KnowledgeEdge(id="e", source_id="a", target_id="b", relation="blocks", strength=1.7).strength == 1.0
        assert KnowledgeEdge(id="e", source_id="a", target_id="b", relation="blocks", strength=-1).strength == 0.0
        assert KnowledgeEdge(id="e", source_id="a", target_id="b", relation="blocks").strength is None

    def test_relation_is_coerced(self):
        """Test relation strings become enums."""
        edge = KnowledgeEdge(id="e", source_id="a", target_id="b", relation="resolved_by")
        assert edge.relation == Relation.RESOLVED_BY


class TestPayloads:
    """Test suite for host payload conversion."""

    def test_node_payload_camel_case(self):
        """Test camelCase fields and ISO timestamps."""
        payload = NodePayload.model_validate(
            {
                "id": "n1",
                "type": "question",
                "content": "Why?",
                "tags": ["Open", "open"],
                "createdAt": "2024-01-01T00:00:00Z",
                "updatedAt": "2024-01-02T00:00:00+00:00",
            }
        )
        node = payload.to_record()
        assert node.tags == ["open"]
        assert node.created_at == datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp()
        assert node.updated_at - node.created_at == 86400.0

    def test_node_payload_snake_case_and_epoch(self):
        """Test snake_case fields, epoch numbers and a missing update time."""
        node = NodePayload(id="n1", type="idea", created_at=1000.0, importance=None).to_record()
        assert node.created_at == 1000.0
        assert node.updated_at == 1000.0
        assert node.importance == Importance.MEDIUM

    def test_node_payload_rejects_bad_type(self):
        """Test validation errors for malformed payloads."""
        with pytest.raises(ValidationError):
            NodePayload.model_validate({"id": "n1", "type": "memo"})

    def test_edge_payload(self):
        """Test edge payload aliases and strength bounds."""
        edge = EdgePayload.model_validate(
            {"id": "e1", "fromNodeId": "a", "toNodeId": "b", "relation": "blocks", "strength": 0.4}
        ).to_record()
        assert (edge.source_id, edge.target_id) == ("a", "b")
        assert edge.relation == Relation.BLOCKS
        with pytest.raises(ValidationError):
            EdgePayload.model_validate(
                {"id": "e1", "fromNodeId": "a", "toNodeId": "b", "relation": "blocks", "strength": 2}
            )

    def test_response_payload_aliases(self):
        """Test response payloads dump with camelCase aliases."""
        node = KnowledgeNode(id="a", type="idea", content="x" * 500, updated_at=5.0, created_at=5.0)
        ref = NodeRefPayload.from_node(node)
        assert len(ref.snippet) == 160
        assert ref.model_dump(by_alias=True)["updatedAt"] == 5.0

        cluster = ClusterPayload(id="cluster-1", name="n", center_node="a", coherence_score=1.0)
        dumped = cluster.model_dump(by_alias=True)
        assert dumped["centerNode"] == "a"
        assert dumped["coherenceScore"] == 1.0
