"""
Tests for the KnowledgeService facade.
"""

import os
import sys
from unittest.mock import Mock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../engine"))

from ann_index import AnnIndex
from config import EngineConfig
from embedder import HashingEmbedder
from models import KnowledgeEdge, KnowledgeNode, Relation
from services import InMemoryNodeSource, KnowledgeService
from session_context import SessionContextSelector, SessionContextSettings
from tag_stats import TagCooccurrence

NOW = 1_700_000_000.0
DAY = 86400.0


def make_node(node_id, content, node_type="progress", tags=(), days_ago=0.0, importance="medium"):
    ts = NOW - days_ago * DAY
    return KnowledgeNode(
        id=node_id,
        type=node_type,
        content=content,
        tags=list(tags),
        importance=importance,
        created_at=ts,
        updated_at=ts,
    )


class TestKnowledgeService:
    """Test suite for KnowledgeService."""

    def setup_method(self):
        """Set up test fixtures."""
        self.nodes = [
            make_node("a", "git commit integration", tags=["git", "hooks"]),
            make_node("b", "git commit capture", tags=["git", "hooks"]),
            make_node("c", "sailboat hull specs", "decision", tags=["boat"]),
            make_node("q", "Should hooks run on rebase?", "question", tags=["hooks"], days_ago=1),
        ]
        self.edges = [
            KnowledgeEdge(id="e1", source_id="a", target_id="b", relation="relates_to", strength=0.9),
            KnowledgeEdge(id="e2", source_id="b", target_id="q", relation="references", strength=0.05),
        ]
        self.source = InMemoryNodeSource(self.nodes, self.edges)
        self.service = KnowledgeService(self.source, EngineConfig(use_ann=True))

    def test_rebuild_indexes(self, capsys):
        """Test that rebuild fills the owned ANN index and co-occurrence table."""
        assert self.service.rebuild_indexes() == 4
        assert len(self.service.ann_index) == 4
        assert self.service.expand_tags(["git"]) == ["hooks"]
        assert "ANN index built for 4 nodes" in capsys.readouterr().out

    def test_injected_dependencies_are_used(self):
        """Test that injected index and table are the ones rebuilt."""
        index = AnnIndex(dim=256)
        table = TagCooccurrence()
        service = KnowledgeService(self.source, ann_index=index, cooccurrence=table)
        service.rebuild_indexes()
        assert service.ann_index is index
        assert len(index) == 4
        assert table.count("git", "hooks") == 2

    def test_injected_empty_table_is_kept(self):
        """Test that an empty injected table is not replaced and is not built implicitly."""
        table = TagCooccurrence()
        selector = SessionContextSelector(SessionContextSettings(target_count=1))
        service = KnowledgeService(self.source, cooccurrence=table, selector=selector)
        assert service.cooccurrence is table
        assert service.selector is selector
        assert service.expand_tags(["git"]) == []
        assert len(service.session_context(now=NOW).priority_nodes) == 1

    def test_owned_indexes_built_on_first_use(self, capsys):
        """Test that a fresh service searches and expands without an explicit rebuild."""
        response = self.service.semantic_search("git commit", limit=2)
        assert [r.node.id for r in response.results] == ["a", "b"]
        assert len(self.service.ann_index) == 4
        assert self.service.expand_tags(["git"]) == ["hooks"]
        assert capsys.readouterr().out.count("ANN index built") == 1

    def test_index_node_before_first_use(self):
        """Test that the first build does not count a node already in the source twice."""
        node = make_node("n", "git hooks rollout", tags=["git", "release"])
        self.source.put_node(node)
        self.service.index_node(node)
        assert len(self.service.ann_index) == 5
        assert self.service.cooccurrence.count("git", "release") == 1

    def test_no_ann_by_default(self):
        """Test that the exact path is used when ANN is disabled."""
        service = KnowledgeService(self.source)
        assert service.ann_index is None
        response = service.semantic_search("git commit", limit=2)
        assert [r.node.id for r in response.results] == ["a", "b"]

    def test_index_node(self):
        """Test folding a new node into the indexes."""
        self.service.rebuild_indexes()
        node = make_node("n", "git hooks rollout", tags=["git", "release"])
        self.source.put_node(node)
        self.service.index_node(node)
        assert len(self.service.ann_index) == 5
        assert "release" in self.service.expand_tags(["git"])

    def test_index_node_dimension_mismatch(self, capsys):
        """Test that a mismatched index drops the entry with a status line."""
        service = KnowledgeService(self.source, ann_index=AnnIndex(dim=8))
        service.index_node(self.nodes[0])
        assert len(service.ann_index) == 0
        assert "Skipping ANN entry for a" in capsys.readouterr().out

    def test_semantic_search_via_index(self):
        """Test search through the owned index."""
        self.service.rebuild_indexes()
        response = self.service.semantic_search("git commit", limit=2)
        assert response.total == 2
        assert [r.node.id for r in response.results] == ["a", "b"]

    def test_find_similar_unknown_id(self):
        """Test that unknown ids give empty results."""
        assert self.service.find_similar("missing").total == 0
        assert self.service.suggest_links("missing").results == []
        assert self.service.score_relationship("a", "missing") is None

    def test_search(self):
        """Test blended ranking via the service."""
        response = self.service.search(tags=["boat"], now=NOW)
        assert response.results[0].node.id == "c"

    def test_search_expands_tag_synonyms(self):
        """Test that service search matches synonym tags by default."""
        self.source.put_node(make_node("z", "rotate signing keys", tags=["authentication"]))
        assert self.service.search(tags=["auth"], now=NOW).results[0].node.id == "z"
        plain = self.service.search(tags=["auth"], now=NOW, expand=False)
        assert all(r.score <= 0.15 + 1e-9 for r in plain.results)

    def test_suggest_tags(self):
        """Test vocabulary hits first, then tags that co-occur with the existing ones."""
        suggested = self.service.suggest_tags("fix the login bug", limit=2)
        assert suggested == ["login", "bug"]
        assert self.service.suggest_tags("rebase notes", existing_tags=["git"]) == ["hooks"]

    def test_clusters(self):
        """Test clustering payloads."""
        response = self.service.clusters(threshold=0.3)
        member_sets = sorted(sorted(c.nodes) for c in response.clusters)
        assert ["a", "b"] in member_sets
        assert response.total == len(response.clusters)

    def test_session_context(self):
        """Test the session context payload."""
        payload = self.service.session_context(target_count=2, now=NOW)
        assert len(payload.priority_nodes) == 2
        assert {n.id for n in payload.priority_nodes} == {"c", "q"}
        assert payload.summary.total_nodes == 4
        grouped = {node_id for g in payload.clusters for node_id in g.node_ids}
        assert grouped == {"a", "b"}

    def test_connection_path(self):
        """Test path payloads, including not-found cases."""
        found = self.service.connection_path("a", "q")
        assert found.found
        assert found.path == ["a", "b", "q"]
        assert found.length == 2
        assert found.hops[1].relation == Relation.REFERENCES

        missing = self.service.connection_path("a", "c")
        assert not missing.found
        assert missing.message == "No path found"

        unknown = self.service.connection_path("a", "zzz")
        assert not unknown.found
        assert unknown.path == []

        same = self.service.connection_path("c", "c")
        assert same.found
        assert same.path == ["c"]
        assert same.length == 0

    def test_score_relationship(self):
        """Test strength factors payload."""
        payload = self.service.score_relationship("a", "b", now=NOW)
        assert 0.0 <= payload.score <= 1.0
        assert payload.reinforcement == 0.0
        assert payload.relation == Relation.REFERENCES

    def test_suggest_links(self):
        """Test link suggestions exclude the node itself."""
        response = self.service.suggest_links("a", limit=2, now=NOW)
        ids = [r.node.id for r in response.results]
        assert ids[0] == "b"
        assert "a" not in ids

    def test_auto_links(self):
        """Test link candidates for new content."""
        assert self.service.auto_links("rolling out hooks for git capture") == ["b", "q"]

    def test_node_relationships(self):
        """Test outgoing and incoming edges of a node."""
        split = self.service.node_relationships("b")
        assert [e.id for e in split["outgoing"]] == ["e2"]
        assert [e.id for e in split["incoming"]] == ["e1"]

    def test_propose_relationships(self, capsys):
        """Test that already linked pairs are not proposed again."""
        response = self.service.propose_relationships(now=NOW)
        pairs = {(r.source_id, r.target_id) for r in response.relationships}
        assert ("a", "b") not in pairs
        assert response.total == len(response.relationships)
        assert "Relationship sweep proposed" in capsys.readouterr().out

    def test_prune_relationships(self):
        """Test pruning with the configured threshold."""
        response = self.service.prune_relationships(now=NOW)
        assert response.kept == 1
        assert [r.id for r in response.pruned] == ["e2"]

    def test_reclassify_relationships(self):
        """Test reclassification payload."""
        response = self.service.reclassify_relationships()
        assert [r.id for r in response.relationships] == ["e1", "e2"]
        assert response.relationships[0].relation == Relation.REFERENCES
        assert response.relationships[1].relation == Relation.RELATES_TO

    def test_query_context_and_emerging(self):
        """Test context reconstruction and emerging concepts via the service."""
        self.service.rebuild_indexes()
        summary = self.service.query_context("hooks")
        assert [n.id for n in summary.open_questions] == ["q"]
        assert "git" in summary.related_tags

        concepts = self.service.emerging_concepts(now=NOW)
        assert "hooks" in {c.keyword for c in concepts}

    def test_graph_export(self):
        """Test graph export payload."""
        export = self.service.graph_export()
        assert export.statistics["total_nodes"] == 4
        assert export.statistics["total_edges"] == 2

    def test_embed_nodes(self):
        """Test embedding copies with the default local embedder."""
        service = KnowledgeService(self.source, EngineConfig(embed_dim=32))
        embedded = service.embed_nodes(["a", "missing"])
        assert [n.id for n in embedded] == ["a"]
        assert len(embedded[0].embedding) == 32
        assert self.source.get_node("a").embedding is None
        assert isinstance(service.get_embedder(), HashingEmbedder)

    def test_embed_nodes_with_injected_embedder(self):
        """Test that an injected embedder is used as-is."""
        embedder = Mock()
        embedder.model_name = "mock"
        embedder.embed_batch.return_value = [[1.0, 0.0]] * 4
        service = KnowledgeService(self.source, embedder=embedder)
        embedded = service.embed_nodes()
        assert len(embedded) == 4
        assert embedded[0].embedding == [1.0, 0.0]

    def test_invalid_config_rejected(self):
        """Test that an invalid configuration fails fast."""
        with pytest.raises(ValueError):
            KnowledgeService(self.source, EngineConfig(cluster_threshold=2.0))
