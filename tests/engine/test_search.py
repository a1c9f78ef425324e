"""
Unit tests for retrieval and ranking.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../engine"))

from ann_index import AnnIndex
from models import KnowledgeNode, NodeType
from search import find_similar, rank_nodes, recency_score, semantic_search
from vectorizer import vectorize

NOW = 1_700_000_000.0
DAY = 86400.0


def make_node(node_id, content, tags=(), node_type="progress", days_ago=0.0, embedding=None):
    ts = NOW - days_ago * DAY
    return KnowledgeNode(
        id=node_id,
        type=node_type,
        content=content,
        tags=list(tags),
        created_at=ts,
        updated_at=ts,
        embedding=embedding,
    )


class TestSemanticSearch:
    """Test suite for semantic_search."""

    def setup_method(self):
        """Set up test fixtures."""
        self.nodes = [
            make_node("a", "git commit integration"),
            make_node("b", "git commit capture"),
            make_node("c", "sailboat hull specs"),
        ]

    def test_exact_ranking(self):
        """Test exact cosine ranking without an index."""
        results = semantic_search("git commit", self.nodes, limit=3)
        assert [r.node.id for r in results] == ["a", "b", "c"]
        assert results[0].score == pytest.approx(results[1].score)
        assert results[2].score == pytest.approx(0.0)

    def test_limit(self):
        """Test that the limit caps the result count."""
        assert len(semantic_search("git commit", self.nodes, limit=1)) == 1
        assert semantic_search("git commit", self.nodes, limit=0) == []

    def test_blank_query(self):
        """Test that blank queries return nothing."""
        assert semantic_search("   ", self.nodes) == []
        assert semantic_search("git", []) == []

    def test_index_results_drop_unknown_ids(self):
        """Test that index hits for nodes no longer present are skipped."""
        index = AnnIndex(dim=256)
        index.build([(n.id, vectorize(n.content)) for n in self.nodes])
        index.add("ghost", vectorize("git commit"))
        results = semantic_search("git commit", self.nodes, index=index, limit=2)
        assert [r.node.id for r in results] == ["a", "b"]

    def test_index_dimension_mismatch_is_empty(self):
        """Test that an index of another dimension yields nothing."""
        index = AnnIndex(dim=32)
        assert semantic_search("git commit", self.nodes, index=index) == []


class TestFindSimilar:
    """Test suite for find_similar."""

    def test_excludes_self_and_sorts(self):
        """Test similar-node lookup."""
        nodes = [
            make_node("a", "git commit integration"),
            make_node("b", "git commit capture"),
            make_node("c", "sailboat hull specs"),
        ]
        results = find_similar(nodes[0], nodes, limit=5)
        assert [r.node.id for r in results] == ["b", "c"]

    def test_uses_embeddings_when_present(self):
        """Test that shared embeddings drive the ranking."""
        base = make_node("a", "alpha", embedding=[1.0, 0.0])
        near = make_node("b", "unrelated words", embedding=[0.9, 0.1])
        far = make_node("c", "alpha", embedding=[0.0, 1.0])
        results = find_similar(base, [base, near, far])
        assert results[0].node.id == "b"


class TestRankNodes:
    """Test suite for blended ranking."""

    def setup_method(self):
        """Set up test fixtures."""
        self.nodes = [
            make_node("a", "git commit integration", tags=["git"]),
            make_node("b", "git commit capture", tags=["git"], days_ago=15),
            make_node("c", "sailboat hull specs", node_type="decision"),
        ]

    def test_recency_score(self):
        """Test linear recency over 30 days."""
        assert recency_score(self.nodes[0], NOW) == pytest.approx(1.0)
        assert recency_score(self.nodes[1], NOW) == pytest.approx(0.5)
        assert recency_score(make_node("old", "x", days_ago=45), NOW) == 0.0

    def test_tag_and_recency_blend(self):
        """Test tag overlap and recency weighting without a query."""
        results = rank_nodes(self.nodes, tags=["GIT"], now=NOW)
        scores = {r.node.id: r.score for r in results}
        assert scores["a"] == pytest.approx(0.25 + 0.15)
        assert scores["b"] == pytest.approx(0.25 + 0.075)
        assert scores["c"] == pytest.approx(0.15)
        assert [r.node.id for r in results] == ["a", "b", "c"]

    def test_query_blend(self):
        """Test that the semantic component contributes 0.6."""
        results = rank_nodes(self.nodes, query="sailboat hull specs", now=NOW)
        assert results[0].node.id == "c"
        assert results[0].score == pytest.approx(0.6 + 0.15)

    def test_type_filter(self):
        """Test filtering by node type."""
        results = rank_nodes(self.nodes, node_type=NodeType.DECISION, now=NOW)
        assert [r.node.id for r in results] == ["c"]
        assert [r.node.id for r in rank_nodes(self.nodes, node_type="decision", now=NOW)] == ["c"]

    def test_scores_within_unit_interval(self):
        """Test every blended score stays in [0, 1]."""
        for result in rank_nodes(self.nodes, query="git", tags=["git"], now=NOW):
            assert 0.0 <= result.score <= 1.0


class TestExpandedRanking:
    """Test suite for ranking with query and tag expansion."""

    def test_tag_synonyms_count_as_overlap(self):
        """Test that a synonym tag matches only when expansion is on."""
        nodes = [
            make_node("x", "rotate signing keys", tags=["authentication"]),
            make_node("y", "sailboat hull specs", tags=["boat"]),
        ]
        plain = {r.node.id: r.score for r in rank_nodes(nodes, tags=["auth"], now=NOW)}
        assert plain["x"] == pytest.approx(plain["y"])

        expanded = rank_nodes(nodes, tags=["auth"], now=NOW, expand=True)
        scores = {r.node.id: r.score for r in expanded}
        assert [r.node.id for r in expanded] == ["x", "y"]
        # auth widens to six tags; medium importance adds 0.05, a fresh node 0.1
        assert scores["x"] == pytest.approx(0.25 / 6 + 0.05 + 0.1)
        assert scores["y"] == pytest.approx(0.05 + 0.1)

    def test_query_synonyms_match_content(self):
        """Test that expanded query terms reward content using a synonym."""
        nodes = [
            make_node("s", "sailboat hull specs"),
            make_node("m", "database migration plan"),
        ]
        plain = rank_nodes(nodes, query="db", now=NOW)
        assert plain[0].score == pytest.approx(plain[1].score)

        expanded = rank_nodes(nodes, query="db", now=NOW, expand=True)
        assert [r.node.id for r in expanded] == ["m", "s"]
        assert expanded[0].score == pytest.approx(0.15 / 4 + 0.05 + 0.1)

    def test_importance_boost(self):
        """Test that declared importance lifts expanded scores."""
        high = KnowledgeNode(id="h", type="progress", content="sailboat hull specs", importance="high", created_at=NOW, updated_at=NOW)
        low = KnowledgeNode(id="l", type="progress", content="sailboat hull specs", importance="low", created_at=NOW, updated_at=NOW)
        scores = {r.node.id: r.score for r in rank_nodes([low, high], query="hull", now=NOW, expand=True)}
        assert scores["h"] - scores["l"] == pytest.approx(0.1)

    def test_longer_recency_window(self):
        """Test the 60 day recency window used with expansion."""
        node = make_node("old", "x", days_ago=45)
        assert recency_score(node, NOW) == 0.0
        assert recency_score(node, NOW, 60.0) == pytest.approx(0.25)
