"""Service layer coordinating the node source, indexes and engine operations."""

from __future__ import annotations

import threading
import time
from typing import Dict, Iterable, List, Optional, Protocol, Set

from ann_index import create_ann_index
from clustering import cluster_by_similarity
from config import EngineConfig
from embedder import HashingEmbedder, SentenceTransformerEmbedder, attach_embeddings
from engine_models import (
    ClusterPayload,
    ClustersResponsePayload,
    ContextSummaryPayload,
    EmergingConceptPayload,
    GraphExportPayload,
    NodeGroupPayload,
    NodeRefPayload,
    PathHopPayload,
    PathResultPayload,
    PruneResponsePayload,
    RelationshipPayload,
    RelationshipsResponsePayload,
    ScoredNodePayload,
    SearchResponsePayload,
    SessionContextPayload,
    SessionSummaryPayload,
    StrengthFactorsPayload,
)
from graph import build_graph_export, edges_for_node, find_connection_path
from insights import find_auto_links, find_emerging_concepts, reconstruct_context
from models import KnowledgeEdge, KnowledgeNode, NodeType
from query_expansion import suggest_tags
from relationships import (
    classify_relationship,
    compute_strength_factors,
    propose_relationships,
    prune_weak_relationships,
    reclassify_relationships,
    strongest_links,
)
from search import find_similar, rank_nodes, semantic_search
from session_context import SessionContextSelector, SessionContextSettings
from tag_stats import TagCooccurrence
from vectorizer import vectorize


class NodeSource(Protocol):
    """Storage collaborator that owns node and edge lifecycle."""

    def list_all_nodes(self) -> List[KnowledgeNode]: ...

    def list_edges(self, node_id: Optional[str] = None) -> List[KnowledgeEdge]: ...

    def get_node(self, node_id: str) -> Optional[KnowledgeNode]: ...


class InMemoryNodeSource:
    """Minimal NodeSource holding nodes and edges in memory."""

    def __init__(
        self,
        nodes: Iterable[KnowledgeNode] = (),
        edges: Iterable[KnowledgeEdge] = (),
    ):
        self._lock = threading.RLock()
        self._nodes: Dict[str, KnowledgeNode] = {n.id: n for n in nodes}
        self._edges: List[KnowledgeEdge] = list(edges)

    def list_all_nodes(self) -> List[KnowledgeNode]:
        with self._lock:
            return list(self._nodes.values())

    def list_edges(self, node_id: Optional[str] = None) -> List[KnowledgeEdge]:
        with self._lock:
            if node_id is None:
                return list(self._edges)
            return [e for e in self._edges if node_id in (e.source_id, e.target_id)]

    def get_node(self, node_id: str) -> Optional[KnowledgeNode]:
        with self._lock:
            return self._nodes.get(node_id)

    def put_node(self, node: KnowledgeNode) -> None:
        with self._lock:
            self._nodes[node.id] = node

    def add_edges(self, edges: Iterable[KnowledgeEdge]) -> None:
        with self._lock:
            self._edges.extend(edges)

    def replace_edges(self, edges: Iterable[KnowledgeEdge]) -> None:
        with self._lock:
            self._edges = list(edges)


class KnowledgeService:
    """Runs engine operations against a node source.

    The ANN index and the tag co-occurrence table are owned here and can be
    injected. Structures the service creates itself are built from the source
    on first use; `rebuild_indexes` refreshes both.
    """

    def __init__(
        self,
        source: NodeSource,
        config: Optional[EngineConfig] = None,
        ann_index=None,
        cooccurrence: Optional[TagCooccurrence] = None,
        selector: Optional[SessionContextSelector] = None,
        embedder=None,
    ):
        self.source = source
        self.config = (config if config is not None else EngineConfig()).ensure_valid()
        self.embedder = embedder
        self._lock = threading.RLock()
        self._unbuilt = set()

        self.ann_index = ann_index
        if self.ann_index is None and self.config.use_ann:
            self.ann_index = create_ann_index(self.config.embed_dim, self.config.ann_backend)
            self._unbuilt.add("ann")
        self.cooccurrence = cooccurrence
        if self.cooccurrence is None:
            self.cooccurrence = TagCooccurrence()
            self._unbuilt.add("cooccurrence")

        self.selector = selector
        if self.selector is None:
            self.selector = SessionContextSelector(
                SessionContextSettings(
                    target_count=self.config.session_target_count,
                    high_volume_threshold=self.config.high_volume_threshold,
                    overflow_cluster_threshold=self.config.overflow_cluster_threshold,
                    dim=self.config.embed_dim,
                )
            )

    # Indexes

    def rebuild_indexes(self) -> int:
        with self._lock:
            nodes = self.source.list_all_nodes()
            self.cooccurrence.build(nodes)
            if self.ann_index is not None:
                self._build_ann(nodes)
            self._unbuilt.clear()
            return len(nodes)

    def _build_ann(self, nodes: List[KnowledgeNode]) -> None:
        dim = self.config.embed_dim
        self.ann_index.build((n.id, vectorize(n.content, dim)) for n in nodes)
        print(f"ANN index built for {len(nodes)} nodes")

    def _ensure_indexes(self) -> Set[str]:
        """Build the structures this service created and has not built yet; returns their names."""
        with self._lock:
            built = set(self._unbuilt)
            if not built:
                return built
            nodes = self.source.list_all_nodes()
            if "cooccurrence" in built:
                self.cooccurrence.build(nodes)
            if "ann" in built:
                self._build_ann(nodes)
            self._unbuilt.clear()
            return built

    def index_node(self, node: KnowledgeNode) -> None:
        """Fold a newly captured node into the owned indexes."""
        with self._lock:
            built = self._ensure_indexes()
            # a first build already read the node if the source holds it
            if built and self.source.get_node(node.id) is not None:
                skip = built
            else:
                skip = set()
            if "cooccurrence" not in skip:
                self.cooccurrence.add_node(node)
            if self.ann_index is not None and "ann" not in skip:
                if not self.ann_index.add(node.id, vectorize(node.content, self.config.embed_dim)):
                    print(f"Skipping ANN entry for {node.id}: vector dimension does not match index")

    def get_embedder(self):
        """Embedder used for external embeddings, created on first use."""
        if self.embedder is None:
            if self.config.embed_model:
                self.embedder = SentenceTransformerEmbedder(self.config.embed_model)
            else:
                self.embedder = HashingEmbedder(self.config.embed_dim)
        return self.embedder

    def embed_nodes(self, node_ids: Optional[List[str]] = None) -> List[KnowledgeNode]:
        """
        Compute embeddings for nodes.

        Returns copies carrying `embedding`; persisting them is up to the host.
        Unknown ids are skipped.
        """
        if node_ids is None:
            nodes = self.source.list_all_nodes()
        else:
            nodes = [n for n in (self.source.get_node(i) for i in node_ids) if n is not None]
        if not nodes:
            return []
        embedder = self.get_embedder()
        print(f"Embedding {len(nodes)} nodes with {embedder.model_name}")
        return attach_embeddings(nodes, embedder)

    # Retrieval

    def semantic_search(self, query: str, limit: int = 10) -> SearchResponsePayload:
        self._ensure_indexes()
        hits = semantic_search(
            query,
            self.source.list_all_nodes(),
            index=self.ann_index,
            limit=limit,
            dim=self.config.embed_dim,
        )
        return self._search_payload(hits)

    def find_similar(self, node_id: str, limit: int = 10) -> SearchResponsePayload:
        base = self.source.get_node(node_id)
        if base is None:
            return SearchResponsePayload()
        hits = find_similar(base, self.source.list_all_nodes(), limit=limit, dim=self.config.embed_dim)
        return self._search_payload(hits)

    def search(
        self,
        query: Optional[str] = None,
        tags: Optional[List[str]] = None,
        node_type: Optional[NodeType] = None,
        limit: int = 20,
        now: Optional[float] = None,
        expand: bool = True,
    ) -> SearchResponsePayload:
        """Blended text search; `expand` widens the query and tags with synonyms."""
        hits = rank_nodes(
            self.source.list_all_nodes(),
            query=query,
            tags=tags,
            node_type=node_type,
            limit=limit,
            now=now,
            dim=self.config.embed_dim,
            expand=expand,
        )
        return self._search_payload(hits)

    def _search_payload(self, hits) -> SearchResponsePayload:
        results = [ScoredNodePayload(node=NodeRefPayload.from_node(h.node), score=h.score) for h in hits]
        return SearchResponsePayload(total=len(results), results=results)

    def expand_tags(self, tags: List[str], limit: int = 5) -> List[str]:
        self._ensure_indexes()
        return self.cooccurrence.expand(tags, limit)

    def suggest_tags(self, content: str, existing_tags: Iterable[str] = (), limit: int = 5) -> List[str]:
        """Vocabulary tags for new content: synonym-table hits, then co-occurring tags."""
        existing = list(existing_tags)
        suggested = suggest_tags(content, existing, limit=limit)
        related = self.expand_tags(existing + suggested, limit)
        return (suggested + related)[: max(0, limit)]

    # Analysis

    def clusters(self, threshold: Optional[float] = None, limit: int = 500) -> ClustersResponsePayload:
        nodes = self.source.list_all_nodes()[: max(0, limit)]
        threshold = self.config.cluster_threshold if threshold is None else threshold
        found = cluster_by_similarity(nodes, similarity_threshold=threshold, dim=self.config.embed_dim)
        payloads = [
            ClusterPayload(
                id=c.id,
                name=c.name,
                nodes=list(c.nodes),
                center_node=c.center_node,
                coherence_score=c.coherence_score,
                keywords=list(c.keywords),
            )
            for c in found
        ]
        return ClustersResponsePayload(total=len(payloads), clusters=payloads)

    def session_context(
        self, target_count: Optional[int] = None, now: Optional[float] = None
    ) -> SessionContextPayload:
        result = self.selector.select(self.source.list_all_nodes(), target_count=target_count, now=now)
        return SessionContextPayload(
            priority_nodes=[NodeRefPayload.from_node(n) for n in result.priority_nodes],
            clusters=[
                NodeGroupPayload(
                    kind=g.kind,
                    node_ids=[n.id for n in g.nodes],
                    representative_id=g.representative.id,
                    importance=g.importance,
                    summary=g.summary,
                )
                for g in result.clusters
            ],
            summary=SessionSummaryPayload(
                total_nodes=result.summary.total_nodes,
                unique_workstreams=result.summary.unique_workstreams,
                high_volume_patterns=list(result.summary.high_volume_patterns),
            ),
        )

    def connection_path(self, start_id: str, end_id: str, max_depth: int = 4) -> PathResultPayload:
        if self.source.get_node(start_id) is None or self.source.get_node(end_id) is None:
            return PathResultPayload(found=False, message="Unknown start or end node")
        result = find_connection_path(self.source.list_edges(), start_id, end_id, max_depth=max_depth)
        return PathResultPayload(
            found=result.found,
            path=list(result.path),
            length=result.length,
            hops=[
                PathHopPayload(
                    source_id=h.source_id,
                    target_id=h.target_id,
                    relation=h.relation,
                    edge_id=h.edge_id,
                    forward=h.forward,
                )
                for h in result.hops
            ],
            message=None if result.found else "No path found",
        )

    def emerging_concepts(
        self, window_days: float = 7, now: Optional[float] = None
    ) -> List[EmergingConceptPayload]:
        concepts = find_emerging_concepts(self.source.list_all_nodes(), window_days=window_days, now=now)
        return [
            EmergingConceptPayload(keyword=c.keyword, recent=c.recent, past=c.past, lift=c.lift)
            for c in concepts
        ]

    def query_context(self, topic: str) -> ContextSummaryPayload:
        self._ensure_indexes()
        summary = reconstruct_context(self.source.list_all_nodes(), topic, cooccurrence=self.cooccurrence)
        return ContextSummaryPayload(
            topic=summary.topic,
            last_discussed=summary.last_discussed,
            key_points=summary.key_points,
            decisions=[NodeRefPayload.from_node(n) for n in summary.decisions],
            open_questions=[NodeRefPayload.from_node(n) for n in summary.open_questions],
            next_steps=summary.next_steps,
            related_tags=summary.related_tags,
        )

    def graph_export(self) -> GraphExportPayload:
        return GraphExportPayload(**build_graph_export(self.source.list_all_nodes(), self.source.list_edges()))

    # Relationships

    def score_relationship(
        self, a_id: str, b_id: str, now: Optional[float] = None
    ) -> Optional[StrengthFactorsPayload]:
        a = self.source.get_node(a_id)
        b = self.source.get_node(b_id)
        if a is None or b is None:
            return None
        factors = compute_strength_factors(a, b, now=now, dim=self.config.embed_dim)
        return StrengthFactorsPayload(
            content=factors.content,
            temporal=factors.temporal,
            explicit_references=factors.explicit_references,
            reinforcement=factors.reinforcement,
            score=factors.score,
            relation=classify_relationship(a, b, factors),
        )

    def suggest_links(
        self, node_id: str, limit: int = 5, now: Optional[float] = None
    ) -> SearchResponsePayload:
        node = self.source.get_node(node_id)
        if node is None:
            return SearchResponsePayload()
        scored = strongest_links(node, self.source.list_all_nodes(), limit=limit, now=now, dim=self.config.embed_dim)
        results = [ScoredNodePayload(node=NodeRefPayload.from_node(n), score=s) for n, s in scored]
        return SearchResponsePayload(total=len(results), results=results)

    def auto_links(self, content: str, limit: int = 5) -> List[str]:
        """Ids of existing nodes worth linking to a node about to be captured."""
        return find_auto_links(self.source.list_all_nodes(), content, limit=limit)

    def node_relationships(self, node_id: str) -> Dict[str, List[RelationshipPayload]]:
        split = edges_for_node(self.source.list_edges(node_id), node_id)
        return {
            direction: [RelationshipPayload.from_edge(e) for e in edges]
            for direction, edges in split.items()
        }

    def propose_relationships(
        self, threshold: Optional[float] = None, now: Optional[float] = None
    ) -> RelationshipsResponsePayload:
        threshold = self.config.rebuild_threshold if threshold is None else threshold
        started = time.time()
        proposals = propose_relationships(
            self.source.list_all_nodes(),
            self.source.list_edges(),
            threshold=threshold,
            now=now,
            dim=self.config.embed_dim,
        )
        print(f"Relationship sweep proposed {len(proposals)} edges in {time.time() - started:.2f}s")
        return RelationshipsResponsePayload(
            total=len(proposals),
            relationships=[RelationshipPayload.from_edge(e) for e in proposals],
        )

    def prune_relationships(
        self, threshold: Optional[float] = None, now: Optional[float] = None
    ) -> PruneResponsePayload:
        threshold = self.config.prune_threshold if threshold is None else threshold
        kept, pruned = prune_weak_relationships(
            self.source.list_edges(),
            self.source.list_all_nodes(),
            threshold=threshold,
            now=now,
            dim=self.config.embed_dim,
        )
        return PruneResponsePayload(kept=len(kept), pruned=[RelationshipPayload.from_edge(e) for e in pruned])

    def reclassify_relationships(self) -> RelationshipsResponsePayload:
        changed = reclassify_relationships(self.source.list_edges(), self.source.list_all_nodes())
        return RelationshipsResponsePayload(
            total=len(changed),
            relationships=[RelationshipPayload.from_edge(e) for e in changed],
        )
