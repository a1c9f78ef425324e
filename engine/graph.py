"""Graph helpers over the edge list: connection paths and export."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Tuple

from models import KnowledgeEdge, KnowledgeNode, Relation

DEFAULT_MAX_DEPTH = 4


@dataclass
class PathHop:
    source_id: str
    target_id: str
    relation: Relation
    edge_id: str
    # False when the hop walks against the stored edge direction.
    forward: bool = True


@dataclass
class PathResult:
    found: bool
    path: List[str] = field(default_factory=list)
    hops: List[PathHop] = field(default_factory=list)

    @property
    def length(self) -> int:
        """Number of hops; 0 for a single-node path."""
        return max(0, len(self.path) - 1)


_Adjacency = Dict[str, List[Tuple[str, KnowledgeEdge, bool]]]


def _undirected_adjacency(edges: Iterable[KnowledgeEdge]) -> _Adjacency:
    graph: _Adjacency = {}
    for edge in edges:
        graph.setdefault(edge.source_id, []).append((edge.target_id, edge, True))
        graph.setdefault(edge.target_id, []).append((edge.source_id, edge, False))
    return graph


def find_connection_path(
    edges: Iterable[KnowledgeEdge],
    start_id: str,
    end_id: str,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> PathResult:
    """
    Breadth-first search for the shortest path between two nodes.

    Edges are walked in both directions. The path never has more than
    `max_depth` hops.

    Args:
        edges: Edge list to search
        start_id: Node to start from
        end_id: Node to reach
        max_depth: Maximum number of hops

    Returns:
        PathResult; `found` is False when no path exists within the bound
    """
    if not start_id or not end_id:
        return PathResult(found=False)
    if start_id == end_id:
        return PathResult(found=True, path=[start_id])
    graph = _undirected_adjacency(edges)
    if start_id not in graph or end_id not in graph:
        return PathResult(found=False)

    queue = deque([(start_id, [start_id], [])])
    visited = {start_id}
    while queue:
        node_id, path, hops = queue.popleft()
        if len(path) - 1 >= max_depth:
            continue
        for neighbor, edge, forward in graph.get(node_id, []):
            if neighbor in visited:
                continue
            hop = PathHop(
                source_id=node_id,
                target_id=neighbor,
                relation=edge.relation,
                edge_id=edge.id,
                forward=forward,
            )
            if neighbor == end_id:
                return PathResult(found=True, path=path + [neighbor], hops=hops + [hop])
            visited.add(neighbor)
            queue.append((neighbor, path + [neighbor], hops + [hop]))

    return PathResult(found=False)


def edges_for_node(edges: Iterable[KnowledgeEdge], node_id: str) -> Dict[str, List[KnowledgeEdge]]:
    """Split a node's edges into outgoing and incoming, keeping stored direction."""
    outgoing: List[KnowledgeEdge] = []
    incoming: List[KnowledgeEdge] = []
    for edge in edges:
        if edge.source_id == node_id:
            outgoing.append(edge)
        elif edge.target_id == node_id:
            incoming.append(edge)
    return {"outgoing": outgoing, "incoming": incoming}


def build_graph_export(nodes: Sequence[KnowledgeNode], edges: Sequence[KnowledgeEdge]) -> Dict:
    node_types: Dict[str, int] = {}
    for node in nodes:
        node_types[node.type.value] = node_types.get(node.type.value, 0) + 1
    relation_types: Dict[str, int] = {}
    for edge in edges:
        relation_types[edge.relation.value] = relation_types.get(edge.relation.value, 0) + 1
    average_strength = (
        sum(edge.strength or 0.0 for edge in edges) / len(edges) if edges else 0.0
    )
    return {
        "nodes": [
            {
                "id": node.id,
                "type": node.type.value,
                "importance": node.importance.value,
                "label": (node.content or "")[:80],
                "tags": list(node.tags),
            }
            for node in nodes
        ],
        "edges": [
            {
                "id": edge.id,
                "from": edge.source_id,
                "to": edge.target_id,
                "relation": edge.relation.value,
                "strength": edge.strength,
            }
            for edge in edges
        ],
        "statistics": {
            "total_nodes": len(nodes),
            "total_edges": len(edges),
            "node_types": node_types,
            "relation_types": relation_types,
            "average_strength": average_strength,
        },
    }
