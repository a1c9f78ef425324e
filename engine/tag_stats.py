"""Tag co-occurrence statistics and co-occurrence based tag expansion."""

from __future__ import annotations

from typing import Dict, Iterable, List

from models import KnowledgeNode, normalize_tags


class TagCooccurrence:
    """Directed tag -> tag co-occurrence counts.

    Owned by whoever builds it; rebuild it when the node set changes.
    """

    def __init__(self):
        self._counts: Dict[str, Dict[str, int]] = {}

    @classmethod
    def from_nodes(cls, nodes: Iterable[KnowledgeNode]) -> "TagCooccurrence":
        table = cls()
        table.build(nodes)
        return table

    def build(self, nodes: Iterable[KnowledgeNode]) -> None:
        self._counts = {}
        for node in nodes:
            self.add_node(node)

    def add_node(self, node: KnowledgeNode) -> None:
        tags = normalize_tags(node.tags)
        for a in tags:
            for b in tags:
                if a == b:
                    continue
                row = self._counts.setdefault(a, {})
                row[b] = row.get(b, 0) + 1

    def count(self, tag: str, other: str) -> int:
        return self._counts.get(tag.lower(), {}).get(other.lower(), 0)

    def related(self, tag: str) -> Dict[str, int]:
        return dict(self._counts.get(tag.lower(), {}))

    def tags(self) -> List[str]:
        return list(self._counts.keys())

    def __len__(self) -> int:
        return len(self._counts)

    def expand(self, base_tags: Iterable[str], limit: int = 5) -> List[str]:
        """
        Find tags that co-occur with any of the base tags.

        Args:
            base_tags: Tags to expand from
            limit: Maximum number of tags to return

        Returns:
            Related tags by summed co-occurrence count, never including a base tag
        """
        base = normalize_tags(base_tags)
        base_set = set(base)
        scores: Dict[str, int] = {}
        for tag in base:
            for other, count in self._counts.get(tag, {}).items():
                scores[other] = scores.get(other, 0) + count

        ranked = sorted(
            ((tag, score) for tag, score in scores.items() if tag not in base_set),
            key=lambda item: item[1],
            reverse=True,
        )
        return [tag for tag, _ in ranked[: max(0, limit)]]
