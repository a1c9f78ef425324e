"""
Nearest-neighbour index for node vectors.

`AnnIndex` is an exact top-k dot-product search. `FaissAnnIndex` keeps the
same contract on top of a FAISS index so either can be handed to callers.
"""

import threading
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

VectorRecord = Tuple[str, Sequence[float]]
SearchHit = Tuple[str, float]


def _as_vector(vector: Sequence[float]) -> np.ndarray:
    return np.asarray(vector, dtype=np.float32).reshape(-1)


class AnnIndex:
    """Exact top-k search over (id, vector) pairs.

    Writers and readers share one lock, so a search never sees a partially
    appended vector. A search may miss an item added concurrently.
    """

    def __init__(self, dim: int):
        if dim < 1:
            raise ValueError(f"Index dimension must be positive, got {dim}")
        self.dim = dim
        self._lock = threading.RLock()
        self._ids: List[str] = []
        self._vectors: List[np.ndarray] = []
        self._matrix: Optional[np.ndarray] = None

    def build(self, initial: Iterable[VectorRecord] = ()) -> None:
        with self._lock:
            self._ids = []
            self._vectors = []
            self._matrix = None
            for item_id, vector in initial:
                self.add(item_id, vector)

    def add(self, item_id: str, vector: Sequence[float]) -> bool:
        """Append a vector; vectors of the wrong dimension are dropped."""
        vec = _as_vector(vector)
        if vec.shape[0] != self.dim:
            return False
        with self._lock:
            self._ids.append(item_id)
            self._vectors.append(vec)
            self._matrix = None
        return True

    def search(self, query: Sequence[float], k: int) -> List[SearchHit]:
        """
        Return the top-k (id, score) pairs by descending dot product.

        An empty list is returned for a query of the wrong dimension.
        """
        q = _as_vector(query)
        if q.shape[0] != self.dim or k <= 0:
            return []
        with self._lock:
            if not self._ids:
                return []
            if self._matrix is None:
                self._matrix = np.vstack(self._vectors)
            matrix = self._matrix
            ids = list(self._ids)

        scores = matrix @ q
        order = np.argsort(-scores, kind="stable")[:k]
        return [(ids[i], float(scores[i])) for i in order]

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._ids)

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)


class FaissAnnIndex:
    """Same contract as AnnIndex, backed by a FAISS inner-product index."""

    def __init__(self, dim: int):
        if dim < 1:
            raise ValueError(f"Index dimension must be positive, got {dim}")
        try:
            import faiss
        except ImportError as e:
            raise ImportError("FAISS not installed. Install with: pip install faiss-cpu") from e

        self._faiss = faiss
        self.dim = dim
        self._lock = threading.RLock()
        self._ids: List[str] = []
        # IndexFlatIP scores by inner product; callers supply normalized vectors for cosine.
        self.index = faiss.IndexFlatIP(dim)

    def build(self, initial: Iterable[VectorRecord] = ()) -> None:
        with self._lock:
            self._ids = []
            self.index = self._faiss.IndexFlatIP(self.dim)
            for item_id, vector in initial:
                self.add(item_id, vector)

    def add(self, item_id: str, vector: Sequence[float]) -> bool:
        vec = _as_vector(vector)
        if vec.shape[0] != self.dim:
            return False
        with self._lock:
            self.index.add(vec.reshape(1, -1))
            self._ids.append(item_id)
        return True

    def search(self, query: Sequence[float], k: int) -> List[SearchHit]:
        q = _as_vector(query)
        if q.shape[0] != self.dim or k <= 0:
            return []
        with self._lock:
            if self.index.ntotal == 0:
                return []
            distances, indices = self.index.search(q.reshape(1, -1), min(k, self.index.ntotal))
            ids = list(self._ids)

        results = []
        for distance, idx in zip(distances[0], indices[0]):
            if idx == -1:  # No more results
                continue
            results.append((ids[idx], float(distance)))
        results.sort(key=lambda hit: hit[1], reverse=True)
        return results

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._ids)

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)


def create_ann_index(dim: int, backend: str = "exact"):
    if backend == "exact":
        return AnnIndex(dim)
    if backend == "faiss":
        return FaissAnnIndex(dim)
    raise ValueError(f"Unknown ANN backend: {backend!r}")
