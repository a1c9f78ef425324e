"""
Embedding module for the knowledge engine.

The default embedder is the local hashing vectorizer. Nodes may also carry
external embeddings computed with sentence-transformers.
"""

import os
from dataclasses import replace
from typing import Iterable, List, Optional

from vectorizer import DEFAULT_DIM, vectorize

DEFAULT_MODEL = "all-MiniLM-L6-v2"
DEFAULT_MODEL_DIM = 384


class HashingEmbedder:
    """Deterministic local embedder backed by the hashing vectorizer."""

    def __init__(self, dim: int = DEFAULT_DIM):
        if dim < 1:
            raise ValueError(f"Embedding dimension must be positive, got {dim}")
        self.embedding_dim = dim
        self.model_name = f"local-hash-{dim}"

    def embed(self, text: str) -> List[float]:
        return vectorize(text, self.embedding_dim).tolist()

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        return [self.embed(text) for text in texts]

    def get_embedding_dim(self) -> int:
        return self.embedding_dim


class SentenceTransformerEmbedder:
    """
    Node embeddings from a sentence-transformers model.

    The model is loaded on first use. Blank texts embed to zero vectors so
    batch output stays aligned with its input.
    """

    def __init__(self, model_name: Optional[str] = None):
        self.model_name = model_name or os.environ.get("KG_ENGINE_EMBED_MODEL") or DEFAULT_MODEL
        self.model = None
        self.embedding_dim = DEFAULT_MODEL_DIM

    def load_model(self):
        if self.model is not None:
            return
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise RuntimeError(
                "sentence-transformers is required for external embeddings. "
                f"Install it with: pip install 'kg-engine[embeddings]'. Reason: {e}"
            ) from e

        print(f"Loading embedding model {self.model_name}")
        try:
            model = SentenceTransformer(self.model_name)
            dim = int(model.encode(["warmup"]).shape[1])
        except Exception as e:
            raise RuntimeError(
                f"Failed to load sentence-transformers model '{self.model_name}': {e}"
            ) from e
        self.model = model
        self.embedding_dim = dim
        print(f"Embedding model ready ({dim} dims)")

    def embed(self, text: str) -> List[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.load_model()
        filled = [i for i, text in enumerate(texts) if text and text.strip()]
        result = [[0.0] * self.embedding_dim for _ in texts]
        if not filled:
            return result
        try:
            encoded = self.model.encode([texts[i] for i in filled], convert_to_numpy=True)
        except Exception as e:
            raise RuntimeError(f"Embedding failed for {self.model_name}: {e}") from e
        for i, vector in zip(filled, encoded):
            result[i] = vector.tolist()
        return result

    def get_embedding_dim(self) -> int:
        self.load_model()
        return self.embedding_dim


def attach_embeddings(nodes: Iterable, embedder) -> List:
    """Return copies of the nodes with `embedding` computed from their content."""
    nodes = list(nodes)
    vectors = embedder.embed_batch([node.content for node in nodes])
    return [replace(node, embedding=list(vector)) for node, vector in zip(nodes, vectors)]
