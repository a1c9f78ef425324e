"""
Local text vectorizer for the knowledge engine.

Turns text into a fixed-dimension hashed term-frequency vector and provides
the cosine similarity used everywhere else as the similarity substrate.
"""

import re
from typing import List, Optional, Sequence

import numpy as np

DEFAULT_DIM = 256

FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619

_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_LETTER_DIGIT = re.compile(r"([A-Za-z])([0-9])")
_DIGIT_LETTER = re.compile(r"([0-9])([A-Za-z])")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def tokenize(text: str) -> List[str]:
    """
    Split text into lower-case word tokens.

    camelCase, PascalCase and acronym boundaries are split, letters are split
    from digits, and underscores, dashes and other punctuation become
    whitespace.

    Args:
        text: Raw text

    Returns:
        List of non-empty tokens
    """
    if not text:
        return []
    text = _ACRONYM_BOUNDARY.sub(r"\1 \2", text)
    text = _CAMEL_BOUNDARY.sub(r"\1 \2", text)
    text = _LETTER_DIGIT.sub(r"\1 \2", text)
    text = _DIGIT_LETTER.sub(r"\1 \2", text)
    text = text.lower().replace("_", " ").replace("-", " ")
    text = _NON_ALNUM.sub(" ", text)
    return [token for token in text.split() if token]


def fnv1a_32(token: str) -> int:
    h = FNV_OFFSET_BASIS
    for ch in token:
        h ^= ord(ch)
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return h


def vectorize(text: str, dim: int = DEFAULT_DIM) -> np.ndarray:
    """
    Convert text to a hashed term-frequency vector.

    Args:
        text: Text to vectorize
        dim: Number of hash buckets

    Returns:
        L2-normalized vector, or the zero vector when text has no tokens
    """
    if dim < 1:
        raise ValueError(f"Vector dimension must be positive, got {dim}")

    vec = np.zeros(dim, dtype=np.float64)
    for token in tokenize(text):
        vec[fnv1a_32(token) % dim] += 1.0

    return normalize_vector(vec)


def normalize_vector(vector: Sequence[float]) -> np.ndarray:
    v = np.asarray(vector, dtype=np.float64)
    norm = float(np.linalg.norm(v))
    if norm == 0:
        return v
    return v / norm


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Calculate cosine similarity between two vectors.

    Vectors of different length are incompatible and score 0, as does any
    zero-norm vector.
    """
    v1 = np.asarray(vec1, dtype=np.float64)
    v2 = np.asarray(vec2, dtype=np.float64)
    if v1.shape != v2.shape or v1.size == 0:
        return 0.0

    norm1 = np.linalg.norm(v1)
    norm2 = np.linalg.norm(v2)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    sim = float(np.dot(v1, v2) / (norm1 * norm2))
    return min(1.0, max(-1.0, sim))


def dot_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """Dot product for vectors already normalized to unit length."""
    v1 = np.asarray(vec1, dtype=np.float64)
    v2 = np.asarray(vec2, dtype=np.float64)
    if v1.shape != v2.shape or v1.size == 0:
        return 0.0
    return min(1.0, max(-1.0, float(np.dot(v1, v2))))


def similarity_matrix(vectors: Sequence[np.ndarray]) -> np.ndarray:
    """Pairwise cosine similarities for equal-length vectors."""
    if len(vectors) == 0:
        return np.zeros((0, 0), dtype=np.float64)
    mat = np.vstack([normalize_vector(v) for v in vectors])
    sims = mat @ mat.T
    return np.clip(sims, -1.0, 1.0)


def node_vector(node, dim: int = DEFAULT_DIM, prefer_embedding: bool = False) -> np.ndarray:
    if prefer_embedding and node.embedding:
        return np.asarray(node.embedding, dtype=np.float64)
    return vectorize(node.content, dim)


def node_similarity(a, b, dim: int = DEFAULT_DIM) -> float:
    """Similarity of two nodes, preferring precomputed embeddings when both have them."""
    emb_a: Optional[List[float]] = a.embedding
    emb_b: Optional[List[float]] = b.embedding
    if emb_a and emb_b and len(emb_a) == len(emb_b):
        return cosine_similarity(emb_a, emb_b)
    return cosine_similarity(vectorize(a.content, dim), vectorize(b.content, dim))
