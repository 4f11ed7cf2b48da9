"""Similarity helpers shared by the embedding index and the catalog."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    a = np.asarray(left, dtype=float)
    b = np.asarray(right, dtype=float)
    if a.shape != b.shape:
        raise ValueError(f"dimension mismatch: {a.shape[0]} != {b.shape[0]}")
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm)


def cosine_scores(matrix: np.ndarray, query: Sequence[float]) -> np.ndarray:
    """Cosine similarity of every row of ``matrix`` against ``query``; zero rows score 0."""
    q = np.asarray(query, dtype=float)
    if matrix.ndim != 2 or matrix.shape[1] != q.shape[0]:
        raise ValueError(f"dimension mismatch: stored {matrix.shape} vs query {q.shape}")
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    dots = matrix @ q
    return np.divide(dots, norms, out=np.zeros_like(dots), where=norms != 0)


def normalize(vector: Sequence[float]) -> List[float]:
    array = np.asarray(vector, dtype=float)
    magnitude = np.linalg.norm(array)
    if magnitude == 0.0:
        return [0.0] * len(array)
    return (array / magnitude).tolist()


def jaccard(left: Iterable[str], right: Iterable[str]) -> float:
    a = {str(item).lower() for item in left or []}
    b = {str(item).lower() for item in right or []}
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def metadata_similarity(query: Optional[Dict[str, Any]], stored: Dict[str, Any]) -> float:
    """Overlap score in [0, 1] used when vector search is unavailable.

    Weights: shared tags 0.5, same type 0.15, same style 0.15, aesthetic
    proximity 0.2. Without query metadata only the stored aesthetic score
    contributes (at half weight).
    """
    stored_aesthetic = float(stored.get("aesthetic_score") or 0.0)
    if not query:
        return round(0.5 * min(max(stored_aesthetic, 0.0), 100.0) / 100.0, 6)

    score = 0.5 * jaccard(query.get("tags") or [], stored.get("tags") or [])
    if query.get("type") and query.get("type") == stored.get("type"):
        score += 0.15
    if query.get("style") and query.get("style") == stored.get("style"):
        score += 0.15
    if query.get("aesthetic_score") is not None:
        gap = abs(float(query["aesthetic_score"]) - stored_aesthetic)
        score += 0.2 * (1.0 - min(gap, 100.0) / 100.0)
    return round(min(score, 1.0), 6)
