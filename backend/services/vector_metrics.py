"""Similarity and distance metrics over embedding vectors."""
import logging
from typing import Optional, Sequence

import numpy as np

from models.scores import SimilarityScores

logger = logging.getLogger(__name__)

Vector = Sequence[float]


def _as_pair(a: Vector, b: Vector):
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector dimension mismatch: {va.shape[0]} vs {vb.shape[0]}")
    return va, vb


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Cosine similarity in [-1, 1]; 0 when either vector has zero norm."""
    va, vb = _as_pair(a, b)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / norm, -1.0, 1.0))


def cosine_distance(a: Vector, b: Vector) -> float:
    return 1.0 - cosine_similarity(a, b)


def euclidean_distance(a: Vector, b: Vector) -> float:
    va, vb = _as_pair(a, b)
    return float(np.linalg.norm(va - vb))


def manhattan_distance(a: Vector, b: Vector) -> float:
    va, vb = _as_pair(a, b)
    return float(np.sum(np.abs(va - vb)))


def dot_product(a: Vector, b: Vector) -> float:
    va, vb = _as_pair(a, b)
    return float(np.dot(va, vb))


def _directional_coverage(source: np.ndarray, target: np.ndarray) -> float:
    """Mean over `source` rows of the best cosine against any `target` row."""
    source_norms = np.linalg.norm(source, axis=1)
    target_norms = np.linalg.norm(target, axis=1)
    denominator = np.outer(source_norms, target_norms)
    raw = source @ target.T
    with np.errstate(divide="ignore", invalid="ignore"):
        cosines = np.where(denominator == 0, 0.0, raw / np.where(denominator == 0, 1.0, denominator))
    return float(np.mean(np.max(cosines, axis=1)))


def chamfer_similarity(set_a: Sequence[Vector], set_b: Sequence[Vector]) -> float:
    """
    Bidirectional chamfer similarity between two sets of vectors.

    For each vector in A take its best cosine against B and average; do the
    same from B to A; return the mean of both directions. Symmetric by
    construction, and equal to plain cosine for two singleton sets.

    Returns:
        0.0 when either set is empty
    """
    if set_a is None or set_b is None or len(set_a) == 0 or len(set_b) == 0:
        return 0.0

    matrix_a = np.asarray(set_a, dtype=np.float64)
    matrix_b = np.asarray(set_b, dtype=np.float64)
    if matrix_a.ndim != 2 or matrix_b.ndim != 2 or matrix_a.shape[1] != matrix_b.shape[1]:
        raise ValueError("Chamfer inputs must be sets of vectors with the same dimension")

    forward = _directional_coverage(matrix_a, matrix_b)
    backward = _directional_coverage(matrix_b, matrix_a)
    return (forward + backward) / 2


def calculate_all_metrics(
    a: Vector,
    b: Vector,
    set_a: Optional[Sequence[Vector]] = None,
    set_b: Optional[Sequence[Vector]] = None
) -> SimilarityScores:
    """
    Compute every metric for one vector pair.

    Chamfer uses the decomposed vector sets when both are given and
    non-empty, otherwise it falls back to the singleton sets {a} and {b}.
    """
    if set_a is not None and set_b is not None and len(set_a) and len(set_b):
        chamfer = chamfer_similarity(set_a, set_b)
    else:
        chamfer = chamfer_similarity([a], [b])

    return SimilarityScores(
        cosine=cosine_similarity(a, b),
        euclidean=euclidean_distance(a, b),
        manhattan=manhattan_distance(a, b),
        dot_product=dot_product(a, b),
        chamfer=chamfer,
    )


def calculate_improvement(original: float, new: float) -> float:
    """Percentage change from `original` to `new`."""
    if original == 0:
        return 100.0 if new > 0 else 0.0
    return (new - original) / abs(original) * 100
