# services/similarity.py
import math
from typing import Sequence

import numpy as np

from app.core.errors import DimensionMismatch


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors, in [-1, 1].

    Returns ``nan`` when either vector has zero magnitude; callers treat any
    non-finite score as "no similarity". Raises DimensionMismatch when the
    lengths differ.
    """
    left = np.asarray(a, dtype=float)
    right = np.asarray(b, dtype=float)

    if left.shape != right.shape:
        raise DimensionMismatch(left.size, right.size)

    norm_product = float(np.linalg.norm(left) * np.linalg.norm(right))
    if norm_product == 0.0 or not math.isfinite(norm_product):
        return math.nan

    return float(np.dot(left, right) / norm_product)


def is_usable_score(score: float) -> bool:
    return math.isfinite(score)
