"""Embedding vector math shared by the worker and its tests.

Every vector that leaves the worker is truncated to the configured
dimension and L2-normalized.  A zero vector has no direction, so it is
returned unchanged instead of being divided by zero.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np


def normalize(vector: Sequence[float]) -> list[float]:
    """Return *vector* scaled to unit L2 norm.

    Args:
        vector: The vector to normalize.

    Returns:
        The normalized vector, or the input values unchanged when the
        norm is zero.
    """
    arr = np.asarray(vector, dtype=np.float64)
    norm = float(np.linalg.norm(arr))
    if norm == 0.0:
        return arr.tolist()
    return (arr / norm).tolist()


def truncate_and_normalize(vectors: Sequence[Sequence[float]], dimension: int) -> list[list[float]]:
    """Cut each vector to *dimension* components, then L2-normalize it.

    Vectors already shorter than *dimension* are normalized as they are.
    """
    if dimension <= 0:
        raise ValueError("dimension must be positive")
    return [normalize(list(vector)[:dimension]) for vector in vectors]


def average_vectors(vectors: Sequence[Sequence[float]]) -> list[float]:
    """Return the normalized component-wise mean of *vectors*.

    Args:
        vectors: One or more vectors of the same length.

    Returns:
        The normalized mean.  An empty input yields an empty list.

    Raises:
        ValueError: If the vectors do not all have the same length.
    """
    if not vectors:
        return []
    lengths = {len(vector) for vector in vectors}
    if len(lengths) != 1:
        raise ValueError(f"Cannot average vectors of differing dimensions: {sorted(lengths)}")
    mean = np.mean(np.asarray(vectors, dtype=np.float64), axis=0)
    return normalize(mean)
