"""Vector similarity."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return ``dot(a, b) / (|a| * |b|)`` clipped to ``[-1, 1]``.

    A zero-magnitude vector has no direction; its similarity to anything
    is defined as ``0.0``.

    Raises
    ------
    ValueError
        The vectors differ in length, or the result is not a finite number
        (NaN / inf components, or magnitudes that overflow).
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Cannot compare vectors of shape {va.shape} and {vb.shape}")

    with np.errstate(invalid="ignore", over="ignore", divide="ignore"):
        denom = np.linalg.norm(va) * np.linalg.norm(vb)
        if denom == 0.0:
            return 0.0
        cos = np.dot(va, vb) / denom
    if not np.isfinite(cos):
        raise ValueError("Cosine similarity is undefined for non-finite vectors")
    return float(np.clip(cos, -1.0, 1.0))
