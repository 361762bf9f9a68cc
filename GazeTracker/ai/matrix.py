"""
Small dense-matrix helpers for the closed-form estimators.

Sizes stay tiny (at most ~26x26 for a 21-point TPS system), so a plain
Gauss-Jordan inversion is enough.
"""
from __future__ import annotations

from typing import Optional

import numpy as np

SINGULAR_TOL = 1e-10


def invert(matrix: np.ndarray, tol: float = SINGULAR_TOL) -> Optional[np.ndarray]:
    """Invert a square matrix by Gauss-Jordan elimination on [A | I].

    Uses partial pivoting. Returns None when the best available pivot of any
    column falls below ``tol`` in magnitude.
    """
    a = np.asarray(matrix, dtype=float)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise ValueError(f"expected a square matrix, got shape {a.shape}")
    n = a.shape[0]
    aug = np.hstack([a, np.eye(n)])

    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(aug[col:, col])))
        pivot = aug[pivot_row, col]
        if abs(pivot) < tol:
            return None
        if pivot_row != col:
            aug[[col, pivot_row]] = aug[[pivot_row, col]]
        aug[col] /= pivot
        for row in range(n):
            if row != col:
                factor = aug[row, col]
                if factor != 0.0:
                    aug[row] -= factor * aug[col]

    return aug[:, n:]


def solve_ridge(inputs: np.ndarray, outputs: np.ndarray, lam: float) -> Optional[np.ndarray]:
    """W = (X^T X + lam I)^-1 X^T Y, or None if the normal matrix is singular."""
    X = np.asarray(inputs, dtype=float)
    Y = np.asarray(outputs, dtype=float)
    XT = X.T
    XTX = XT @ X
    XTX[np.diag_indices_from(XTX)] += lam
    XTX_inv = invert(XTX)
    if XTX_inv is None:
        return None
    return XTX_inv @ (XT @ Y)
