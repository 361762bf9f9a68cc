from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class ErrorSummary:
    mean_px: float
    max_px: float
    rms_px: float
    count: int


def point_errors(targets: Sequence[Tuple[float, float]], predicted: Sequence[Tuple[float, float]]) -> np.ndarray:
    """Euclidean pixel distance per validation point."""
    if len(targets) != len(predicted):
        raise ValueError(f"got {len(targets)} targets but {len(predicted)} predictions")
    if not len(targets):
        return np.zeros(0)
    diff = np.asarray(predicted, dtype=float) - np.asarray(targets, dtype=float)
    return np.hypot(diff[:, 0], diff[:, 1])


def summarize(errors: np.ndarray) -> ErrorSummary:
    # no measurements -> infinite mean so the session never counts as accurate
    errs = np.asarray(errors, dtype=float)
    if errs.size == 0:
        return ErrorSummary(mean_px=math.inf, max_px=0.0, rms_px=0.0, count=0)
    return ErrorSummary(
        mean_px=float(errs.mean()),
        max_px=float(errs.max()),
        rms_px=float(np.sqrt(np.mean(errs * errs))),
        count=int(errs.size),
    )
