"""
Outlier rejection for the feature vectors captured at one calibration target.

TRIM_TAILS ranks samples on a single reference dimension (the first non-bias
feature, i.e. the dominant horizontal pupil offset); STD_DEV works on the
distance of the whole vector to the buffer mean.
"""
from __future__ import annotations

import math
from typing import List, Sequence, TypeVar

import numpy as np

from GazeTracker.core.settings import OutlierMethod

MIN_SAMPLES = 5
REFERENCE_DIM = 1
MAX_TRIM_FRACTION = 0.45

V = TypeVar("V", bound=Sequence[float])


def clean(buffer: Sequence[V], method: OutlierMethod, threshold: float) -> List[V]:
    """Return the kept samples in their original order."""
    items = list(buffer)
    method = OutlierMethod(method)
    if len(items) < MIN_SAMPLES or method is OutlierMethod.NONE:
        return items
    if method is OutlierMethod.TRIM_TAILS:
        return _trim_tails(items, threshold)
    return _std_dev(items, threshold)


def _trim_tails(items: List[V], fraction: float) -> List[V]:
    fraction = min(MAX_TRIM_FRACTION, max(0.0, float(fraction)))
    n = len(items)
    trim = int(math.floor(n * fraction))
    if trim == 0:
        return items
    order = sorted(range(n), key=lambda i: float(items[i][REFERENCE_DIM]))
    keep = set(order[trim:n - trim])
    return [v for i, v in enumerate(items) if i in keep]


def _std_dev(items: List[V], sigmas: float) -> List[V]:
    arr = np.asarray(items, dtype=float)
    dists = np.linalg.norm(arr - arr.mean(axis=0), axis=1)
    limit = float(dists.mean()) + float(sigmas) * float(dists.std())
    return [v for v, d in zip(items, dists) if d <= limit]
