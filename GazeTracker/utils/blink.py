"""
Blink detection using the eye aspect ratio (lid gap / eye width) of both eyes.

Landmarks are MediaPipe FaceMesh indices in normalised image coordinates:
left eye  33 (outer), 133 (inner), 159 (upper lid), 145 (lower lid)
right eye 263 (outer), 362 (inner), 386 (upper lid), 374 (lower lid)
"""
from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np

LEFT_EYE = (159, 145, 133, 33)  # top, bottom, inner, outer
RIGHT_EYE = (386, 374, 362, 263)


def eye_aspect_ratio(landmarks: np.ndarray, indices: Sequence[int]) -> Optional[float]:
    top, bottom, inner, outer = indices
    pts = np.asarray(landmarks, dtype=float)
    vert = math.hypot(*(pts[top, :2] - pts[bottom, :2]))
    horiz = math.hypot(*(pts[inner, :2] - pts[outer, :2]))
    if horiz <= 0.0:
        return None
    return vert / horiz


class BlinkDetector:
    def __init__(self, enabled: bool = True, ear_threshold: float = 0.18) -> None:
        self.enabled = enabled
        self.ear_threshold = float(ear_threshold)

    def is_blinking(self, landmarks: np.ndarray) -> bool:
        """True when either eye looks closed."""
        if not self.enabled:
            return False
        left = eye_aspect_ratio(landmarks, LEFT_EYE)
        right = eye_aspect_ratio(landmarks, RIGHT_EYE)
        left = 0.0 if left is None else left
        right = 0.0 if right is None else right
        return left < self.ear_threshold or right < self.ear_threshold
