from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from GazeTracker.utils.blink import BlinkDetector

Point = Tuple[float, float]

LEFT_IRIS_CENTER = 468
RIGHT_IRIS_CENTER = 473
LEFT_INNER, LEFT_OUTER = 133, 33
RIGHT_INNER, RIGHT_OUTER = 362, 263
NOSE_TIP = 1
HEAD_TOP = 10
CHIN_BOTTOM = 152
LEFT_FACE_EDGE = 234
RIGHT_FACE_EDGE = 454

MIN_LANDMARKS = 478
VERTICAL_GAIN = 10.0

BASE_FEATURES = 13
HEAD_POSE_FEATURES = 3


@dataclass(frozen=True)
class HeadPose:
    pitch: float  # radians, up/down
    yaw: float    # radians, left/right
    roll: float   # radians, tilt


@dataclass(frozen=True)
class EyeFeatures:
    left_pupil: Point
    right_pupil: Point
    left_eye_center: Point
    right_eye_center: Point
    left_relative: Point
    right_relative: Point
    head_pose: HeadPose


class GazeParser:
    """Landmarks -> EyeFeatures -> flat feature vector for the regressors.

    Layout of the vector (indices matter to the cleaner and the TPS model):
      0      bias
      1..4   lx, ly, rx, ry  (relative pupil offsets)
      5..8   squares
      9..10  lx*ly, rx*ry
      11..12 polar radius/angle of the mean offset around the eye centre
      13..15 pitch, yaw, roll (only with include_head_pose)
    """

    def __init__(self, include_head_pose: bool = False, blink: Optional[BlinkDetector] = None) -> None:
        self.include_head_pose = include_head_pose
        self.blink = blink or BlinkDetector()

    @property
    def feature_length(self) -> int:
        return BASE_FEATURES + (HEAD_POSE_FEATURES if self.include_head_pose else 0)

    def is_blinking(self, landmarks) -> bool:
        pts = np.asarray(landmarks, dtype=float)
        if pts.ndim != 2 or pts.shape[0] < MIN_LANDMARKS:
            return False
        return self.blink.is_blinking(pts)

    def extract(self, landmarks) -> Optional[EyeFeatures]:
        pts = np.asarray(landmarks, dtype=float)
        if pts.ndim != 2 or pts.shape[0] < MIN_LANDMARKS or pts.shape[1] < 2:
            return None
        pts = pts[:, :2]

        left = self._relative(pts[LEFT_IRIS_CENTER], pts[LEFT_INNER], pts[LEFT_OUTER])
        right = self._relative(pts[RIGHT_IRIS_CENTER], pts[RIGHT_INNER], pts[RIGHT_OUTER])
        if left is None or right is None:
            return None
        return EyeFeatures(
            left_pupil=_pt(pts[LEFT_IRIS_CENTER]),
            right_pupil=_pt(pts[RIGHT_IRIS_CENTER]),
            left_eye_center=_pt((pts[LEFT_INNER] + pts[LEFT_OUTER]) / 2.0),
            right_eye_center=_pt((pts[RIGHT_INNER] + pts[RIGHT_OUTER]) / 2.0),
            left_relative=left,
            right_relative=right,
            head_pose=self.head_pose(pts),
        )

    def feature_vector(self, features: EyeFeatures) -> Tuple[float, ...]:
        lx, ly = features.left_relative
        rx, ry = features.right_relative
        # x offsets run 0 (inner corner) .. 1 (outer corner); centre them for the polar terms
        mx = (lx + rx) / 2.0 - 0.5
        my = (ly + ry) / 2.0
        vec = [
            1.0,
            lx, ly, rx, ry,
            lx * lx, ly * ly, rx * rx, ry * ry,
            lx * ly, rx * ry,
            math.hypot(mx, my), math.atan2(my, mx),
        ]
        if self.include_head_pose:
            hp = features.head_pose
            vec.extend([hp.pitch, hp.yaw, hp.roll])
        return tuple(float(v) for v in vec)

    def build(self, landmarks) -> Optional[Tuple[float, ...]]:
        features = self.extract(landmarks)
        if features is None:
            return None
        return self.feature_vector(features)

    @staticmethod
    def head_pose(pts: np.ndarray) -> HeadPose:
        left_edge, right_edge = pts[LEFT_FACE_EDGE], pts[RIGHT_FACE_EDGE]
        top, chin, nose = pts[HEAD_TOP], pts[CHIN_BOTTOM], pts[NOSE_TIP]
        half_w = max(1e-6, float(np.linalg.norm(right_edge - left_edge)) / 2.0)
        half_h = max(1e-6, float(np.linalg.norm(chin - top)) / 2.0)
        mid_x = (left_edge[0] + right_edge[0]) / 2.0
        mid_y = (top[1] + chin[1]) / 2.0
        yaw = math.asin(max(-1.0, min(1.0, (nose[0] - mid_x) / half_w)))
        pitch = math.asin(max(-1.0, min(1.0, (nose[1] - mid_y) / half_h)))
        roll = math.atan2(right_edge[1] - left_edge[1], right_edge[0] - left_edge[0])
        return HeadPose(pitch=pitch, yaw=yaw, roll=roll)

    @staticmethod
    def _relative(pupil: np.ndarray, inner: np.ndarray, outer: np.ndarray) -> Optional[Point]:
        axis = outer - inner
        width_sq = float(axis @ axis)
        if width_sq <= 0.0:
            return None
        rel_x = float((pupil - inner) @ axis) / width_sq
        rel_y = (float(pupil[1]) - (float(inner[1]) + float(outer[1])) / 2.0) * VERTICAL_GAIN
        return rel_x, rel_y


def _pt(p: np.ndarray) -> Point:
    return float(p[0]), float(p[1])
