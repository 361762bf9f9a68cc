"""
Calibration data models.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple


class CalibrationPhase(str, Enum):
    INITIAL_MAPPING = "INITIAL_MAPPING"
    FINE_TUNING = "FINE_TUNING"
    VALIDATION = "VALIDATION"


class CalibrationState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    VALIDATION_COMPLETE = "VALIDATION_COMPLETE"
    ABORTED = "ABORTED"


@dataclass(frozen=True)
class CalibrationPoint:
    id: int
    x: float  # percent of viewport width
    y: float  # percent of viewport height

    def to_screen(self, screen_size: Tuple[int, int]) -> Tuple[float, float]:
        return (self.x / 100.0) * screen_size[0], (self.y / 100.0) * screen_size[1]


@dataclass(frozen=True)
class TrainingSample:
    screen_x: float
    screen_y: float
    features: Tuple[float, ...]


@dataclass(frozen=True)
class ValidationMeasurement:
    predicted: Tuple[float, float]
    target: Tuple[float, float]

    @property
    def error_px(self) -> float:
        return math.hypot(self.predicted[0] - self.target[0], self.predicted[1] - self.target[1])


@dataclass(frozen=True)
class AccuracyReport:
    mean_error_px: float
    good: bool
    max_error_px: float = 0.0
    rms_error_px: float = 0.0
    measurements: List[ValidationMeasurement] = field(default_factory=list)
