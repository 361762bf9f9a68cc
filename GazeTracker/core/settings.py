"""
Settings for GazeTracker.

TrackerConfig carries every tunable of the calibration/tracking core. The
SettingsManager reads an optional JSON settings file (storage itself belongs
to the host application) and exposes typed accessors the way the rest of the
app expects.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class RegressionMethod(str, Enum):
    RIDGE = "RIDGE"
    HYBRID = "HYBRID"
    TPS = "TPS"


class SmoothingMethod(str, Enum):
    NONE = "NONE"
    MOVING_AVERAGE = "MOVING_AVERAGE"
    ONE_EURO = "ONE_EURO"
    KALMAN = "KALMAN"


class OutlierMethod(str, Enum):
    NONE = "NONE"
    TRIM_TAILS = "TRIM_TAILS"
    STD_DEV = "STD_DEV"


class CalibrationSpeed(str, Enum):
    FAST = "FAST"
    NORMAL = "NORMAL"
    SLOW = "SLOW"

    @property
    def multiplier(self) -> float:
        return _SPEED_MULTIPLIERS[self]


_SPEED_MULTIPLIERS = {
    CalibrationSpeed.FAST: 0.5,
    CalibrationSpeed.NORMAL: 1.0,
    CalibrationSpeed.SLOW: 1.5,
}


@dataclass(frozen=True)
class FilterConfig:
    """Smoothing parameters handed to GazeSmoother."""

    method: SmoothingMethod = SmoothingMethod.ONE_EURO
    min_cutoff: float = 0.005
    beta: float = 0.01
    ma_window: int = 5
    kalman_q: float = 0.01
    kalman_r: float = 0.1
    saccade_threshold: float = 50.0


@dataclass
class TrackerConfig:
    regression_method: RegressionMethod = RegressionMethod.TPS
    smoothing_method: SmoothingMethod = SmoothingMethod.ONE_EURO

    # One-Euro (time base is milliseconds)
    min_cutoff: float = 0.005
    beta: float = 0.01
    # Moving average
    ma_window: int = 5
    # Kalman
    kalman_q: float = 0.01
    kalman_r: float = 0.1

    saccade_threshold: float = 50.0  # px

    calibration_speed: CalibrationSpeed = CalibrationSpeed.NORMAL
    edge_margin: float = 3.0  # percent of the viewport

    outlier_method: OutlierMethod = OutlierMethod.TRIM_TAILS
    outlier_threshold: float = 0.25  # TRIM_TAILS: fraction per tail, STD_DEV: sigma count

    include_head_pose: bool = False

    def __post_init__(self) -> None:
        self.regression_method = RegressionMethod(self.regression_method)
        self.smoothing_method = SmoothingMethod(self.smoothing_method)
        self.calibration_speed = CalibrationSpeed(self.calibration_speed)
        self.outlier_method = OutlierMethod(self.outlier_method)
        self.ma_window = int(self.ma_window)
        if self.ma_window < 2:
            raise ValueError(f"ma_window must be >= 2, got {self.ma_window}")
        for name in ("min_cutoff", "beta", "kalman_q", "kalman_r"):
            value = float(getattr(self, name))
            if value <= 0.0:
                raise ValueError(f"{name} must be positive, got {value}")
            setattr(self, name, value)
        for name in ("saccade_threshold", "outlier_threshold"):
            value = float(getattr(self, name))
            if value < 0.0:
                raise ValueError(f"{name} must be >= 0, got {value}")
            setattr(self, name, value)
        self.edge_margin = float(self.edge_margin)
        if not 0.0 <= self.edge_margin < 50.0:
            raise ValueError(f"edge_margin must be in [0, 50), got {self.edge_margin}")

    # Derived views -----------------------------------------------------
    def filter_config(self) -> FilterConfig:
        return FilterConfig(
            method=self.smoothing_method,
            min_cutoff=self.min_cutoff,
            beta=self.beta,
            ma_window=self.ma_window,
            kalman_q=self.kalman_q,
            kalman_r=self.kalman_r,
            saccade_threshold=self.saccade_threshold,
        )

    def prep_ms(self) -> float:
        return 800.0 * self.calibration_speed.multiplier

    def capture_ms(self) -> float:
        return 1200.0 * self.calibration_speed.multiplier

    # Dict conversion ---------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for k, v in data.items():
            if isinstance(v, Enum):
                data[k] = v.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackerConfig":
        known = {f for f in cls.__dataclass_fields__}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown settings keys: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})


class SettingsManager:
    """Read-only view over a JSON settings file.

    Missing file -> defaults. The tracker section lives under the "tracker"
    key so the file can be shared with the host application's own settings.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        if path is None:
            here = os.path.dirname(os.path.abspath(__file__))
            path = os.path.join(os.path.dirname(here), "settings.json")
        self.path = path
        self.data: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        if not os.path.exists(self.path):
            self.data = {"tracker": TrackerConfig().to_dict(), "screen": {"size": [1920, 1080]}}
            return
        with open(self.path, "r", encoding="utf-8") as f:
            self.data = json.load(f)
        logger.info(f"Loaded settings from {self.path}")

    # Convenience accessors -------------------------------------------------
    def tracker_config(self) -> TrackerConfig:
        return TrackerConfig.from_dict(dict(self.data.get("tracker", {})))

    def screen_size(self) -> tuple[int, int]:
        arr = self.data.get("screen", {}).get("size", [1920, 1080])
        try:
            return int(arr[0]), int(arr[1])
        except (TypeError, ValueError, IndexError):
            return 1920, 1080

    def regression_method(self) -> RegressionMethod:
        return self.tracker_config().regression_method

    def smoothing_method(self) -> SmoothingMethod:
        return self.tracker_config().smoothing_method

    def calibration_speed(self) -> CalibrationSpeed:
        return self.tracker_config().calibration_speed
