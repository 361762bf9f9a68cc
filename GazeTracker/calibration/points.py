"""
Calibration target layouts (percent of the viewport).

Step 1: centre + the four edge midpoints.
Step 2: 4x4 grid spanning the edge margin (21 training points in total).
Step 3: four interior diagonal points used only for validation.
"""
from __future__ import annotations

from typing import Dict, List

from .models import CalibrationPhase, CalibrationPoint

DEFAULT_EDGE_MARGIN = 3.0
MID_1 = 33.0
MID_2 = 67.0


def initial_mapping_points(margin: float = DEFAULT_EDGE_MARGIN) -> List[CalibrationPoint]:
    lo, hi = margin, 100.0 - margin
    return [
        CalibrationPoint(1, 50.0, 50.0),
        CalibrationPoint(2, 50.0, lo),
        CalibrationPoint(3, 50.0, hi),
        CalibrationPoint(4, lo, 50.0),
        CalibrationPoint(5, hi, 50.0),
    ]


def fine_tuning_points(margin: float = DEFAULT_EDGE_MARGIN) -> List[CalibrationPoint]:
    stops = [margin, MID_1, MID_2, 100.0 - margin]
    points: List[CalibrationPoint] = []
    pid = 6
    for y in stops:
        for x in stops:
            points.append(CalibrationPoint(pid, x, y))
            pid += 1
    return points


def validation_points() -> List[CalibrationPoint]:
    return [
        CalibrationPoint(22, 20.0, 20.0),
        CalibrationPoint(23, 80.0, 80.0),
        CalibrationPoint(24, 20.0, 80.0),
        CalibrationPoint(25, 80.0, 20.0),
    ]


def layout(margin: float = DEFAULT_EDGE_MARGIN) -> Dict[CalibrationPhase, List[CalibrationPoint]]:
    return {
        CalibrationPhase.INITIAL_MAPPING: initial_mapping_points(margin),
        CalibrationPhase.FINE_TUNING: fine_tuning_points(margin),
        CalibrationPhase.VALIDATION: validation_points(),
    }
