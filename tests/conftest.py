from __future__ import annotations

import pytest

from GazeTracker.core.settings import OutlierMethod, TrackerConfig


def _screen_features(x_pct: float, y_pct: float):
    # exact quadratic lift of the target position
    u = (x_pct - 50.0) / 10.0
    v = (y_pct - 50.0) / 10.0
    return (1.0, u, v, u * u, v * v)


@pytest.fixture
def screen_features():
    return _screen_features


@pytest.fixture
def config() -> TrackerConfig:
    return TrackerConfig()


@pytest.fixture
def plain_config() -> TrackerConfig:
    return TrackerConfig(outlier_method=OutlierMethod.NONE)
