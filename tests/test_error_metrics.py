import math

import pytest

from GazeTracker.analysis.error_metrics import point_errors, summarize


def test_point_errors_and_summary():
    errs = point_errors([(0, 0), (10, 10)], [(3, 4), (10, 10)])
    assert errs.tolist() == [5.0, 0.0]
    summary = summarize(errs)
    assert summary.count == 2
    assert summary.mean_px == 2.5
    assert summary.max_px == 5.0
    assert summary.rms_px == pytest.approx(math.sqrt(12.5))


def test_length_mismatch_raises():
    with pytest.raises(ValueError):
        point_errors([(0, 0)], [])


def test_empty_mean_is_infinite():
    summary = summarize(point_errors([], []))
    assert summary.mean_px == math.inf
    assert summary.max_px == 0.0
    assert summary.count == 0
