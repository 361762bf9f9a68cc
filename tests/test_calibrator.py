import numpy as np
import pytest

from GazeTracker.calibration import calibrator as calibrator_module
from GazeTracker.calibration.calibrator import GOOD_ACCURACY_PX, CalibrationController
from GazeTracker.calibration.models import CalibrationPhase, CalibrationState
from GazeTracker.control.scheduler import FrameScheduler
from GazeTracker.core.settings import CalibrationSpeed, TrackerConfig

SCREEN = (1920, 1080)
FRAME_MS = 10.0


class Recorder:
    def __init__(self):
        self.phases = []
        self.phase_seen = []
        self.reports = []
        self.aborts = []


def _make(config, rec=None):
    rec = rec or Recorder()
    sched = FrameScheduler()
    ctrl = CalibrationController(
        config,
        SCREEN,
        sched,
        on_phase_complete=lambda p: (rec.phases.append(p), rec.phase_seen.append(ctrl.phase)),
        on_finished=rec.reports.append,
        on_abort=rec.aborts.append,
    )
    return ctrl, sched, rec


def _drive(ctrl, sched, feature_fn, until_ms, start_ms=0.0):
    """Feed one frame every FRAME_MS; features follow the target on screen."""
    t = start_ms
    while t < until_ms:
        t += FRAME_MS
        point = ctrl.current_point
        sched.advance(t)
        if point is not None and feature_fn is not None:
            ctrl.add_features(feature_fn(point))
    return t


def test_full_calibration_reaches_validation_complete(config, screen_features):
    ctrl, sched, rec = _make(config)
    ctrl.start()
    assert ctrl.state is CalibrationState.RUNNING
    assert ctrl.current_point.id == 1

    _drive(ctrl, sched, lambda p: screen_features(p.x, p.y), 60_000)

    assert ctrl.state is CalibrationState.VALIDATION_COMPLETE
    assert rec.phases == [CalibrationPhase.INITIAL_MAPPING, CalibrationPhase.FINE_TUNING]
    # the next phase is already entered when the callback fires
    assert rec.phase_seen == [CalibrationPhase.FINE_TUNING, CalibrationPhase.VALIDATION]
    assert len(ctrl.training_samples) == 21
    assert len(rec.reports) == 1
    report = rec.reports[0]
    assert len(report.measurements) == 4
    assert report.mean_error_px < 5.0
    assert report.good
    assert report is ctrl.report
    assert ctrl.engine is not None and ctrl.engine.is_trained
    assert sched.pending() == 0


def test_initial_mapping_samples_match_targets(config, screen_features):
    ctrl, sched, rec = _make(config)
    ctrl.start()
    # 5 points x (800 prep + 1200 capture)
    _drive(ctrl, sched, lambda p: screen_features(p.x, p.y), 10_000)
    assert ctrl.phase is CalibrationPhase.FINE_TUNING
    samples = ctrl.training_samples
    assert len(samples) == 5
    assert (samples[0].screen_x, samples[0].screen_y) == (960.0, 540.0)
    for s in samples:
        px, py = ctrl.engine.predict(s.features, config.regression_method)
        assert np.hypot(px - s.screen_x, py - s.screen_y) < 5.0


def test_frames_outside_capture_window_are_ignored(config, screen_features):
    ctrl, sched, _ = _make(config)
    ctrl.start()
    sched.advance(799)
    assert not ctrl.is_capturing
    assert ctrl.add_features(screen_features(50, 50)) is False
    sched.advance(800)
    assert ctrl.is_capturing
    assert ctrl.add_features(screen_features(50, 50)) is True
    sched.advance(2000)
    assert not ctrl.is_capturing


def test_mismatched_feature_length_is_dropped(config, screen_features):
    ctrl, sched, _ = _make(config)
    ctrl.start()
    sched.advance(800)
    assert ctrl.add_features(screen_features(50, 50))
    assert ctrl.add_features((1.0, 2.0)) is False


def test_sparse_point_is_retried(plain_config, screen_features):
    ctrl, sched, _ = _make(plain_config)
    ctrl.start()
    sched.advance(800)
    for _ in range(3):
        ctrl.add_features(screen_features(50, 50))
    sched.advance(2000)
    assert ctrl.retries == 1
    assert ctrl.point_index == 0
    assert ctrl.current_point.id == 1
    assert ctrl.training_samples == ()
    assert not ctrl.is_capturing
    # retried point gets a fresh prep window
    sched.advance(2799)
    assert not ctrl.is_capturing
    sched.advance(2800)
    assert ctrl.is_capturing


def test_retry_then_success_moves_on(plain_config, screen_features):
    ctrl, sched, _ = _make(plain_config)
    ctrl.start()
    sched.advance(2000)  # nothing captured
    assert ctrl.retries == 1
    _drive(ctrl, sched, lambda p: screen_features(p.x, p.y), 4000, start_ms=2000)
    assert ctrl.point_index == 1
    assert len(ctrl.training_samples) == 1


def test_restart_invalidates_old_timers(config, screen_features):
    ctrl, sched, _ = _make(config)
    ctrl.start()
    sched.advance(900)
    assert ctrl.is_capturing
    ctrl.add_features(screen_features(50, 50))

    ctrl.start()
    assert not ctrl.is_capturing
    # the first run's capture end (t=2000) must not fire; the new prep ends at 1700
    sched.advance(2000)
    assert ctrl.is_capturing
    assert ctrl.point_index == 0
    assert ctrl.retries == 0
    assert ctrl.training_samples == ()


def test_abort_discards_session(config, screen_features):
    ctrl, sched, rec = _make(config)
    ctrl.start()
    _drive(ctrl, sched, lambda p: screen_features(p.x, p.y), 10_500)
    assert ctrl.engine is not None

    ctrl.abort("user cancelled")
    assert ctrl.state is CalibrationState.ABORTED
    assert ctrl.abort_reason == "user cancelled"
    assert rec.aborts == ["user cancelled"]
    assert ctrl.engine is None
    assert ctrl.training_samples == ()
    assert ctrl.current_point is None
    assert sched.pending() == 0
    assert ctrl.add_features(screen_features(50, 50)) is False


def test_training_failure_aborts(config, screen_features, monkeypatch):
    monkeypatch.setattr(calibrator_module.RegressionEngine, "train", lambda self, X, Y: False)
    ctrl, sched, rec = _make(config)
    ctrl.start()
    _drive(ctrl, sched, lambda p: screen_features(p.x, p.y), 10_000)
    assert ctrl.state is CalibrationState.ABORTED
    assert len(rec.aborts) == 1
    assert "singular" in rec.aborts[0]
    assert rec.phases == []


def test_reset_returns_to_idle(config):
    ctrl, sched, _ = _make(config)
    ctrl.start()
    ctrl.reset()
    assert ctrl.state is CalibrationState.IDLE
    assert sched.pending() == 0


@pytest.mark.parametrize(
    "speed, capture_start",
    [(CalibrationSpeed.FAST, 400), (CalibrationSpeed.NORMAL, 800), (CalibrationSpeed.SLOW, 1200)],
)
def test_speed_scales_windows(speed, capture_start):
    ctrl, sched, _ = _make(TrackerConfig(calibration_speed=speed))
    ctrl.start()
    sched.advance(capture_start - 1)
    assert not ctrl.is_capturing
    sched.advance(capture_start)
    assert ctrl.is_capturing
    sched.advance(capture_start * 2.5 - 1)
    assert ctrl.is_capturing
    sched.advance(capture_start * 2.5)
    assert not ctrl.is_capturing


def test_poor_predictions_are_not_good(config, screen_features):
    ctrl, sched, rec = _make(config)
    ctrl.start()

    def features(point):
        if point.id >= 22:
            # validation gaze lands far away from the targets
            return screen_features(100.0 - point.x, 100.0 - point.y)
        return screen_features(point.x, point.y)

    _drive(ctrl, sched, features, 60_000)
    report = rec.reports[0]
    assert report.mean_error_px >= GOOD_ACCURACY_PX
    assert not report.good


def test_non_finite_feature_vector_is_dropped(config, screen_features):
    ctrl, sched, _ = _make(config)
    ctrl.start()
    sched.advance(800)
    assert ctrl.add_features((1.0, float("nan"), 0.0, 0.0, 0.0)) is False
    assert ctrl.add_features((1.0, float("inf"), 0.0, 0.0, 0.0)) is False
    # the dropped vectors did not fix the session's feature length
    assert ctrl.add_features(screen_features(50, 50)) is True
