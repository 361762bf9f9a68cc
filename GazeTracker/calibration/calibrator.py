"""CalibrationController: the three-phase calibration state machine.

Each target point gets a prep window (gaze settles, nothing recorded) and a
capture window (every incoming feature vector is buffered). When the capture
window closes the buffer is cleaned, and either:
  * fewer than 5 samples survive -> the same point is retried, or
  * the survivors are averaged into one representative vector, which becomes
    a TrainingSample (INITIAL_MAPPING / FINE_TUNING) or a validation
    measurement (VALIDATION).

After the last point of a training phase a fresh RegressionEngine is trained
on every sample gathered so far. After VALIDATION an AccuracyReport is
emitted and the controller stops; switching to live tracking is up to the
caller.

Timers run on a FrameScheduler. Every (re)arm bumps a generation counter and
the callbacks carry the generation they were armed with, so a callback that
outlived its point can never touch state.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from GazeTracker.ai.regressors import RegressionEngine
from GazeTracker.analysis.error_metrics import point_errors, summarize
from GazeTracker.control.scheduler import FrameScheduler, TimerHandle
from GazeTracker.core.settings import TrackerConfig
from .cleaner import clean
from .models import (
    AccuracyReport,
    CalibrationPhase,
    CalibrationPoint,
    CalibrationState,
    TrainingSample,
    ValidationMeasurement,
)
from .points import layout

logger = logging.getLogger(__name__)

GOOD_ACCURACY_PX = 250.0
MIN_CLEAN_SAMPLES = 5
MIN_TRAINING_SAMPLES = 5

_NEXT_PHASE = {
    CalibrationPhase.INITIAL_MAPPING: CalibrationPhase.FINE_TUNING,
    CalibrationPhase.FINE_TUNING: CalibrationPhase.VALIDATION,
}


class CalibrationController:
    def __init__(
        self,
        config: TrackerConfig,
        screen_size: Tuple[int, int],
        scheduler: FrameScheduler,
        on_phase_complete: Optional[Callable[[CalibrationPhase], None]] = None,
        on_finished: Optional[Callable[[AccuracyReport], None]] = None,
        on_abort: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.config = config
        self.screen_size = (int(screen_size[0]), int(screen_size[1]))
        self.scheduler = scheduler
        self.on_phase_complete = on_phase_complete
        self.on_finished = on_finished
        self.on_abort = on_abort

        self.state = CalibrationState.IDLE
        self.phase = CalibrationPhase.INITIAL_MAPPING
        self.point_index = 0
        self.points: List[CalibrationPoint] = []
        self.engine: Optional[RegressionEngine] = None
        self.report: Optional[AccuracyReport] = None
        self.abort_reason: Optional[str] = None
        self.retries = 0

        self._samples: List[TrainingSample] = []
        self._measurements: List[ValidationMeasurement] = []
        self._buffer: List[Tuple[float, ...]] = []
        self._feature_len: Optional[int] = None
        self._capturing = False
        self._generation = 0
        self._timers: Tuple[Optional[TimerHandle], ...] = ()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def is_running(self) -> bool:
        return self.state is CalibrationState.RUNNING

    @property
    def is_capturing(self) -> bool:
        return self._capturing

    @property
    def current_point(self) -> Optional[CalibrationPoint]:
        if not self.is_running or self.point_index >= len(self.points):
            return None
        return self.points[self.point_index]

    @property
    def training_samples(self) -> Tuple[TrainingSample, ...]:
        return tuple(self._samples)

    @property
    def validation_measurements(self) -> Tuple[ValidationMeasurement, ...]:
        return tuple(self._measurements)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------
    def start(self) -> None:
        self._disarm()
        self._clear_session()
        self.state = CalibrationState.RUNNING
        logger.info(f"Calibration started (speed={self.config.calibration_speed.value}, screen={self.screen_size})")
        self._enter_phase(CalibrationPhase.INITIAL_MAPPING)

    def reset(self) -> None:
        self._disarm()
        self._clear_session()
        self.state = CalibrationState.IDLE

    def abort(self, reason: str) -> None:
        self._disarm()
        self._clear_session()
        self.state = CalibrationState.ABORTED
        self.abort_reason = reason
        logger.error(f"Calibration aborted: {reason}")
        if self.on_abort is not None:
            self.on_abort(reason)

    def set_screen_size(self, screen_size: Tuple[int, int]) -> None:
        self.screen_size = (int(screen_size[0]), int(screen_size[1]))

    def update_config(self, config: TrackerConfig) -> None:
        """New timing/outlier settings apply from the next armed point."""
        self.config = config

    def add_features(self, features: Sequence[float]) -> bool:
        """Offer one frame's feature vector. Returns True if it was buffered."""
        if not self._capturing:
            return False
        vec = tuple(float(v) for v in features)
        if not np.all(np.isfinite(vec)):
            logger.warning("Dropping feature vector with NaN or Inf values")
            return False
        if self._feature_len is None:
            self._feature_len = len(vec)
        elif len(vec) != self._feature_len:
            logger.warning(f"Dropping feature vector of length {len(vec)} (expected {self._feature_len})")
            return False
        self._buffer.append(vec)
        return True

    # ------------------------------------------------------------------
    # Phase / point sequencing
    # ------------------------------------------------------------------
    def _clear_session(self) -> None:
        self._samples = []
        self._measurements = []
        self._buffer = []
        self._feature_len = None
        self.engine = None
        self.report = None
        self.abort_reason = None
        self.retries = 0
        self.points = []
        self.point_index = 0

    def _enter_phase(self, phase: CalibrationPhase) -> None:
        self.phase = phase
        self.points = list(layout(self.config.edge_margin)[phase])
        self.point_index = 0
        if phase is CalibrationPhase.VALIDATION:
            self._measurements = []
        logger.info(f"Phase {phase.value}: {len(self.points)} points")
        self._arm()

    def _arm(self) -> None:
        self._disarm()
        self._generation += 1
        gen = self._generation
        self._buffer = []
        prep = self.config.prep_ms()
        capture = self.config.capture_ms()
        self._timers = (
            self.scheduler.call_later(prep, lambda: self._on_capture_start(gen)),
            self.scheduler.call_later(prep + capture, lambda: self._on_capture_end(gen)),
        )

    def _disarm(self) -> None:
        for handle in self._timers:
            self.scheduler.cancel(handle)
        self._timers = ()
        self._capturing = False

    def _is_current(self, gen: int) -> bool:
        return gen == self._generation and self.state is CalibrationState.RUNNING

    def _on_capture_start(self, gen: int) -> None:
        if not self._is_current(gen):
            return
        self._buffer = []
        self._capturing = True

    def _on_capture_end(self, gen: int) -> None:
        if not self._is_current(gen):
            return
        self._capturing = False
        self._timers = ()

        point = self.points[self.point_index]
        kept = clean(self._buffer, self.config.outlier_method, self.config.outlier_threshold)
        if len(kept) < MIN_CLEAN_SAMPLES:
            self.retries += 1
            logger.warning(
                f"Point {point.id} ({self.phase.value}): {len(kept)}/{len(self._buffer)} samples after cleaning, retrying"
            )
            self._arm()
            return

        avg = tuple(np.mean(np.asarray(kept, dtype=float), axis=0).tolist())
        target = point.to_screen(self.screen_size)
        if self.phase is CalibrationPhase.VALIDATION:
            if self.engine is not None:
                predicted = self.engine.predict(avg, self.config.regression_method)
            else:
                predicted = (0.0, 0.0)
            m = ValidationMeasurement(predicted=predicted, target=target)
            self._measurements.append(m)
            logger.info(f"Validation point {point.id}: error {m.error_px:.1f}px")
        else:
            self._samples.append(TrainingSample(screen_x=target[0], screen_y=target[1], features=avg))

        if self.point_index < len(self.points) - 1:
            self.point_index += 1
            self._arm()
        else:
            self._finish_phase()

    def _finish_phase(self) -> None:
        phase = self.phase
        if phase is CalibrationPhase.VALIDATION:
            self._finish_validation()
            return

        if len(self._samples) < MIN_TRAINING_SAMPLES:
            self.abort(f"insufficient training data ({len(self._samples)} samples)")
            return

        engine = RegressionEngine()
        X = [s.features for s in self._samples]
        Y = [(s.screen_x, s.screen_y) for s in self._samples]
        if not engine.train(X, Y):
            self.abort("regression failed (singular matrix)")
            return
        self.engine = engine

        self._enter_phase(_NEXT_PHASE[phase])
        if self.on_phase_complete is not None:
            self.on_phase_complete(phase)

    def _finish_validation(self) -> None:
        summary = summarize(point_errors(
            [m.target for m in self._measurements],
            [m.predicted for m in self._measurements],
        ))
        mean_err = summary.mean_px
        self.report = AccuracyReport(
            mean_error_px=mean_err,
            good=mean_err < GOOD_ACCURACY_PX,
            max_error_px=summary.max_px,
            rms_error_px=summary.rms_px,
            measurements=list(self._measurements),
        )
        self._disarm()
        self.state = CalibrationState.VALIDATION_COMPLETE
        quality = "good" if self.report.good else "low"
        logger.info(f"Calibration complete: mean error {mean_err:.1f}px ({quality} accuracy)")
        if self.on_finished is not None:
            self.on_finished(self.report)
