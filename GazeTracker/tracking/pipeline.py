from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from GazeTracker.calibration.calibrator import CalibrationController
from GazeTracker.calibration.models import AccuracyReport, CalibrationPhase, CalibrationPoint
from GazeTracker.control.scheduler import FrameScheduler
from GazeTracker.core.settings import SettingsManager, TrackerConfig
from .gaze_parser import GazeParser
from .smoothing import GazeSmoother

logger = logging.getLogger(__name__)


class PipelineMode(str, Enum):
    IDLE = "IDLE"
    CALIBRATING = "CALIBRATING"
    TRACKING = "TRACKING"


@dataclass
class FrameInput:
    features: Optional[Sequence[float]]
    timestamp_ms: float
    blinking: bool = False


@dataclass
class FrameResult:
    mode: PipelineMode
    raw_xy: Optional[Tuple[float, float]] = None
    predicted_xy: Optional[Tuple[float, float]] = None
    target: Optional[CalibrationPoint] = None
    captured: bool = False
    skipped: bool = False


class GazePipeline:
    """Per-frame driver: calibration routing, live prediction and smoothing.

    One instance owns the timer scheduler, the calibration controller and the
    smoother. The host calls ``process`` once per camera frame on a single
    thread; all timers fire from inside that call before the frame is routed.
    """

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        screen_size: Tuple[int, int] = (1920, 1080),
        on_phase_complete: Optional[Callable[[CalibrationPhase], None]] = None,
        on_finished: Optional[Callable[[AccuracyReport], None]] = None,
        on_abort: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.config = config or TrackerConfig()
        self.screen_size = (int(screen_size[0]), int(screen_size[1]))
        self.scheduler = FrameScheduler()
        self.smoother = GazeSmoother(self.config.filter_config())
        self.parser = GazeParser(include_head_pose=self.config.include_head_pose)
        self.mode = PipelineMode.IDLE
        self.last_report: Optional[AccuracyReport] = None
        self.last_abort_reason: Optional[str] = None
        self._on_phase_complete = on_phase_complete
        self._on_finished = on_finished
        self._on_abort = on_abort
        self.calibration = CalibrationController(
            self.config,
            self.screen_size,
            self.scheduler,
            on_phase_complete=self._phase_complete,
            on_finished=self._calibration_finished,
            on_abort=self._calibration_aborted,
        )

    @classmethod
    def from_settings(cls, settings: Optional[SettingsManager] = None, **callbacks) -> "GazePipeline":
        """Build a pipeline from the host's JSON settings (defaults when no file exists)."""
        settings = settings or SettingsManager()
        return cls(settings.tracker_config(), settings.screen_size(), **callbacks)

    @property
    def engine(self):
        return self.calibration.engine

    @property
    def is_trained(self) -> bool:
        return self.engine is not None and self.engine.is_trained

    # Control -----------------------------------------------------------
    def start_calibration(self) -> None:
        """Start (or restart) calibration; any previous model is discarded."""
        self.mode = PipelineMode.CALIBRATING
        self.last_report = None
        self.last_abort_reason = None
        self.smoother.reset()
        self.calibration.start()

    def start_tracking(self) -> None:
        if not self.is_trained:
            raise RuntimeError("Model not trained")
        self.smoother.reset()
        self.mode = PipelineMode.TRACKING
        logger.info(f"Tracking started ({self.config.regression_method.value}, {self.config.smoothing_method.value})")

    def stop(self) -> None:
        if self.mode is PipelineMode.CALIBRATING:
            self.calibration.reset()
        self.mode = PipelineMode.IDLE

    def update_config(self, config: TrackerConfig) -> None:
        """Settings changes take effect from the next frame."""
        if config.include_head_pose != self.config.include_head_pose:
            self.parser = GazeParser(include_head_pose=config.include_head_pose, blink=self.parser.blink)
        self.config = config
        self.smoother.update_config(config.filter_config())
        self.calibration.update_config(config)

    def set_screen_size(self, screen_size: Tuple[int, int]) -> None:
        self.screen_size = (int(screen_size[0]), int(screen_size[1]))
        self.calibration.set_screen_size(self.screen_size)

    # Per frame ---------------------------------------------------------
    def process(self, frame: FrameInput) -> FrameResult:
        self.scheduler.advance(frame.timestamp_ms)
        mode = self.mode
        if mode is PipelineMode.CALIBRATING:
            target = self.calibration.current_point
            if frame.blinking or frame.features is None:
                return FrameResult(mode=mode, target=target, skipped=True)
            captured = self.calibration.add_features(frame.features)
            return FrameResult(mode=mode, target=target, captured=captured)

        if mode is PipelineMode.TRACKING:
            if frame.blinking or frame.features is None:
                return FrameResult(mode=mode, predicted_xy=self.smoother.last_output, skipped=True)
            raw = self.engine.predict(frame.features, self.config.regression_method)
            smoothed = self.smoother.process(raw, frame.timestamp_ms)
            return FrameResult(mode=mode, raw_xy=raw, predicted_xy=smoothed)

        return FrameResult(mode=mode, skipped=True)

    def process_landmarks(self, landmarks, timestamp_ms: float) -> FrameResult:
        """Convenience entry for hosts that hand over raw face-mesh landmarks."""
        blinking = self.parser.is_blinking(landmarks)
        features = None if blinking else self.parser.build(landmarks)
        return self.process(FrameInput(features=features, timestamp_ms=timestamp_ms, blinking=blinking))

    # Controller callbacks ----------------------------------------------
    def _phase_complete(self, phase: CalibrationPhase) -> None:
        if self._on_phase_complete is not None:
            self._on_phase_complete(phase)

    def _calibration_finished(self, report: AccuracyReport) -> None:
        self.last_report = report
        self.smoother.reset()
        self.mode = PipelineMode.TRACKING
        logger.info(f"Switching to tracking (mean error {report.mean_error_px:.1f}px)")
        if self._on_finished is not None:
            self._on_finished(report)

    def _calibration_aborted(self, reason: str) -> None:
        self.last_abort_reason = reason
        self.mode = PipelineMode.IDLE
        if self._on_abort is not None:
            self._on_abort(reason)
