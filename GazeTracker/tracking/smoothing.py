from __future__ import annotations

import math
from collections import deque
from typing import Deque, Dict, Optional, Tuple

from GazeTracker.core.settings import FilterConfig, SmoothingMethod


class OneEuroFilter:
    """One-Euro adaptive low-pass filter for one axis.

    Two cascaded exponential filters: one on the derivative (fixed
    ``d_cutoff``) and one on the signal whose cutoff grows with the filtered
    speed, ``cutoff = min_cutoff + beta * |dx|``. Timestamps are milliseconds.
    """

    def __init__(self, min_cutoff: float = 0.005, beta: float = 0.01, d_cutoff: float = 1.0) -> None:
        self.min_cutoff = float(min_cutoff)
        self.beta = float(beta)
        self.d_cutoff = float(d_cutoff)
        self._x: Optional[float] = None
        self._dx: float = 0.0
        self._t: Optional[float] = None

    @staticmethod
    def alpha(cutoff: float, dt: float) -> float:
        tau = 1.0 / (2.0 * math.pi * cutoff)
        return 1.0 / (1.0 + tau / dt)

    def reset(self) -> None:
        self._x = None
        self._dx = 0.0
        self._t = None

    def apply(self, x: float, t_ms: float) -> float:
        x = float(x)
        t_ms = float(t_ms)
        if self._x is None or self._t is None:
            self._x = x
            self._dx = 0.0
            self._t = t_ms
            return x
        dt = t_ms - self._t
        if dt <= 0.0:
            dt = 1e-6
        dx = (x - self._x) / dt
        a_d = self.alpha(self.d_cutoff, dt)
        dx_hat = self._dx + a_d * (dx - self._dx)
        cutoff = self.min_cutoff + self.beta * abs(dx_hat)
        a = self.alpha(cutoff, dt)
        x_hat = self._x + a * (x - self._x)
        self._x = x_hat
        self._dx = dx_hat
        self._t = t_ms
        return x_hat


class MovingAverageFilter:
    def __init__(self, window: int = 5) -> None:
        self._buf: Deque[float] = deque(maxlen=max(1, int(window)))

    @property
    def window(self) -> int:
        return self._buf.maxlen or 1

    def set_window(self, window: int) -> None:
        window = max(1, int(window))
        if window != self.window:
            # keep the newest values
            self._buf = deque(self._buf, maxlen=window)

    def reset(self) -> None:
        self._buf.clear()

    def apply(self, x: float, t_ms: float = 0.0) -> float:
        self._buf.append(float(x))
        return sum(self._buf) / float(len(self._buf))


class KalmanFilter:
    """Scalar steady-state Kalman filter (random-walk model)."""

    def __init__(self, q: float = 0.01, r: float = 0.1) -> None:
        self.q = float(q)
        self.r = float(r)
        self._x: Optional[float] = None
        self._p: float = 1.0
        self.last_gain: Optional[float] = None

    def reset(self) -> None:
        self._x = None
        self._p = 1.0
        self.last_gain = None

    def apply(self, z: float, t_ms: float = 0.0) -> float:
        z = float(z)
        if self._x is None:
            self._x = z
            self._p = 1.0
            return z
        self._p += self.q
        k = self._p / (self._p + self.r)
        self._x += k * (z - self._x)
        self._p = (1.0 - k) * self._p
        self.last_gain = k
        return self._x


class PassthroughFilter:
    def reset(self) -> None:
        pass

    def apply(self, x: float, t_ms: float = 0.0) -> float:
        return float(x)


class GazeSmoother:
    """Per-axis smoothing of predicted screen points with saccade handling.

    A pair of filters (x, y) exists per smoothing method; only the configured
    pair is fed. A jump larger than ``saccade_threshold`` between the raw
    point and the previous output resets the moving-average and Kalman state
    so the cursor snaps to the new region. One-Euro is left alone since its
    cutoff already opens up with speed.
    """

    _RESET_ON_SACCADE = (SmoothingMethod.MOVING_AVERAGE, SmoothingMethod.KALMAN)

    def __init__(self, config: Optional[FilterConfig] = None) -> None:
        self.config = config or FilterConfig()
        self._filters: Dict[SmoothingMethod, Tuple[object, object]] = {
            SmoothingMethod.NONE: (PassthroughFilter(), PassthroughFilter()),
            SmoothingMethod.MOVING_AVERAGE: (
                MovingAverageFilter(self.config.ma_window),
                MovingAverageFilter(self.config.ma_window),
            ),
            SmoothingMethod.ONE_EURO: (
                OneEuroFilter(self.config.min_cutoff, self.config.beta),
                OneEuroFilter(self.config.min_cutoff, self.config.beta),
            ),
            SmoothingMethod.KALMAN: (
                KalmanFilter(self.config.kalman_q, self.config.kalman_r),
                KalmanFilter(self.config.kalman_q, self.config.kalman_r),
            ),
        }
        self._last_out: Optional[Tuple[float, float]] = None
        self.saccade_count = 0

    @property
    def method(self) -> SmoothingMethod:
        return SmoothingMethod(self.config.method)

    @property
    def last_output(self) -> Optional[Tuple[float, float]]:
        return self._last_out

    def filters(self, method: Optional[SmoothingMethod] = None) -> Tuple[object, object]:
        return self._filters[SmoothingMethod(method or self.method)]

    def reset(self) -> None:
        for fx, fy in self._filters.values():
            fx.reset()
            fy.reset()
        self._last_out = None

    def update_config(self, config: FilterConfig) -> None:
        """Apply new parameters in place; a method switch restarts the newly selected pair."""
        previous = self.method
        self.config = config
        for f in self._filters[SmoothingMethod.ONE_EURO]:
            f.min_cutoff = float(config.min_cutoff)
            f.beta = float(config.beta)
        for f in self._filters[SmoothingMethod.MOVING_AVERAGE]:
            f.set_window(config.ma_window)
        for f in self._filters[SmoothingMethod.KALMAN]:
            f.q = float(config.kalman_q)
            f.r = float(config.kalman_r)
        if self.method is not previous:
            for f in self._filters[self.method]:
                f.reset()

    def process(self, xy: Tuple[float, float], t_ms: float) -> Tuple[float, float]:
        x, y = float(xy[0]), float(xy[1])
        method = self.method
        fx, fy = self._filters[method]
        if self._last_out is not None:
            jump = math.hypot(x - self._last_out[0], y - self._last_out[1])
            if jump > self.config.saccade_threshold:
                self.saccade_count += 1
                if method in self._RESET_ON_SACCADE:
                    fx.reset()
                    fy.reset()
        out = (fx.apply(x, t_ms), fy.apply(y, t_ms))
        self._last_out = out
        return out
