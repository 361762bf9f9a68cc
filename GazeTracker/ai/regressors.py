"""
Regressors mapping a feature vector -> screen (x, y).

Three estimators share one trained bundle:
- RidgeModel: closed-form ridge regression over the full feature vector.
- TpsModel: thin-plate smoothing spline over the 4 relative pupil offsets.
- HybridModel: ridge + inverse-distance weighted residuals of the k nearest
  calibration samples (optionally carrying a TpsModel).

RegressionEngine picks one at prediction time and falls back
TPS -> HYBRID -> RIDGE -> (0, 0) depending on what is ready.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
from sklearn.neighbors import NearestNeighbors

from GazeTracker.core.settings import RegressionMethod
from .matrix import invert, solve_ridge

logger = logging.getLogger(__name__)

RIDGE_LAMBDA = 0.001
TPS_LAMBDA = 0.5
# Left (x, y) and right (x, y) relative pupil offsets; skips bias and head pose.
TPS_DIMS = (1, 2, 3, 4)
KNN_NEIGHBORS = 4
KNN_EPS = 1e-4


def tps_kernel(r: np.ndarray) -> np.ndarray:
    """phi(r) = r^2 ln r, with phi(0) = 0."""
    r = np.asarray(r, dtype=float)
    safe = np.where(r > 0.0, r, 1.0)
    return np.where(r > 0.0, r * r * np.log(safe), 0.0)


@dataclass(frozen=True)
class RidgeModel:
    weights: np.ndarray  # F x 2

    @classmethod
    def fit(cls, inputs: np.ndarray, outputs: np.ndarray, lam: float = RIDGE_LAMBDA) -> Optional["RidgeModel"]:
        W = solve_ridge(inputs, outputs, lam)
        if W is None:
            return None
        return cls(weights=W)

    def is_ready(self) -> bool:
        return self.weights.ndim == 2 and self.weights.shape[0] > 0

    def predict(self, x: np.ndarray) -> np.ndarray:
        return np.asarray(x, dtype=float) @ self.weights


@dataclass(frozen=True)
class TpsModel:
    control_points: np.ndarray  # N x D
    weights: np.ndarray  # (N + D + 1) x 2

    @staticmethod
    def reduce(features: np.ndarray) -> np.ndarray:
        return np.asarray(features, dtype=float)[..., list(TPS_DIMS)]

    @classmethod
    def fit(cls, inputs: np.ndarray, outputs: np.ndarray, lam: float = TPS_LAMBDA) -> Optional["TpsModel"]:
        X = np.asarray(inputs, dtype=float)
        Y = np.asarray(outputs, dtype=float)
        if X.ndim != 2 or X.shape[1] <= max(TPS_DIMS):
            logger.warning(f"TPS needs at least {max(TPS_DIMS) + 1} features, got shape {X.shape}")
            return None
        C = cls.reduce(X)
        n, d = C.shape
        if n < d + 1:
            logger.warning(f"TPS needs at least {d + 1} control points, got {n}")
            return None

        r = np.linalg.norm(C[:, None, :] - C[None, :, :], axis=2)
        K = tps_kernel(r) + lam * np.eye(n)
        P = np.hstack([np.ones((n, 1)), C])

        size = n + d + 1
        L = np.zeros((size, size))
        L[:n, :n] = K
        L[:n, n:] = P
        L[n:, :n] = P.T
        rhs = np.vstack([Y, np.zeros((d + 1, Y.shape[1]))])

        L_inv = invert(L)
        if L_inv is None:
            logger.warning("TPS system is singular")
            return None
        W = L_inv @ rhs
        if not np.all(np.isfinite(W)):
            logger.warning("TPS weights are not finite")
            return None
        return cls(control_points=C, weights=W)

    def is_ready(self) -> bool:
        return self.control_points.shape[0] > 0

    def predict(self, x: np.ndarray) -> np.ndarray:
        c = self.reduce(x)
        n = self.control_points.shape[0]
        phi = tps_kernel(np.linalg.norm(self.control_points - c, axis=1))
        radial = phi @ self.weights[:n]
        affine = self.weights[n] + c @ self.weights[n + 1:]
        return radial + affine


@dataclass
class HybridModel:
    ridge: RidgeModel
    residual_inputs: np.ndarray  # N x F
    residual_errors: np.ndarray  # N x 2, actual - ridge prediction
    tps: Optional[TpsModel] = None
    k: int = KNN_NEIGHBORS
    _index: Optional[NearestNeighbors] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        n = len(self.residual_inputs)
        if n > 0:
            self._index = NearestNeighbors(n_neighbors=min(self.k, n)).fit(self.residual_inputs)

    @property
    def residuals(self) -> List[Tuple[np.ndarray, np.ndarray]]:
        return list(zip(self.residual_inputs, self.residual_errors))

    def is_ready(self) -> bool:
        return self.ridge.is_ready() and self._index is not None

    def predict(self, x: np.ndarray) -> np.ndarray:
        base = self.ridge.predict(x)
        if self._index is None:
            return base
        dist, idx = self._index.kneighbors(np.asarray(x, dtype=float).reshape(1, -1))
        w = 1.0 / (dist[0] + KNN_EPS)
        correction = (w[:, None] * self.residual_errors[idx[0]]).sum(axis=0) / w.sum()
        return base + correction


class RegressionEngine:
    """Trains the estimator bundle and serves predictions.

    train() and predict() never raise for numerical trouble: training reports
    failure through its return value and an untrained engine predicts (0, 0).
    """

    def __init__(self) -> None:
        self.model: Optional[HybridModel] = None
        self.n_features: int = 0

    @property
    def is_trained(self) -> bool:
        return self.model is not None and self.model.ridge.is_ready()

    @property
    def tps_ready(self) -> bool:
        return self.model is not None and self.model.tps is not None and self.model.tps.is_ready()

    def reset(self) -> None:
        self.model = None
        self.n_features = 0

    def train(self, inputs: Sequence[Sequence[float]], outputs: Sequence[Sequence[float]]) -> bool:
        X = np.asarray(inputs, dtype=float)
        Y = np.asarray(outputs, dtype=float)
        if X.ndim != 2 or Y.ndim != 2 or X.shape[0] == 0 or X.shape[0] != Y.shape[0] or Y.shape[1] != 2:
            logger.error(f"Bad training shapes: inputs {X.shape}, outputs {Y.shape}")
            self.reset()
            return False
        if not np.all(np.isfinite(X)) or not np.all(np.isfinite(Y)):
            logger.error("Training data contains NaN or Inf values")
            self.reset()
            return False

        ridge = RidgeModel.fit(X, Y)
        if ridge is None:
            logger.error("Ridge regression failed (singular matrix)")
            self.reset()
            return False

        residuals = Y - ridge.predict(X)
        tps = TpsModel.fit(X, Y)
        if tps is None:
            logger.warning("TPS unavailable; hybrid continues with ridge + kNN residuals")

        self.model = HybridModel(ridge=ridge, residual_inputs=X, residual_errors=residuals, tps=tps)
        self.n_features = X.shape[1]
        rmse = float(np.sqrt(np.mean(np.sum(residuals * residuals, axis=1))))
        logger.info(f"Trained on {X.shape[0]} samples x {X.shape[1]} features (ridge RMSE {rmse:.1f}px, tps={'yes' if tps else 'no'})")
        return True

    def predict(self, features: Sequence[float], method: RegressionMethod = RegressionMethod.HYBRID) -> Tuple[float, float]:
        model = self.model
        if model is None:
            return (0.0, 0.0)
        x = np.asarray(features, dtype=float).ravel()
        if x.shape[0] != self.n_features:
            logger.warning(f"Feature length {x.shape[0]} does not match trained length {self.n_features}")
            return (0.0, 0.0)
        if not np.all(np.isfinite(x)):
            logger.warning("Feature vector contains NaN or Inf values")
            return (0.0, 0.0)

        method = RegressionMethod(method)
        if method is RegressionMethod.TPS:
            if model.tps is not None and model.tps.is_ready():
                return _as_point(model.tps.predict(x))
            method = RegressionMethod.HYBRID
        if method is RegressionMethod.HYBRID:
            if model.is_ready():
                return _as_point(model.predict(x))
            method = RegressionMethod.RIDGE
        if model.ridge.is_ready():
            return _as_point(model.ridge.predict(x))
        return (0.0, 0.0)


def _as_point(xy: np.ndarray) -> Tuple[float, float]:
    return float(xy[0]), float(xy[1])
