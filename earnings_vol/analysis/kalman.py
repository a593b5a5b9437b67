"""
Kalman-Filtered Volatility
==========================

Two-state linear Kalman filter over successive Yang-Zhang readings.

State x = [σ, dσ/dt]:
    x_k = F x_{k-1} + w,   F = [[1, Δt], [0, φ]],   w ~ N(0, diag(q_σ, q_σ̇))
    z_k = H x_k + v,       H = [1, 0],              v ~ N(0, R_k)

The measurement noise uses the Yang-Zhang sampling variance
R_k ≈ z_k² / (2·n·η) with relative efficiency η ≈ 8.

A filter instance holds mutable state and must be driven by a single
writer per symbol stream.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from ..data.market_data import PriceBar
from ..errors import EngineError
from ..log_utils import resolve_logger, safe_log
from .realized_vol import YangZhangEstimator

YANG_ZHANG_EFFICIENCY = 8.0
MIN_MEASUREMENT_NOISE = 1e-8
MIN_COVARIANCE = 1e-10

_Z_SCORES = {0.90: 1.645, 0.95: 1.96, 0.99: 2.576}


@dataclass(frozen=True)
class KalmanParameters:
    """
    Filter dynamics.

    Attributes:
        delta_t: Time step between readings (days)
        phi: Mean-reversion factor of the volatility drift
        q_sigma: Process noise on σ
        q_sigma_dot: Process noise on dσ/dt
    """
    delta_t: float = 1.0
    phi: float = 0.95
    q_sigma: float = 1e-4
    q_sigma_dot: float = 2.5e-5

    @classmethod
    def default(cls) -> 'KalmanParameters':
        return cls()

    @classmethod
    def high_frequency(cls) -> 'KalmanParameters':
        """Hourly readings: small shocks, very slow drift decay."""
        return cls(delta_t=1.0 / 24.0, phi=0.99, q_sigma=1e-5, q_sigma_dot=1e-6)

    @classmethod
    def earnings_event(cls) -> 'KalmanParameters':
        """Around announcements: faster drift decay, larger vol-of-vol."""
        return cls(delta_t=1.0, phi=0.85, q_sigma=4e-4, q_sigma_dot=1e-4)

    @property
    def transition(self) -> np.ndarray:
        return np.array([[1.0, self.delta_t], [0.0, self.phi]])

    @property
    def process_noise(self) -> np.ndarray:
        return np.diag([self.q_sigma, self.q_sigma_dot])


@dataclass(frozen=True)
class KalmanVolatilityEstimate:
    """Filter output after one step. Measurement fields are NaN for skipped steps."""
    volatility: float
    volatility_drift: float
    variance: float
    std_error: float
    yang_zhang_raw: float
    kalman_gain: float
    innovation: float
    measurement_noise: float

    @property
    def is_consistent(self) -> bool:
        """Innovation within two standard errors."""
        return abs(self.innovation) <= 2 * self.std_error

    @property
    def innovation_z_score(self) -> float:
        return self.innovation / self.std_error if self.std_error > 0 else 0.0


class KalmanVolatilityFilter:
    """
    Kalman smoother for noisy Yang-Zhang volatility readings.

    Args:
        parameters: Filter dynamics (defaults to KalmanParameters.default())
        initial_volatility: Starting σ; None leaves the filter uninitialised
            until the first measurement
        initial_uncertainty: Starting standard deviation of σ
        logger: Optional logger
    """

    def __init__(
        self,
        parameters: Optional[KalmanParameters] = None,
        initial_volatility: Optional[float] = 0.20,
        initial_uncertainty: float = 0.01,
        logger: Optional[logging.Logger] = None
    ):
        self.params = parameters or KalmanParameters.default()
        self.logger = resolve_logger(logger, __name__)
        self._state = np.zeros(2)
        self._cov = np.zeros((2, 2))
        self._initialized = False
        self._update_count = 0
        self._last = None
        self.estimator = YangZhangEstimator()

        if initial_volatility is not None:
            self.reset(initial_volatility, initial_uncertainty)

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def volatility(self) -> float:
        return float(self._state[0])

    @property
    def volatility_drift(self) -> float:
        return float(self._state[1])

    @property
    def variance(self) -> float:
        return float(self._cov[0, 0])

    @property
    def std_error(self) -> float:
        return float(np.sqrt(max(0.0, self._cov[0, 0])))

    @property
    def update_count(self) -> int:
        return self._update_count

    def reset(self, volatility: float = 0.20, uncertainty: float = 0.01) -> None:
        """Reinitialise state with zero drift."""
        self._state = np.array([volatility, 0.0])
        self._cov = np.array([[uncertainty ** 2, 0.0], [0.0, self.params.q_sigma_dot]])
        self._initialized = True
        self._update_count = 0
        self._last = KalmanVolatilityEstimate(
            volatility=volatility, volatility_drift=0.0, variance=uncertainty ** 2,
            std_error=uncertainty, yang_zhang_raw=volatility, kalman_gain=0.0,
            innovation=0.0, measurement_noise=float('nan'),
        )
        safe_log(self.logger, logging.INFO, "Kalman filter reset: sigma0=%.4f, P0=%.2e",
                 volatility, uncertainty ** 2)

    @staticmethod
    def measurement_noise(measurement: float, sample_size: int) -> float:
        """Yang-Zhang sampling variance, floored."""
        noise = measurement ** 2 / (2.0 * sample_size * YANG_ZHANG_EFFICIENCY)
        return max(noise, MIN_MEASUREMENT_NOISE)

    def _predict(self) -> Tuple[np.ndarray, np.ndarray]:
        F = self.params.transition
        state = F @ self._state
        cov = F @ self._cov @ F.T + self.params.process_noise
        return state, cov

    def _clamp(self, cov: np.ndarray) -> np.ndarray:
        cov = 0.5 * (cov + cov.T)
        cov[0, 0] = max(cov[0, 0], MIN_COVARIANCE)
        cov[1, 1] = max(cov[1, 1], MIN_COVARIANCE)
        return cov

    def update(self, yang_zhang: float, sample_size: int = 30) -> KalmanVolatilityEstimate:
        """
        Predict, then correct with a new Yang-Zhang reading.

        Args:
            yang_zhang: Annualised Yang-Zhang measurement
            sample_size: Bars behind the measurement

        Returns:
            KalmanVolatilityEstimate after the update
        """
        if not self._initialized:
            self.reset(yang_zhang, 0.02)

        state_pred, cov_pred = self._predict()

        R = self.measurement_noise(yang_zhang, sample_size)
        H = np.array([1.0, 0.0])

        innovation = yang_zhang - H @ state_pred
        S = H @ cov_pred @ H + R
        K = cov_pred @ H / S

        self._state = state_pred + K * innovation

        # Joseph form keeps P symmetric positive semi-definite
        I_KH = np.eye(2) - np.outer(K, H)
        cov = I_KH @ cov_pred @ I_KH.T + R * np.outer(K, K)
        self._cov = self._clamp(cov)
        self._update_count += 1

        self._last = KalmanVolatilityEstimate(
            volatility=self.volatility,
            volatility_drift=self.volatility_drift,
            variance=self.variance,
            std_error=self.std_error,
            yang_zhang_raw=yang_zhang,
            kalman_gain=float(K[0]),
            innovation=float(innovation),
            measurement_noise=R,
        )
        safe_log(self.logger, logging.DEBUG, "Kalman update: sigma=%.4f, K=%.4f, innovation=%.4f",
                 self.volatility, K[0], innovation)
        return self._last

    def update_from_bars(self, bars: Sequence[PriceBar], window: int = 30) -> KalmanVolatilityEstimate:
        """Compute the Yang-Zhang reading for the trailing window and filter it."""
        reading = self.estimator.calculate(bars, window)
        return self.update(reading, sample_size=window)

    def skip_measurement(self) -> KalmanVolatilityEstimate:
        """
        Advance one step without a reading; uncertainty grows.

        Raises:
            EngineError: If the filter has never been initialised
        """
        if not self._initialized:
            raise EngineError("Filter not initialised")

        self._state, cov = self._predict()
        self._cov = self._clamp(cov)

        nan = float('nan')
        self._last = KalmanVolatilityEstimate(
            volatility=self.volatility,
            volatility_drift=self.volatility_drift,
            variance=self.variance,
            std_error=self.std_error,
            yang_zhang_raw=nan,
            kalman_gain=0.0,
            innovation=nan,
            measurement_noise=nan,
        )
        return self._last

    @property
    def current_estimate(self) -> Optional[KalmanVolatilityEstimate]:
        return self._last

    def confidence_interval(self, level: float = 0.95) -> Tuple[float, float]:
        """Symmetric interval for σ at 90/95/99% (other levels use 95%)."""
        z = _Z_SCORES.get(level, 1.96)
        se = self.std_error
        return self.volatility - z * se, self.volatility + z * se
