"""
Heston Stochastic Volatility Model
==================================

Implements the Heston (1993) stochastic volatility model:
    dS_t = (r - d)S_t dt + √v_t S_t dW^S_t
    dv_t = κ(θ - v_t) dt + σv√v_t dW^v_t
    ⟨dW^S_t, dW^v_t⟩ = ρdt

Features:
- Probability-decomposition pricing (P1, P2) by Fourier inversion to infinity
- Theoretical IV by inverting the Fourier price with the Black-Scholes solver
- Closed-form smile approximation as the calibration warm start and grid ranker
- Levenberg-Marquardt calibration with a parallel grid-search fallback
- Feller condition enforced as part of parameter validity
"""

import itertools
import logging
from dataclasses import dataclass, replace
from typing import Optional, Sequence

import numpy as np

from ..calibration.optimizers import Deadline, levenberg_marquardt, parallel_grid_search
from ..calibration.quadrature import integrate_to_infinity
from ..errors import ConvergenceError, InsufficientDataError, InvalidArgumentError, ValidationResult
from ..log_utils import resolve_logger, safe_log
from ..timing.regime import RecommendedModel
from .base import (
    CalibrationSummary,
    MarketObservation,
    PricingModel,
    atm_implied_volatility,
    mean_squared_iv_error,
)
from .iv_solver import MAX_IV, MIN_IV, validate_inputs

MIN_CALIBRATION_OBSERVATIONS = 5

LM_LOWER_BOUNDS = [0.001, 0.001, 0.01, 0.01, -0.99]
LM_UPPER_BOUNDS = [2.0, 2.0, 10.0, 2.0, 0.99]
INVALID_PARAMETER_RESIDUAL = 100.0
PRICING_FAILURE_RESIDUAL = 10.0
ACCEPTABLE_CALIBRATION_MSE = 1e-4
FOURIER_REFINEMENT_ITERATIONS = 5
FOURIER_RESCORE_COUNT = 8
CALIBRATION_FAILURES = (InvalidArgumentError, ConvergenceError, FloatingPointError, ValueError)

GRID_V0 = (0.02, 0.04, 0.06, 0.09)
GRID_THETA = (0.02, 0.04, 0.06)
GRID_KAPPA = (1.0, 2.0, 3.0, 5.0)
GRID_SIGMA_V = (0.2, 0.3, 0.4, 0.5)
GRID_RHO = (-0.9, -0.7, -0.5, -0.3)


@dataclass(frozen=True)
class HestonParameters:
    """
    Heston model parameters.

    Attributes:
        v0: Initial variance (σ²)
        theta: Long-term variance level
        kappa: Mean reversion speed
        sigma_v: Volatility of variance
        rho: Correlation between spot and variance
        r: Risk-free rate
        d: Dividend yield
    """
    v0: float
    theta: float
    kappa: float
    sigma_v: float
    rho: float
    r: float = 0.05
    d: float = 0.02

    @property
    def feller_condition(self) -> bool:
        """Check Feller condition: 2κθ > σv² (ensures v_t > 0)."""
        return 2 * self.kappa * self.theta > self.sigma_v ** 2

    @property
    def feller_ratio(self) -> float:
        """Feller ratio: 2κθ/σv². Should be > 1."""
        if self.sigma_v == 0:
            return float('inf')
        return 2 * self.kappa * self.theta / (self.sigma_v ** 2)

    def validate(self) -> ValidationResult:
        """Validate parameter constraints, reporting every violation."""
        errors = []
        if self.v0 <= 0:
            errors.append("v0 must be positive")
        if self.theta <= 0:
            errors.append("theta must be positive")
        if self.kappa <= 0:
            errors.append("kappa must be positive")
        if self.sigma_v <= 0:
            errors.append("sigma_v must be positive")
        if not -1 <= self.rho <= 1:
            errors.append("rho must be in [-1, 1]")
        if not errors and not self.feller_condition:
            errors.append(
                f"Feller condition violated: 2*kappa*theta={2 * self.kappa * self.theta:.4f} "
                f"<= sigma_v^2={self.sigma_v ** 2:.4f}"
            )
        return ValidationResult.of(errors)

    @classmethod
    def create(cls, v0: float, theta: float, kappa: float, sigma_v: float, rho: float,
               r: float = 0.05, d: float = 0.02) -> 'HestonParameters':
        """Validating factory; raises InvalidArgumentError."""
        params = cls(v0, theta, kappa, sigma_v, rho, r, d)
        params.validate().raise_if_invalid()
        return params

    def expected_variance(self, t: float) -> float:
        """E[v_t] = θ + (v0 - θ)e^{-κt}."""
        return self.theta + (self.v0 - self.theta) * np.exp(-self.kappa * t)

    def variance_of_variance(self, t: float) -> float:
        """Var[v_t] of the CIR variance process."""
        decay = np.exp(-self.kappa * t)
        return (
            self.v0 * self.sigma_v ** 2 / self.kappa * decay * (1 - decay)
            + self.theta * self.sigma_v ** 2 / (2 * self.kappa) * (1 - decay) ** 2
        )

    def to_array(self) -> np.ndarray:
        """Calibrated subset [v0, θ, κ, σv, ρ]."""
        return np.array([self.v0, self.theta, self.kappa, self.sigma_v, self.rho])

    @classmethod
    def from_array(cls, arr: Sequence[float], r: float = 0.05, d: float = 0.02) -> 'HestonParameters':
        return cls(v0=float(arr[0]), theta=float(arr[1]), kappa=float(arr[2]),
                   sigma_v=float(arr[3]), rho=float(arr[4]), r=r, d=d)

    @classmethod
    def default_equity(cls) -> 'HestonParameters':
        """Typical large-cap equity."""
        return cls(v0=0.04, theta=0.04, kappa=2.0, sigma_v=0.3, rho=-0.7, r=0.05, d=0.02)

    @classmethod
    def high_vol_regime(cls) -> 'HestonParameters':
        """Stressed market: elevated spot variance, slower reversion."""
        return cls(v0=0.09, theta=0.0625, kappa=1.5, sigma_v=0.5, rho=-0.8, r=0.03, d=0.01)


class HestonModel(PricingModel):
    """
    Heston pricing model.

    Prices via the P1/P2 decomposition using the "little Heston trap"
    form of the characteristic function, which keeps the complex log on
    its principal branch for long maturities.
    """

    model_type = RecommendedModel.HESTON
    complexity = 5

    def __init__(self, parameters: HestonParameters):
        self.parameters = parameters

    @property
    def risk_free_rate(self) -> float:
        return self.parameters.r

    @property
    def dividend_yield(self) -> float:
        return self.parameters.d

    def validate(self) -> ValidationResult:
        return self.parameters.validate()

    def initial_vol_guess(self) -> float:
        return float(np.sqrt(self.parameters.v0))

    def characteristic_function(self, phi: float, T: float, j: int = 2) -> complex:
        """
        Heston characteristic function f_j(φ; T) without the log-spot term.

        Args:
            phi: Real frequency
            T: Time to maturity
            j: 1 for the share-measure probability, 2 for the risk-neutral one

        Returns:
            Complex characteristic function value
        """
        p = self.parameters
        i = complex(0, 1)

        u = 0.5 if j == 1 else -0.5
        b = p.kappa - p.rho * p.sigma_v if j == 1 else p.kappa

        xi = b - p.rho * p.sigma_v * i * phi
        d = np.sqrt(xi ** 2 + p.sigma_v ** 2 * (phi ** 2 - 2 * u * i * phi))
        g = (xi - d) / (xi + d)
        exp_dT = np.exp(-d * T)

        C = (p.r - p.d) * i * phi * T + (p.kappa * p.theta / p.sigma_v ** 2) * (
            (xi - d) * T - 2 * np.log((1 - g * exp_dT) / (1 - g))
        )
        D = ((xi - d) / p.sigma_v ** 2) * ((1 - exp_dT) / (1 - g * exp_dT))

        return np.exp(C + D * p.v0)

    def probability(self, spot: float, strike: float, T: float, j: int) -> float:
        """P_j = 1/2 + 1/π ∫₀^∞ Re(e^{iφ ln(S/K)} f_j(φ) / (iφ)) dφ, clamped to [0, 1]."""
        log_moneyness = np.log(spot / strike)
        i = complex(0, 1)

        def integrand(phi: float) -> float:
            if phi < 1e-10:
                return 0.0
            value = np.exp(i * phi * log_moneyness) * self.characteristic_function(phi, T, j) / (i * phi)
            return float(np.real(value))

        integral, _ = integrate_to_infinity(integrand)
        return float(min(max(0.5 + integral / np.pi, 0.0), 1.0))

    def price(self, spot: float, strike: float, time_to_expiry: float, is_call: bool = True) -> float:
        """
        European option price.

        Raises:
            InvalidArgumentError: Bad inputs or invalid parameters
        """
        validate_inputs(spot, strike, time_to_expiry)
        self.validate().raise_if_invalid()

        p = self.parameters
        T = time_to_expiry
        p1 = self.probability(spot, strike, T, 1)
        p2 = self.probability(spot, strike, T, 2)

        call = max(spot * np.exp(-p.d * T) * p1 - strike * np.exp(-p.r * T) * p2, 0.0)
        if is_call:
            return float(call)
        # Put-Call Parity: P = C - S*exp(-dT) + K*exp(-rT)
        return float(max(call - spot * np.exp(-p.d * T) + strike * np.exp(-p.r * T), 0.0))

    def theoretical_iv(self, spot: float, strike: float, time_to_expiry: float) -> float:
        """
        Black-Scholes IV of the Fourier price.

        Raises:
            InvalidArgumentError: Bad inputs or invalid parameters
            ConvergenceError: Model price outside the solvable IV range
        """
        validate_inputs(spot, strike, time_to_expiry)
        self.validate().raise_if_invalid()
        return self.implied_volatility(spot, strike, time_to_expiry)

    def theoretical_iv_approximate(self, spot: float, strike: float, time_to_expiry: float) -> float:
        """
        Closed-form smile approximation used to seed calibration.

        Level from the expected average variance over [0, T]. Skew and
        curvature follow the lognormal SABR expansion with vol-of-vol
        σv/(2σ̄), damped by (1 - e^{-κT})/(κT) for mean reversion.
        """
        validate_inputs(spot, strike, time_to_expiry)
        p = self.parameters
        T = time_to_expiry

        kappa_T = p.kappa * T
        decay = (1 - np.exp(-kappa_T)) / kappa_T
        avg_variance = p.theta + (p.v0 - p.theta) * decay
        base_vol = np.sqrt(max(avg_variance, MIN_IV ** 2))

        k = np.log(strike / spot)
        skew = p.rho * p.sigma_v / (4 * base_vol) * decay * k
        curvature = (2 - 3 * p.rho ** 2) * p.sigma_v ** 2 / (96 * base_vol ** 3) * decay * k ** 2

        return float(min(max(base_vol + skew + curvature, MIN_IV), MAX_IV))

    @classmethod
    def calibrate(
        cls,
        spot: float,
        observations: Sequence[MarketObservation],
        risk_free_rate: float = 0.05,
        dividend_yield: float = 0.02,
        max_workers: int = 4,
        deadline: Optional[Deadline] = None,
        logger: Optional[logging.Logger] = None,
        **kwargs
    ) -> 'HestonModel':
        """
        Fit [v0, θ, κ, σv, ρ] to observed IVs.

        Levenberg-Marquardt on the closed-form approximation, seeded from
        the ATM IV, supplies a warm start that a short LM pass on Fourier
        IVs refines. When that does not reach a valid, accurate fit, a
        coarse grid over Feller-valid combinations is ranked in parallel
        by the approximation and its best candidates are rescored with
        Fourier IVs. The default equity preset is returned only when
        nothing valid is found.

        Args:
            spot: Spot price
            observations: Market (strike, DTE, IV) points
            risk_free_rate: Risk-free rate
            dividend_yield: Dividend yield
            max_workers: Grid-search threads
            deadline: Optional budget; skips Fourier refinement and stops the grid once expired
            logger: Optional logger

        Returns:
            Calibrated HestonModel with `calibration` populated (mse is on Fourier IVs)

        Raises:
            InsufficientDataError: Fewer than 5 observations
            InvalidArgumentError: Non-positive spot
        """
        logger = resolve_logger(logger, __name__)
        deadline = deadline or Deadline.none()
        if spot <= 0:
            raise InvalidArgumentError("Spot price must be positive.")
        if len(observations) < MIN_CALIBRATION_OBSERVATIONS:
            raise InsufficientDataError(
                f"Heston calibration needs {MIN_CALIBRATION_OBSERVATIONS} observations, got {len(observations)}"
            )

        market = np.array([o.implied_volatility for o in observations])

        def residual_function(approximate: bool):
            def residuals(x: np.ndarray) -> np.ndarray:
                params = HestonParameters.from_array(x, risk_free_rate, dividend_yield)
                if not params.validate():
                    return np.full(len(observations), INVALID_PARAMETER_RESIDUAL)
                model = cls(params)
                iv = model.theoretical_iv_approximate if approximate else model.theoretical_iv
                try:
                    fitted = np.array([iv(spot, o.strike, o.time_to_expiry) for o in observations])
                except CALIBRATION_FAILURES:
                    return np.full(len(observations), PRICING_FAILURE_RESIDUAL)
                return fitted - market
            return residuals

        def objective(approximate: bool):
            def error(params: HestonParameters) -> float:
                if not params.validate():
                    return float('inf')
                model = cls(params)
                iv = model.theoretical_iv_approximate if approximate else model.theoretical_iv
                try:
                    return mean_squared_iv_error(model, spot, observations, iv)
                except CALIBRATION_FAILURES:
                    return float('inf')
            return error

        atm_iv = atm_implied_volatility(spot, observations)
        x0 = [atm_iv ** 2, atm_iv ** 2, 2.0, 0.3, -0.7]
        warm = levenberg_marquardt(residual_function(True), x0, LM_LOWER_BOUNDS, LM_UPPER_BOUNDS)
        n_evaluations = warm.n_evaluations

        lm_model = None
        if not deadline.expired():
            refined = levenberg_marquardt(
                residual_function(False), warm.x, LM_LOWER_BOUNDS, LM_UPPER_BOUNDS,
                max_iterations=FOURIER_REFINEMENT_ITERATIONS,
            )
            n_evaluations += refined.n_evaluations
            params = HestonParameters.from_array(refined.x, risk_free_rate, dividend_yield)
            if params.validate() and np.isfinite(refined.cost):
                lm_model = cls(params)
                lm_model.calibration = CalibrationSummary(
                    method="levenberg_marquardt", mse=refined.cost, n_evaluations=n_evaluations,
                )
                if refined.success or refined.cost <= ACCEPTABLE_CALIBRATION_MSE:
                    safe_log(logger, logging.DEBUG, "Heston LM calibration converged: %s", params)
                    return lm_model
            safe_log(
                logger, logging.INFO,
                "Heston LM calibration did not reach an acceptable fit (%s); using grid search",
                refined.message,
            )
        else:
            safe_log(logger, logging.INFO, "Deadline expired before Heston Fourier refinement; using grid search")

        candidates = (
            HestonParameters(v0, theta, kappa, sigma_v, rho, risk_free_rate, dividend_yield)
            for v0, theta, kappa, sigma_v, rho in itertools.product(
                GRID_V0, GRID_THETA, GRID_KAPPA, GRID_SIGMA_V, GRID_RHO
            )
        )
        ranking = parallel_grid_search(objective(True), candidates, max_workers=max_workers, deadline=deadline)
        n_evaluations += ranking.n_evaluated
        shortlist = ranking.ranked[:FOURIER_RESCORE_COUNT]
        grid = parallel_grid_search(objective(False), shortlist, max_workers=max_workers, deadline=deadline)
        n_evaluations += grid.n_evaluated

        if grid.best is not None and (lm_model is None or grid.best_error < lm_model.calibration.mse):
            model = cls(grid.best)
            model.calibration = CalibrationSummary(
                method="grid_search", mse=grid.best_error, n_evaluations=n_evaluations,
            )
            return model

        if lm_model is not None:
            return lm_model

        safe_log(logger, logging.WARNING, "Heston grid search found no valid parameters; using defaults")
        model = cls(replace(HestonParameters.default_equity(), r=risk_free_rate, d=dividend_yield))
        try:
            mse = mean_squared_iv_error(model, spot, observations)
        except CALIBRATION_FAILURES:
            mse = float('inf')
        model.calibration = CalibrationSummary(
            method="default", mse=mse, n_evaluations=n_evaluations, success=False,
        )
        return model

    def __repr__(self) -> str:
        return f"HestonModel({self.parameters})"
