"""
Kou Double-Exponential Jump-Diffusion Model
===========================================

Implements Kou (2002):
    dS_t / S_t- = (r - d - λκ) dt + σ dW_t + d(Σ (e^{Y_i} - 1))

Jump times are Poisson(λ); log jump sizes Y are asymmetric double
exponential: upward Exp(η1) with probability p, downward Exp(η2)
otherwise. The compensator κ = E[e^Y - 1] keeps the discounted price a
martingale.

Features:
- Carr-Madan damped Fourier pricing
- Analytical jump moments and compensator
- Theoretical IV by inverting the Carr-Madan price
- Variance-plus-skew IV approximation for ranking calibration candidates
- Parallel grid-search calibration with Fourier rescoring
"""

import itertools
import logging
from dataclasses import dataclass, replace
from typing import Optional, Sequence

import numpy as np

from ..calibration.optimizers import Deadline, parallel_grid_search
from ..calibration.quadrature import integrate_to_infinity
from ..errors import ConvergenceError, InsufficientDataError, InvalidArgumentError, ValidationResult
from ..log_utils import resolve_logger, safe_log
from ..timing.regime import RecommendedModel
from .base import CalibrationSummary, MarketObservation, PricingModel, mean_squared_iv_error
from .iv_solver import MAX_IV, MIN_IV, validate_inputs

MIN_CALIBRATION_OBSERVATIONS = 5
CARR_MADAN_ALPHA = 1.5
FOURIER_RESCORE_COUNT = 8
CALIBRATION_FAILURES = (InvalidArgumentError, ConvergenceError, FloatingPointError, ValueError)

GRID_SIGMA = (0.15, 0.2, 0.25, 0.3)
GRID_LAMBDA = (1.0, 3.0, 5.0, 10.0)
GRID_P = (0.3, 0.4, 0.5)
GRID_ETA1 = (5.0, 10.0, 20.0)
GRID_ETA2 = (3.0, 5.0, 10.0)


@dataclass(frozen=True)
class KouParameters:
    """
    Kou model parameters.

    Attributes:
        sigma: Diffusion volatility
        lam: Jump intensity (jumps per year)
        p: Probability a jump is upward
        eta1: Upward jump rate (mean up-jump 1/η1)
        eta2: Downward jump rate (mean down-jump 1/η2)
        r: Risk-free rate
        d: Dividend yield
    """
    sigma: float
    lam: float
    p: float
    eta1: float
    eta2: float
    r: float = 0.05
    d: float = 0.02

    def validate(self) -> ValidationResult:
        errors = []
        if self.sigma <= 0:
            errors.append("sigma must be positive")
        if self.lam < 0:
            errors.append("lambda must be non-negative")
        if not 0 <= self.p <= 1:
            errors.append("p must be in [0, 1]")
        if self.eta1 <= 1:
            errors.append("eta1 must exceed 1 for a finite upward jump mean")
        if self.eta2 <= 0:
            errors.append("eta2 must be positive")
        return ValidationResult.of(errors)

    @classmethod
    def create(cls, sigma: float, lam: float, p: float, eta1: float, eta2: float,
               r: float = 0.05, d: float = 0.02) -> 'KouParameters':
        """Validating factory; raises InvalidArgumentError."""
        params = cls(sigma, lam, p, eta1, eta2, r, d)
        params.validate().raise_if_invalid()
        return params

    @property
    def kappa(self) -> float:
        """Jump compensator E[e^Y - 1]."""
        if self.lam == 0:
            return 0.0
        return self.p * self.eta1 / (self.eta1 - 1) + (1 - self.p) * self.eta2 / (self.eta2 + 1) - 1

    def martingale_drift(self) -> float:
        """r - d - λκ."""
        return self.r - self.d - self.lam * self.kappa

    @property
    def jump_mean(self) -> float:
        """E[Y]."""
        return self.p / self.eta1 - (1 - self.p) / self.eta2

    @property
    def jump_second_moment(self) -> float:
        """E[Y²]."""
        return 2 * self.p / self.eta1 ** 2 + 2 * (1 - self.p) / self.eta2 ** 2

    @property
    def jump_variance(self) -> float:
        """Var[Y]."""
        return self.jump_second_moment - self.jump_mean ** 2

    @property
    def jump_skewness(self) -> float:
        """Standardised third moment of a single jump (0 when degenerate)."""
        second = self.jump_second_moment
        if second <= 0:
            return 0.0
        third = 6 * self.p / self.eta1 ** 3 - 6 * (1 - self.p) / self.eta2 ** 3
        return third / second ** 1.5

    @classmethod
    def default_equity(cls) -> 'KouParameters':
        """Typical equity: three jumps a year, slightly down-skewed."""
        return cls(sigma=0.2, lam=3.0, p=0.4, eta1=10.0, eta2=5.0, r=0.05, d=0.02)


class KouModel(PricingModel):
    """
    Kou pricing model.

    Call prices use the Carr-Madan damped transform. The damping factor
    needs E[S^(α+1)] finite, i.e. η1 > α + 1, so α is reduced for heavy
    upward tails.
    """

    model_type = RecommendedModel.KOU
    complexity = 5

    def __init__(self, parameters: KouParameters):
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
        return self.parameters.sigma

    def jump_compensation(self) -> float:
        return self.parameters.lam * self.parameters.kappa

    def risk_neutral_drift(self) -> float:
        return self.parameters.martingale_drift()

    def characteristic_function(self, u: complex, spot: float, T: float) -> complex:
        """Characteristic function of ln S_T."""
        p = self.parameters
        i = complex(0, 1)

        jump_term = p.p * p.eta1 / (p.eta1 - i * u) + (1 - p.p) * p.eta2 / (p.eta2 + i * u) - 1
        exponent = (
            i * u * (np.log(spot) + p.martingale_drift() * T)
            - 0.5 * p.sigma ** 2 * u * (u + i) * T
            + p.lam * T * jump_term
        )
        return np.exp(exponent)

    def _damping(self) -> float:
        return min(CARR_MADAN_ALPHA, 0.5 * (self.parameters.eta1 - 1))

    def price(self, spot: float, strike: float, time_to_expiry: float, is_call: bool = True) -> float:
        """
        European option price via Carr-Madan.

        Raises:
            InvalidArgumentError: Bad inputs or invalid parameters
        """
        validate_inputs(spot, strike, time_to_expiry)
        self.validate().raise_if_invalid()

        p = self.parameters
        T = time_to_expiry
        alpha = self._damping()
        log_strike = np.log(strike)
        i = complex(0, 1)

        def integrand(v: float) -> float:
            cf = self.characteristic_function(v - (alpha + 1) * i, spot, T)
            denominator = alpha ** 2 + alpha - v ** 2 + i * v * (2 * alpha + 1)
            return float(np.real(np.exp(-i * v * log_strike) * cf / denominator))

        integral, _ = integrate_to_infinity(integrand)
        call = max(np.exp(-p.r * T) * np.exp(-alpha * log_strike) * integral / np.pi, 0.0)
        if is_call:
            return float(call)
        return float(max(call - spot * np.exp(-p.d * T) + strike * np.exp(-p.r * T), 0.0))

    def theoretical_iv(self, spot: float, strike: float, time_to_expiry: float) -> float:
        """
        Black-Scholes IV of the Carr-Madan price.

        Raises:
            InvalidArgumentError: Bad inputs or invalid parameters
            ConvergenceError: Model price outside the solvable IV range
        """
        validate_inputs(spot, strike, time_to_expiry)
        self.validate().raise_if_invalid()
        return self.implied_volatility(spot, strike, time_to_expiry)

    def theoretical_iv_approximate(self, spot: float, strike: float, time_to_expiry: float) -> float:
        """
        Total-variance IV approximation used to rank calibration candidates.

        sqrt(σ² + λ·Var[Y]) plus a skew term proportional to the jump
        skewness and the log-moneyness.
        """
        validate_inputs(spot, strike, time_to_expiry)
        p = self.parameters
        T = time_to_expiry

        jump_variance = p.lam * p.jump_variance if p.lam > 0 else 0.0
        total_vol = np.sqrt(max(p.sigma ** 2 + jump_variance, 0.0))

        k = np.log(strike / spot)
        skew = -p.jump_skewness * k / (6 * np.sqrt(T)) * (p.lam / 10)

        return float(min(max(total_vol + skew, MIN_IV), MAX_IV))

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
    ) -> 'KouModel':
        """
        Grid-search calibration minimizing MSE against observed IVs.

        Every grid point is ranked in parallel by the closed-form
        approximation; the best candidates are then rescored with
        Carr-Madan IVs, and the reported MSE is the Fourier one.

        Raises:
            InsufficientDataError: Fewer than 5 observations
            InvalidArgumentError: Non-positive spot
        """
        logger = resolve_logger(logger, __name__)
        if spot <= 0:
            raise InvalidArgumentError("Spot price must be positive.")
        if len(observations) < MIN_CALIBRATION_OBSERVATIONS:
            raise InsufficientDataError(
                f"Kou calibration needs {MIN_CALIBRATION_OBSERVATIONS} observations, got {len(observations)}"
            )

        candidates = (
            KouParameters(sigma, lam, p, eta1, eta2, risk_free_rate, dividend_yield)
            for sigma, lam, p, eta1, eta2 in itertools.product(
                GRID_SIGMA, GRID_LAMBDA, GRID_P, GRID_ETA1, GRID_ETA2
            )
        )

        def objective(approximate: bool):
            def error(params: KouParameters) -> float:
                if not params.validate():
                    return float('inf')
                model = cls(params)
                iv = model.theoretical_iv_approximate if approximate else model.theoretical_iv
                try:
                    return mean_squared_iv_error(model, spot, observations, iv)
                except CALIBRATION_FAILURES:
                    return float('inf')
            return error

        ranking = parallel_grid_search(objective(True), candidates, max_workers=max_workers, deadline=deadline)
        shortlist = ranking.ranked[:FOURIER_RESCORE_COUNT]
        grid = parallel_grid_search(objective(False), shortlist, max_workers=max_workers, deadline=deadline)
        n_evaluations = ranking.n_evaluated + grid.n_evaluated

        if grid.best is None:
            safe_log(logger, logging.WARNING, "Kou grid search found no valid parameters; using defaults")
            model = cls(replace(KouParameters.default_equity(), r=risk_free_rate, d=dividend_yield))
            try:
                mse = mean_squared_iv_error(model, spot, observations)
            except CALIBRATION_FAILURES:
                mse = float('inf')
            model.calibration = CalibrationSummary(
                method="default", mse=mse, n_evaluations=n_evaluations, success=False,
            )
            return model

        safe_log(logger, logging.DEBUG, "Kou calibration MSE=%.6f over %d candidates",
                 grid.best_error, n_evaluations)
        model = cls(grid.best)
        model.calibration = CalibrationSummary(
            method="grid_search", mse=grid.best_error, n_evaluations=n_evaluations,
        )
        return model

    def __repr__(self) -> str:
        return f"KouModel({self.parameters})"
