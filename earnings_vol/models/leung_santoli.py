"""
Leung-Santoli Pre-Earnings Model
================================

Deterministic scheduled-jump model: the earnings announcement adds a
single jump of volatility σₑ to an otherwise Black-Scholes diffusion σ.
Before the announcement the implied volatility of an option expiring at T
is

    I(t) = sqrt(σ² + σₑ² / (T - t))

so short-dated options carry most of the event premium. After the
announcement I collapses to σ (the IV crush).
"""

from typing import List, Sequence, Tuple

import numpy as np

from ..analysis.earnings_jump import base_volatility_estimator, term_structure_estimator
from ..errors import InsufficientDataError, InvalidArgumentError, ValidationResult
from ..timing.regime import RecommendedModel
from ..timing.time_parameters import MIN_TIME_TO_EXPIRY, TRADING_DAYS_PER_YEAR
from .base import MarketObservation, PricingModel, atm_implied_volatility
from .iv_solver import clamp_iv, validate_inputs


def compute_theoretical_iv(base_volatility: float, earnings_jump_volatility: float, time_to_expiry: float) -> float:
    """
    Pre-earnings implied volatility.

    Args:
        base_volatility: Ex-earnings diffusion volatility σ
        earnings_jump_volatility: Earnings jump volatility σₑ
        time_to_expiry: T - t in years (floored at one trading hour)

    Returns:
        sqrt(σ² + σₑ²/τ)

    Raises:
        InvalidArgumentError: Negative volatility or non-positive time
    """
    if base_volatility < 0:
        raise InvalidArgumentError("Base volatility must be non-negative.")
    if earnings_jump_volatility < 0:
        raise InvalidArgumentError("Earnings jump volatility must be non-negative.")
    if time_to_expiry <= 0:
        raise InvalidArgumentError("Time to expiry must be positive.")

    tau = max(time_to_expiry, MIN_TIME_TO_EXPIRY)
    return float(np.sqrt(base_volatility ** 2 + earnings_jump_volatility ** 2 / tau))


def expected_iv_crush(base_volatility: float, earnings_jump_volatility: float, time_to_expiry: float) -> float:
    """IV drop expected at the announcement: I(t) - σ."""
    return compute_theoretical_iv(base_volatility, earnings_jump_volatility, time_to_expiry) - base_volatility


def iv_crush_ratio(base_volatility: float, earnings_jump_volatility: float, time_to_expiry: float) -> float:
    """Share of the current IV expected to disappear at the announcement."""
    iv = compute_theoretical_iv(base_volatility, earnings_jump_volatility, time_to_expiry)
    if iv <= 0:
        return 0.0
    return (iv - base_volatility) / iv


def extract_earnings_jump_volatility(market_iv: float, base_volatility: float, time_to_expiry: float) -> float:
    """Invert I(t) for σₑ given one market IV; 0 when IV does not exceed σ."""
    if time_to_expiry <= 0:
        raise InvalidArgumentError("Time to expiry must be positive.")
    variance_diff = market_iv ** 2 - base_volatility ** 2
    if variance_diff <= 0:
        return 0.0
    return float(np.sqrt(variance_diff * time_to_expiry))


class LeungSantoliModel(PricingModel):
    """
    Leung-Santoli pricing model.

    Parameters come straight from the realized-vol estimator (σ) and the
    earnings-jump calibrator (σₑ); there is no search. The jump touches
    variance only, so the risk-neutral drift is r - d by construction.
    """

    model_type = RecommendedModel.LEUNG_SANTOLI
    complexity = 2
    martingale_by_construction = True

    def __init__(
        self,
        base_volatility: float,
        earnings_jump_volatility: float,
        risk_free_rate: float = 0.05,
        dividend_yield: float = 0.02
    ):
        self.base_volatility = base_volatility
        self.earnings_jump_volatility = earnings_jump_volatility
        self._r = risk_free_rate
        self._d = dividend_yield

    @property
    def risk_free_rate(self) -> float:
        return self._r

    @property
    def dividend_yield(self) -> float:
        return self._d

    def validate(self) -> ValidationResult:
        errors = []
        if self.base_volatility < 0:
            errors.append("base_volatility must be non-negative")
        if self.earnings_jump_volatility < 0:
            errors.append("earnings_jump_volatility must be non-negative")
        return ValidationResult.of(errors)

    def theoretical_iv(self, spot: float, strike: float, time_to_expiry: float) -> float:
        validate_inputs(spot, strike, time_to_expiry)
        self.validate().raise_if_invalid()
        return clamp_iv(compute_theoretical_iv(self.base_volatility, self.earnings_jump_volatility, time_to_expiry))

    def initial_vol_guess(self) -> float:
        return max(self.base_volatility, 0.2)

    def expected_iv_crush(self, time_to_expiry: float) -> float:
        return expected_iv_crush(self.base_volatility, self.earnings_jump_volatility, time_to_expiry)

    def iv_crush_ratio(self, time_to_expiry: float) -> float:
        return iv_crush_ratio(self.base_volatility, self.earnings_jump_volatility, time_to_expiry)

    def term_structure(self, spot: float, strike: float, dte_points: Sequence[int]) -> List[Tuple[int, float]]:
        """I(t) per DTE; expired points report the base volatility."""
        result = []
        for dte in dte_points:
            if dte <= 0:
                result.append((dte, self.base_volatility))
                continue
            result.append((dte, self.theoretical_iv(spot, strike, dte / TRADING_DAYS_PER_YEAR)))
        return result

    @classmethod
    def calibrate(
        cls,
        spot: float,
        observations: Sequence[MarketObservation],
        risk_free_rate: float = 0.05,
        dividend_yield: float = 0.02,
        **kwargs
    ) -> 'LeungSantoliModel':
        """
        Invert the two shortest-dated ATM IVs for (σ, σₑ).

        Raises:
            InsufficientDataError: Fewer than two expiries, or the term
                structure is not inverted
        """
        by_dte = {}
        for obs in observations:
            by_dte.setdefault(obs.days_to_expiry, []).append(obs)

        dtes = sorted(d for d in by_dte if d > 0)
        if len(dtes) < 2:
            raise InsufficientDataError("Leung-Santoli calibration needs two expiries")

        near_dte, far_dte = dtes[:2]
        near_iv = atm_implied_volatility(spot, by_dte[near_dte], default=by_dte[near_dte][0].implied_volatility)
        far_iv = atm_implied_volatility(spot, by_dte[far_dte], default=by_dte[far_dte][0].implied_volatility)

        sigma_e = term_structure_estimator(near_iv, near_dte, far_iv, far_dte)
        if sigma_e is None:
            raise InsufficientDataError("Term structure is not inverted; no earnings jump to extract")

        base_vol = base_volatility_estimator(near_iv, near_dte, far_iv, far_dte)
        if base_vol is None:
            base_vol = far_iv

        return cls(base_vol, sigma_e, risk_free_rate, dividend_yield)

    def __repr__(self) -> str:
        return f"LeungSantoliModel(sigma={self.base_volatility:.4f}, sigma_e={self.earnings_jump_volatility:.4f})"
