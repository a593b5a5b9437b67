"""
Black-Scholes Model
===================

Flat-volatility baseline. Always martingale-valid and the fallback when no
other candidate survives selection.
"""

from typing import Sequence

from ..errors import InsufficientDataError, ValidationResult
from ..timing.regime import RecommendedModel
from .base import MarketObservation, PricingModel
from .iv_solver import clamp_iv, validate_inputs


class BlackScholesModel(PricingModel):
    """Constant volatility across strikes and maturities."""

    model_type = RecommendedModel.BLACK_SCHOLES
    complexity = 1
    martingale_by_construction = True

    def __init__(self, volatility: float, risk_free_rate: float = 0.05, dividend_yield: float = 0.02):
        self.volatility = volatility
        self._r = risk_free_rate
        self._d = dividend_yield

    @property
    def risk_free_rate(self) -> float:
        return self._r

    @property
    def dividend_yield(self) -> float:
        return self._d

    def validate(self) -> ValidationResult:
        if self.volatility <= 0:
            return ValidationResult.of(["volatility must be positive"])
        return ValidationResult.success()

    def theoretical_iv(self, spot: float, strike: float, time_to_expiry: float) -> float:
        validate_inputs(spot, strike, time_to_expiry)
        self.validate().raise_if_invalid()
        return clamp_iv(self.volatility)

    def initial_vol_guess(self) -> float:
        return self.volatility

    @classmethod
    def calibrate(
        cls,
        spot: float,
        observations: Sequence[MarketObservation],
        risk_free_rate: float = 0.05,
        dividend_yield: float = 0.02,
        **kwargs
    ) -> 'BlackScholesModel':
        """Least-squares flat volatility: the mean observed IV."""
        if not observations:
            raise InsufficientDataError("No observations to calibrate Black-Scholes")
        mean_iv = sum(o.implied_volatility for o in observations) / len(observations)
        return cls(mean_iv, risk_free_rate, dividend_yield)

    def __repr__(self) -> str:
        return f"BlackScholesModel(sigma={self.volatility:.4f})"
