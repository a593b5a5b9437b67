"""
Pricing Model Contract
======================

Every theoretical-IV model (Black-Scholes, Leung-Santoli, Heston, Kou and
the regime blends) implements PricingModel. The model selector and the
martingale validator depend only on this interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from ..errors import ValidationResult
from ..timing.regime import RecommendedModel
from ..timing.time_parameters import TRADING_DAYS_PER_YEAR
from .iv_solver import bs_price, clamp_iv, implied_volatility, validate_inputs


@dataclass(frozen=True)
class CalibrationSummary:
    """How a model's parameters were obtained."""
    method: str
    mse: float
    n_evaluations: int = 0
    success: bool = True


@dataclass(frozen=True)
class MarketObservation:
    """Observed implied volatility at one (strike, DTE)."""
    strike: float
    days_to_expiry: int
    implied_volatility: float

    @property
    def time_to_expiry(self) -> float:
        return self.days_to_expiry / TRADING_DAYS_PER_YEAR


def mean_squared_iv_error(
    model: 'PricingModel',
    spot: float,
    observations: Sequence[MarketObservation],
    iv_function: Optional[Callable[[float, float, float], float]] = None
) -> float:
    """MSE between model IVs and observed IVs (model.theoretical_iv unless iv_function is given)."""
    iv_function = iv_function or model.theoretical_iv
    errors = [
        iv_function(spot, obs.strike, obs.time_to_expiry) - obs.implied_volatility
        for obs in observations
    ]
    return sum(e * e for e in errors) / len(errors)


def atm_implied_volatility(spot: float, observations: Sequence[MarketObservation], default: float = 0.25) -> float:
    """Mean IV of observations within 5% of spot."""
    atm = [o.implied_volatility for o in observations if abs(o.strike - spot) / spot < 0.05]
    return sum(atm) / len(atm) if atm else default


class PricingModel(ABC):
    """
    Theoretical-IV capability shared by all models.

    Subclasses set `model_type` and `complexity` (free parameter count) and
    provide `theoretical_iv` plus a `price`. Fourier-priced models invert
    their price through the Black-Scholes solver.
    """

    model_type: RecommendedModel
    complexity: int
    # Drift is r - d with no jump compensator to check
    martingale_by_construction: bool = False
    # Set by calibrate()
    calibration: Optional[CalibrationSummary] = None

    @property
    @abstractmethod
    def risk_free_rate(self) -> float:
        ...

    @property
    @abstractmethod
    def dividend_yield(self) -> float:
        ...

    @abstractmethod
    def validate(self) -> ValidationResult:
        """Cheap parameter-domain check; call before pricing."""

    @abstractmethod
    def theoretical_iv(self, spot: float, strike: float, time_to_expiry: float) -> float:
        """Model implied volatility clamped to [0.001, 5.0]."""

    @classmethod
    @abstractmethod
    def calibrate(
        cls,
        spot: float,
        observations: Sequence[MarketObservation],
        risk_free_rate: float = 0.05,
        dividend_yield: float = 0.02,
        **kwargs
    ) -> 'PricingModel':
        """Fit the model to observed IVs."""

    def price(self, spot: float, strike: float, time_to_expiry: float, is_call: bool = True) -> float:
        """European price. Defaults to Black-Scholes at the theoretical IV."""
        validate_inputs(spot, strike, time_to_expiry)
        sigma = self.theoretical_iv(spot, strike, time_to_expiry)
        return bs_price(spot, strike, time_to_expiry, self.risk_free_rate, self.dividend_yield, sigma, is_call)

    def initial_vol_guess(self) -> float:
        return 0.2

    def implied_volatility(self, spot: float, strike: float, time_to_expiry: float) -> float:
        """
        Black-Scholes IV of the model price.

        OTM side is used: calls for strike >= spot, puts below.
        """
        validate_inputs(spot, strike, time_to_expiry)
        is_call = strike >= spot
        model_price = self.price(spot, strike, time_to_expiry, is_call)
        return implied_volatility(
            model_price, spot, strike, time_to_expiry,
            self.risk_free_rate, self.dividend_yield, is_call,
            initial_guess=self.initial_vol_guess(),
        )

    def risk_neutral_drift(self) -> float:
        """Drift of log-price the model actually uses (before the Ito term)."""
        return self.risk_free_rate - self.dividend_yield - self.jump_compensation()

    def jump_compensation(self) -> float:
        """λ·E[e^Y - 1] for jump models, 0 otherwise."""
        return 0.0

    def term_structure(self, spot: float, strike: float, dte_points: Sequence[int]) -> List[Tuple[int, float]]:
        """Theoretical IV per DTE."""
        result = []
        for dte in dte_points:
            if dte <= 0:
                result.append((dte, self.theoretical_iv(spot, strike, 1.0 / TRADING_DAYS_PER_YEAR)))
                continue
            result.append((dte, self.theoretical_iv(spot, strike, dte / TRADING_DAYS_PER_YEAR)))
        return result

    def smile(self, spot: float, strikes: Sequence[float], time_to_expiry: float) -> List[Tuple[float, float]]:
        """Theoretical IV per strike at one maturity."""
        return [(k, self.theoretical_iv(spot, k, time_to_expiry)) for k in strikes]


__all__ = [
    "PricingModel",
    "CalibrationSummary",
    "MarketObservation",
    "mean_squared_iv_error",
    "atm_implied_volatility",
    "clamp_iv",
]
