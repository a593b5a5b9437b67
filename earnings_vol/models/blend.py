"""
Earnings Blend Models
=====================

Composite candidates used around the announcement:
- PostEarningsBlendModel: decays the Leung-Santoli premium toward the base
  volatility over the post-earnings transition window
- HestonWithEarningsJumpModel: Heston variance plus a scheduled earnings
  jump, I² = I_heston² + σₑ²/T
"""

import logging
from typing import Optional, Sequence

import numpy as np

from ..errors import InsufficientDataError, InvalidArgumentError, ValidationResult
from ..log_utils import resolve_logger, safe_log
from ..timing.regime import EarningsRegime, RecommendedModel
from ..timing.time_parameters import MIN_TIME_TO_EXPIRY
from .base import MarketObservation, PricingModel
from .heston import HestonModel, HestonParameters
from .iv_solver import clamp_iv, validate_inputs
from .leung_santoli import LeungSantoliModel, compute_theoretical_iv


class PostEarningsBlendModel(PricingModel):
    """Regime-weighted mix of base volatility and the Leung-Santoli IV."""

    model_type = RecommendedModel.POST_EARNINGS_BLEND
    complexity = 3
    martingale_by_construction = True

    def __init__(
        self,
        regime: EarningsRegime,
        base_volatility: float,
        earnings_jump_volatility: Optional[float],
        risk_free_rate: float = 0.05,
        dividend_yield: float = 0.02
    ):
        self.regime = regime
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
        if self.earnings_jump_volatility is not None and self.earnings_jump_volatility < 0:
            errors.append("earnings_jump_volatility must be non-negative")
        return ValidationResult.of(errors)

    def theoretical_iv(self, spot: float, strike: float, time_to_expiry: float) -> float:
        validate_inputs(spot, strike, time_to_expiry)
        self.validate().raise_if_invalid()
        if self.earnings_jump_volatility is None:
            return clamp_iv(self.base_volatility)
        earnings_iv = compute_theoretical_iv(self.base_volatility, self.earnings_jump_volatility, time_to_expiry)
        return clamp_iv(self.regime.compute_adjusted_iv(self.base_volatility, earnings_iv))

    def initial_vol_guess(self) -> float:
        return max(self.base_volatility, 0.2)

    @classmethod
    def calibrate(
        cls,
        spot: float,
        observations: Sequence[MarketObservation],
        risk_free_rate: float = 0.05,
        dividend_yield: float = 0.02,
        regime: Optional[EarningsRegime] = None,
        **kwargs
    ) -> 'PostEarningsBlendModel':
        """
        Calibrate the Leung-Santoli components and attach the regime.

        Raises:
            InvalidArgumentError: No regime supplied
            InsufficientDataError: Term structure cannot be inverted
        """
        if regime is None:
            raise InvalidArgumentError("PostEarningsBlendModel.calibrate requires a regime")
        ls = LeungSantoliModel.calibrate(spot, observations, risk_free_rate, dividend_yield)
        return cls(regime, ls.base_volatility, ls.earnings_jump_volatility, risk_free_rate, dividend_yield)


class HestonWithEarningsJumpModel(PricingModel):
    """
    Heston diffusion with one scheduled earnings jump.

    The jump is a pure variance add-on, so the drift and martingale check
    are those of the underlying Heston parameters.
    """

    model_type = RecommendedModel.HESTON_WITH_EARNINGS_JUMP
    complexity = 6

    def __init__(self, parameters: HestonParameters, earnings_jump_volatility: float):
        self.heston = HestonModel(parameters)
        self.earnings_jump_volatility = earnings_jump_volatility

    @property
    def parameters(self) -> HestonParameters:
        return self.heston.parameters

    @property
    def risk_free_rate(self) -> float:
        return self.heston.risk_free_rate

    @property
    def dividend_yield(self) -> float:
        return self.heston.dividend_yield

    def validate(self) -> ValidationResult:
        errors = list(self.heston.validate().errors)
        if self.earnings_jump_volatility < 0:
            errors.append("earnings_jump_volatility must be non-negative")
        return ValidationResult.of(errors)

    def initial_vol_guess(self) -> float:
        return self.heston.initial_vol_guess()

    def theoretical_iv(self, spot: float, strike: float, time_to_expiry: float) -> float:
        validate_inputs(spot, strike, time_to_expiry)
        self.validate().raise_if_invalid()
        heston_iv = self.heston.theoretical_iv(spot, strike, time_to_expiry)
        tau = max(time_to_expiry, MIN_TIME_TO_EXPIRY)
        return clamp_iv(np.sqrt(heston_iv ** 2 + self.earnings_jump_volatility ** 2 / tau))

    @classmethod
    def calibrate(
        cls,
        spot: float,
        observations: Sequence[MarketObservation],
        risk_free_rate: float = 0.05,
        dividend_yield: float = 0.02,
        earnings_jump_volatility: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
        **kwargs
    ) -> 'HestonWithEarningsJumpModel':
        """
        Calibrate Heston to the observations, then add the earnings jump.

        When σₑ is not supplied it is inverted from the term structure;
        a flat term structure gives σₑ = 0.
        """
        logger = resolve_logger(logger, __name__)
        heston = HestonModel.calibrate(
            spot, observations, risk_free_rate, dividend_yield, logger=logger, **kwargs
        )

        if earnings_jump_volatility is None:
            try:
                earnings_jump_volatility = LeungSantoliModel.calibrate(
                    spot, observations, risk_free_rate, dividend_yield
                ).earnings_jump_volatility
            except InsufficientDataError:
                safe_log(logger, logging.DEBUG, "No earnings jump in term structure; using sigma_e=0")
                earnings_jump_volatility = 0.0

        model = cls(heston.parameters, earnings_jump_volatility)
        model.calibration = heston.calibration
        return model
