"""
Earnings Regime Detection
=========================

Classifies a valuation request into one of four mutually exclusive regimes
relative to the earnings announcement:

    NoEarnings -> PreEarnings -> (announcement) -> PostEarningsTransition -> PostEarningsNormal

The transition weight runs from 0 (just after the announcement, full IV
crush) to 1 (fully normalised).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .time_parameters import TimeParameters


class RegimeType(Enum):
    NO_EARNINGS = "no_earnings"
    PRE_EARNINGS = "pre_earnings"
    POST_EARNINGS_TRANSITION = "post_earnings_transition"
    POST_EARNINGS_NORMAL = "post_earnings_normal"


class RecommendedModel(Enum):
    BLACK_SCHOLES = "black_scholes"
    HESTON = "heston"
    KOU = "kou"
    LEUNG_SANTOLI = "leung_santoli"
    POST_EARNINGS_BLEND = "post_earnings_blend"
    HESTON_WITH_EARNINGS_JUMP = "heston_with_earnings_jump"


@dataclass(frozen=True)
class EarningsRegime:
    """Regime derived from TimeParameters; recomputed per request."""
    regime_type: RegimeType
    time_params: TimeParameters
    days_since_earnings: Optional[int]
    transition_weight: float
    recommended_model: RecommendedModel

    @classmethod
    def detect(cls, time_params: TimeParameters) -> 'EarningsRegime':
        """
        Derive the regime from time parameters.

        Uses time_params.constraints for the pre-earnings horizon and the
        length of the post-earnings transition.
        """
        constraints = time_params.constraints

        if time_params.earnings_date is None or not time_params.has_earnings_before_expiry:
            return cls(RegimeType.NO_EARNINGS, time_params, None, 1.0, RecommendedModel.HESTON)

        if time_params.is_pre_earnings:
            days_to_earnings = time_params.days_to_earnings or 0
            if days_to_earnings > constraints.max_pre_earnings_days:
                return cls(
                    RegimeType.NO_EARNINGS, time_params, -days_to_earnings, 1.0,
                    RecommendedModel.HESTON
                )
            return cls(
                RegimeType.PRE_EARNINGS, time_params, -days_to_earnings, 0.0,
                RecommendedModel.LEUNG_SANTOLI
            )

        days_since = -time_params.days_to_earnings if time_params.days_to_earnings is not None else 0
        transition_days = constraints.post_earnings_normalization_days

        if days_since <= transition_days:
            return cls(
                RegimeType.POST_EARNINGS_TRANSITION, time_params, days_since,
                days_since / transition_days, RecommendedModel.POST_EARNINGS_BLEND
            )

        return cls(
            RegimeType.POST_EARNINGS_NORMAL, time_params, days_since, 1.0,
            RecommendedModel.HESTON
        )

    def compute_adjusted_iv(self, base_iv: float, earnings_iv: float) -> float:
        """
        Regime-appropriate IV given the base (ex-earnings) and earnings-inclusive levels.

        In the transition regime the residual earnings premium decays with
        the square of (1 - weight).
        """
        if self.regime_type == RegimeType.PRE_EARNINGS:
            return earnings_iv
        if self.regime_type == RegimeType.POST_EARNINGS_TRANSITION:
            crush_factor = 1.0 - self.transition_weight
            crush_amount = (earnings_iv - base_iv) * crush_factor
            return base_iv + crush_amount * (1.0 - self.transition_weight)
        return base_iv

    @property
    def is_earnings_sensitive(self) -> bool:
        return self.regime_type in (RegimeType.PRE_EARNINGS, RegimeType.POST_EARNINGS_TRANSITION)
