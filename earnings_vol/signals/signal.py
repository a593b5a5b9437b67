"""
Trading Signal
==============

Immutable result of one (symbol, earnings date, evaluation date)
evaluation: the three threshold criteria, the resulting strength, and the
volatility diagnostics behind them.
"""

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Dict, Optional

from ..timing.regime import RecommendedModel

VOLUME_CRITERION = "Volume"
IV_RV_CRITERION = "IV/RV"
TERM_SLOPE_CRITERION = "TermSlope"


class SignalStrength(Enum):
    AVOID = 0
    CONSIDER = 1
    RECOMMENDED = 2


def evaluate_strength(volume_pass: bool, iv_rv_pass: bool, term_slope_pass: bool) -> SignalStrength:
    """
    Map the three criteria to a strength.

    All three pass -> Recommended; term slope plus exactly one of
    volume or IV/RV -> Consider; anything else -> Avoid.
    """
    if volume_pass and iv_rv_pass and term_slope_pass:
        return SignalStrength.RECOMMENDED
    if term_slope_pass and volume_pass != iv_rv_pass:
        return SignalStrength.CONSIDER
    return SignalStrength.AVOID


@dataclass(frozen=True)
class Signal:
    """
    Signal for one earnings event.

    Attributes:
        symbol: Ticker
        earnings_date: Announcement date
        signal_date: Evaluation date
        strength: Avoid / Consider / Recommended
        iv_rv_ratio: IV30 / RV30
        term_structure_slope: OLS slope of ATM IV vs DTE
        average_volume: Mean daily share volume over the volume window
        implied_volatility_30: Term-structure IV at 30 DTE
        realized_volatility_30: Yang-Zhang RV30
        expected_move: ATM straddle / spot at the first post-earnings expiry
        volatility_spread: OI-weighted put IV minus call IV (10-60 DTE)
        theoretical_iv: Model IV at the first post-earnings expiry
        market_iv: Market IV compared against theoretical_iv
        mispricing_signal: market_iv - theoretical_iv
        expected_iv_crush: Leung-Santoli I(t) - σ
        iv_crush_ratio: expected_iv_crush / I(t)
        earnings_jump_volatility: σₑ
        base_volatility: σ paired with σₑ
        historical_earnings_count: Samples behind a historical σₑ (0 for term structure)
        is_leung_santoli_calibrated: σₑ was obtained
        selected_model: Model chosen by the selector, when it ran
        selection_reason: Selector explanation
        criteria: Criterion name -> pass flag
    """
    symbol: str
    earnings_date: date
    signal_date: date
    strength: SignalStrength = SignalStrength.AVOID
    iv_rv_ratio: float = 0.0
    term_structure_slope: float = 0.0
    average_volume: float = 0.0
    implied_volatility_30: float = 0.0
    realized_volatility_30: float = 0.0
    expected_move: float = 0.0
    volatility_spread: float = 0.0
    theoretical_iv: float = 0.0
    market_iv: float = 0.0
    mispricing_signal: float = 0.0
    expected_iv_crush: float = 0.0
    iv_crush_ratio: float = 0.0
    earnings_jump_volatility: float = 0.0
    base_volatility: float = 0.0
    historical_earnings_count: int = 0
    is_leung_santoli_calibrated: bool = False
    selected_model: Optional[RecommendedModel] = None
    selection_reason: Optional[str] = None
    criteria: Dict[str, bool] = field(default_factory=dict)

    @classmethod
    def avoid(cls, symbol: str, earnings_date: date, signal_date: date, **fields) -> 'Signal':
        """Degraded result for insufficient data."""
        return cls(symbol=symbol, earnings_date=earnings_date, signal_date=signal_date,
                   strength=SignalStrength.AVOID, **fields)

    def evaluate_strength(self) -> SignalStrength:
        """Strength implied by `criteria` (missing entries count as failed)."""
        return evaluate_strength(
            self.criteria.get(VOLUME_CRITERION, False),
            self.criteria.get(IV_RV_CRITERION, False),
            self.criteria.get(TERM_SLOPE_CRITERION, False),
        )

    def with_evaluated_strength(self) -> 'Signal':
        return replace(self, strength=self.evaluate_strength())

    @property
    def is_actionable(self) -> bool:
        return self.strength != SignalStrength.AVOID
