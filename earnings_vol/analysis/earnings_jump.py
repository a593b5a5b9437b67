"""
Earnings Jump Calibration
=========================

Estimates the earnings jump volatility σₑ of the Leung-Santoli model.

Two routes:
1. Historical: sample std-dev of close-to-close log returns across past
   announcement dates (needs at least 4 quarters).
2. Term structure: invert two ATM IV points around the event,

       σₑ² = (IV₁² - IV₂²) / (1/τ₁ - 1/τ₂),   τ = DTE/252

   with the companion ex-earnings volatility

       σ² = (τ₁·IV₁² - τ₂·IV₂²) / (τ₁ - τ₂)

Both return None when the data cannot support an estimate.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..data.market_data import PriceBar
from ..log_utils import resolve_logger, safe_log
from ..timing.time_parameters import TRADING_DAYS_PER_YEAR
from .term_structure import TermStructurePoint

MIN_HISTORICAL_SAMPLES = 4
DEFAULT_LOOKBACK_QUARTERS = 12
MIN_SIGMA_E = 0.001
MAX_SIGMA_E = 1.0
MAX_PRIOR_CLOSE_GAP_DAYS = 5


def _clamp_sigma_e(sigma_e: float) -> float:
    return float(np.clip(sigma_e, MIN_SIGMA_E, MAX_SIGMA_E))


class JumpSource(Enum):
    HISTORY = "history"
    TERM_STRUCTURE = "term_structure"


@dataclass(frozen=True)
class EarningsJumpCalibration:
    """Historical σₑ calibration; valid only with enough samples."""
    symbol: str
    sigma_e: Optional[float]
    sample_count: int
    mean_log_return: float = 0.0
    median_abs_move: float = 0.0
    max_abs_move: float = 0.0
    min_abs_move: float = 0.0
    is_valid: bool = False
    historical_moves: List[float] = field(default_factory=list)


@dataclass(frozen=True)
class EarningsJumpEstimate:
    """σₑ with the ex-earnings base volatility it pairs with."""
    sigma_e: float
    base_volatility: Optional[float]
    source: JumpSource
    sample_count: int = 0


def term_structure_estimator(iv1: float, dte1: int, iv2: float, dte2: int) -> Optional[float]:
    """
    σₑ implied by a near (dte1) and far (dte2) ATM IV.

    Returns None unless dte1 < dte2, both positive and iv1 > iv2.
    """
    if dte1 >= dte2 or dte1 <= 0 or dte2 <= 0:
        return None
    if iv1 <= iv2:
        return None

    t1 = dte1 / TRADING_DAYS_PER_YEAR
    t2 = dte2 / TRADING_DAYS_PER_YEAR

    inverse_tau_diff = 1.0 / t1 - 1.0 / t2
    if inverse_tau_diff <= 0:
        return None

    sigma_e_sq = (iv1 ** 2 - iv2 ** 2) / inverse_tau_diff
    if sigma_e_sq <= 0:
        return None

    return _clamp_sigma_e(np.sqrt(sigma_e_sq))


def base_volatility_estimator(iv1: float, dte1: int, iv2: float, dte2: int) -> Optional[float]:
    """Ex-earnings diffusion volatility implied by two ATM IV points."""
    if dte1 <= 0 or dte2 <= 0 or dte1 == dte2:
        return None

    t1 = dte1 / TRADING_DAYS_PER_YEAR
    t2 = dte2 / TRADING_DAYS_PER_YEAR

    sigma_sq = (t1 * iv1 ** 2 - t2 * iv2 ** 2) / (t1 - t2)
    if sigma_sq <= 0:
        return None
    return float(np.sqrt(sigma_sq))


class EarningsJumpCalibrator:
    """Calibrates σₑ from history, with the term structure as fallback."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = resolve_logger(logger, __name__)

    @staticmethod
    def calibrate_from_moves(moves: Optional[Sequence[float]]) -> Optional[float]:
        """Clamped sample std-dev of earnings log returns, or None for < 4 samples."""
        if moves is None or len(moves) < MIN_HISTORICAL_SAMPLES:
            return None
        return _clamp_sigma_e(np.std(np.asarray(moves, dtype=float), ddof=1))

    def calibrate(
        self,
        symbol: str,
        bars: Sequence[PriceBar],
        earnings_dates: Sequence[date],
        lookback_quarters: int = DEFAULT_LOOKBACK_QUARTERS
    ) -> EarningsJumpCalibration:
        """
        Calibrate σₑ from price moves on past announcement dates.

        Dates are processed newest first. For each, the prior close is
        searched up to 5 calendar days back; dates without both closes
        are skipped.

        Args:
            symbol: Ticker (for logging)
            bars: Daily price history
            earnings_dates: Past announcement dates
            lookback_quarters: Maximum number of announcements used

        Returns:
            EarningsJumpCalibration (is_valid False with < 4 samples)
        """
        price_by_date: Dict[date, PriceBar] = {}
        for bar in bars:
            price_by_date.setdefault(bar.date, bar)

        moves: List[float] = []
        for earnings_date in sorted(earnings_dates, reverse=True):
            bar = price_by_date.get(earnings_date)
            if bar is None:
                continue

            prev = None
            for gap in range(1, MAX_PRIOR_CLOSE_GAP_DAYS + 1):
                prev = price_by_date.get(earnings_date - timedelta(days=gap))
                if prev is not None:
                    break

            if prev is None or prev.close <= 0 or bar.close <= 0:
                continue

            moves.append(float(np.log(bar.close / prev.close)))
            if len(moves) >= lookback_quarters:
                break

        safe_log(self.logger, logging.INFO, "Calibrating sigma_e for %s using %d historical earnings",
                 symbol, len(moves))

        if len(moves) < MIN_HISTORICAL_SAMPLES:
            safe_log(self.logger, logging.WARNING, "Insufficient historical earnings data for %s", symbol)
            return EarningsJumpCalibration(symbol=symbol, sigma_e=None, sample_count=len(moves))

        abs_moves = np.abs(moves)
        sigma_e = self.calibrate_from_moves(moves)
        safe_log(self.logger, logging.INFO, "Calibrated sigma_e for %s: %.2f%%", symbol, sigma_e * 100)

        return EarningsJumpCalibration(
            symbol=symbol,
            sigma_e=sigma_e,
            sample_count=len(moves),
            mean_log_return=float(np.mean(moves)),
            median_abs_move=float(np.median(abs_moves)),
            max_abs_move=float(abs_moves.max()),
            min_abs_move=float(abs_moves.min()),
            is_valid=True,
            historical_moves=moves,
        )

    def estimate(
        self,
        symbol: str,
        bars: Sequence[PriceBar],
        earnings_dates: Optional[Sequence[date]],
        term_points: Sequence[TermStructurePoint],
        realized_volatility: float
    ) -> Optional[EarningsJumpEstimate]:
        """
        σₑ from history when possible, otherwise from the two nearest term points.

        Historical estimates pair with realized volatility as the base;
        term-structure estimates use the implied base volatility when it
        exists. Returns None when neither route yields a positive σₑ.
        """
        if earnings_dates and len(earnings_dates) >= MIN_HISTORICAL_SAMPLES:
            calibration = self.calibrate(symbol, bars, earnings_dates)
            if calibration.is_valid and calibration.sigma_e is not None:
                return EarningsJumpEstimate(
                    sigma_e=calibration.sigma_e,
                    base_volatility=realized_volatility,
                    source=JumpSource.HISTORY,
                    sample_count=calibration.sample_count,
                )

        if len(term_points) < 2:
            return None

        near, far = sorted(term_points, key=lambda p: p.days_to_expiry)[:2]
        sigma_e = term_structure_estimator(
            near.implied_volatility, near.days_to_expiry, far.implied_volatility, far.days_to_expiry
        )
        if sigma_e is None or sigma_e <= 0:
            return None

        base_vol = base_volatility_estimator(
            near.implied_volatility, near.days_to_expiry, far.implied_volatility, far.days_to_expiry
        )
        return EarningsJumpEstimate(
            sigma_e=sigma_e,
            base_volatility=base_vol if base_vol is not None else realized_volatility,
            source=JumpSource.TERM_STRUCTURE,
        )
