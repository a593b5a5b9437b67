"""
Realized Volatility
===================

Yang-Zhang (2000) OHLC estimator:

    σ²_YZ = σ²_o + k·σ²_c + (1 - k)·σ²_RS
    k     = 0.34 / (1.34 + (n + 1)/(n - 1))

where σ²_o is the overnight (open vs prior close) variance, σ²_c the
open-to-close variance and σ²_RS the Rogers-Satchell drift-independent
intraday term. Handles opening jumps and drift, which makes it the
reference RV for earnings names.
"""

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from ..data.market_data import PriceBar
from ..errors import InsufficientDataError, InvalidArgumentError

TRADING_DAYS_PER_YEAR = 252


@dataclass(frozen=True)
class RealizedVolEstimate:
    """Realized volatility with estimation diagnostics."""
    value: float
    std_error: float
    window_days: int
    method: str


class YangZhangEstimator:
    """Yang-Zhang realized volatility over a trailing window of bars."""

    def __init__(self, annualization: float = TRADING_DAYS_PER_YEAR):
        self.annualization = annualization

    @staticmethod
    def weighting_factor(window: int) -> float:
        """Optimal k minimising estimator variance."""
        return 0.34 / (1.34 + (window + 1) / (window - 1))

    def variance(self, bars: Sequence[PriceBar], window: int = 30) -> float:
        """
        Daily (non-annualised) Yang-Zhang variance, clamped at zero.

        Args:
            bars: Chronological bars; the last window + 1 are used
            window: Number of return observations

        Raises:
            InvalidArgumentError: If window < 2
            InsufficientDataError: If fewer than window + 1 bars
        """
        if window < 2:
            raise InvalidArgumentError("Yang-Zhang window must be at least 2")
        if len(bars) < window + 1:
            raise InsufficientDataError(f"Insufficient data. Need at least {window + 1} bars.")

        recent = bars[-(window + 1):]
        opens = np.array([b.open for b in recent], dtype=float)
        highs = np.array([b.high for b in recent], dtype=float)
        lows = np.array([b.low for b in recent], dtype=float)
        closes = np.array([b.close for b in recent], dtype=float)

        overnight = np.log(opens[1:] / closes[:-1])
        open_to_close = np.log(closes[1:] / opens[1:])

        u = np.log(highs[1:] / opens[1:])
        d = np.log(lows[1:] / opens[1:])
        c = open_to_close
        rogers_satchell = np.mean(u * (u - c) + d * (d - c))

        k = self.weighting_factor(window)
        var = np.var(overnight, ddof=1) + k * np.var(open_to_close, ddof=1) + (1 - k) * rogers_satchell

        return max(float(var), 0.0)

    def calculate(self, bars: Sequence[PriceBar], window: int = 30, annualize: bool = True) -> float:
        """Yang-Zhang volatility, annualised by sqrt(252) unless annualize=False."""
        var = self.variance(bars, window)
        if annualize:
            var *= self.annualization
        return float(np.sqrt(var))

    def estimate(self, bars: Sequence[PriceBar], window: int = 30) -> RealizedVolEstimate:
        """Annualised Yang-Zhang estimate with an asymptotic standard error."""
        rv = self.calculate(bars, window)
        return RealizedVolEstimate(
            value=rv,
            std_error=rv / np.sqrt(2 * window),
            window_days=window,
            method="yang-zhang",
        )

    def calculate_rolling(self, bars: Sequence[PriceBar], window: int = 30) -> List[float]:
        """One annualised estimate per complete window, oldest first."""
        if len(bars) < window + 1:
            return []
        return [
            self.calculate(bars[end - window - 1:end], window)
            for end in range(window + 1, len(bars) + 1)
        ]
