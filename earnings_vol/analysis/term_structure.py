"""
Implied Volatility Term Structure
=================================

OLS fit of ATM implied volatility against days-to-expiry:

    iv(dte) = intercept + slope · dte

A negative slope is an inverted (backwardated) term structure, the
typical shape ahead of a scheduled volatility event.
"""

from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

import numpy as np

from ..errors import InvalidArgumentError

# Backwardation threshold from prior empirical research on pre-earnings calendars
BACKWARDATION_THRESHOLD = -0.00406


@dataclass(frozen=True)
class TermStructurePoint:
    days_to_expiry: int
    implied_volatility: float
    strike: float = 0.0
    expiry_date: Optional[date] = None


@dataclass(frozen=True)
class TermStructureAnalysis:
    """Linear fit result with goodness-of-fit diagnostics."""
    intercept: float
    slope: float
    r_squared: float
    std_error: float
    points: List[TermStructurePoint]

    @property
    def is_inverted(self) -> bool:
        return self.slope < 0

    @property
    def meets_trading_criterion(self) -> bool:
        return self.slope <= BACKWARDATION_THRESHOLD

    def get_iv_at(self, dte: float) -> float:
        """Linear interpolation/extrapolation along the fitted line."""
        return self.intercept + self.slope * dte

    def interpolate_iv(self, dte: float) -> float:
        """Piecewise-linear through the observed points, flat beyond the ends."""
        x = [p.days_to_expiry for p in self.points]
        y = [p.implied_volatility for p in self.points]
        return float(np.interp(dte, x, y))


class TermStructureAnalyzer:
    """Fits ATM IV term structures."""

    def analyze(self, points: Sequence[TermStructurePoint]) -> TermStructureAnalysis:
        """
        Fit the term structure by ordinary least squares.

        Args:
            points: At least two (dte, iv) observations with distinct DTEs

        Returns:
            TermStructureAnalysis with points sorted by DTE

        Raises:
            InvalidArgumentError: Fewer than 2 points or all DTEs identical
        """
        if len(points) < 2:
            raise InvalidArgumentError("Need at least 2 points for term structure analysis")

        ordered = sorted(points, key=lambda p: p.days_to_expiry)
        x = np.array([p.days_to_expiry for p in ordered], dtype=float)
        y = np.array([p.implied_volatility for p in ordered], dtype=float)

        if np.ptp(x) == 0:
            raise InvalidArgumentError("Term structure points must span more than one expiry")

        slope, intercept = np.polyfit(x, y, 1)

        residuals = y - (intercept + slope * x)
        rss = float(np.sum(residuals ** 2))
        tss = float(np.sum((y - y.mean()) ** 2))
        if tss > 0:
            r_squared = 1.0 - rss / tss
        else:
            r_squared = 1.0 if rss == 0 else 0.0

        n = len(ordered)
        std_error = float(np.sqrt(rss / (n - 2))) if n > 2 else 0.0

        return TermStructureAnalysis(
            intercept=float(intercept),
            slope=float(slope),
            r_squared=r_squared,
            std_error=std_error,
            points=ordered,
        )
