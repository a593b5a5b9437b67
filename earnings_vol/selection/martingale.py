"""
Martingale Validation
=====================

Confirms a calibrated model's risk-neutral drift matches the market
discount and dividend structure, i.e. the discounted price is a
martingale:

- Black-Scholes, Leung-Santoli, post-earnings blend: valid by construction
- Heston (and Heston + earnings jump): drift r - d must match the market's
- Kou: drift must equal r - d - λκ with κ = E[e^Y - 1]
"""

from dataclasses import dataclass
from typing import Optional

from ..models.base import PricingModel

DEFAULT_TOLERANCE = 1e-3


def compute_jump_compensation(jump_intensity: float, jump_compensator: float) -> float:
    """Drift correction λκ for a compound-Poisson jump component."""
    return jump_intensity * jump_compensator


@dataclass(frozen=True)
class MartingaleCheck:
    """Result of one martingale check."""
    is_valid: bool
    expected_drift: float
    implied_drift: float
    tolerance: float
    message: str = ""

    @property
    def drift_error(self) -> float:
        return abs(self.implied_drift - self.expected_drift)


class MartingaleValidator:
    """Compares model drift with the market's r - d (less jump compensation)."""

    def __init__(self, tolerance: float = DEFAULT_TOLERANCE):
        self.tolerance = tolerance

    def check(
        self,
        model: Optional[PricingModel],
        risk_free_rate: float,
        dividend_yield: float
    ) -> MartingaleCheck:
        """
        Check one model against market rates.

        A missing model is reported invalid.

        Args:
            model: Candidate model or None
            risk_free_rate: Market risk-free rate
            dividend_yield: Market dividend yield

        Returns:
            MartingaleCheck
        """
        market_drift = risk_free_rate - dividend_yield

        if model is None:
            return MartingaleCheck(False, market_drift, float('nan'), self.tolerance, "no model to check")

        if model.martingale_by_construction:
            return MartingaleCheck(True, market_drift, market_drift, self.tolerance, "valid by construction")

        expected = market_drift - model.jump_compensation()
        implied = model.risk_neutral_drift()
        is_valid = abs(implied - expected) < self.tolerance

        message = "drift matches" if is_valid else (
            f"drift mismatch: model {implied:.6f} vs market {expected:.6f}"
        )
        return MartingaleCheck(is_valid, expected, implied, self.tolerance, message)

    def validate(self, model: Optional[PricingModel], risk_free_rate: float, dividend_yield: float) -> bool:
        return self.check(model, risk_free_rate, dividend_yield).is_valid
