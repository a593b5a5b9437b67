"""
Time Parameters
===============

Normalises a (valuation, expiration, earnings) date triple into
trading-day counts and year fractions. Instances are immutable and built
only through TimeParameters.create, which rejects invalid ranges.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from ..errors import InvalidArgumentError, ValidationResult
from .calendar import DEFAULT_CALENDAR, DateLike, TradingCalendar, to_date

TRADING_DAYS_PER_YEAR = 252.0
TRADING_HOURS_PER_DAY = 6.5
MIN_TIME_TO_EXPIRY = 1.0 / (TRADING_DAYS_PER_YEAR * TRADING_HOURS_PER_DAY)  # one trading hour
MAX_TIME_TO_EXPIRY = 3.0


def dte_to_years(dte: int) -> float:
    """Trading days to year fraction (DTE floored at 1)."""
    return max(dte, 1) / TRADING_DAYS_PER_YEAR


def years_to_dte(years: float) -> int:
    return int(round(years * TRADING_DAYS_PER_YEAR))


@dataclass(frozen=True)
class TimeConstraints:
    """
    Bounds applied when building TimeParameters and detecting regimes.

    Attributes:
        min_time_to_expiry: Lower bound on T in years
        max_time_to_expiry: Upper bound on T in years
        min_days_before_earnings: Entry window start for pre-earnings trades
        max_days_before_earnings: Entry window end for pre-earnings trades
        max_pre_earnings_days: Beyond this, earnings are too far out to matter
        post_earnings_normalization_days: Length of the post-earnings transition
    """
    min_time_to_expiry: float = MIN_TIME_TO_EXPIRY
    max_time_to_expiry: float = MAX_TIME_TO_EXPIRY
    min_days_before_earnings: int = 1
    max_days_before_earnings: int = 30
    max_pre_earnings_days: int = 60
    post_earnings_normalization_days: int = 5

    @classmethod
    def short_dated(cls) -> 'TimeConstraints':
        """Weekly/monthly options: 1 day to one quarter."""
        return cls(
            min_time_to_expiry=1.0 / TRADING_DAYS_PER_YEAR,
            max_time_to_expiry=0.25,
            max_days_before_earnings=14,
        )

    @classmethod
    def leaps(cls) -> 'TimeConstraints':
        return cls(
            min_time_to_expiry=0.25,
            max_time_to_expiry=3.0,
            max_days_before_earnings=90,
        )

    def validate_pre_earnings(self, params: 'TimeParameters') -> ValidationResult:
        """Check that params describe an enterable pre-earnings position."""
        errors = []
        if not params.is_pre_earnings:
            errors.append("Not in pre-earnings regime.")
        elif params.days_to_earnings is not None:
            if params.days_to_earnings < self.min_days_before_earnings:
                errors.append(
                    f"Days to earnings ({params.days_to_earnings}) below minimum "
                    f"({self.min_days_before_earnings})."
                )
            if params.days_to_earnings > self.max_days_before_earnings:
                errors.append(
                    f"Days to earnings ({params.days_to_earnings}) exceeds maximum "
                    f"({self.max_days_before_earnings})."
                )
        if params.time_to_expiry < self.min_time_to_expiry:
            errors.append(
                f"Time to expiry ({params.time_to_expiry:.4f}) below minimum "
                f"({self.min_time_to_expiry:.4f})."
            )
        if params.time_to_expiry > self.max_time_to_expiry:
            errors.append(
                f"Time to expiry ({params.time_to_expiry:.2f}) exceeds maximum "
                f"({self.max_time_to_expiry:.2f})."
            )
        return ValidationResult.of(errors)


@dataclass(frozen=True)
class TimeParameters:
    """
    Normalised timing for one valuation request.

    days_to_earnings is positive for an upcoming announcement before expiry,
    zero on the announcement day, negative (trading days since) for a past
    one, and None when earnings
    fall after expiry or are unknown.
    """
    valuation_date: date
    expiration_date: date
    earnings_date: Optional[date]
    time_to_expiry: float
    time_to_earnings: Optional[float]
    days_to_expiry: int
    days_to_earnings: Optional[int]
    constraints: TimeConstraints = field(default_factory=TimeConstraints, compare=False)

    @classmethod
    def create(
        cls,
        valuation_date: DateLike,
        expiration_date: DateLike,
        earnings_date: Optional[DateLike] = None,
        constraints: Optional[TimeConstraints] = None,
        calendar: Optional[TradingCalendar] = None
    ) -> 'TimeParameters':
        """
        Build validated time parameters.

        Args:
            valuation_date: Pricing date
            expiration_date: Option expiry, must be after valuation_date
            earnings_date: Optional announcement date
            constraints: Time bounds (defaults to TimeConstraints())
            calendar: Trading calendar (defaults to the NYSE calendar)

        Returns:
            TimeParameters

        Raises:
            InvalidArgumentError: If expiry <= valuation or T is out of bounds
        """
        constraints = constraints or TimeConstraints()
        calendar = calendar or DEFAULT_CALENDAR

        valuation = to_date(valuation_date)
        expiration = to_date(expiration_date)
        earnings = to_date(earnings_date) if earnings_date is not None else None

        if expiration <= valuation:
            raise InvalidArgumentError(
                f"Expiration date ({expiration:%Y-%m-%d}) must be after "
                f"valuation date ({valuation:%Y-%m-%d})."
            )

        dte = cls._trading_days(calendar, valuation, expiration)
        time_to_expiry = dte / TRADING_DAYS_PER_YEAR

        if time_to_expiry < constraints.min_time_to_expiry:
            raise InvalidArgumentError(
                f"Time to expiry ({time_to_expiry:.6f} years) is below minimum "
                f"({constraints.min_time_to_expiry:.6f} years)."
            )
        if time_to_expiry > constraints.max_time_to_expiry:
            raise InvalidArgumentError(
                f"Time to expiry ({time_to_expiry:.2f} years) exceeds maximum "
                f"({constraints.max_time_to_expiry:.2f} years)."
            )

        days_to_earnings = None
        if earnings is not None:
            if earnings == valuation:
                days_to_earnings = 0
            elif earnings < valuation:
                days_to_earnings = -cls._trading_days(calendar, earnings, valuation)
            elif earnings < expiration:
                days_to_earnings = cls._trading_days(calendar, valuation, earnings)

        time_to_earnings = (
            days_to_earnings / TRADING_DAYS_PER_YEAR if days_to_earnings is not None else None
        )

        return cls(
            valuation_date=valuation,
            expiration_date=expiration,
            earnings_date=earnings,
            time_to_expiry=time_to_expiry,
            time_to_earnings=time_to_earnings,
            days_to_expiry=dte,
            days_to_earnings=days_to_earnings,
            constraints=constraints,
        )

    @staticmethod
    def _trading_days(calendar: TradingCalendar, start: date, end: date) -> int:
        return max(1, calendar.get_trading_days(start, end, include_end=False))

    @property
    def is_pre_earnings(self) -> bool:
        return self.earnings_date is not None and self.valuation_date < self.earnings_date

    @property
    def is_post_earnings(self) -> bool:
        return self.earnings_date is not None and self.valuation_date >= self.earnings_date

    @property
    def has_earnings_before_expiry(self) -> bool:
        return self.earnings_date is not None and self.earnings_date < self.expiration_date
