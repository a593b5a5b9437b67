# Timing module
from .calendar import (
    TradingCalendar,
    NYSEHolidayCalendar,
    DEFAULT_CALENDAR
)

from .time_parameters import (
    TimeParameters,
    TimeConstraints,
    TRADING_DAYS_PER_YEAR,
    dte_to_years,
    years_to_dte
)

from .regime import (
    EarningsRegime,
    RegimeType,
    RecommendedModel
)
