"""
Earnings Volatility Engine
==========================

Pre-earnings volatility analysis and trading-signal generation.

Modules:
- timing: Trading calendar, time parameters and earnings regimes
- data: Market data records, Polygon.io provider
- analysis: Yang-Zhang realized volatility, Kalman filter, term structure,
  earnings jump calibration
- models: Black-Scholes, Leung-Santoli, Heston and Kou pricing models
- calibration: Fourier quadrature, Levenberg-Marquardt, parallel grid search
- selection: Martingale validation and regime-aware model selection
- signals: Signal generation
"""

__version__ = "0.1.0"

from .config import EngineConfig

from .errors import (
    EngineError,
    InvalidArgumentError,
    InsufficientDataError,
    ConvergenceError,
    ConfigError,
    ValidationResult
)

from .timing import (
    TradingCalendar,
    TimeParameters,
    TimeConstraints,
    EarningsRegime,
    RegimeType,
    RecommendedModel
)

from .data import (
    PriceBar,
    OptionContract,
    OptionExpiry,
    OptionChain,
    MarketDataProvider,
    StaticMarketDataProvider,
    PolygonMarketDataProvider
)

from .analysis import (
    YangZhangEstimator,
    KalmanVolatilityFilter,
    TermStructureAnalyzer,
    TermStructurePoint,
    EarningsJumpCalibrator
)

from .models import (
    PricingModel,
    MarketObservation,
    BlackScholesModel,
    LeungSantoliModel,
    HestonModel,
    HestonParameters,
    KouModel,
    KouParameters
)

from .selection import (
    ModelSelector,
    ModelSelectionContext,
    MartingaleValidator
)

from .signals import (
    Signal,
    SignalStrength,
    SignalGenerator
)
