# Pricing models module
from .iv_solver import (
    bs_price,
    bs_vega,
    implied_volatility,
    validate_inputs
)

from .base import (
    PricingModel,
    MarketObservation,
    CalibrationSummary,
    mean_squared_iv_error,
    atm_implied_volatility
)

from .black_scholes import BlackScholesModel

from .leung_santoli import (
    LeungSantoliModel,
    compute_theoretical_iv,
    expected_iv_crush,
    iv_crush_ratio,
    extract_earnings_jump_volatility
)

from .heston import HestonModel, HestonParameters
from .kou import KouModel, KouParameters
from .blend import PostEarningsBlendModel, HestonWithEarningsJumpModel
