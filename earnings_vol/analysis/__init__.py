# Analysis module
from .realized_vol import (
    YangZhangEstimator,
    RealizedVolEstimate
)

from .kalman import (
    KalmanVolatilityFilter,
    KalmanParameters,
    KalmanVolatilityEstimate
)

from .term_structure import (
    TermStructureAnalyzer,
    TermStructureAnalysis,
    TermStructurePoint,
    BACKWARDATION_THRESHOLD
)

from .earnings_jump import (
    EarningsJumpCalibrator,
    EarningsJumpCalibration,
    EarningsJumpEstimate,
    JumpSource,
    term_structure_estimator,
    base_volatility_estimator
)
