# Signals module
from .signal import (
    Signal,
    SignalStrength,
    evaluate_strength,
    VOLUME_CRITERION,
    IV_RV_CRITERION,
    TERM_SLOPE_CRITERION
)

from .generator import SignalGenerator
