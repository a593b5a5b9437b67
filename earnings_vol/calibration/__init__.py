# Calibration module
from .quadrature import integrate_to_infinity

from .optimizers import (
    Deadline,
    LMResult,
    GridSearchResult,
    levenberg_marquardt,
    parallel_grid_search
)
