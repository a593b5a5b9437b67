"""
Fourier Inversion Quadrature
============================

Semi-infinite integration for characteristic-function pricing. Uses
scipy's QUADPACK (QAGI) transform of [a, ∞) onto a finite interval.
"""

import warnings
from typing import Callable, Tuple

import numpy as np
from scipy import integrate

ABS_TOLERANCE = 1e-8
REL_TOLERANCE = 1e-6
MAX_SUBDIVISIONS = 500


def integrate_to_infinity(
    integrand: Callable[[float], float],
    lower: float = 0.0,
    epsabs: float = ABS_TOLERANCE,
    epsrel: float = REL_TOLERANCE,
    limit: int = MAX_SUBDIVISIONS
) -> Tuple[float, float]:
    """
    Integrate a real function over [lower, ∞).

    Args:
        integrand: Real-valued function, finite on the domain
        lower: Lower limit
        epsabs: Absolute tolerance
        epsrel: Relative tolerance
        limit: Maximum adaptive subintervals

    Returns:
        (value, estimated absolute error)
    """
    with warnings.catch_warnings():
        # Round-off warnings on well-behaved but slowly decaying tails are expected
        warnings.simplefilter("ignore", integrate.IntegrationWarning)
        value, error = integrate.quad(integrand, lower, np.inf, epsabs=epsabs, epsrel=epsrel, limit=limit)
    return float(value), float(error)
