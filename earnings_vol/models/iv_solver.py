"""
Black-Scholes Formulas and Implied Volatility Solver
===================================================

Closed-form European pricing with continuous dividend yield, vega, and the
implied-volatility solver used by every model:

1. Newton-Raphson on price/vega (tol 1e-6, at most 50 iterations)
2. Bisection on [0.001, 5.0] when vega underflows or Newton stalls

Prices outside the range reachable on that bracket raise ConvergenceError.
"""

import numpy as np
from scipy.stats import norm

from ..errors import ConvergenceError, InvalidArgumentError

MIN_IV = 0.001
MAX_IV = 5.0
IV_TOLERANCE = 1e-6
MAX_IV_ITERATIONS = 50
MIN_VEGA = 1e-10


def validate_inputs(spot: float, strike: float, time_to_expiry: float) -> None:
    """Raise InvalidArgumentError for non-positive spot, strike or time."""
    if spot <= 0:
        raise InvalidArgumentError("Spot price must be positive.")
    if strike <= 0:
        raise InvalidArgumentError("Strike price must be positive.")
    if time_to_expiry <= 0:
        raise InvalidArgumentError("Time to expiry must be positive.")


def clamp_iv(iv: float) -> float:
    return float(min(max(iv, MIN_IV), MAX_IV))


def _d1(spot: float, strike: float, T: float, r: float, q: float, sigma: float) -> float:
    return (np.log(spot / strike) + (r - q + 0.5 * sigma ** 2) * T) / (sigma * np.sqrt(T))


def bs_price(
    spot: float,
    strike: float,
    T: float,
    r: float,
    q: float,
    sigma: float,
    is_call: bool = True
) -> float:
    """Standard Black-Scholes formula with dividend yield q."""
    if T <= 0 or sigma <= 0:
        return max(spot - strike, 0.0) if is_call else max(strike - spot, 0.0)

    d1 = _d1(spot, strike, T, r, q, sigma)
    d2 = d1 - sigma * np.sqrt(T)

    if is_call:
        return float(spot * np.exp(-q * T) * norm.cdf(d1) - strike * np.exp(-r * T) * norm.cdf(d2))
    return float(strike * np.exp(-r * T) * norm.cdf(-d2) - spot * np.exp(-q * T) * norm.cdf(-d1))


def bs_vega(spot: float, strike: float, T: float, r: float, q: float, sigma: float) -> float:
    """Black-Scholes vega (per unit volatility)."""
    if T <= 0 or sigma <= 0:
        return 0.0
    d1 = _d1(spot, strike, T, r, q, sigma)
    return float(spot * np.exp(-q * T) * norm.pdf(d1) * np.sqrt(T))


def _bisection_iv(price: float, spot: float, strike: float, T: float, r: float, q: float, is_call: bool) -> float:
    lo, hi = MIN_IV, MAX_IV
    for _ in range(MAX_IV_ITERATIONS):
        mid = (lo + hi) / 2
        model_price = bs_price(spot, strike, T, r, q, mid, is_call)
        if abs(model_price - price) < IV_TOLERANCE:
            return mid
        if model_price > price:
            hi = mid
        else:
            lo = mid

    mid = (lo + hi) / 2
    residual = abs(bs_price(spot, strike, T, r, q, mid, is_call) - price)
    if residual >= IV_TOLERANCE:
        raise ConvergenceError(
            f"Implied volatility did not converge: price {price:.6g} is outside the "
            f"range reachable with volatility in [{MIN_IV}, {MAX_IV}] (residual {residual:.3g})",
            iterations=MAX_IV_ITERATIONS
        )
    return mid


def implied_volatility(
    price: float,
    spot: float,
    strike: float,
    T: float,
    r: float,
    q: float,
    is_call: bool = True,
    initial_guess: float = 0.2
) -> float:
    """
    Black-Scholes implied volatility of an option price.

    Args:
        price: Option price to match
        spot: Spot price
        strike: Strike price
        T: Time to maturity (years)
        r: Risk-free rate
        q: Dividend yield
        is_call: True for call, False for put
        initial_guess: Newton starting point

    Returns:
        Implied volatility clamped to [0.001, 5.0]
    """
    validate_inputs(spot, strike, T)

    sigma = clamp_iv(initial_guess)
    for _ in range(MAX_IV_ITERATIONS):
        diff = bs_price(spot, strike, T, r, q, sigma, is_call) - price
        if abs(diff) < IV_TOLERANCE:
            return clamp_iv(sigma)

        vega = bs_vega(spot, strike, T, r, q, sigma)
        if vega <= MIN_VEGA:
            break

        sigma = clamp_iv(sigma - diff / vega)

    return clamp_iv(_bisection_iv(price, spot, strike, T, r, q, is_call))
