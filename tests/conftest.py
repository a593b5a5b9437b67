from datetime import date, datetime, timedelta

import numpy as np
import pytest

from earnings_vol.data.market_data import OptionChain, OptionContract, OptionExpiry, PriceBar


def make_bars(n=60, start=date(2024, 1, 2), spot=100.0, daily_vol=0.015, volume=3_000_000, seed=7):
    """Deterministic OHLC bars on consecutive weekdays."""
    rng = np.random.default_rng(seed)
    bars = []
    close = spot
    day = start
    while len(bars) < n:
        if day.weekday() < 5:
            open_ = close * np.exp(rng.normal(0.0, daily_vol / 3))
            close = open_ * np.exp(rng.normal(0.0, daily_vol))
            high = max(open_, close) * (1 + abs(rng.normal(0.0, daily_vol / 2)))
            low = min(open_, close) * (1 - abs(rng.normal(0.0, daily_vol / 2)))
            bars.append(PriceBar(date=day, open=open_, high=high, low=low, close=close, volume=volume))
        day += timedelta(days=1)
    return bars


def atm_expiry(expiry_date, iv, strike=100.0, skew=0.01, open_interest=1000,
               call_quote=(2.0, 2.2), put_quote=(1.9, 2.1)):
    """One expiry with a single ATM call/put pair averaging to `iv`."""
    call = OptionContract(strike=strike, bid=call_quote[0], ask=call_quote[1],
                          implied_volatility=iv - skew, open_interest=open_interest)
    put = OptionContract(strike=strike, bid=put_quote[0], ask=put_quote[1],
                         implied_volatility=iv + skew, open_interest=open_interest)
    return OptionExpiry(expiry_date=expiry_date, calls=(call,), puts=(put,))


def make_chain(expiries, spot=100.0, symbol="TEST"):
    return OptionChain(
        symbol=symbol,
        timestamp=datetime(2024, 3, 1, 16, 0),
        underlying_price=spot,
        expiries=tuple(expiries),
    )


@pytest.fixture
def bars():
    return make_bars()
