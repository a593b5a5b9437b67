"""
Market Data Model
=================

Immutable records for daily price bars and option chains, plus the
provider protocol the signal pipeline consumes.

Features:
- PriceBar / OptionContract / OptionExpiry / OptionChain dataclasses
- MarketDataProvider protocol (historical bars + chain snapshot)
- In-memory provider for offline runs and tests
- pandas DataFrame views for inspection
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import pandas as pd


class OptionType(Enum):
    CALL = "call"
    PUT = "put"


@dataclass(frozen=True)
class PriceBar:
    """Daily OHLCV bar."""
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class OptionContract:
    """Single option quote with greeks."""
    strike: float
    bid: float = 0.0
    ask: float = 0.0
    last: float = 0.0
    implied_volatility: float = 0.0
    delta: float = 0.0
    gamma: float = 0.0
    vega: float = 0.0
    theta: float = 0.0
    open_interest: int = 0
    volume: int = 0

    @property
    def mid(self) -> float:
        """Bid/ask midpoint, falling back to last trade."""
        if self.bid > 0 and self.ask > 0:
            return (self.bid + self.ask) / 2
        return self.last

    @property
    def has_quote(self) -> bool:
        return self.bid > 0 and self.ask > 0


@dataclass(frozen=True)
class OptionExpiry:
    """Calls and puts sharing one expiry date."""
    expiry_date: date
    calls: Tuple[OptionContract, ...] = ()
    puts: Tuple[OptionContract, ...] = ()

    def days_to_expiry(self, from_date: date) -> int:
        """Calendar days from from_date to expiry."""
        if isinstance(from_date, datetime):
            from_date = from_date.date()
        return (self.expiry_date - from_date).days


@dataclass(frozen=True)
class OptionChain:
    """Option chain snapshot for one underlying."""
    symbol: str
    timestamp: datetime
    underlying_price: float
    expiries: Tuple[OptionExpiry, ...] = field(default_factory=tuple)

    def sorted_expiries(self) -> List[OptionExpiry]:
        return sorted(self.expiries, key=lambda e: e.expiry_date)

    def first_expiry_on_or_after(self, day: date) -> Optional[OptionExpiry]:
        """Nearest expiry that does not precede `day`."""
        candidates = [e for e in self.expiries if e.expiry_date >= day]
        return min(candidates, key=lambda e: e.expiry_date) if candidates else None

    def to_dataframe(self) -> pd.DataFrame:
        """Flatten the chain into one row per contract."""
        records = []
        for expiry in self.expiries:
            for option_type, contracts in ((OptionType.CALL, expiry.calls), (OptionType.PUT, expiry.puts)):
                for c in contracts:
                    records.append({
                        'expiry': expiry.expiry_date,
                        'type': option_type.value,
                        'strike': c.strike,
                        'bid': c.bid,
                        'ask': c.ask,
                        'mid': c.mid,
                        'iv': c.implied_volatility,
                        'oi': c.open_interest,
                        'volume': c.volume,
                        'moneyness': c.strike / self.underlying_price,
                        'delta': c.delta,
                        'gamma': c.gamma,
                        'vega': c.vega,
                        'theta': c.theta,
                    })
        return pd.DataFrame(records)


def bars_to_frame(bars: Sequence[PriceBar]) -> pd.DataFrame:
    """Price bars as a date-indexed DataFrame."""
    frame = pd.DataFrame([
        {'date': b.date, 'open': b.open, 'high': b.high, 'low': b.low,
         'close': b.close, 'volume': b.volume}
        for b in bars
    ], columns=['date', 'open', 'high', 'low', 'close', 'volume'])
    return frame.set_index('date')


class MarketDataProvider(Protocol):
    """Source of historical bars and option chains."""

    def get_historical_prices(self, symbol: str, lookback_days: int) -> List[PriceBar]:
        ...

    def get_option_chain(self, symbol: str, as_of: date) -> OptionChain:
        ...


class StaticMarketDataProvider:
    """
    Provider backed by preloaded data.

    get_historical_prices returns the most recent `lookback_days` bars.
    """

    def __init__(
        self,
        bars: Optional[Dict[str, Sequence[PriceBar]]] = None,
        chains: Optional[Dict[str, OptionChain]] = None
    ):
        self._bars = {k: sorted(v, key=lambda b: b.date) for k, v in (bars or {}).items()}
        self._chains = dict(chains or {})

    def get_historical_prices(self, symbol: str, lookback_days: int) -> List[PriceBar]:
        return list(self._bars.get(symbol, [])[-lookback_days:])

    def get_option_chain(self, symbol: str, as_of: date) -> OptionChain:
        chain = self._chains.get(symbol)
        if chain is None:
            return OptionChain(symbol=symbol, timestamp=datetime.combine(as_of, datetime.min.time()),
                               underlying_price=0.0, expiries=())
        return chain
