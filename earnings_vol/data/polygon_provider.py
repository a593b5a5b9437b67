"""
Polygon.io Market Data Provider
===============================

MarketDataProvider backed by the Polygon.io REST API. Daily aggregates
supply price bars; the options-chain snapshot endpoint supplies quotes,
implied volatilities and greeks grouped by expiry.

Requires POLYGON_API_KEY (environment or .env) unless a client is injected.
"""

import logging
import os
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from dotenv import load_dotenv
from polygon import RESTClient

from ..errors import ConfigError
from ..log_utils import resolve_logger, safe_log
from .market_data import OptionChain, OptionContract, OptionExpiry, PriceBar

# Calendar days fetched per requested trading day of history
CALENDAR_DAYS_PER_TRADING_DAY = 1.5


class PolygonMarketDataProvider:
    """
    Fetch bars and option chains from Polygon.io.

    Args:
        api_key: API key; read from POLYGON_API_KEY when omitted
        client: Pre-built RESTClient (or compatible object)
        max_dte: Only chain expiries within this many calendar days are requested
        moneyness_range: (min, max) strike/spot filter for the chain
        logger: Optional logger
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        client=None,
        max_dte: int = 90,
        moneyness_range: tuple = (0.8, 1.2),
        logger: Optional[logging.Logger] = None
    ):
        if client is None:
            load_dotenv()
            api_key = api_key or os.getenv("POLYGON_API_KEY")
            if not api_key:
                raise ConfigError("POLYGON_API_KEY not found in environment")
            client = RESTClient(api_key)
        self.client = client
        self.max_dte = max_dte
        self.moneyness_range = moneyness_range
        self.logger = resolve_logger(logger, __name__)

    def get_historical_prices(self, symbol: str, lookback_days: int) -> List[PriceBar]:
        """Most recent `lookback_days` daily bars, oldest first."""
        end = date.today()
        start = end - timedelta(days=int(lookback_days * CALENDAR_DAYS_PER_TRADING_DAY) + 7)

        bars = []
        for agg in self.client.list_aggs(symbol, 1, "day", start.isoformat(), end.isoformat()):
            bars.append(PriceBar(
                date=datetime.fromtimestamp(agg.timestamp / 1000).date(),
                open=agg.open,
                high=agg.high,
                low=agg.low,
                close=agg.close,
                volume=agg.volume or 0,
            ))

        bars.sort(key=lambda b: b.date)
        safe_log(self.logger, logging.DEBUG, "Fetched %d bars for %s", len(bars), symbol)
        return bars[-lookback_days:]

    def get_spot_price(self, symbol: str) -> float:
        """Previous close for the underlying."""
        aggs = self.client.get_previous_close_agg(symbol)
        if not aggs:
            raise RuntimeError(f"Failed to get spot price for {symbol}")
        return aggs[0].close

    def get_option_chain(self, symbol: str, as_of: date) -> OptionChain:
        """Snapshot chain grouped by expiry, filtered by DTE and moneyness."""
        spot = self.get_spot_price(symbol)
        min_strike = spot * self.moneyness_range[0]
        max_strike = spot * self.moneyness_range[1]

        calls: Dict[date, List[OptionContract]] = defaultdict(list)
        puts: Dict[date, List[OptionContract]] = defaultdict(list)

        snapshot = self.client.list_snapshot_options_chain(
            symbol,
            params={
                "strike_price.gte": min_strike,
                "strike_price.lte": max_strike,
                "expiration_date.gte": as_of.isoformat(),
                "expiration_date.lte": (as_of + timedelta(days=self.max_dte)).isoformat(),
            }
        )

        for opt in snapshot:
            details = opt.details
            expiry = datetime.strptime(details.expiration_date, "%Y-%m-%d").date()
            contract = self._to_contract(opt)
            if details.contract_type == "call":
                calls[expiry].append(contract)
            else:
                puts[expiry].append(contract)

        expiries = tuple(
            OptionExpiry(
                expiry_date=expiry,
                calls=tuple(sorted(calls.get(expiry, []), key=lambda c: c.strike)),
                puts=tuple(sorted(puts.get(expiry, []), key=lambda c: c.strike)),
            )
            for expiry in sorted(set(calls) | set(puts))
        )

        safe_log(self.logger, logging.DEBUG, "Fetched %d expiries for %s", len(expiries), symbol)
        return OptionChain(
            symbol=symbol,
            timestamp=datetime.now(),
            underlying_price=spot,
            expiries=expiries,
        )

    @staticmethod
    def _to_contract(opt) -> OptionContract:
        day = getattr(opt, "day", None)
        quote = getattr(opt, "last_quote", None)
        greeks = getattr(opt, "greeks", None)

        last = getattr(day, "close", None) or 0.0
        bid = getattr(quote, "bid", None) or 0.0
        ask = getattr(quote, "ask", None) or 0.0

        return OptionContract(
            strike=opt.details.strike_price,
            bid=bid,
            ask=ask,
            last=last,
            implied_volatility=getattr(opt, "implied_volatility", None) or 0.0,
            delta=getattr(greeks, "delta", None) or 0.0,
            gamma=getattr(greeks, "gamma", None) or 0.0,
            vega=getattr(greeks, "vega", None) or 0.0,
            theta=getattr(greeks, "theta", None) or 0.0,
            open_interest=getattr(opt, "open_interest", None) or 0,
            volume=getattr(day, "volume", None) or 0,
        )
