from datetime import date, datetime
from types import SimpleNamespace

import pytest

from earnings_vol.data import OptionContract, PolygonMarketDataProvider, StaticMarketDataProvider
from earnings_vol.errors import ConfigError

from conftest import atm_expiry, make_bars, make_chain


class FakePolygonClient:
    """Minimal stand-in for polygon.RESTClient."""

    def __init__(self, aggs=(), snapshot=(), previous_close=100.0):
        self.aggs = list(aggs)
        self.snapshot = list(snapshot)
        self.previous_close = previous_close
        self.snapshot_calls = []

    def list_aggs(self, ticker, multiplier, timespan, from_, to):
        return iter(self.aggs)

    def get_previous_close_agg(self, ticker):
        if self.previous_close is None:
            return []
        return [SimpleNamespace(close=self.previous_close)]

    def list_snapshot_options_chain(self, ticker, params=None):
        self.snapshot_calls.append(params)
        return iter(self.snapshot)


def agg(day, close, volume=1_000_000):
    ts = datetime(day.year, day.month, day.day, 12).timestamp() * 1000
    return SimpleNamespace(timestamp=ts, open=close, high=close + 1, low=close - 1, close=close, volume=volume)


def snapshot_option(expiry, contract_type, strike, iv=0.3, oi=100, bid=1.0, ask=1.2, greeks=True):
    return SimpleNamespace(
        details=SimpleNamespace(expiration_date=expiry, contract_type=contract_type, strike_price=strike),
        day=SimpleNamespace(close=1.1, volume=25),
        last_quote=SimpleNamespace(bid=bid, ask=ask),
        greeks=SimpleNamespace(delta=0.5, gamma=0.02, vega=0.1, theta=-0.05) if greeks else None,
        implied_volatility=iv,
        open_interest=oi,
    )


class TestOptionRecords:
    def test_mid_falls_back_to_last(self):
        assert OptionContract(strike=100, bid=1.0, ask=1.2).mid == pytest.approx(1.1)
        assert OptionContract(strike=100, last=0.9).mid == 0.9
        assert not OptionContract(strike=100, last=0.9).has_quote

    def test_days_to_expiry_is_calendar_days(self):
        expiry = atm_expiry(date(2024, 3, 15), 0.3)
        assert expiry.days_to_expiry(date(2024, 3, 1)) == 14
        assert expiry.days_to_expiry(datetime(2024, 3, 1, 10)) == 14

    def test_first_expiry_on_or_after(self):
        chain = make_chain([atm_expiry(date(2024, 3, 22), 0.3), atm_expiry(date(2024, 3, 8), 0.3)])
        assert chain.first_expiry_on_or_after(date(2024, 3, 8)).expiry_date == date(2024, 3, 8)
        assert chain.first_expiry_on_or_after(date(2024, 3, 9)).expiry_date == date(2024, 3, 22)
        assert chain.first_expiry_on_or_after(date(2024, 4, 1)) is None
        assert [e.expiry_date for e in chain.sorted_expiries()] == [date(2024, 3, 8), date(2024, 3, 22)]

    def test_chain_to_dataframe(self):
        chain = make_chain([atm_expiry(date(2024, 3, 15), 0.3)])
        frame = chain.to_dataframe()
        assert len(frame) == 2
        assert set(frame['type']) == {'call', 'put'}
        assert frame['moneyness'].tolist() == [1.0, 1.0]


class TestStaticProvider:
    def test_returns_most_recent_bars(self):
        bars = make_bars(n=50)
        provider = StaticMarketDataProvider(bars={"TEST": list(reversed(bars))})
        recent = provider.get_historical_prices("TEST", 10)
        assert recent == bars[-10:]

    def test_unknown_symbol(self):
        provider = StaticMarketDataProvider()
        assert provider.get_historical_prices("NONE", 10) == []
        chain = provider.get_option_chain("NONE", date(2024, 3, 1))
        assert chain.expiries == ()
        assert chain.underlying_price == 0.0


class TestPolygonProvider:
    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("POLYGON_API_KEY", raising=False)
        with pytest.raises(ConfigError):
            PolygonMarketDataProvider()

    def test_bars_are_sorted_and_trimmed(self):
        client = FakePolygonClient(aggs=[
            agg(date(2024, 3, 4), 101.0),
            agg(date(2024, 3, 1), 100.0),
            agg(date(2024, 3, 5), 102.0, volume=None),
        ])
        provider = PolygonMarketDataProvider(client=client)
        bars = provider.get_historical_prices("TEST", 2)

        assert [b.date for b in bars] == [date(2024, 3, 4), date(2024, 3, 5)]
        assert bars[-1].close == 102.0
        assert bars[-1].volume == 0

    def test_option_chain_grouped_by_expiry(self):
        client = FakePolygonClient(snapshot=[
            snapshot_option("2024-03-15", "call", 105.0),
            snapshot_option("2024-03-15", "call", 95.0),
            snapshot_option("2024-03-15", "put", 95.0, greeks=False),
            snapshot_option("2024-03-08", "put", 100.0, iv=None, oi=None),
        ])
        provider = PolygonMarketDataProvider(client=client, max_dte=60, moneyness_range=(0.9, 1.1))
        chain = provider.get_option_chain("TEST", date(2024, 3, 1))

        assert chain.underlying_price == 100.0
        assert [e.expiry_date for e in chain.expiries] == [date(2024, 3, 8), date(2024, 3, 15)]

        near, far = chain.expiries
        assert near.calls == ()
        assert near.puts[0].implied_volatility == 0.0
        assert near.puts[0].open_interest == 0
        assert [c.strike for c in far.calls] == [95.0, 105.0]
        assert far.calls[0].mid == pytest.approx(1.1)
        assert far.calls[0].delta == 0.5
        assert far.puts[0].delta == 0.0

        params = client.snapshot_calls[0]
        assert params["strike_price.gte"] == pytest.approx(90.0)
        assert params["strike_price.lte"] == pytest.approx(110.0)
        assert params["expiration_date.lte"] == "2024-04-30"

    def test_missing_previous_close(self):
        provider = PolygonMarketDataProvider(client=FakePolygonClient(previous_close=None))
        with pytest.raises(RuntimeError):
            provider.get_spot_price("TEST")
