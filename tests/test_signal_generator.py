import logging
from datetime import date, timedelta

import numpy as np
import pytest

from earnings_vol.calibration import Deadline
from earnings_vol.config import EngineConfig
from earnings_vol.data.market_data import OptionContract, OptionExpiry, StaticMarketDataProvider
from earnings_vol.errors import InvalidArgumentError
from earnings_vol.signals import (
    IV_RV_CRITERION,
    TERM_SLOPE_CRITERION,
    VOLUME_CRITERION,
    SignalGenerator,
    SignalStrength,
)
from earnings_vol.timing import RecommendedModel

from conftest import atm_expiry, make_bars, make_chain

EVALUATION = date(2024, 3, 1)
EARNINGS = date(2024, 3, 8)
SYMBOL = "TEST"

# ATM IV = 0.58 - 0.006 * DTE: slope -0.006 and IV30 = 0.40
INVERTED_CURVE = {10: 0.52, 20: 0.46, 40: 0.34, 50: 0.28}
UPWARD_CURVE = {10: 0.28, 20: 0.34, 40: 0.46, 50: 0.52}


class FixedVolatilityEstimator:
    """Yang-Zhang stand-in returning a fixed RV30."""

    def __init__(self, value=0.25):
        self.value = value

    def calculate(self, bars, window=30, annualize=True):
        return self.value


class FailingProvider:
    def get_historical_prices(self, symbol, lookback_days):
        raise RuntimeError("feed down")

    def get_option_chain(self, symbol, as_of):
        raise RuntimeError("feed down")


def chain_for(curve, **kwargs):
    return make_chain(
        [atm_expiry(EVALUATION + timedelta(days=dte), iv, **kwargs) for dte, iv in curve.items()],
        symbol=SYMBOL,
    )


def smile_expiry(expiry_date, atm_iv, spot=100.0):
    """Five strikes with a symmetric smile around the ATM IV."""
    calls = []
    puts = []
    for strike in (90.0, 95.0, 100.0, 105.0, 110.0):
        iv = atm_iv + 0.02 * abs(strike - spot) / 5
        calls.append(OptionContract(strike=strike, bid=1.0, ask=1.2, implied_volatility=iv, open_interest=500))
        puts.append(OptionContract(strike=strike, bid=1.0, ask=1.2, implied_volatility=iv, open_interest=500))
    return OptionExpiry(expiry_date=expiry_date, calls=tuple(calls), puts=tuple(puts))


def generator(bars=None, chain=None, config=None, rv=0.25):
    provider = StaticMarketDataProvider(
        bars={SYMBOL: bars if bars is not None else make_bars(n=60)},
        chains={SYMBOL: chain} if chain is not None else None,
    )
    return SignalGenerator(
        provider,
        config=config or EngineConfig(enable_model_selection=False),
        yang_zhang=FixedVolatilityEstimator(rv),
    )


class TestSignalGenerator:
    def test_recommended_when_all_criteria_pass(self):
        signal = generator(chain=chain_for(INVERTED_CURVE)).generate(SYMBOL, EARNINGS, EVALUATION)

        assert signal.strength == SignalStrength.RECOMMENDED
        assert signal.criteria == {VOLUME_CRITERION: True, IV_RV_CRITERION: True, TERM_SLOPE_CRITERION: True}
        assert signal.term_structure_slope == pytest.approx(-0.006)
        assert signal.implied_volatility_30 == pytest.approx(0.40)
        assert signal.realized_volatility_30 == 0.25
        assert signal.iv_rv_ratio == pytest.approx(1.6)
        assert signal.average_volume == pytest.approx(3_000_000)
        assert signal.market_iv == signal.implied_volatility_30

    def test_diagnostics(self):
        signal = generator(chain=chain_for(INVERTED_CURVE)).generate(SYMBOL, EARNINGS, EVALUATION)

        # Straddle (2.1 + 2.0) on the 10-DTE expiry over spot 100
        assert signal.expected_move == pytest.approx(0.041)
        assert signal.volatility_spread == pytest.approx(0.02)

    def test_leung_santoli_metrics_from_term_structure(self):
        signal = generator(chain=chain_for(INVERTED_CURVE)).generate(SYMBOL, EARNINGS, EVALUATION)

        t1, t2 = 10 / 252, 20 / 252
        base_var = (t1 * 0.52 ** 2 - t2 * 0.46 ** 2) / (t1 - t2)
        sigma_e = np.sqrt((0.52 ** 2 - 0.46 ** 2) / (1 / t1 - 1 / t2))

        assert signal.is_leung_santoli_calibrated
        assert signal.historical_earnings_count == 0
        assert signal.earnings_jump_volatility == pytest.approx(sigma_e)
        assert signal.base_volatility == pytest.approx(np.sqrt(base_var))
        # The first post-earnings expiry is the 10-DTE one, so the model reprices it
        assert signal.theoretical_iv == pytest.approx(0.52)
        assert signal.mispricing_signal == pytest.approx(0.40 - 0.52)
        assert signal.expected_iv_crush == pytest.approx(0.52 - np.sqrt(base_var))
        assert signal.iv_crush_ratio == pytest.approx((0.52 - np.sqrt(base_var)) / 0.52)
        assert signal.selected_model is None

    def test_low_volume_gives_consider(self):
        bars = make_bars(n=60, volume=500_000)
        signal = generator(bars=bars, chain=chain_for(INVERTED_CURVE)).generate(SYMBOL, EARNINGS, EVALUATION)

        assert signal.criteria[VOLUME_CRITERION] is False
        assert signal.strength == SignalStrength.CONSIDER

    def test_low_iv_rv_gives_consider(self):
        signal = generator(chain=chain_for(INVERTED_CURVE), rv=0.40).generate(SYMBOL, EARNINGS, EVALUATION)

        assert signal.criteria[IV_RV_CRITERION] is False
        assert signal.strength == SignalStrength.CONSIDER

    def test_upward_curve_is_avoided(self):
        signal = generator(chain=chain_for(UPWARD_CURVE), rv=0.2).generate(SYMBOL, EARNINGS, EVALUATION)

        assert signal.term_structure_slope > 0
        assert signal.criteria[TERM_SLOPE_CRITERION] is False
        assert signal.strength == SignalStrength.AVOID
        assert not signal.is_leung_santoli_calibrated
        assert signal.theoretical_iv == 0.0

    def test_thresholds_come_from_config(self):
        config = EngineConfig(volume_threshold=5_000_000.0, enable_model_selection=False)
        signal = generator(chain=chain_for(INVERTED_CURVE), config=config).generate(SYMBOL, EARNINGS, EVALUATION)
        assert signal.criteria[VOLUME_CRITERION] is False

    def test_insufficient_price_history(self):
        signal = generator(bars=make_bars(n=20), chain=chain_for(INVERTED_CURVE)).generate(
            SYMBOL, EARNINGS, EVALUATION
        )
        assert signal.strength == SignalStrength.AVOID
        assert signal.criteria == {}
        assert signal.realized_volatility_30 == 0.0

    def test_missing_option_chain(self):
        signal = generator().generate(SYMBOL, EARNINGS, EVALUATION)
        assert signal.strength == SignalStrength.AVOID
        assert signal.criteria == {}

    def test_single_expiry(self):
        chain = chain_for({10: 0.52})
        signal = generator(chain=chain).generate(SYMBOL, EARNINGS, EVALUATION)
        assert signal.strength == SignalStrength.AVOID
        assert signal.realized_volatility_30 == 0.25

    def test_expiries_without_open_interest_are_ignored(self):
        chain = chain_for(INVERTED_CURVE, open_interest=0)
        signal = generator(chain=chain).generate(SYMBOL, EARNINGS, EVALUATION)
        assert signal.strength == SignalStrength.AVOID
        assert signal.term_structure_slope == 0.0

    def test_empty_symbol_is_rejected(self):
        with pytest.raises(InvalidArgumentError):
            generator().generate("  ", EARNINGS, EVALUATION)

    def test_provider_is_required(self):
        with pytest.raises(InvalidArgumentError):
            SignalGenerator(None)

    def test_provider_errors_propagate_and_are_logged(self, caplog):
        caplog.set_level(logging.ERROR)
        with pytest.raises(RuntimeError):
            SignalGenerator(FailingProvider()).generate(SYMBOL, EARNINGS, EVALUATION)
        assert "Error generating signal for TEST" in caplog.text

    def test_result_is_logged(self, caplog):
        caplog.set_level(logging.INFO)
        generator(chain=chain_for(INVERTED_CURVE)).generate(SYMBOL, EARNINGS, EVALUATION)
        assert "Generating signal for TEST with earnings on 2024-03-08" in caplog.text
        assert "Signal generated for TEST: RECOMMENDED" in caplog.text


class TestHistoricalJumpCalibration:
    def test_history_takes_precedence_over_term_structure(self):
        bars = make_bars(n=250, start=date(2023, 3, 1))
        bar_dates = [b.date for b in bars]
        history = [bar_dates[i] for i in (40, 100, 160, 220)]

        config = EngineConfig(lookback_days=300, enable_model_selection=False)
        signal = generator(bars=bars, chain=chain_for(INVERTED_CURVE), config=config).generate(
            SYMBOL, EARNINGS, EVALUATION, historical_earnings_dates=history
        )

        assert signal.is_leung_santoli_calibrated
        assert signal.historical_earnings_count == 4
        # Historical sigma_e pairs with realized volatility
        assert signal.base_volatility == 0.25


class TestModelSelectionInGenerator:
    def setup_method(self):
        self.chain = make_chain(
            [smile_expiry(EVALUATION + timedelta(days=dte), iv) for dte, iv in INVERTED_CURVE.items()],
            symbol=SYMBOL,
        )

    def test_market_observations_use_out_of_the_money_side(self):
        gen = generator(chain=self.chain)
        observations = gen.market_observations(self.chain, EVALUATION)
        assert len(observations) == 20
        assert {o.strike for o in observations} == {90.0, 95.0, 100.0, 105.0, 110.0}

    def test_selected_model_prices_the_theoretical_iv(self):
        config = EngineConfig(max_workers=2)
        signal = generator(chain=self.chain, config=config).generate(SYMBOL, EARNINGS, EVALUATION)

        assert signal.selected_model in (
            RecommendedModel.LEUNG_SANTOLI,
            RecommendedModel.KOU,
            RecommendedModel.HESTON_WITH_EARNINGS_JUMP,
        )
        assert "pre_earnings" in signal.selection_reason
        assert signal.theoretical_iv > 0
        assert signal.mispricing_signal == pytest.approx(signal.market_iv - signal.theoretical_iv)

    def test_expired_deadline_skips_calibration_and_uses_black_scholes(self, caplog):
        caplog.set_level(logging.WARNING)
        gen = generator(chain=self.chain, config=EngineConfig())
        signal = gen.generate(SYMBOL, EARNINGS, EVALUATION, deadline=Deadline(0.0))

        assert signal.selected_model == RecommendedModel.BLACK_SCHOLES
        assert signal.selection_reason.startswith("black_scholes selected for pre_earnings regime.")
        assert "skipping Heston and Kou calibration" in caplog.text

    def test_too_few_observations_skip_selection(self):
        config = EngineConfig(min_selection_observations=50)
        signal = generator(chain=self.chain, config=config).generate(SYMBOL, EARNINGS, EVALUATION)
        assert signal.selected_model is None
        assert signal.selection_reason is None
