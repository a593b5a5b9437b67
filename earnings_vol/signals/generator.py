"""
Earnings Signal Generator
=========================

Orchestrates one evaluation:

1. Price history and option chain from the market-data provider
2. Yang-Zhang RV30
3. ATM term structure (DTE 1-60) and its OLS slope
4. Average volume, expected move, put/call volatility spread
5. Earnings jump σₑ (history, else term structure) and Leung-Santoli
   theoretical IV / IV crush at the first post-earnings expiry
6. Optional model selection over the regime's candidates
7. Volume, IV/RV and TermSlope criteria mapped to a signal strength

Missing data degrades to an Avoid signal; invalid arguments propagate.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..analysis.earnings_jump import EarningsJumpCalibrator, EarningsJumpEstimate, JumpSource
from ..analysis.realized_vol import YangZhangEstimator
from ..analysis.term_structure import TermStructureAnalyzer, TermStructurePoint
from ..calibration.optimizers import Deadline
from ..config import EngineConfig
from ..data.market_data import MarketDataProvider, OptionChain, OptionContract, OptionExpiry, PriceBar
from ..errors import ConvergenceError, EngineError, InvalidArgumentError
from ..log_utils import resolve_logger, safe_log
from ..models import HestonModel, KouModel, MarketObservation
from ..models.leung_santoli import compute_theoretical_iv, expected_iv_crush, iv_crush_ratio
from ..selection.model_selector import ModelSelectionContext, ModelSelectionResult, ModelSelector
from ..timing.calendar import DEFAULT_CALENDAR, DateLike, TradingCalendar, to_date
from ..timing.time_parameters import TimeParameters, dte_to_years
from .signal import IV_RV_CRITERION, TERM_SLOPE_CRITERION, VOLUME_CRITERION, Signal

STRIKE_MATCH_TOLERANCE = 0.01


@dataclass(frozen=True)
class TheoreticalMetrics:
    theoretical_iv: float = 0.0
    mispricing_signal: float = 0.0
    expected_iv_crush: float = 0.0
    iv_crush_ratio: float = 0.0
    selection: Optional[ModelSelectionResult] = None


def _closest_to_spot(contracts: Sequence[OptionContract], spot: float, predicate) -> Optional[OptionContract]:
    eligible = [c for c in contracts if predicate(c)]
    if not eligible:
        return None
    return min(eligible, key=lambda c: abs(c.strike - spot))


def _has_iv(contract: OptionContract) -> bool:
    return contract.open_interest > 0 and contract.implied_volatility > 0


def _has_quote(contract: OptionContract) -> bool:
    return contract.bid > 0 and contract.ask > 0


class SignalGenerator:
    """
    Pre-earnings volatility signal generator.

    All collaborators are injected; defaults are constructed when omitted.
    The generator holds no per-request state and can be shared across
    threads.
    """

    def __init__(
        self,
        market_data: MarketDataProvider,
        config: Optional[EngineConfig] = None,
        yang_zhang: Optional[YangZhangEstimator] = None,
        term_analyzer: Optional[TermStructureAnalyzer] = None,
        jump_calibrator: Optional[EarningsJumpCalibrator] = None,
        model_selector: Optional[ModelSelector] = None,
        calendar: Optional[TradingCalendar] = None,
        logger: Optional[logging.Logger] = None
    ):
        if market_data is None:
            raise InvalidArgumentError("market_data provider is required")
        self.market_data = market_data
        self.config = config or EngineConfig()
        self.yang_zhang = yang_zhang or YangZhangEstimator()
        self.term_analyzer = term_analyzer or TermStructureAnalyzer()
        self.logger = resolve_logger(logger, __name__)
        self.jump_calibrator = jump_calibrator or EarningsJumpCalibrator(logger=self.logger)
        self.model_selector = model_selector or ModelSelector(logger=self.logger)
        self.calendar = calendar or DEFAULT_CALENDAR

    def generate(
        self,
        symbol: str,
        earnings_date: DateLike,
        evaluation_date: DateLike,
        historical_earnings_dates: Optional[Sequence[DateLike]] = None,
        deadline: Optional[Deadline] = None
    ) -> Signal:
        """
        Generate the signal for one upcoming earnings event.

        Args:
            symbol: Ticker
            earnings_date: Upcoming announcement date
            evaluation_date: As-of date for the option chain
            historical_earnings_dates: Past announcement dates for σₑ calibration
            deadline: Optional budget for calibration and model selection; once it
                expires remaining calibration is skipped and selection falls back
                to Black-Scholes

        Returns:
            Signal (Avoid when data is insufficient)

        Raises:
            InvalidArgumentError: Empty symbol
        """
        if not symbol or not symbol.strip():
            raise InvalidArgumentError("symbol must be a non-empty string")

        earnings = to_date(earnings_date)
        evaluation = to_date(evaluation_date)
        history = [to_date(d) for d in historical_earnings_dates] if historical_earnings_dates else None

        safe_log(self.logger, logging.INFO, "Generating signal for %s with earnings on %s", symbol, earnings)

        try:
            signal = self._generate(symbol, earnings, evaluation, history, deadline or Deadline.none())
        except Exception:
            safe_log(self.logger, logging.ERROR, "Error generating signal for %s", symbol, exc_info=True)
            raise

        safe_log(
            self.logger, logging.INFO,
            "Signal generated for %s: %s (IV/RV=%.2f, Slope=%.5f, Volume=%d)",
            symbol, signal.strength.name, signal.iv_rv_ratio, signal.term_structure_slope,
            int(signal.average_volume),
        )
        return signal

    def _generate(
        self,
        symbol: str,
        earnings_date: date,
        evaluation_date: date,
        historical_earnings_dates: Optional[List[date]],
        deadline: Deadline
    ) -> Signal:
        cfg = self.config

        bars = list(self.market_data.get_historical_prices(symbol, cfg.lookback_days))
        chain = self.market_data.get_option_chain(symbol, evaluation_date)

        if len(bars) < cfg.min_price_bars:
            safe_log(self.logger, logging.WARNING, "Insufficient price history for %s", symbol)
            return Signal.avoid(symbol, earnings_date, evaluation_date)

        if not chain.expiries or not self._has_iv_data(chain):
            safe_log(self.logger, logging.WARNING, "No option data available for %s", symbol)
            return Signal.avoid(symbol, earnings_date, evaluation_date)

        rv30 = self.yang_zhang.calculate(bars, window=min(cfg.rv_window, len(bars) - 1))

        points = self.extract_term_structure_points(chain, evaluation_date)
        if len(points) < 2:
            safe_log(self.logger, logging.WARNING, "Insufficient term structure points for %s", symbol)
            return Signal.avoid(symbol, earnings_date, evaluation_date, realized_volatility_30=rv30)

        analysis = self.term_analyzer.analyze(points)
        iv30 = analysis.get_iv_at(30)
        iv_rv_ratio = iv30 / rv30 if rv30 > 0 else 0.0
        average_volume = self.average_volume(bars)

        jump = self.jump_calibrator.estimate(symbol, bars, historical_earnings_dates, points, rv30)
        theoretical = self._theoretical_metrics(
            chain, earnings_date, evaluation_date, iv30, rv30, jump, deadline
        )

        if jump is not None:
            safe_log(
                self.logger, logging.INFO,
                "Leung-Santoli model for %s: sigma_e=%.2f%%, theoretical IV=%.2f%%, mispricing=%.2f%%",
                symbol, jump.sigma_e * 100, theoretical.theoretical_iv * 100,
                theoretical.mispricing_signal * 100,
            )

        criteria = {
            VOLUME_CRITERION: average_volume >= cfg.volume_threshold,
            IV_RV_CRITERION: iv_rv_ratio >= cfg.iv_rv_threshold,
            TERM_SLOPE_CRITERION: analysis.slope <= cfg.term_slope_threshold,
        }

        selection = theoretical.selection
        signal = Signal(
            symbol=symbol,
            earnings_date=earnings_date,
            signal_date=evaluation_date,
            iv_rv_ratio=iv_rv_ratio,
            term_structure_slope=analysis.slope,
            average_volume=average_volume,
            implied_volatility_30=iv30,
            realized_volatility_30=rv30,
            expected_move=self.expected_move(chain, earnings_date),
            volatility_spread=self.volatility_spread(chain, evaluation_date),
            theoretical_iv=theoretical.theoretical_iv,
            market_iv=iv30,
            mispricing_signal=theoretical.mispricing_signal,
            expected_iv_crush=theoretical.expected_iv_crush,
            iv_crush_ratio=theoretical.iv_crush_ratio,
            earnings_jump_volatility=jump.sigma_e if jump else 0.0,
            base_volatility=(jump.base_volatility or 0.0) if jump else 0.0,
            historical_earnings_count=jump.sample_count if jump and jump.source == JumpSource.HISTORY else 0,
            is_leung_santoli_calibrated=jump is not None,
            selected_model=selection.selected_model if selection else None,
            selection_reason=selection.reason if selection else None,
            criteria=criteria,
        )
        return signal.with_evaluated_strength()

    @staticmethod
    def _has_iv_data(chain: OptionChain) -> bool:
        return any(
            c.implied_volatility > 0
            for expiry in chain.expiries
            for c in (*expiry.calls, *expiry.puts)
        )

    def average_volume(self, bars: Sequence[PriceBar]) -> float:
        """Mean volume over the last `volume_window` bars."""
        recent = bars[-self.config.volume_window:]
        if not recent:
            return 0.0
        return float(np.mean([b.volume for b in recent]))

    def extract_term_structure_points(self, chain: OptionChain, evaluation_date: date) -> List[TermStructurePoint]:
        """
        One ATM point per expiry inside the term DTE range.

        The point's IV is the mean of the nearest-to-spot call and put that
        both have open interest and a positive IV.
        """
        spot = chain.underlying_price
        points = []

        for expiry in chain.sorted_expiries():
            dte = expiry.days_to_expiry(evaluation_date)
            if dte < self.config.min_term_dte or dte > self.config.max_term_dte:
                continue

            atm_call = _closest_to_spot(expiry.calls, spot, _has_iv)
            atm_put = _closest_to_spot(expiry.puts, spot, _has_iv)
            if atm_call is None or atm_put is None:
                continue

            points.append(TermStructurePoint(
                days_to_expiry=dte,
                implied_volatility=(atm_call.implied_volatility + atm_put.implied_volatility) / 2.0,
                strike=atm_call.strike,
                expiry_date=expiry.expiry_date,
            ))

        return points

    @staticmethod
    def expected_move(chain: OptionChain, earnings_date: date) -> float:
        """ATM straddle mid price / spot at the first expiry on or after earnings (0 if unavailable)."""
        target = chain.first_expiry_on_or_after(earnings_date)
        if target is None or chain.underlying_price <= 0:
            return 0.0

        atm_call = _closest_to_spot(target.calls, chain.underlying_price, _has_quote)
        if atm_call is None:
            return 0.0

        atm_put = next(
            (p for p in target.puts if _has_quote(p) and abs(p.strike - atm_call.strike) < STRIKE_MATCH_TOLERANCE),
            None,
        )
        if atm_put is None:
            return 0.0

        return (atm_call.mid + atm_put.mid) / chain.underlying_price

    def volatility_spread(self, chain: OptionChain, evaluation_date: date) -> float:
        """Open-interest-weighted mean of put IV - call IV over matched strikes (0 if none)."""
        spreads = []
        weights = []

        for expiry in chain.expiries:
            dte = expiry.days_to_expiry(evaluation_date)
            if dte < self.config.min_spread_dte or dte > self.config.max_spread_dte:
                continue

            puts_by_strike = {p.strike: p for p in expiry.puts if _has_iv(p)}
            for call in expiry.calls:
                put = puts_by_strike.get(call.strike)
                if put is None or not _has_iv(call):
                    continue
                spreads.append(put.implied_volatility - call.implied_volatility)
                weights.append((call.open_interest + put.open_interest) / 2.0)

        total_weight = sum(weights)
        if not spreads or total_weight <= 0:
            return 0.0
        return float(np.dot(spreads, weights) / total_weight)

    def market_observations(self, chain: OptionChain, evaluation_date: date) -> List[MarketObservation]:
        """OTM (strike, DTE, IV) observations inside the term DTE range."""
        spot = chain.underlying_price
        observations = []
        for expiry in chain.sorted_expiries():
            dte = expiry.days_to_expiry(evaluation_date)
            if dte < self.config.min_term_dte or dte > self.config.max_term_dte:
                continue
            for call in expiry.calls:
                if call.strike >= spot and _has_iv(call):
                    observations.append(MarketObservation(call.strike, dte, call.implied_volatility))
            for put in expiry.puts:
                if put.strike < spot and _has_iv(put):
                    observations.append(MarketObservation(put.strike, dte, put.implied_volatility))
        return observations

    def _theoretical_metrics(
        self,
        chain: OptionChain,
        earnings_date: date,
        evaluation_date: date,
        iv30: float,
        rv30: float,
        jump: Optional[EarningsJumpEstimate],
        deadline: Deadline
    ) -> TheoreticalMetrics:
        target = chain.first_expiry_on_or_after(earnings_date)
        if target is None:
            return TheoreticalMetrics()

        dte = target.days_to_expiry(evaluation_date)
        if dte <= 0:
            return TheoreticalMetrics()

        T = dte_to_years(dte)
        theoretical_iv = None
        crush = 0.0
        crush_ratio = 0.0

        base_vol = rv30
        if jump is not None:
            base_vol = jump.base_volatility if jump.base_volatility is not None else rv30
            theoretical_iv = compute_theoretical_iv(base_vol, jump.sigma_e, T)
            crush = expected_iv_crush(base_vol, jump.sigma_e, T)
            crush_ratio = iv_crush_ratio(base_vol, jump.sigma_e, T)

        selection = self._select_model(chain, target, earnings_date, evaluation_date, base_vol, jump, deadline)
        if selection is not None and selection.model is not None:
            strike = self._atm_strike(target, chain.underlying_price)
            try:
                theoretical_iv = selection.model.theoretical_iv(chain.underlying_price, strike, T)
            except (InvalidArgumentError, ConvergenceError) as e:
                safe_log(self.logger, logging.WARNING, "Selected model could not price %s: %s", chain.symbol, e)

        if theoretical_iv is None:
            return TheoreticalMetrics(selection=selection)

        return TheoreticalMetrics(
            theoretical_iv=theoretical_iv,
            mispricing_signal=iv30 - theoretical_iv,
            expected_iv_crush=crush,
            iv_crush_ratio=crush_ratio,
            selection=selection,
        )

    @staticmethod
    def _atm_strike(expiry: OptionExpiry, spot: float) -> float:
        strikes = [c.strike for c in (*expiry.calls, *expiry.puts) if c.strike > 0]
        if not strikes:
            return spot
        return min(strikes, key=lambda k: abs(k - spot))

    def _select_model(
        self,
        chain: OptionChain,
        target: OptionExpiry,
        earnings_date: date,
        evaluation_date: date,
        base_volatility: float,
        jump: Optional[EarningsJumpEstimate],
        deadline: Deadline
    ) -> Optional[ModelSelectionResult]:
        cfg = self.config
        if not cfg.enable_model_selection or chain.underlying_price <= 0:
            return None

        observations = self.market_observations(chain, evaluation_date)
        if len(observations) < cfg.min_selection_observations:
            return None

        try:
            time_params = TimeParameters.create(
                evaluation_date, target.expiry_date, earnings_date, calendar=self.calendar
            )
        except InvalidArgumentError as e:
            safe_log(self.logger, logging.DEBUG, "Skipping model selection for %s: %s", chain.symbol, e)
            return None

        heston_params, kou_params = self._calibrate(chain.underlying_price, observations, deadline)

        context = ModelSelectionContext(
            spot=chain.underlying_price,
            base_volatility=base_volatility,
            risk_free_rate=cfg.risk_free_rate,
            dividend_yield=cfg.dividend_yield,
            time_params=time_params,
            earnings_jump_volatility=jump.sigma_e if jump else None,
            heston_params=heston_params,
            kou_params=kou_params,
            market_ivs=observations,
        )
        result = self.model_selector.select_best_model(context, deadline)
        safe_log(self.logger, logging.INFO, "Model selection for %s: %s", chain.symbol, result.reason)
        return result

    def _calibrate(self, spot: float, observations: Sequence[MarketObservation], deadline: Deadline) -> Tuple:
        cfg = self.config
        if deadline.expired():
            safe_log(self.logger, logging.WARNING, "Deadline expired; skipping Heston and Kou calibration")
            return None, None
        kwargs = dict(max_workers=cfg.max_workers, deadline=deadline, logger=self.logger)

        heston_params = None
        try:
            heston_params = HestonModel.calibrate(
                spot, observations, cfg.risk_free_rate, cfg.dividend_yield, **kwargs
            ).parameters
        except EngineError as e:
            safe_log(self.logger, logging.WARNING, "Heston calibration failed: %s", e)

        kou_params = None
        try:
            kou_params = KouModel.calibrate(
                spot, observations, cfg.risk_free_rate, cfg.dividend_yield, **kwargs
            ).parameters
        except EngineError as e:
            safe_log(self.logger, logging.WARNING, "Kou calibration failed: %s", e)

        return heston_params, kou_params
