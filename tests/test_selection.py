from datetime import date

import numpy as np
import pytest

from earnings_vol.calibration import Deadline
from earnings_vol.errors import InvalidArgumentError, ValidationResult
from earnings_vol.models import (
    BlackScholesModel,
    HestonModel,
    HestonParameters,
    KouModel,
    KouParameters,
    LeungSantoliModel,
    MarketObservation,
    PricingModel,
    compute_theoretical_iv,
)
from earnings_vol.selection import (
    MODEL_COMPLEXITY,
    FitMetrics,
    MartingaleValidator,
    ModelSelectionContext,
    ModelSelector,
    candidate_models,
    composite_score,
    compute_jump_compensation,
    default_model_factory,
    information_criteria,
)
from earnings_vol.selection.model_selector import MARTINGALE_PENALTY
from earnings_vol.timing import EarningsRegime, RecommendedModel, RegimeType, TimeParameters

R = 0.05
D = 0.02


class FixedIVModel(PricingModel):
    """Flat-IV stand-in whose drift can be pushed off the market's."""

    model_type = RecommendedModel.BLACK_SCHOLES
    complexity = 1

    def __init__(self, iv, drift_offset=0.0):
        self.iv = iv
        self.drift_offset = drift_offset

    @property
    def risk_free_rate(self):
        return R

    @property
    def dividend_yield(self):
        return D

    def validate(self):
        return ValidationResult.success()

    def theoretical_iv(self, spot, strike, time_to_expiry):
        return self.iv

    def risk_neutral_drift(self):
        return R - D + self.drift_offset

    @classmethod
    def calibrate(cls, spot, observations, risk_free_rate=0.05, dividend_yield=0.02, **kwargs):
        return cls(observations[0].implied_volatility)


def pre_earnings_params():
    return TimeParameters.create(date(2024, 3, 1), date(2024, 3, 15), date(2024, 3, 8))


def transition_params():
    return TimeParameters.create(date(2024, 3, 7), date(2024, 3, 15), date(2024, 3, 4))


def ls_observations(sigma=0.25, sigma_e=0.06):
    return [
        MarketObservation(k, dte, compute_theoretical_iv(sigma, sigma_e, dte / 252))
        for dte in (5, 10, 20)
        for k in (95.0, 100.0, 105.0)
    ]


def flat_observations(iv=0.3):
    return [MarketObservation(k, dte, iv) for dte in (5, 10) for k in (95.0, 100.0, 105.0)]


def context(time_params=None, **overrides):
    fields = dict(
        spot=100.0,
        base_volatility=0.25,
        risk_free_rate=R,
        dividend_yield=D,
        time_params=time_params or pre_earnings_params(),
        earnings_jump_volatility=0.06,
        market_ivs=ls_observations(),
    )
    fields.update(overrides)
    return ModelSelectionContext(**fields)


class TestMartingaleValidator:
    def setup_method(self):
        self.validator = MartingaleValidator()

    def test_missing_model_is_invalid(self):
        check = self.validator.check(None, R, D)
        assert not check.is_valid
        assert not self.validator.validate(None, R, D)

    def test_constructed_models_are_valid(self):
        assert self.validator.validate(BlackScholesModel(0.2, 0.01, 0.0), R, D)
        assert self.validator.validate(LeungSantoliModel(0.2, 0.05, 0.01, 0.0), R, D)

    def test_heston_drift_must_match_market(self):
        assert self.validator.validate(HestonModel(HestonParameters.default_equity()), R, D)

        mismatched = HestonModel(HestonParameters(0.04, 0.04, 2.0, 0.3, -0.7, r=0.10, d=D))
        check = self.validator.check(mismatched, R, D)
        assert not check.is_valid
        assert check.drift_error == pytest.approx(0.05)
        assert "mismatch" in check.message

    def test_kou_drift_includes_jump_compensation(self):
        params = KouParameters.default_equity()
        check = self.validator.check(KouModel(params), R, D)
        assert check.is_valid
        assert check.expected_drift == pytest.approx(R - D - params.lam * params.kappa)

        drifting = KouModel(KouParameters(0.2, 3.0, 0.4, 10.0, 5.0, r=0.08, d=D))
        assert not self.validator.validate(drifting, R, D)

    def test_tolerance(self):
        model = FixedIVModel(0.3, drift_offset=5e-4)
        assert MartingaleValidator(tolerance=1e-3).validate(model, R, D)
        assert not MartingaleValidator(tolerance=1e-4).validate(model, R, D)

    def test_jump_compensation(self):
        assert compute_jump_compensation(3.0, 0.1) == pytest.approx(0.3)


class TestScoring:
    def test_fit_metrics(self):
        fit = FitMetrics.compute([0.2, 0.3, 0.4], [0.2, 0.3, 0.5])
        assert fit.mse == pytest.approx(0.01 / 3)
        assert fit.rmse == pytest.approx(np.sqrt(0.01 / 3))
        assert fit.mae == pytest.approx(0.1 / 3)
        assert fit.max_error == pytest.approx(0.1)
        assert fit.r_squared == pytest.approx(1 - 0.01 / (0.14 / 3))

    def test_fit_metrics_with_flat_market(self):
        fit = FitMetrics.compute([0.2, 0.3], [0.25, 0.25])
        assert fit.rmse == pytest.approx(0.05)
        assert fit.r_squared == 0.0

    def test_fit_metrics_mismatched_lengths(self):
        assert FitMetrics.compute([0.2], [0.2, 0.3]) == FitMetrics.default()

    def test_information_criteria(self):
        aic, bic = information_criteria(0.01, 2, 10)
        assert aic == pytest.approx(10 * np.log(0.01) + 4)
        assert bic == pytest.approx(10 * np.log(0.01) + 2 * np.log(10))

    def test_perfect_fit_is_floored(self):
        aic, _ = information_criteria(0.0, 1, 5)
        assert np.isfinite(aic)

    def test_martingale_penalty(self):
        fit = FitMetrics.compute([0.2, 0.3], [0.2, 0.31])
        assert composite_score(fit, -50.0, False) - composite_score(fit, -50.0, True) == pytest.approx(
            MARTINGALE_PENALTY
        )


class TestCandidates:
    def test_regime_candidates(self):
        pre = EarningsRegime.detect(pre_earnings_params())
        assert candidate_models(pre) == (
            RecommendedModel.LEUNG_SANTOLI,
            RecommendedModel.KOU,
            RecommendedModel.HESTON_WITH_EARNINGS_JUMP,
        )
        transition = EarningsRegime.detect(transition_params())
        assert RecommendedModel.POST_EARNINGS_BLEND in candidate_models(transition)

        none = EarningsRegime.detect(TimeParameters.create(date(2024, 3, 1), date(2024, 3, 15)))
        assert candidate_models(none) == (
            RecommendedModel.HESTON, RecommendedModel.KOU, RecommendedModel.BLACK_SCHOLES,
        )

    def test_complexity_ordering(self):
        assert MODEL_COMPLEXITY[RecommendedModel.BLACK_SCHOLES] == 1
        assert MODEL_COMPLEXITY[RecommendedModel.LEUNG_SANTOLI] == 2
        assert MODEL_COMPLEXITY[RecommendedModel.HESTON_WITH_EARNINGS_JUMP] == 6

    def test_factory_needs_parameters(self):
        ctx = context(earnings_jump_volatility=None)
        regime = EarningsRegime.detect(ctx.time_params)
        assert default_model_factory(RecommendedModel.LEUNG_SANTOLI, ctx, regime) is None
        assert default_model_factory(RecommendedModel.HESTON, ctx, regime) is None
        assert default_model_factory(RecommendedModel.KOU, ctx, regime) is None
        assert isinstance(default_model_factory(RecommendedModel.BLACK_SCHOLES, ctx, regime), BlackScholesModel)
        assert default_model_factory(RecommendedModel.POST_EARNINGS_BLEND, ctx, regime) is not None

    def test_factory_rejects_invalid_parameters(self):
        bad_heston = HestonParameters(v0=0.04, theta=0.01, kappa=0.5, sigma_v=0.5, rho=-0.5)
        bad_kou = KouParameters(sigma=0.2, lam=3.0, p=0.4, eta1=0.5, eta2=5.0)
        ctx = context(heston_params=bad_heston, kou_params=bad_kou)
        regime = EarningsRegime.detect(ctx.time_params)
        for model_type in (
            RecommendedModel.HESTON, RecommendedModel.KOU, RecommendedModel.HESTON_WITH_EARNINGS_JUMP,
        ):
            with pytest.raises(InvalidArgumentError):
                default_model_factory(model_type, ctx, regime)

    def test_factory_builds_heston_with_earnings_jump(self):
        ctx = context(heston_params=HestonParameters.default_equity())
        regime = EarningsRegime.detect(ctx.time_params)
        model = default_model_factory(RecommendedModel.HESTON_WITH_EARNINGS_JUMP, ctx, regime)
        assert model.earnings_jump_volatility == 0.06
        assert model.parameters == HestonParameters.default_equity()


class TestModelSelector:
    def setup_method(self):
        self.selector = ModelSelector()

    def test_selects_leung_santoli_for_pre_earnings_surface(self):
        result = self.selector.select_best_model(context())

        assert result.regime.regime_type == RegimeType.PRE_EARNINGS
        assert result.selected_model == RecommendedModel.LEUNG_SANTOLI
        assert isinstance(result.model, LeungSantoliModel)
        assert result.completed
        assert [e.model_type for e in result.evaluations] == [RecommendedModel.LEUNG_SANTOLI]
        assert result.best_evaluation.fit_metrics.rmse == pytest.approx(0.0, abs=1e-9)
        assert result.reason.startswith("leung_santoli selected for pre_earnings regime.")
        assert "Martingale=True" in result.reason

    def test_candidates_without_parameters_are_skipped(self):
        result = self.selector.select_best_model(context(heston_params=HestonParameters.default_equity()))
        assert [e.model_type for e in result.evaluations] == [
            RecommendedModel.LEUNG_SANTOLI, RecommendedModel.HESTON_WITH_EARNINGS_JUMP,
        ]
        assert all(e.model is not None for e in result.evaluations)

    def test_no_buildable_candidate_falls_back_to_black_scholes(self):
        ctx = context(earnings_jump_volatility=None, base_volatility=0.30, market_ivs=flat_observations(0.30))
        result = self.selector.select_best_model(ctx)

        assert result.regime.regime_type == RegimeType.PRE_EARNINGS
        assert result.selected_model == RecommendedModel.BLACK_SCHOLES
        assert isinstance(result.model, BlackScholesModel)
        assert result.model.volatility == 0.30
        assert all(e.model is not None for e in result.evaluations)

    def test_skipped_candidates_count_toward_budget(self):
        selector = ModelSelector(max_candidates=1)
        result = selector.select_best_model(context(earnings_jump_volatility=None))
        assert not result.completed
        assert [e.model_type for e in result.evaluations] == [RecommendedModel.BLACK_SCHOLES]

    def test_factory_without_any_model_still_yields_black_scholes(self):
        selector = ModelSelector(model_factory=lambda model_type, ctx, regime: None)
        result = selector.select_best_model(context())
        assert isinstance(result.model, BlackScholesModel)
        assert result.model.volatility == 0.25
        assert result.best_evaluation.martingale_valid

    def test_invalid_context_parameters_are_skipped(self):
        ctx = context(
            heston_params=HestonParameters(v0=0.04, theta=0.01, kappa=0.5, sigma_v=0.5, rho=-0.5),
            kou_params=KouParameters(sigma=0.2, lam=3.0, p=0.4, eta1=0.5, eta2=5.0),
        )
        result = self.selector.select_best_model(ctx)
        assert result.completed
        assert [e.model_type for e in result.evaluations] == [RecommendedModel.LEUNG_SANTOLI]
        assert result.selected_model == RecommendedModel.LEUNG_SANTOLI

    def test_invalid_candidate_is_never_selected(self):
        models = {
            RecommendedModel.LEUNG_SANTOLI: FixedIVModel(0.9),
            RecommendedModel.KOU: FixedIVModel(0.3, drift_offset=0.05),
            RecommendedModel.HESTON_WITH_EARNINGS_JUMP: FixedIVModel(0.5),
        }
        selector = ModelSelector(model_factory=lambda model_type, ctx, regime: models[model_type])
        result = selector.select_best_model(context(market_ivs=flat_observations(0.3)))

        kou = next(e for e in result.evaluations if e.model_type == RecommendedModel.KOU)
        assert not kou.martingale_valid
        assert kou.fit_metrics.rmse == pytest.approx(0.0)
        assert result.selected_model == RecommendedModel.HESTON_WITH_EARNINGS_JUMP
        assert result.best_evaluation.martingale_valid

    def test_falls_back_to_simplest_when_nothing_is_valid(self):
        selector = ModelSelector(model_factory=lambda model_type, ctx, regime: FixedIVModel(0.3, 0.05))
        result = selector.select_best_model(context(market_ivs=flat_observations(0.3)))

        assert result.selected_model == RecommendedModel.LEUNG_SANTOLI
        assert not result.best_evaluation.martingale_valid
        assert "Martingale=False" in result.reason

    def test_transition_regime(self):
        result = self.selector.select_best_model(context(time_params=transition_params()))
        assert result.regime.regime_type == RegimeType.POST_EARNINGS_TRANSITION
        assert result.selected_model in (
            RecommendedModel.POST_EARNINGS_BLEND, RecommendedModel.HESTON, RecommendedModel.BLACK_SCHOLES,
        )

    def test_explicit_regime_overrides_detection(self):
        regime = EarningsRegime.detect(transition_params())
        result = self.selector.select_best_model(context(regime=regime))
        assert result.regime is regime

    def test_candidate_budget(self):
        result = ModelSelector(max_candidates=1).select_best_model(context())
        assert not result.completed
        assert len(result.evaluations) == 1
        assert result.selected_model == RecommendedModel.LEUNG_SANTOLI

    def test_expired_deadline_evaluates_black_scholes(self):
        result = self.selector.select_best_model(context(), deadline=Deadline(0.0))
        assert not result.completed
        assert result.selected_model == RecommendedModel.BLACK_SCHOLES
        assert [e.model_type for e in result.evaluations] == [RecommendedModel.BLACK_SCHOLES]

    def test_without_market_ivs(self):
        result = self.selector.select_best_model(context(market_ivs=None))
        assert result.best_evaluation.fit_metrics == FitMetrics.default()
        assert result.best_evaluation.martingale_valid

    def test_rejects_non_positive_spot(self):
        with pytest.raises(InvalidArgumentError):
            self.selector.select_best_model(context(spot=0.0))
