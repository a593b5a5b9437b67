"""
Regime-Aware Model Selection
============================

Chooses the implied-volatility model for a valuation request:

1. Detect (or accept) the earnings regime
2. Build the regime's candidate models, skipping any whose parameters are
   missing or invalid
3. Fit each to the observed market IVs: MSE, RMSE, MAE, max error, R²
4. Penalise complexity with AIC/BIC and combine into a composite score
5. Pick the lowest-score martingale-valid candidate, falling back to the
   simplest model when every candidate fails the martingale check
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ..calibration.optimizers import Deadline
from ..errors import ConvergenceError, InvalidArgumentError
from ..log_utils import resolve_logger, safe_log
from ..models import BlackScholesModel, HestonParameters, KouParameters, MarketObservation, PricingModel
from ..timing.regime import EarningsRegime, RecommendedModel
from ..timing.time_parameters import TimeParameters
from .candidates import MODEL_COMPLEXITY, ModelFactory, candidate_models, default_model_factory
from .martingale import MartingaleCheck, MartingaleValidator

# AIC/BIC need ln(MSE); a perfect fit is scored at this floor
MIN_MSE = 1e-12
MARTINGALE_PENALTY = 10.0


@dataclass(frozen=True)
class ModelSelectionContext:
    """
    Inputs for one selection.

    Attributes:
        spot: Underlying price
        base_volatility: Ex-earnings volatility (realized or implied)
        risk_free_rate: Market risk-free rate
        dividend_yield: Market dividend yield
        time_params: Valuation timing
        regime: Pre-computed regime (detected from time_params when None)
        earnings_jump_volatility: σₑ, when calibrated
        heston_params: Calibrated Heston parameters
        kou_params: Calibrated Kou parameters
        market_ivs: Observed (strike, DTE, IV) points
    """
    spot: float
    base_volatility: float
    risk_free_rate: float
    dividend_yield: float
    time_params: TimeParameters
    regime: Optional[EarningsRegime] = None
    earnings_jump_volatility: Optional[float] = None
    heston_params: Optional[HestonParameters] = None
    kou_params: Optional[KouParameters] = None
    market_ivs: Optional[Sequence[MarketObservation]] = None


@dataclass(frozen=True)
class FitMetrics:
    mse: float
    rmse: float
    mae: float
    max_error: float
    r_squared: float

    @classmethod
    def default(cls) -> 'FitMetrics':
        """Uninformative fit used when there is nothing to compare against."""
        return cls(mse=1.0, rmse=1.0, mae=1.0, max_error=1.0, r_squared=0.0)

    @classmethod
    def compute(cls, model_ivs: Sequence[float], market_ivs: Sequence[float]) -> 'FitMetrics':
        if not market_ivs or len(model_ivs) != len(market_ivs):
            return cls.default()

        model = np.asarray(model_ivs, dtype=float)
        market = np.asarray(market_ivs, dtype=float)
        errors = model - market

        sse = float(np.sum(errors ** 2))
        mse = sse / len(market)
        total_ss = float(np.sum((market - market.mean()) ** 2))
        r_squared = 1 - sse / total_ss if total_ss > 0 else 0.0

        return cls(
            mse=mse,
            rmse=float(np.sqrt(mse)),
            mae=float(np.mean(np.abs(errors))),
            max_error=float(np.max(np.abs(errors))),
            r_squared=max(0.0, r_squared),
        )


@dataclass(frozen=True)
class ModelEvaluation:
    model_type: RecommendedModel
    fit_metrics: FitMetrics
    complexity: int
    aic: float
    bic: float
    martingale_valid: bool
    composite_score: float
    model: PricingModel
    martingale_check: Optional[MartingaleCheck] = None


@dataclass(frozen=True)
class ModelSelectionResult:
    selected_model: RecommendedModel
    regime: EarningsRegime
    evaluations: List[ModelEvaluation]
    best_evaluation: ModelEvaluation
    reason: str
    completed: bool = True

    @property
    def model(self) -> PricingModel:
        """Selected model instance."""
        return self.best_evaluation.model


def information_criteria(mse: float, complexity: int, n: int) -> tuple:
    """(AIC, BIC) = (n·ln MSE + 2k, n·ln MSE + k·ln n)."""
    log_mse = np.log(max(mse, MIN_MSE))
    return n * log_mse + 2 * complexity, n * log_mse + complexity * np.log(n)


def composite_score(fit: FitMetrics, aic: float, martingale_valid: bool) -> float:
    """Lower is better."""
    score = (
        0.4 * fit.rmse * 100
        + 0.3 * aic / 100
        + 0.2 * (1 - fit.r_squared)
        + 0.1 * fit.max_error * 100
    )
    if not martingale_valid:
        score += MARTINGALE_PENALTY
    return float(score)


class ModelSelector:
    """
    Selects the best IV model for a regime.

    Candidates are built by `model_factory`, so the selector only relies
    on the PricingModel interface.
    """

    def __init__(
        self,
        martingale_validator: Optional[MartingaleValidator] = None,
        model_factory: Optional[ModelFactory] = None,
        max_candidates: Optional[int] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.martingale_validator = martingale_validator or MartingaleValidator()
        self.model_factory = model_factory or default_model_factory
        self.max_candidates = max_candidates
        self.logger = resolve_logger(logger, __name__)

    def select_best_model(
        self,
        context: ModelSelectionContext,
        deadline: Optional[Deadline] = None
    ) -> ModelSelectionResult:
        """
        Evaluate the regime's candidates and select one.

        Args:
            context: Selection inputs
            deadline: Optional budget; evaluation stops once it expires

        Returns:
            ModelSelectionResult
        """
        if context.spot <= 0:
            raise InvalidArgumentError("Spot price must be positive.")

        deadline = deadline or Deadline.none()
        regime = context.regime or EarningsRegime.detect(context.time_params)
        candidates = candidate_models(regime)

        evaluations = []
        completed = True
        attempted = 0
        for model_type in candidates:
            if deadline.expired() or (self.max_candidates is not None and attempted >= self.max_candidates):
                completed = False
                break
            attempted += 1
            evaluation = self.evaluate(model_type, context, regime)
            if evaluation is not None:
                evaluations.append(evaluation)

        if not completed:
            safe_log(self.logger, logging.WARNING,
                     "Model selection stopped after %d of %d candidates", attempted, len(candidates))

        if not evaluations:
            evaluations.append(self._fallback_evaluation(context, regime))

        valid = [e for e in evaluations if e.martingale_valid]
        if valid:
            best = min(valid, key=lambda e: e.composite_score)
        else:
            best = min(evaluations, key=lambda e: e.complexity)
            safe_log(self.logger, logging.WARNING,
                     "No martingale-valid candidate for %s regime; falling back to %s",
                     regime.regime_type.value, best.model_type.value)

        return ModelSelectionResult(
            selected_model=best.model_type,
            regime=regime,
            evaluations=evaluations,
            best_evaluation=best,
            reason=self._selection_reason(best, regime),
            completed=completed,
        )

    def evaluate(
        self,
        model_type: RecommendedModel,
        context: ModelSelectionContext,
        regime: EarningsRegime
    ) -> Optional[ModelEvaluation]:
        """
        Fit metrics, information criteria and martingale status for one candidate.

        Returns None when the candidate cannot be built: its parameters
        are missing or fail validation.
        """
        try:
            model = self.model_factory(model_type, context, regime)
        except InvalidArgumentError as e:
            safe_log(self.logger, logging.WARNING, "Skipping %s: %s", model_type.value, e)
            return None

        if model is None:
            safe_log(self.logger, logging.DEBUG, "Skipping %s: parameters not supplied", model_type.value)
            return None

        return self._evaluate_model(model_type, model, context)

    def _fallback_evaluation(self, context: ModelSelectionContext, regime: EarningsRegime) -> ModelEvaluation:
        """Black-Scholes at the base volatility, used when no candidate could be evaluated."""
        evaluation = self.evaluate(RecommendedModel.BLACK_SCHOLES, context, regime)
        if evaluation is not None:
            return evaluation
        model = BlackScholesModel(context.base_volatility, context.risk_free_rate, context.dividend_yield)
        return self._evaluate_model(RecommendedModel.BLACK_SCHOLES, model, context)

    def _evaluate_model(
        self,
        model_type: RecommendedModel,
        model: PricingModel,
        context: ModelSelectionContext
    ) -> ModelEvaluation:
        complexity = MODEL_COMPLEXITY.get(model_type, 1)

        fit = self._fit_metrics(model, context)
        check = self.martingale_validator.check(model, context.risk_free_rate, context.dividend_yield)

        n = len(context.market_ivs) if context.market_ivs else 1
        aic, bic = information_criteria(fit.mse, complexity, n)

        return ModelEvaluation(
            model_type=model_type,
            fit_metrics=fit,
            complexity=complexity,
            aic=float(aic),
            bic=float(bic),
            martingale_valid=check.is_valid,
            composite_score=composite_score(fit, aic, check.is_valid),
            model=model,
            martingale_check=check,
        )

    def _fit_metrics(self, model: PricingModel, context: ModelSelectionContext) -> FitMetrics:
        if not context.market_ivs:
            return FitMetrics.default()

        market = [o.implied_volatility for o in context.market_ivs]
        try:
            fitted = [
                model.theoretical_iv(context.spot, o.strike, o.time_to_expiry)
                for o in context.market_ivs
            ]
        except (InvalidArgumentError, ConvergenceError) as e:
            safe_log(self.logger, logging.WARNING, "Could not evaluate %s: %s", model.model_type.value, e)
            return FitMetrics.default()

        return FitMetrics.compute(fitted, market)

    @staticmethod
    def _selection_reason(best: ModelEvaluation, regime: EarningsRegime) -> str:
        fit = best.fit_metrics
        return (
            f"{best.model_type.value} selected for {regime.regime_type.value} regime. "
            f"RMSE={fit.rmse:.2%}, R²={fit.r_squared:.3f}, "
            f"Martingale={best.martingale_valid}"
        )
