"""
Candidate Models per Regime
===========================

Maps an earnings regime to its candidate model types and builds the
concrete model for each candidate from a selection context. The selector
itself only sees PricingModel instances.
"""

from dataclasses import astuple
from typing import Callable, Dict, Optional, Tuple

from ..models import (
    BlackScholesModel,
    HestonModel,
    HestonParameters,
    HestonWithEarningsJumpModel,
    KouModel,
    KouParameters,
    LeungSantoliModel,
    PostEarningsBlendModel,
    PricingModel,
)
from ..timing.regime import EarningsRegime, RecommendedModel, RegimeType

MODEL_CLASSES = (
    BlackScholesModel,
    LeungSantoliModel,
    PostEarningsBlendModel,
    HestonModel,
    KouModel,
    HestonWithEarningsJumpModel,
)

MODEL_COMPLEXITY: Dict[RecommendedModel, int] = {cls.model_type: cls.complexity for cls in MODEL_CLASSES}

REGIME_CANDIDATES: Dict[RegimeType, Tuple[RecommendedModel, ...]] = {
    RegimeType.PRE_EARNINGS: (
        RecommendedModel.LEUNG_SANTOLI,
        RecommendedModel.KOU,
        RecommendedModel.HESTON_WITH_EARNINGS_JUMP,
    ),
    RegimeType.POST_EARNINGS_TRANSITION: (
        RecommendedModel.POST_EARNINGS_BLEND,
        RecommendedModel.HESTON,
        RecommendedModel.BLACK_SCHOLES,
    ),
}

DEFAULT_CANDIDATES = (
    RecommendedModel.HESTON,
    RecommendedModel.KOU,
    RecommendedModel.BLACK_SCHOLES,
)

# (model type, context, regime) -> model, or None when its parameters are missing
ModelFactory = Callable[[RecommendedModel, 'ModelSelectionContext', EarningsRegime], Optional[PricingModel]]


def candidate_models(regime: EarningsRegime) -> Tuple[RecommendedModel, ...]:
    return REGIME_CANDIDATES.get(regime.regime_type, DEFAULT_CANDIDATES)


def default_model_factory(
    model_type: RecommendedModel,
    context: 'ModelSelectionContext',
    regime: EarningsRegime
) -> Optional[PricingModel]:
    """
    Build a candidate from the parameters carried by the context.

    Returns None when the candidate's parameters are missing.

    Raises:
        InvalidArgumentError: Supplied Heston or Kou parameters are invalid
    """
    r, d = context.risk_free_rate, context.dividend_yield
    sigma_e = context.earnings_jump_volatility

    if model_type == RecommendedModel.BLACK_SCHOLES:
        return BlackScholesModel(context.base_volatility, r, d)

    if model_type == RecommendedModel.LEUNG_SANTOLI:
        if sigma_e is None:
            return None
        return LeungSantoliModel(context.base_volatility, sigma_e, r, d)

    if model_type == RecommendedModel.POST_EARNINGS_BLEND:
        return PostEarningsBlendModel(regime, context.base_volatility, sigma_e, r, d)

    if model_type == RecommendedModel.HESTON:
        if context.heston_params is None:
            return None
        return HestonModel(HestonParameters.create(*astuple(context.heston_params)))

    if model_type == RecommendedModel.KOU:
        if context.kou_params is None:
            return None
        return KouModel(KouParameters.create(*astuple(context.kou_params)))

    if model_type == RecommendedModel.HESTON_WITH_EARNINGS_JUMP:
        if context.heston_params is None or sigma_e is None:
            return None
        return HestonWithEarningsJumpModel(HestonParameters.create(*astuple(context.heston_params)), sigma_e)

    return None
