# Model selection module
from .martingale import (
    MartingaleValidator,
    MartingaleCheck,
    compute_jump_compensation
)

from .candidates import (
    MODEL_COMPLEXITY,
    candidate_models,
    default_model_factory
)

from .model_selector import (
    ModelSelector,
    ModelSelectionContext,
    ModelSelectionResult,
    ModelEvaluation,
    FitMetrics,
    information_criteria,
    composite_score
)
