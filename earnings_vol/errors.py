"""
Engine Errors
=============

Exception taxonomy shared by every component, plus the ValidationResult
record returned by cheap parameter-domain checks.
"""

from dataclasses import dataclass, field
from typing import List, Iterable


class EngineError(Exception):
    """Base error for the earnings volatility engine."""


class InvalidArgumentError(EngineError, ValueError):
    """Non-positive spot/strike/time, bad date ranges or invalid parameter sets."""


class InsufficientDataError(EngineError):
    """Not enough bars, observations or samples for the requested computation."""


class ConvergenceError(EngineError):
    """
    Numerical solver failed after exhausting its fallback chain.

    Raised only when every fallback (Newton -> bisection, LM -> grid search)
    has been tried.
    """

    def __init__(self, message: str = "solver failed to converge", iterations: int = 0):
        super().__init__(message)
        self.iterations = iterations


class ConfigError(EngineError):
    """Malformed engine configuration."""


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a parameter-domain check."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)

    @classmethod
    def of(cls, errors: Iterable[str]) -> 'ValidationResult':
        errors = list(errors)
        return cls(is_valid=not errors, errors=errors)

    @classmethod
    def success(cls) -> 'ValidationResult':
        return cls(is_valid=True, errors=[])

    def raise_if_invalid(self) -> None:
        """Raise InvalidArgumentError listing every failed check."""
        if not self.is_valid:
            raise InvalidArgumentError("; ".join(self.errors))

    def __bool__(self) -> bool:
        return self.is_valid
