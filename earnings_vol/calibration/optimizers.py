"""
Calibration Optimizers
======================

Search routines shared by the model calibrators:
- Bounded Levenberg-Marquardt (scipy MINPACK lm on sine-transformed parameters)
- Parallel grid search written as map + reduce to the minimum
- Deadline: caller-supplied wall-clock budget

The LM solver has no native bound support, so each bounded parameter is
mapped x = lo + (hi - lo)·(sin z + 1)/2 and the unconstrained z is
optimised.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from itertools import islice
from typing import Callable, Generic, Iterable, List, Optional, Sequence, Tuple, TypeVar

import numpy as np
from scipy.optimize import least_squares

T = TypeVar("T")


class Deadline:
    """Wall-clock budget; Deadline(None) never expires."""

    def __init__(self, seconds: Optional[float] = None):
        self.seconds = seconds
        self._expires_at = None if seconds is None else time.monotonic() + seconds

    @classmethod
    def none(cls) -> 'Deadline':
        return cls(None)

    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def remaining(self) -> float:
        if self._expires_at is None:
            return float('inf')
        return max(0.0, self._expires_at - time.monotonic())


@dataclass(frozen=True)
class LMResult:
    """Levenberg-Marquardt outcome in the original (bounded) parameter space."""
    x: np.ndarray
    cost: float
    success: bool
    n_evaluations: int
    message: str


def _to_bounded(z: np.ndarray, lower: np.ndarray, upper: np.ndarray) -> np.ndarray:
    return lower + (upper - lower) * (np.sin(z) + 1.0) / 2.0


def _to_internal(x: np.ndarray, lower: np.ndarray, upper: np.ndarray) -> np.ndarray:
    scaled = 2.0 * (np.clip(x, lower, upper) - lower) / (upper - lower) - 1.0
    return np.arcsin(np.clip(scaled, -1.0, 1.0))


def levenberg_marquardt(
    residuals: Callable[[np.ndarray], np.ndarray],
    x0: Sequence[float],
    lower: Sequence[float],
    upper: Sequence[float],
    max_iterations: int = 200,
    tolerance: float = 1e-8
) -> LMResult:
    """
    Bounded nonlinear least squares.

    Args:
        residuals: Vector residual function of the bounded parameters
        x0: Initial guess (clipped into bounds)
        lower: Lower bounds
        upper: Upper bounds
        max_iterations: Iteration budget (scaled to function evaluations)
        tolerance: ftol/xtol/gtol passed to MINPACK

    Returns:
        LMResult; success is False on non-convergence or numerical failure
    """
    lower = np.asarray(lower, dtype=float)
    upper = np.asarray(upper, dtype=float)
    z0 = _to_internal(np.asarray(x0, dtype=float), lower, upper)

    def internal_residuals(z: np.ndarray) -> np.ndarray:
        return np.asarray(residuals(_to_bounded(z, lower, upper)), dtype=float)

    try:
        result = least_squares(
            internal_residuals,
            z0,
            method="lm",
            ftol=tolerance,
            xtol=tolerance,
            gtol=tolerance,
            max_nfev=max_iterations * (len(z0) + 1),
        )
    except (ValueError, FloatingPointError, np.linalg.LinAlgError) as e:
        return LMResult(
            x=_to_bounded(z0, lower, upper), cost=float('inf'), success=False,
            n_evaluations=0, message=str(e),
        )

    x = _to_bounded(result.x, lower, upper)
    finite = bool(np.all(np.isfinite(result.fun)))
    return LMResult(
        x=x,
        cost=float(np.mean(result.fun ** 2)) if finite else float('inf'),
        success=bool(result.success) and finite,
        n_evaluations=int(result.nfev),
        message=result.message,
    )


@dataclass(frozen=True)
class GridSearchResult(Generic[T]):
    best: Optional[T]
    best_error: float
    n_evaluated: int
    completed: bool
    ranked: Tuple[T, ...] = ()


def parallel_grid_search(
    objective: Callable[[T], float],
    candidates: Iterable[T],
    max_workers: int = 4,
    deadline: Optional[Deadline] = None,
    chunk_size: int = 64
) -> GridSearchResult[T]:
    """
    Evaluate every candidate independently, then fold to the minimum error.

    Candidates are dispatched in chunks so a deadline can stop the search
    between chunks; already-evaluated candidates still count. Ties keep the
    earliest candidate in iteration order.

    Args:
        objective: Error of one candidate (inf for unusable candidates)
        candidates: Parameter combinations
        max_workers: Thread pool size (1 evaluates inline)
        deadline: Optional budget
        chunk_size: Candidates dispatched per round

    Returns:
        GridSearchResult (best is None when nothing finite was found);
        `ranked` lists the finite candidates from lowest to highest error
    """
    deadline = deadline or Deadline.none()
    iterator = iter(candidates)
    scored: List[Tuple[float, int, T]] = []
    completed = True
    index = 0

    def run(mapper) -> None:
        nonlocal index, completed
        while True:
            if deadline.expired():
                completed = False
                return
            chunk = list(islice(iterator, chunk_size))
            if not chunk:
                return
            for offset, (candidate, error) in enumerate(zip(chunk, mapper(objective, chunk))):
                scored.append((error, index + offset, candidate))
            index += len(chunk)

    if max_workers <= 1:
        run(map)
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            run(executor.map)

    finite = [s for s in scored if np.isfinite(s[0])]
    if not finite:
        return GridSearchResult(best=None, best_error=float('inf'), n_evaluated=len(scored), completed=completed)

    finite.sort(key=lambda s: (s[0], s[1]))
    error, _, best = finite[0]
    return GridSearchResult(
        best=best, best_error=float(error), n_evaluated=len(scored), completed=completed,
        ranked=tuple(s[2] for s in finite),
    )
