"""
Per-Replicate Estimation
========================

Runs the four methods on one replicate:

1. single_item   - OLS of y on one standardized indicator
2. sum_score     - OLS of y on the standardized mean score
3. factor_score  - OLS of y on standardized regression factor scores
4. sem           - joint measurement + structural model

Every failure is isolated to its method: a failed estimate is recorded with
converged=False and NaN coefficient/SE, and the replicate still returns.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Any

import numpy as np
import pandas as pd
import statsmodels.api as sm

from latentsim import constants as C
from latentsim.exceptions import DegenerateInputError, EstimationFailure, SemConvergenceFailure
from latentsim.estimation.reliability import reliability
from latentsim.estimation.scores import build_scores
from latentsim.estimation.sem import fit_sem
from latentsim.simulation.conditions import Condition
from latentsim.simulation.generator import Replicate, generate, standardize
from latentsim.utils.logging_config import get_logger

logger = get_logger(__name__)


# =============================================================================
# RESULT CONTAINERS
# =============================================================================

@dataclass
class Estimate:
    """One method's result on one replicate."""
    method: str
    coefficient: float = np.nan
    std_error: float = np.nan
    converged: bool = True
    error: Optional[str] = None
    elapsed: float = 0.0

    @classmethod
    def failed(cls, method: str, reason: str, elapsed: float = 0.0) -> 'Estimate':
        return cls(method=method, coefficient=np.nan, std_error=np.nan,
                   converged=False, error=reason, elapsed=elapsed)

    @property
    def is_valid(self) -> bool:
        return self.converged and np.isfinite(self.coefficient) and np.isfinite(self.std_error)


@dataclass
class ReplicateResult:
    """All estimates and diagnostics for one replicate."""
    condition_key: str
    condition_index: int
    replicate_index: int
    seed: int
    estimates: Dict[str, Estimate] = field(default_factory=dict)
    reliability: float = np.nan
    realized_loading: float = np.nan

    def to_records(self) -> List[Dict[str, Any]]:
        """One flat record per method."""
        return [
            {
                'condition': self.condition_key,
                'condition_index': self.condition_index,
                'replicate': self.replicate_index,
                'seed': self.seed,
                'method': est.method,
                'coefficient': est.coefficient,
                'std_error': est.std_error,
                'converged': est.converged,
                'error': est.error,
                'elapsed': est.elapsed,
                'reliability': self.reliability,
                'realized_loading': self.realized_loading,
            }
            for est in self.estimates.values()
        ]


# =============================================================================
# ESTIMATORS
# =============================================================================

def outcome_scale(outcome: np.ndarray) -> float:
    """Sample SD of the raw outcome; converts standardized slopes back to effect units."""
    return float(np.std(np.asarray(outcome, dtype=float), ddof=1))


def run_two_step(outcome: np.ndarray, score: np.ndarray, method: str) -> Estimate:
    """
    OLS of the standardized outcome on a standardized score.

    The slope and its SE are reported per outcome standard deviation
    (multiplied by sd(y)), the metric of the condition's effect size.

    Args:
        outcome: Outcome vector
        score: Proxy score (standardized here if not already)
        method: Method label

    Returns:
        Estimate with slope and its conventional standard error

    Raises:
        DegenerateInputError: If the score or outcome has zero variance
    """
    start = time.perf_counter()
    y = standardize(outcome)
    x = standardize(score)
    y_scale = outcome_scale(outcome)

    fit = sm.OLS(y, sm.add_constant(x, has_constant='add')).fit()
    return Estimate(
        method=method,
        coefficient=float(fit.params[1]) * y_scale,
        std_error=float(fit.bse[1]) * y_scale,
        converged=True,
        elapsed=time.perf_counter() - start,
    )


SemFitter = Callable[..., Any]


def run_sem(replicate: Replicate, timeout: Optional[float] = None,
            sem_fitter: Optional[SemFitter] = None) -> Estimate:
    """
    Fit the joint SEM and extract the structural coefficient.

    Indicators and the standardized outcome are passed to the fitter. Any
    SemConvergenceFailure is recorded as converged=False.

    Args:
        replicate: Simulated dataset
        timeout: Wall-clock budget per fit in seconds
        sem_fitter: Replacement for fit_sem (same signature)

    Returns:
        Estimate for method 'sem'
    """
    fitter = sem_fitter or fit_sem
    start = time.perf_counter()

    data = replicate.to_frame()
    data[C.OUTCOME_NAME] = standardize(replicate.outcome)
    indicators = C.indicator_names(replicate.n_items)

    try:
        sem = fitter(data, indicators, C.OUTCOME_NAME, timeout=timeout)
    except SemConvergenceFailure as e:
        return Estimate.failed(C.METHOD_SEM, str(e), time.perf_counter() - start)

    y_scale = outcome_scale(replicate.outcome)
    return Estimate(
        method=C.METHOD_SEM,
        coefficient=float(sem.coefficient) * y_scale,
        std_error=float(sem.std_error) * y_scale,
        converged=True,
        elapsed=time.perf_counter() - start,
    )


# =============================================================================
# REPLICATE UNIT OF WORK
# =============================================================================

def run_replicate(condition: Condition, seed: int, replicate_index: int = 0,
                  item_index: int = C.SINGLE_ITEM_INDEX,
                  sem_timeout: Optional[float] = C.SEM_TIMEOUT_DEFAULT,
                  sem_fitter: Optional[SemFitter] = None) -> ReplicateResult:
    """
    Generate one replicate and estimate all four methods on it.

    Never raises for estimation failures; those are recorded per method.

    Args:
        condition: Grid cell
        seed: Replicate seed
        replicate_index: Index within the condition
        item_index: Indicator used for the single-item proxy
        sem_timeout: Wall-clock budget for the SEM fit
        sem_fitter: Optional replacement for fit_sem

    Returns:
        ReplicateResult
    """
    replicate = generate(condition, seed, replicate_index)
    result = ReplicateResult(
        condition_key=condition.key,
        condition_index=condition.index,
        replicate_index=replicate_index,
        seed=seed,
        realized_loading=float(replicate.loadings.mean()),
    )

    score_failures: Dict[str, str] = {}
    scores = build_scores(replicate, item_index=item_index, failures=score_failures)

    for method in C.TWO_STEP_METHODS:
        score = scores.get(method)
        if score is None:
            reason = score_failures.get(method, 'score unavailable')
            result.estimates[method] = Estimate.failed(method, reason)
            continue
        try:
            result.estimates[method] = run_two_step(replicate.outcome, score, method)
        except (DegenerateInputError, EstimationFailure) as e:
            result.estimates[method] = Estimate.failed(method, str(e))

    result.estimates[C.METHOD_SEM] = run_sem(replicate, timeout=sem_timeout,
                                             sem_fitter=sem_fitter)

    try:
        result.reliability = reliability(replicate.indicators)
    except DegenerateInputError as e:
        logger.warning(f"{condition.key} rep {replicate_index}: reliability undefined ({e})")

    return result


def replicate_frame(results: List[ReplicateResult]) -> pd.DataFrame:
    """Long DataFrame of per-replicate, per-method records."""
    records = [rec for r in results for rec in r.to_records()]
    return pd.DataFrame(records)
