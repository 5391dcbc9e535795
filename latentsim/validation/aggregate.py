"""
Condition Aggregation
=====================

Folds the per-replicate estimates of one condition into a summary per method.

Key metrics:
- Bias: E[b] - beta
- RMSE: sqrt(E[(b - beta)^2])
- Quantile coverage: beta inside the 2.5/97.5 percentiles of b
- Normal-approximation coverage: beta inside mean(b) +/- 1.96 * mean(SE)
- Empirical coverage: P(beta in [b_r - 1.96 SE_r, b_r + 1.96 SE_r])
- Failure rate: share of replicates without a usable estimate

The first two coverages are design-level (one pass/fail per condition); the
third is replicate-level (a proportion). Failed fits are NaN: they are
excluded from means and coverages and counted in the failure rate.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any

import numpy as np
import pandas as pd
from scipy import stats

from latentsim import constants as C
from latentsim.simulation.conditions import Condition


@dataclass
class MethodSummary:
    """Aggregate statistics of one method within one condition."""
    method: str
    n_replications: int
    n_valid: int
    mean_coef: float
    mean_se: float
    sd_coef: float
    bias: float
    relative_bias: float
    rmse: float
    quantile_coverage: float
    normal_coverage: float
    empirical_coverage: float
    failure_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class ConditionSummary:
    """Aggregate over all replicates of one condition."""
    condition: Condition
    n_replications: int
    mean_reliability: float
    methods: Dict[str, MethodSummary] = field(default_factory=dict)

    def to_record(self) -> Dict[str, Any]:
        """One wide row: condition fields plus <method>_<statistic> columns."""
        record = self.condition.to_dict()
        record['n_replications'] = self.n_replications
        record['mean_reliability'] = self.mean_reliability
        for method, summary in self.methods.items():
            for stat, value in summary.to_dict().items():
                if stat in ('method', 'n_replications'):
                    continue
                record[f'{method}_{stat}'] = value
        return record

    def to_long_records(self) -> List[Dict[str, Any]]:
        """One row per method."""
        records = []
        for summary in self.methods.values():
            record = self.condition.to_dict()
            record['mean_reliability'] = self.mean_reliability
            record.update(summary.to_dict())
            records.append(record)
        return records

    @property
    def failure_rates(self) -> Dict[str, float]:
        return {m: s.failure_rate for m, s in self.methods.items()}


# =============================================================================
# ESTIMATOR METRICS
# =============================================================================

def _valid(values: np.ndarray) -> np.ndarray:
    values = np.asarray(values, dtype=float)
    return values[~np.isnan(values)]


def compute_bias(estimates: np.ndarray, true_value: float) -> float:
    """
    Compute bias of estimator.

    Bias = E[b] - beta

    Args:
        estimates: Array of estimates across replications
        true_value: True parameter value

    Returns:
        Bias estimate (NaN if no valid estimates)
    """
    valid_estimates = _valid(estimates)
    if len(valid_estimates) == 0:
        return np.nan
    return float(np.mean(valid_estimates) - true_value)


def compute_rmse(estimates: np.ndarray, true_value: float) -> float:
    """
    Compute Root Mean Squared Error.

    RMSE = sqrt(E[(b - beta)^2])
    """
    valid_estimates = _valid(estimates)
    if len(valid_estimates) == 0:
        return np.nan
    return float(np.sqrt(np.mean((valid_estimates - true_value) ** 2)))


def critical_value(confidence: float = C.CONFIDENCE_LEVEL) -> float:
    """Two-sided normal critical value (1.96 for 95%)."""
    return float(stats.norm.ppf((1 + confidence) / 2))


def quantile_coverage(estimates: np.ndarray, true_value: float,
                      confidence: float = C.CONFIDENCE_LEVEL) -> float:
    """
    Does the empirical percentile interval of the estimates (2.5/97.5 for
    95%) contain the true value?

    Returns:
        1.0 or 0.0 (NaN if no valid estimates)
    """
    valid_estimates = _valid(estimates)
    if len(valid_estimates) == 0:
        return np.nan
    tail = 100 * (1 - confidence) / 2
    lower, upper = np.percentile(valid_estimates, [tail, 100 - tail])
    return float(lower <= true_value <= upper)


def normal_coverage(estimates: np.ndarray, std_errors: np.ndarray, true_value: float,
                    confidence: float = C.CONFIDENCE_LEVEL) -> float:
    """
    Normal-approximation coverage from the mean estimate and mean SE.

    One interval per condition: mean(b) +/- z * mean(SE).

    Returns:
        1.0 or 0.0 (NaN if no valid pairs)
    """
    estimates = np.asarray(estimates, dtype=float)
    std_errors = np.asarray(std_errors, dtype=float)
    mask = ~np.isnan(estimates) & ~np.isnan(std_errors)
    if mask.sum() == 0:
        return np.nan
    center = estimates[mask].mean()
    half_width = critical_value(confidence) * std_errors[mask].mean()
    return float(center - half_width <= true_value <= center + half_width)


def compute_coverage(estimates: np.ndarray,
                     std_errors: np.ndarray,
                     true_value: float,
                     confidence: float = C.CONFIDENCE_LEVEL) -> float:
    """
    Empirical per-replicate confidence interval coverage rate.

    Coverage = P(beta in [b - z*SE, b + z*SE]), each replicate using its own SE.

    Args:
        estimates: Array of estimates
        std_errors: Array of standard errors
        true_value: True parameter value
        confidence: Confidence level (default 95%)

    Returns:
        Coverage rate (0 to 1), NaN if no valid pairs
    """
    estimates = np.asarray(estimates, dtype=float)
    std_errors = np.asarray(std_errors, dtype=float)
    valid_mask = ~np.isnan(estimates) & ~np.isnan(std_errors) & (std_errors >= 0)

    if valid_mask.sum() == 0:
        return np.nan

    z = critical_value(confidence)

    lower = estimates[valid_mask] - z * std_errors[valid_mask]
    upper = estimates[valid_mask] + z * std_errors[valid_mask]

    covered = (lower <= true_value) & (true_value <= upper)
    return float(covered.mean())


# =============================================================================
# CONDITION SUMMARY
# =============================================================================

def summarize_method(method: str, estimates: np.ndarray, std_errors: np.ndarray,
                     converged: np.ndarray, true_value: float) -> MethodSummary:
    """
    Summarize one method over the replicates of one condition.

    Args:
        method: Method label
        estimates: Coefficients (NaN where the fit failed)
        std_errors: Standard errors (NaN where the fit failed)
        converged: Convergence flags
        true_value: True structural effect

    Returns:
        MethodSummary
    """
    estimates = np.asarray(estimates, dtype=float).copy()
    std_errors = np.asarray(std_errors, dtype=float).copy()
    converged = np.asarray(converged, dtype=bool)
    n = len(estimates)

    # Non-converged fits never contribute values
    estimates[~converged] = np.nan
    std_errors[~converged] = np.nan
    usable = ~np.isnan(estimates) & ~np.isnan(std_errors)
    n_valid = int(usable.sum())

    bias = compute_bias(estimates[usable], true_value)
    valid_coef = estimates[usable]

    return MethodSummary(
        method=method,
        n_replications=n,
        n_valid=n_valid,
        mean_coef=float(valid_coef.mean()) if n_valid else np.nan,
        mean_se=float(std_errors[usable].mean()) if n_valid else np.nan,
        sd_coef=float(valid_coef.std(ddof=1)) if n_valid > 1 else np.nan,
        bias=bias,
        relative_bias=bias / true_value if true_value != 0 else np.nan,
        rmse=compute_rmse(estimates[usable], true_value),
        quantile_coverage=quantile_coverage(estimates[usable], true_value),
        normal_coverage=normal_coverage(estimates[usable], std_errors[usable], true_value),
        empirical_coverage=compute_coverage(estimates[usable], std_errors[usable], true_value),
        failure_rate=float(1 - n_valid / n) if n else np.nan,
    )


def summarize_condition(condition: Condition, results: List[Any],
                        methods: List[str] = None) -> ConditionSummary:
    """
    Fold all replicate results of one condition into a ConditionSummary.

    Args:
        condition: Grid cell the results were generated under
        results: ReplicateResult objects for this condition
        methods: Methods to summarize (default: all four)

    Returns:
        ConditionSummary

    Raises:
        ValueError: If a result belongs to a different condition
    """
    methods = methods or C.METHODS
    foreign = [r for r in results if r.condition_key != condition.key]
    if foreign:
        raise ValueError(
            f"{len(foreign)} result(s) do not belong to condition {condition.key}"
        )

    ordered = sorted(results, key=lambda r: r.replicate_index)
    rel = np.array([r.reliability for r in ordered], dtype=float)
    summary = ConditionSummary(
        condition=condition,
        n_replications=len(ordered),
        mean_reliability=float(np.nanmean(rel)) if np.any(~np.isnan(rel)) else np.nan,
    )

    for method in methods:
        ests = [r.estimates.get(method) for r in ordered]
        coef = np.array([e.coefficient if e is not None else np.nan for e in ests])
        se = np.array([e.std_error if e is not None else np.nan for e in ests])
        conv = np.array([e.converged if e is not None else False for e in ests])
        summary.methods[method] = summarize_method(method, coef, se, conv,
                                                   condition.true_effect)

    return summary


# =============================================================================
# CROSS-CONDITION VIEWS
# =============================================================================

def bias_by_loading(summary_long: pd.DataFrame, method: str) -> pd.Series:
    """
    Mean absolute bias of a method for each mean loading level.

    Args:
        summary_long: Long summary table (one row per condition x method)
        method: Method label

    Returns:
        Series indexed by mean_loading, sorted ascending
    """
    subset = summary_long[summary_long['method'] == method]
    return subset.groupby('mean_loading')['bias'].apply(
        lambda b: np.nanmean(np.abs(b))
    ).sort_index()
