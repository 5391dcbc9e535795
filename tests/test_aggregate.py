"""
Tests for Condition Aggregation
===============================

Coverage bookkeeping, NaN handling and failure-rate denominators.
"""

import pytest
import numpy as np
import pandas as pd
from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from latentsim import constants as C
from latentsim.estimation.runner import Estimate, ReplicateResult
from latentsim.simulation.conditions import Condition
from latentsim.validation.aggregate import (
    compute_bias, compute_rmse, compute_coverage, critical_value, quantile_coverage,
    normal_coverage, summarize_method, summarize_condition, bias_by_loading
)


def make_results(condition, coefs, ses, method=C.METHOD_SEM, converged=None):
    """ReplicateResults carrying one method's estimates."""
    converged = converged if converged is not None else [True] * len(coefs)
    results = []
    for i, (b, se, ok) in enumerate(zip(coefs, ses, converged)):
        result = ReplicateResult(condition_key=condition.key, condition_index=condition.index,
                                 replicate_index=i, seed=i, reliability=0.8)
        if ok:
            result.estimates[method] = Estimate(method, b, se)
        else:
            result.estimates[method] = Estimate.failed(method, "did not converge")
        results.append(result)
    return results


@pytest.fixture
def condition():
    return Condition(mean_loading=0.5, n_items=3, effect_size=0.3, sample_size=100)


@pytest.mark.unit
class TestMetrics:
    """Tests for individual estimator metrics."""

    def test_bias_and_rmse(self):
        estimates = np.array([0.4, 0.6, np.nan])
        assert abs(compute_bias(estimates, 0.5)) < 1e-12
        assert abs(compute_rmse(estimates, 0.5) - 0.1) < 1e-12

    def test_all_nan_gives_nan(self):
        assert np.isnan(compute_bias(np.array([np.nan, np.nan]), 0.5))
        assert np.isnan(compute_coverage(np.array([np.nan]), np.array([np.nan]), 0.5))

    def test_empirical_coverage_fraction(self):
        estimates = np.array([0.5, 0.5, 2.0, 2.0])
        ses = np.array([0.1, 0.1, 0.1, 0.1])
        assert compute_coverage(estimates, ses, 0.5) == 0.5

    def test_zero_se_counts_as_valid(self):
        assert compute_coverage(np.array([0.5, 0.6]), np.array([0.0, 0.0]), 0.5) == 0.5

    def test_critical_value(self):
        assert critical_value() == pytest.approx(1.96, abs=1e-3)
        assert critical_value(0.90) == pytest.approx(1.645, abs=1e-3)

    def test_wider_level_covers_more(self):
        estimates = np.array([0.5, 0.68, 0.72])
        ses = np.full(3, 0.1)
        assert compute_coverage(estimates, ses, 0.5, confidence=0.90) == pytest.approx(1 / 3)
        assert compute_coverage(estimates, ses, 0.5, confidence=0.99) == 1.0


@pytest.mark.unit
class TestCoverageBookkeeping:
    """Exact edge cases for the three coverage definitions."""

    def test_exact_estimates_full_coverage(self):
        true_value = 0.3
        estimates = np.full(200, true_value)
        ses = np.full(200, 0.05)
        assert quantile_coverage(estimates, true_value) == 1.0
        assert normal_coverage(estimates, ses, true_value) == 1.0
        assert compute_coverage(estimates, ses, true_value) == 1.0

    def test_offset_estimates_zero_se_no_coverage(self):
        true_value = 0.3
        estimates = np.full(200, true_value + 0.1)
        ses = np.zeros(200)
        assert quantile_coverage(estimates, true_value) == 0.0
        assert normal_coverage(estimates, ses, true_value) == 0.0
        assert compute_coverage(estimates, ses, true_value) == 0.0

    def test_summary_reports_same_edge_cases(self, condition):
        full = summarize_method('sem', np.full(50, 0.3), np.full(50, 0.05),
                                np.ones(50, dtype=bool), 0.3)
        none = summarize_method('sem', np.full(50, 0.45), np.zeros(50),
                                np.ones(50, dtype=bool), 0.3)
        for stat in ('quantile_coverage', 'normal_coverage', 'empirical_coverage'):
            assert getattr(full, stat) == 1.0
            assert getattr(none, stat) == 0.0


@pytest.mark.unit
class TestFailureHandling:
    """Failed fits are NaN in the means and counted in the failure rate."""

    def test_failures_excluded_from_means(self):
        summary = summarize_method(
            'sem',
            estimates=np.array([0.3, 0.5, 99.0, 0.4]),
            std_errors=np.array([0.1, 0.1, 99.0, 0.1]),
            converged=np.array([True, True, False, True]),
            true_value=0.4,
        )
        assert summary.n_replications == 4
        assert summary.n_valid == 3
        assert abs(summary.mean_coef - 0.4) < 1e-12
        assert abs(summary.mean_se - 0.1) < 1e-12
        assert summary.failure_rate == 0.25

    def test_failure_rate_denominator_is_all_replicates(self, condition):
        results = make_results(condition, [0.3] * 10, [0.1] * 10,
                               converged=[True] * 7 + [False] * 3)
        summary = summarize_condition(condition, results, methods=[C.METHOD_SEM])
        assert summary.methods[C.METHOD_SEM].failure_rate == pytest.approx(0.3)
        assert summary.methods[C.METHOD_SEM].n_valid == 7

    def test_all_failed(self, condition):
        results = make_results(condition, [0.3] * 5, [0.1] * 5, converged=[False] * 5)
        summary = summarize_condition(condition, results, methods=[C.METHOD_SEM])
        sem = summary.methods[C.METHOD_SEM]
        assert sem.failure_rate == 1.0
        assert np.isnan(sem.mean_coef)
        assert np.isnan(sem.empirical_coverage)

    def test_missing_method_counted_as_failure(self, condition):
        results = make_results(condition, [0.3] * 4, [0.1] * 4, method=C.METHOD_SUM_SCORE)
        summary = summarize_condition(condition, results)
        assert summary.methods[C.METHOD_SEM].failure_rate == 1.0
        assert summary.methods[C.METHOD_SUM_SCORE].failure_rate == 0.0

    def test_foreign_results_rejected(self, condition):
        other = Condition(mean_loading=0.8, n_items=6, effect_size=0.5, sample_size=1000)
        results = make_results(condition, [0.3], [0.1]) + make_results(other, [0.3], [0.1])
        with pytest.raises(ValueError):
            summarize_condition(condition, results)


@pytest.mark.unit
class TestSummaryRecords:

    def test_wide_record_columns(self, condition):
        results = make_results(condition, [0.3, 0.35], [0.1, 0.1])
        record = summarize_condition(condition, results, methods=[C.METHOD_SEM]).to_record()
        assert record['condition'] == condition.key
        assert record['mean_reliability'] == pytest.approx(0.8)
        assert 'sem_bias' in record and 'sem_failure_rate' in record

    def test_bias_by_loading(self):
        df = pd.DataFrame({
            'method': ['sum_score'] * 4,
            'mean_loading': [0.25, 0.25, 0.8, 0.8],
            'bias': [-0.2, -0.1, -0.02, np.nan],
        })
        series = bias_by_loading(df, 'sum_score')
        assert list(series.index) == [0.25, 0.8]
        assert series[0.25] == pytest.approx(0.15)
        assert series[0.8] == pytest.approx(0.02)
