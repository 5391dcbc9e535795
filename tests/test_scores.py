"""
Tests for Score Construction
============================

Tests for single-item, sum and regression factor scores.
"""

import pytest
import numpy as np
from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from latentsim import constants as C
from latentsim.exceptions import DegenerateInputError, FactorExtractionFailure
from latentsim.estimation import scores as scores_module
from latentsim.estimation.scores import (
    build_scores, extract_loadings, regression_scores, single_item_score, sum_score
)


@pytest.mark.unit
class TestSimpleScores:
    """Tests for single-item and sum scores."""

    def test_single_item_uses_first_column_by_default(self):
        X = np.arange(12, dtype=float).reshape(4, 3)
        assert np.array_equal(single_item_score(X), X[:, 0])

    def test_single_item_index(self):
        X = np.arange(12, dtype=float).reshape(4, 3)
        assert np.array_equal(single_item_score(X, 2), X[:, 2])

    def test_sum_score_is_row_mean(self):
        X = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 9.0]])
        assert np.allclose(sum_score(X), [2.0, 6.0])


@pytest.mark.estimation
class TestFactorExtraction:
    """Tests for single-factor ML extraction and regression scores."""

    def test_loadings_recovered(self, one_factor_indicators):
        solution = extract_loadings(one_factor_indicators)
        assert solution.loadings.shape == (4,)
        assert np.allclose(solution.loadings, 0.7, atol=0.05), \
            f"Loadings {solution.loadings} should be close to 0.7"

    def test_loadings_sign_oriented(self, one_factor_indicators):
        solution = extract_loadings(-one_factor_indicators)
        assert solution.loadings.sum() > 0

    def test_regression_scores_track_factor(self, strong_replicate):
        solution = extract_loadings(strong_replicate.indicators)
        s = regression_scores(strong_replicate.indicators, solution.loadings)
        r = np.corrcoef(s, strong_replicate.factor)[0, 1]
        assert r > 0.9, f"Factor score correlation with true factor too low: {r:.3f}"

    def test_regression_scores_ignore_item_scale(self, one_factor_indicators):
        solution = extract_loadings(one_factor_indicators)
        scaled = one_factor_indicators * np.array([1.0, 5.0, 0.2, 3.0])
        s_raw = regression_scores(one_factor_indicators, solution.loadings)
        s_scaled = regression_scores(scaled, solution.loadings)
        assert np.allclose(s_raw, s_scaled)

    def test_constant_indicator_raises(self):
        rng = np.random.default_rng(0)
        X = rng.normal(size=(100, 3))
        X[:, 1] = 1.0
        with pytest.raises(DegenerateInputError):
            extract_loadings(X)

    def test_heywood_case_raises(self, monkeypatch, one_factor_indicators):
        class HeywoodFA:
            def __init__(self, **kwargs):
                pass

            def fit(self, X):
                self.components_ = np.array([[1.2, 0.5, 0.5, 0.5]])
                self.noise_variance_ = np.array([0.0, 0.75, 0.75, 0.75])
                self.loglike_ = [-1.0]
                self.n_iter_ = 3
                return self

        monkeypatch.setattr(scores_module, 'FactorAnalysis', HeywoodFA)
        with pytest.raises(FactorExtractionFailure, match="Heywood"):
            extract_loadings(one_factor_indicators)


@pytest.mark.estimation
class TestBuildScores:
    """Tests for the per-replicate score bundle."""

    def test_all_scores_standardized(self, medium_replicate):
        bundle = build_scores(medium_replicate)
        assert set(bundle) == {C.METHOD_SINGLE_ITEM, C.METHOD_SUM_SCORE, C.METHOD_FACTOR_SCORE}
        for method, score in bundle.items():
            assert abs(score.mean()) < 1e-10, f"{method} not centered"
            assert abs(score.std(ddof=1) - 1.0) < 1e-10, f"{method} not unit variance"

    def test_factor_failure_isolated(self, monkeypatch, medium_replicate):
        def fail(indicators):
            raise FactorExtractionFailure("Heywood case: max |loading| = 1.020")

        monkeypatch.setattr(scores_module, 'factor_score', fail)
        failures = {}
        bundle = build_scores(medium_replicate, failures=failures)

        assert bundle[C.METHOD_FACTOR_SCORE] is None
        assert bundle[C.METHOD_SINGLE_ITEM] is not None
        assert bundle[C.METHOD_SUM_SCORE] is not None
        assert 'Heywood' in failures[C.METHOD_FACTOR_SCORE]
