"""
Tests for Simulation Module
===========================

Tests for the factorial design and the one-factor data generating process.
"""

import pytest
import numpy as np
from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from latentsim import constants as C
from latentsim.exceptions import DegenerateInputError
from latentsim.simulation.conditions import Condition, enumerate_conditions
from latentsim.simulation.generator import (
    generate, standardize, derive_seed, draw_loadings
)


@pytest.mark.unit
class TestConditionGrid:
    """Tests for condition enumeration."""

    def test_reference_grid_has_54_conditions(self):
        conditions = enumerate_conditions()
        assert len(conditions) == 54

    def test_keys_unique_and_indices_sequential(self):
        conditions = enumerate_conditions()
        keys = [c.key for c in conditions]
        assert len(set(keys)) == len(keys)
        assert [c.index for c in conditions] == list(range(54))

    def test_enumeration_order_is_stable(self):
        first = enumerate_conditions()
        second = enumerate_conditions()
        assert first == second
        assert first[0].mean_loading == 0.25 and first[0].sample_size == 100
        assert first[-1].mean_loading == 0.8 and first[-1].sample_size == 1000

    def test_condition_is_immutable(self):
        condition = enumerate_conditions()[0]
        with pytest.raises(Exception):
            condition.mean_loading = 0.9

    def test_key_format(self):
        condition = Condition(mean_loading=0.8, n_items=6, effect_size=0.5, sample_size=1000)
        assert condition.key == 'L0.80_I6_E0.50_N1000'
        assert condition.true_effect == 0.5
        assert condition.factor_variance == 1.0


@pytest.mark.simulation
class TestDataGeneration:
    """Tests for the data generating process."""

    def test_shapes(self, strong_replicate, strong_condition):
        rep = strong_replicate
        assert rep.factor.shape == (strong_condition.sample_size,)
        assert rep.loadings.shape == (strong_condition.n_items,)
        assert rep.indicators.shape == (strong_condition.sample_size, strong_condition.n_items)
        assert rep.outcome.shape == (strong_condition.sample_size,)

    def test_deterministic_given_seed(self, strong_condition):
        a = generate(strong_condition, seed=42)
        b = generate(strong_condition, seed=42)
        assert np.array_equal(a.factor, b.factor)
        assert np.array_equal(a.loadings, b.loadings)
        assert np.array_equal(a.indicators, b.indicators)
        assert np.array_equal(a.outcome, b.outcome)

    def test_different_seeds_differ(self, strong_condition):
        a = generate(strong_condition, seed=1)
        b = generate(strong_condition, seed=2)
        assert not np.array_equal(a.indicators, b.indicators)

    def test_loadings_redrawn_per_replicate(self, medium_condition):
        a = generate(medium_condition, seed=10)
        b = generate(medium_condition, seed=11)
        assert not np.allclose(a.loadings, b.loadings)

    def test_noise_variance_nonnegative_for_all_conditions(self):
        for condition in enumerate_conditions(sample_sizes=[100]):
            for seed in range(5):
                rep = generate(condition, seed)
                assert np.all(1 - rep.loadings ** 2 > 0)
                assert np.all(rep.indicators.var(axis=0, ddof=1) > 0)

    def test_indicators_near_unit_variance(self):
        condition = Condition(mean_loading=0.5, n_items=6, effect_size=0.3, sample_size=20000)
        rep = generate(condition, seed=3)
        variances = rep.indicators.var(axis=0, ddof=1)
        assert np.allclose(variances, 1.0, atol=0.05)

    def test_outcome_intercept_and_effect(self):
        condition = Condition(mean_loading=0.8, n_items=3, effect_size=0.5, sample_size=20000)
        rep = generate(condition, seed=5)
        assert abs(rep.outcome.mean() - C.INTERCEPT) < 0.05
        slope = np.polyfit(standardize(rep.factor), rep.outcome, 1)[0]
        assert abs(slope - 0.5) < 0.03

    def test_to_frame_columns(self, medium_replicate):
        df = medium_replicate.to_frame()
        assert list(df.columns) == ['x1', 'x2', 'x3', 'y']
        assert len(df) == medium_replicate.n_obs


@pytest.mark.unit
class TestLoadingGuard:
    """Tests for the loading draw guard."""

    def test_extreme_mean_loading_never_reaches_one(self):
        rng = np.random.default_rng(0)
        loadings = draw_loadings(rng, mean_loading=0.98, n_items=500)
        assert np.all(np.abs(loadings) < 1.0)
        assert np.all(np.abs(loadings) <= C.MAX_LOADING)

    def test_loading_above_one_clamped(self):
        rng = np.random.default_rng(0)
        loadings = draw_loadings(rng, mean_loading=1.5, n_items=10, sd=0.01)
        assert np.allclose(loadings, C.MAX_LOADING)

    def test_extreme_loading_generation_has_positive_noise(self):
        condition = Condition(mean_loading=0.98, n_items=6, effect_size=0.3, sample_size=200)
        rep = generate(condition, seed=11)
        assert np.all(rep.indicators.var(axis=0, ddof=1) > 0)


@pytest.mark.unit
class TestSeedsAndStandardization:

    def test_derive_seed_reproducible(self):
        assert derive_seed(1234, 3, 17) == derive_seed(1234, 3, 17)

    def test_derive_seed_distinct(self):
        seeds = {derive_seed(1234, c, r) for c in range(54) for r in range(50)}
        assert len(seeds) == 54 * 50

    def test_standardize(self):
        values = np.array([1.0, 2.0, 3.0, 4.0, 10.0])
        z = standardize(values)
        assert abs(z.mean()) < 1e-12
        assert abs(z.std(ddof=1) - 1.0) < 1e-12

    def test_standardize_constant_raises(self):
        with pytest.raises(DegenerateInputError):
            standardize(np.ones(10))
