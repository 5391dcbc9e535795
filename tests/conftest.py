"""
Pytest Configuration and Shared Fixtures
=========================================

Provides common test fixtures for the latent proxy study.
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from latentsim.config import StudySettings
from latentsim.simulation.conditions import Condition
from latentsim.simulation.generator import generate


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def project_root():
    """Return project root path."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def config_path():
    """Path to the shipped simulation config."""
    return PROJECT_ROOT / 'config' / 'simulation_config.json'


@pytest.fixture
def tiny_settings(tmp_path):
    """Small grid for driver tests: 2 loadings x 1 x 1 x 1, 4 replications."""
    return StudySettings(
        n_replications=4,
        seed=99,
        n_workers=1,
        sem_timeout=None,
        mean_loadings=[0.5, 0.8],
        n_items=[3],
        effect_sizes=[0.3],
        sample_sizes=[200],
        output_dir=str(tmp_path / 'results'),
    )


# =============================================================================
# Condition Fixtures
# =============================================================================

@pytest.fixture
def strong_condition():
    """High loadings, many items, large N: every method should behave."""
    return Condition(mean_loading=0.8, n_items=6, effect_size=0.5, sample_size=1000)


@pytest.fixture
def weak_condition():
    """Weak loadings, few items, small N: SEM trouble expected."""
    return Condition(mean_loading=0.25, n_items=3, effect_size=0.15, sample_size=100)


@pytest.fixture
def medium_condition():
    return Condition(mean_loading=0.5, n_items=3, effect_size=0.3, sample_size=500)


# =============================================================================
# Data Fixtures - Synthetic Replicates with Known Parameters
# =============================================================================

@pytest.fixture
def strong_replicate(strong_condition):
    """Replicate used by the end-to-end scenario (seed 1234)."""
    return generate(strong_condition, seed=1234)


@pytest.fixture
def medium_replicate(medium_condition):
    return generate(medium_condition, seed=7)


@pytest.fixture
def one_factor_indicators():
    """
    Indicator matrix with known equal loadings (0.7) on one factor.

    Population inter-item correlation = 0.49, so standardized alpha for
    k = 4 is 4 * 0.49 / (1 + 3 * 0.49) = 0.794.
    """
    rng = np.random.default_rng(2024)
    n, k, loading = 5000, 4, 0.7
    factor = rng.normal(size=n)
    noise = rng.normal(size=(n, k)) * np.sqrt(1 - loading ** 2)
    return np.outer(factor, np.full(k, loading)) + noise
