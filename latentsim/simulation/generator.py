"""
One-Factor Data Generating Process
==================================

Synthetic data for a single latent factor measured by k indicators, with a
structural path from the (standardized) factor to an outcome:

    eta_i  ~ Normal(0, sqrt(factor_variance))
    lambda_j ~ Normal(mean_loading, 0.1)             (re-drawn per replicate)
    x_ij   = lambda_j * eta_i + e_ij,   e_ij ~ Normal(0, sqrt(1 - lambda_j^2))
    y_i    = 2 + effect * z(eta)_i + u_i,  u_i ~ Normal(0, 1)

The generator is a pure function of (condition, seed): it owns its own
numpy Generator, so two calls with the same arguments return bit-identical
arrays.
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd

from latentsim import constants as C
from latentsim.exceptions import GenerationError, DegenerateInputError
from latentsim.simulation.conditions import Condition
from latentsim.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class Replicate:
    """One simulated dataset under a Condition."""
    condition: Condition
    seed: int
    factor: np.ndarray       # (N,)
    loadings: np.ndarray     # (k,) realized loadings for this replicate
    indicators: np.ndarray   # (N, k)
    outcome: np.ndarray      # (N,)
    replicate_index: int = 0

    @property
    def n_obs(self) -> int:
        return self.indicators.shape[0]

    @property
    def n_items(self) -> int:
        return self.indicators.shape[1]

    def to_frame(self) -> pd.DataFrame:
        """Indicators x1..xk and outcome y as a DataFrame."""
        df = pd.DataFrame(self.indicators, columns=C.indicator_names(self.n_items))
        df[C.OUTCOME_NAME] = self.outcome
        return df


def standardize(values: np.ndarray) -> np.ndarray:
    """
    Center and scale to unit sample variance (ddof=1).

    Raises:
        DegenerateInputError: If the values have zero or undefined variance
    """
    values = np.asarray(values, dtype=float)
    sd = values.std(ddof=1) if values.size > 1 else np.nan
    if not np.isfinite(sd) or sd <= 0:
        raise DegenerateInputError("Cannot standardize a zero-variance vector")
    return (values - values.mean()) / sd


def derive_seed(base_seed: int, condition_index: int, replicate_index: int) -> int:
    """
    Independent, reproducible seed for one (condition, replicate) unit.

    Uses SeedSequence entropy mixing so nearby indices give unrelated streams.
    """
    seq = np.random.SeedSequence([int(base_seed), int(condition_index), int(replicate_index)])
    return int(seq.generate_state(1, dtype=np.uint32)[0])


def _check_loading(value: float) -> float:
    if not np.isfinite(value) or abs(value) >= C.MAX_LOADING:
        raise GenerationError(
            f"Loading draw {value:.4f} gives non-positive noise variance"
        )
    return value


def draw_loadings(rng: np.random.Generator, mean_loading: float, n_items: int,
                  sd: float = C.LOADING_SD) -> np.ndarray:
    """
    Draw item loadings from Normal(mean_loading, sd).

    Draws with |lambda| >= MAX_LOADING are re-drawn; after MAX_LOADING_REDRAWS
    attempts the value is clamped to +/- MAX_LOADING so that the indicator
    noise variance 1 - lambda^2 stays positive.
    """
    loadings = np.empty(n_items)
    for j in range(n_items):
        value = rng.normal(mean_loading, sd)
        for _ in range(C.MAX_LOADING_REDRAWS):
            try:
                loadings[j] = _check_loading(value)
                break
            except GenerationError:
                value = rng.normal(mean_loading, sd)
        else:
            clamped = float(np.clip(value, -C.MAX_LOADING, C.MAX_LOADING))
            logger.debug(f"Loading {value:.4f} clamped to {clamped:.4f}")
            loadings[j] = clamped
    return loadings


def generate(condition: Condition, seed: int, replicate_index: int = 0) -> Replicate:
    """
    Generate one replicate dataset.

    Args:
        condition: Grid cell
        seed: Seed for this replicate (see derive_seed)
        replicate_index: Position of the replicate within its condition

    Returns:
        Replicate with factor, loadings, indicators and outcome
    """
    rng = np.random.default_rng(seed)
    n = condition.sample_size
    k = condition.n_items

    loadings = draw_loadings(rng, condition.mean_loading, k)
    factor = rng.normal(0.0, np.sqrt(condition.factor_variance), size=n)

    noise_sd = np.sqrt(1.0 - loadings ** 2)
    noise = rng.normal(0.0, 1.0, size=(n, k)) * noise_sd
    indicators = np.outer(factor, loadings) + noise

    outcome_noise = rng.normal(0.0, 1.0, size=n)
    outcome = C.INTERCEPT + condition.effect_size * standardize(factor) + outcome_noise

    return Replicate(
        condition=condition,
        seed=seed,
        factor=factor,
        loadings=loadings,
        indicators=indicators,
        outcome=outcome,
        replicate_index=replicate_index,
    )
