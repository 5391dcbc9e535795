"""
Score Construction
==================

Builds the three observed proxies for the latent factor used by the
two-step methods:

- single_item:  one indicator column (first indicator by default)
- sum_score:    row-wise mean of the indicators
- factor_score: regression (Thurstone) scores from a single-factor
                maximum likelihood factor analysis

    S = Z W,   W = R^-1 F

where Z are the standardized indicators, R their correlation matrix and F
the estimated loading vector. Scores are built from Z, not the raw
indicators X: F and W are defined on the correlation scale, and X W would
reweight each item by its sample SD. All proxies are standardized before
they are used as regression predictors.
"""

from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np
from sklearn.decomposition import FactorAnalysis

from latentsim import constants as C
from latentsim.exceptions import FactorExtractionFailure, DegenerateInputError
from latentsim.simulation.generator import Replicate, standardize
from latentsim.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class FactorSolution:
    """Single-factor ML solution on standardized indicators."""
    loadings: np.ndarray
    uniquenesses: np.ndarray
    log_likelihood: float
    n_iter: int


def _zscore(X: np.ndarray) -> np.ndarray:
    sd = X.std(axis=0)
    if np.any(~np.isfinite(sd)) or np.any(sd <= 0):
        raise DegenerateInputError("Indicator with zero variance")
    return (X - X.mean(axis=0)) / sd


def extract_loadings(indicators: np.ndarray, random_state: int = 0) -> FactorSolution:
    """
    Single-factor maximum likelihood factor analysis.

    Loadings are oriented so their sum is positive (the sign of a single
    factor is not identified).

    Args:
        indicators: (N, k) indicator matrix
        random_state: Seed passed to scikit-learn (used by the randomized SVD)

    Returns:
        FactorSolution

    Raises:
        FactorExtractionFailure: If the routine fails or returns unusable
            loadings (non-finite, or a Heywood case with |loading| >= 1)
    """
    Z = _zscore(np.asarray(indicators, dtype=float))

    try:
        fa = FactorAnalysis(n_components=1, max_iter=C.FA_MAX_ITER,
                            tol=C.FA_TOL, random_state=random_state)
        fa.fit(Z)
    except (ValueError, np.linalg.LinAlgError) as e:
        raise FactorExtractionFailure(f"Factor analysis failed: {e}") from e

    loadings = fa.components_[0].copy()
    if not np.all(np.isfinite(loadings)):
        raise FactorExtractionFailure("Non-finite loadings")
    if loadings.sum() < 0:
        loadings = -loadings
    if np.any(np.abs(loadings) >= 1.0):
        raise FactorExtractionFailure(
            f"Heywood case: max |loading| = {np.abs(loadings).max():.3f}"
        )

    return FactorSolution(
        loadings=loadings,
        uniquenesses=fa.noise_variance_.copy(),
        log_likelihood=float(fa.loglike_[-1]) if len(fa.loglike_) else np.nan,
        n_iter=int(fa.n_iter_),
    )


def regression_scores(indicators: np.ndarray, loadings: np.ndarray) -> np.ndarray:
    """
    Thurstone regression factor scores S = Z R^-1 F.

    Scores use the standardized indicators Z, the scale on which the
    correlation-based loadings and weights are defined.

    Raises:
        FactorExtractionFailure: If the correlation matrix is singular
    """
    Z = _zscore(np.asarray(indicators, dtype=float))
    R = np.corrcoef(Z, rowvar=False)
    try:
        W = np.linalg.solve(R, loadings)
    except np.linalg.LinAlgError as e:
        raise FactorExtractionFailure(f"Singular correlation matrix: {e}") from e
    return Z @ W


def single_item_score(indicators: np.ndarray, item_index: int = C.SINGLE_ITEM_INDEX) -> np.ndarray:
    return np.asarray(indicators)[:, item_index]


def sum_score(indicators: np.ndarray) -> np.ndarray:
    """Row-wise mean of indicators (scale-equivalent to the sum)."""
    return np.asarray(indicators).mean(axis=1)


def factor_score(indicators: np.ndarray) -> np.ndarray:
    solution = extract_loadings(indicators)
    return regression_scores(indicators, solution.loadings)


def build_scores(replicate: Replicate,
                 item_index: int = C.SINGLE_ITEM_INDEX,
                 failures: Optional[Dict[str, str]] = None) -> Dict[str, Optional[np.ndarray]]:
    """
    Standardized single-item, sum and factor scores for one replicate.

    A failed factor extraction is logged and returned as None for
    'factor_score'; the other two scores are unaffected. When a `failures`
    dict is given, the failure reason is stored under the method name.

    Returns:
        Dict with keys 'single_item', 'sum_score', 'factor_score'
    """
    X = replicate.indicators
    scores = {
        C.METHOD_SINGLE_ITEM: standardize(single_item_score(X, item_index)),
        C.METHOD_SUM_SCORE: standardize(sum_score(X)),
    }

    try:
        scores[C.METHOD_FACTOR_SCORE] = standardize(factor_score(X))
    except (FactorExtractionFailure, DegenerateInputError) as e:
        logger.debug(f"{replicate.condition.key} rep {replicate.replicate_index}: {e}")
        scores[C.METHOD_FACTOR_SCORE] = None
        if failures is not None:
            failures[C.METHOD_FACTOR_SCORE] = str(e)

    return scores
