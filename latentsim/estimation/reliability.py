"""
Internal Consistency Reliability
================================

Reliability of a set of indicators for one replicate.

Metrics:
- Standardized Cronbach's alpha (primary, reported per condition)
- Raw (covariance-based) Cronbach's alpha
- Composite reliability from standardized loadings

References:
- Cronbach, L.J. (1951). Coefficient alpha and the internal structure of tests.
- Hair, J.F. et al. (2019). Multivariate Data Analysis (8th ed.)
"""

import numpy as np

from latentsim.exceptions import DegenerateInputError


def _check_indicators(indicators: np.ndarray) -> np.ndarray:
    X = np.asarray(indicators, dtype=float)
    if X.ndim != 2 or X.shape[1] < 2:
        raise DegenerateInputError("Reliability needs at least 2 indicators")
    if X.shape[0] < 2:
        raise DegenerateInputError("Reliability needs at least 2 observations")
    item_vars = X.var(axis=0, ddof=1)
    if not np.all(np.isfinite(item_vars)) or np.any(item_vars <= 0):
        raise DegenerateInputError("Indicator with zero variance")
    return X


def reliability(indicators: np.ndarray) -> float:
    """
    Standardized Cronbach's alpha.

    Formula:
        alpha_std = k * r_bar / (1 + (k - 1) * r_bar)

    where r_bar is the mean off-diagonal inter-item correlation. Computed on
    the correlation matrix, so it does not depend on indicator scales.

    Args:
        indicators: (N, k) indicator matrix

    Returns:
        Standardized alpha

    Raises:
        DegenerateInputError: If k < 2 or any indicator has zero variance
    """
    X = _check_indicators(indicators)
    k = X.shape[1]
    R = np.corrcoef(X, rowvar=False)
    r_bar = (R.sum() - k) / (k * (k - 1))
    return float(k * r_bar / (1 + (k - 1) * r_bar))


def cronbach_alpha_raw(indicators: np.ndarray) -> float:
    """
    Covariance-based Cronbach's alpha.

    Formula:
        alpha = (k / (k-1)) * (1 - sum(var(X_i)) / var(X_total))
    """
    X = _check_indicators(indicators)
    k = X.shape[1]
    item_vars = X.var(axis=0, ddof=1)
    total_var = X.sum(axis=1).var(ddof=1)
    if total_var <= 0:
        raise DegenerateInputError("Total score has zero variance")
    return float((k / (k - 1)) * (1 - item_vars.sum() / total_var))


def composite_reliability(loadings: np.ndarray) -> float:
    """
    Composite reliability (omega) from standardized loadings.

    Formula:
        CR = (sum lambda)^2 / [(sum lambda)^2 + sum(1 - lambda^2)]
    """
    lambdas = np.asarray(loadings, dtype=float)
    if lambdas.size < 2:
        raise DegenerateInputError("Composite reliability needs at least 2 loadings")
    sum_lambda = lambdas.sum()
    sum_error = (1 - lambdas ** 2).sum()
    return float(sum_lambda ** 2 / (sum_lambda ** 2 + sum_error))
