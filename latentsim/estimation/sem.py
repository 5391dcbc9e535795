"""
Structural Equation Model Fit
=============================

Joint measurement + structural model for one replicate, fitted with semopy:

    eta =~ x1 + x2 + ... + xk      (measurement model)
    y ~ eta                         (structural path)

semopy identifies the factor by fixing the first loading to 1. The
structural coefficient is reported in the unit-factor-variance metric
(free loadings, Var(eta) = 1):

    beta = b * sqrt(psi)

where b is the raw path and psi the estimated factor variance. Since beta
is a function of two estimated parameters, its standard error comes from
the delta method over their joint covariance (inverse expected Fisher
information):

    g = (sqrt(psi), b / (2 sqrt(psi)))
    SE(beta)^2 = g' Cov(b, psi) g

Fits that do not produce a usable structural estimate raise
SemConvergenceFailure: solver non-convergence, library errors, undefined or
implausibly large standard errors, improper solutions (a residual or factor
variance on the solver's zero bound), or an exceeded wall-clock budget.

Budgeted fits run on a daemon thread. semopy cannot be interrupted, so a fit
that overruns its budget is abandoned: it no longer blocks the replicate,
and being a daemon it does not hold up worker or interpreter shutdown, but
it keeps its CPU share until it returns on its own.
"""

import threading
import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from semopy import Model

from latentsim import constants as C
from latentsim.exceptions import SemConvergenceFailure
from latentsim.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class SemFit:
    """Structural estimate from a converged SEM fit."""
    coefficient: float
    std_error: float
    raw_coefficient: float
    raw_std_error: float
    factor_variance: float
    loadings: Dict[str, float] = field(default_factory=dict)
    n_iter: Optional[int] = None
    objective: Optional[float] = None


def sem_description(indicators: List[str], outcome: str = C.OUTCOME_NAME,
                    latent: str = C.LATENT_NAME) -> str:
    """
    semopy model description for a one-factor model with a structural path.

    Example:
        >>> print(sem_description(['x1', 'x2', 'x3']))
        eta =~ x1 + x2 + x3
        y ~ eta
    """
    return f"{latent} =~ {' + '.join(indicators)}\n{outcome} ~ {latent}"


def _param(params: pd.DataFrame, lval: str, op: str, rval: str) -> pd.Series:
    row = params[(params['lval'] == lval) & (params['op'] == op) & (params['rval'] == rval)]
    if len(row) != 1:
        raise SemConvergenceFailure(f"Parameter {lval} {op} {rval} missing from fit")
    return row.iloc[0]


def improper_variances(params: pd.DataFrame,
                       floor: float = C.SEM_VARIANCE_FLOOR) -> List[str]:
    """
    Variables whose (residual or factor) variance estimate is improper.

    semopy keeps variances >= 0, so a Heywood case shows up as an estimate
    sitting on the bound rather than a negative one.

    Args:
        params: Output of Model.inspect() with numeric 'Estimate'
        floor: Smallest admissible variance

    Returns:
        Names of variables with variance <= floor (or undefined)
    """
    variances = params[(params['op'] == '~~') & (params['lval'] == params['rval'])]
    estimates = pd.to_numeric(variances['Estimate'], errors='coerce')
    bad = variances[~(estimates > floor)]
    return list(bad['lval'])


def _active_index(model: Model, lval: str, rval: str, matrices: Sequence[str]) -> int:
    """Position of a free parameter in the model's parameter vector."""
    active = [name for name, p in model.parameters.items() if p.active]
    for matrix in matrices:
        mx = getattr(model, f'mx_{matrix}', None)
        names = getattr(model, f'names_{matrix}', None)
        if mx is None or names is None:
            continue
        rows, cols = (list(n) for n in names)
        if lval not in rows or rval not in cols:
            continue
        target = (rows.index(lval), cols.index(rval))
        for i, name in enumerate(active):
            for loc in model.parameters[name].locations:
                if loc.matrix is mx and tuple(loc.indices) in (target, target[::-1]):
                    return i
    raise SemConvergenceFailure(f"No free parameter for {lval} / {rval}")


def delta_std_error(b: float, psi: float, cov: np.ndarray) -> float:
    """
    Delta-method SE of beta = b * sqrt(psi).

    Args:
        b: Raw structural path
        psi: Factor variance
        cov: 2x2 sampling covariance of (b, psi)
    """
    root = np.sqrt(psi)
    grad = np.array([root, b / (2 * root)])
    var = float(grad @ np.asarray(cov, dtype=float) @ grad)
    return np.sqrt(var) if var > 0 else np.nan


def _fit(data: pd.DataFrame, indicators: List[str], outcome: str) -> SemFit:
    desc = sem_description(indicators, outcome)
    model = Model(desc)

    try:
        result = model.fit(data[indicators + [outcome]], obj=C.SEM_OBJECTIVE)
        params = model.inspect()
    except Exception as e:
        raise SemConvergenceFailure(f"semopy error: {type(e).__name__}: {e}") from e

    if hasattr(result, 'success') and not result.success:
        message = getattr(result, 'message', 'no message')
        raise SemConvergenceFailure(f"Optimizer did not converge: {message}")

    params = params.copy()
    params['Estimate'] = pd.to_numeric(params['Estimate'], errors='coerce')
    params['Std. Err'] = pd.to_numeric(params['Std. Err'], errors='coerce')

    path = _param(params, outcome, '~', C.LATENT_NAME)
    psi = float(_param(params, C.LATENT_NAME, '~~', C.LATENT_NAME)['Estimate'])
    b = float(path['Estimate'])
    se_b = float(path['Std. Err'])

    improper = improper_variances(params)
    if improper:
        raise SemConvergenceFailure(
            f"Improper solution: variance on the zero bound for {', '.join(improper)}"
        )
    if not np.isfinite(b):
        raise SemConvergenceFailure("Undefined structural coefficient")
    if not np.isfinite(se_b) or se_b <= 0:
        raise SemConvergenceFailure("Undefined structural standard error")

    try:
        i_b = _active_index(model, outcome, C.LATENT_NAME, ('beta', 'lambda'))
        i_psi = _active_index(model, C.LATENT_NAME, C.LATENT_NAME, ('psi',))
        cov = model.calc_fim(inverse=True)[1]
    except (np.linalg.LinAlgError, ValueError, AttributeError) as e:
        raise SemConvergenceFailure(f"Information matrix unavailable: {e}") from e

    idx = [i_b, i_psi]
    se = delta_std_error(b, psi, cov[np.ix_(idx, idx)])
    if not np.isfinite(se) or se <= 0:
        raise SemConvergenceFailure("Undefined structural standard error")
    if se > C.SEM_MAX_STD_ERROR:
        raise SemConvergenceFailure(f"Implausible structural standard error ({se:.3g})")

    scale = np.sqrt(psi)
    loading_rows = params[(params['op'] == '~') & (params['rval'] == C.LATENT_NAME)
                          & (params['lval'] != outcome)]
    loadings = {row['lval']: float(row['Estimate']) * scale
                for _, row in loading_rows.iterrows()}

    return SemFit(
        coefficient=b * scale,
        std_error=se,
        raw_coefficient=b,
        raw_std_error=se_b,
        factor_variance=psi,
        loadings=loadings,
        n_iter=getattr(result, 'n_it', None),
        objective=getattr(result, 'fun', None),
    )


def _fit_with_budget(data: pd.DataFrame, indicators: List[str], outcome: str,
                     timeout: float) -> SemFit:
    outcome_box = {}

    def target():
        try:
            outcome_box['fit'] = _fit(data, indicators, outcome)
        except Exception as e:
            outcome_box['error'] = e

    worker = threading.Thread(target=target, name='sem-fit', daemon=True)
    worker.start()
    worker.join(timeout)

    if worker.is_alive():
        logger.debug(f"SEM fit abandoned after {timeout:.1f}s")
        raise SemConvergenceFailure(f"SEM fit exceeded {timeout:.1f}s budget")
    if 'error' in outcome_box:
        raise outcome_box['error']
    return outcome_box['fit']


def fit_sem(data: pd.DataFrame, indicators: List[str], outcome: str = C.OUTCOME_NAME,
            timeout: Optional[float] = None) -> SemFit:
    """
    Fit the one-factor SEM and extract the structural coefficient.

    Args:
        data: DataFrame with indicator and outcome columns
        indicators: Indicator column names
        outcome: Outcome column name
        timeout: Wall-clock budget in seconds (None = unbounded)

    Returns:
        SemFit

    Raises:
        SemConvergenceFailure: On any fit failure, including timeout
    """
    # Filters are set on the calling thread; the fit thread only reads them
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        if timeout is None:
            return _fit(data, indicators, outcome)
        return _fit_with_budget(data, indicators, outcome, timeout)
