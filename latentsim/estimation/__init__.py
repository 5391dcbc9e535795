"""
Estimation Module
=================

Per-replicate estimation of the four competing methods.

Components:
- scores.py: single-item, sum and regression factor scores
- reliability.py: standardized Cronbach's alpha and related coefficients
- sem.py: joint SEM fit (semopy) behind a narrow fit contract
- runner.py: two-step OLS, SEM runner and the replicate unit of work
"""

from .scores import build_scores, extract_loadings, regression_scores, FactorSolution
from .reliability import reliability, cronbach_alpha_raw, composite_reliability
from .sem import fit_sem, sem_description, SemFit
from .runner import Estimate, ReplicateResult, run_two_step, run_sem, run_replicate

__all__ = [
    'build_scores',
    'extract_loadings',
    'regression_scores',
    'FactorSolution',
    'reliability',
    'cronbach_alpha_raw',
    'composite_reliability',
    'fit_sem',
    'sem_description',
    'SemFit',
    'Estimate',
    'ReplicateResult',
    'run_two_step',
    'run_sem',
    'run_replicate',
]
