"""
Validation Module
=================

Monte Carlo study driver and aggregation.

Components:
- monte_carlo.py: grid driver (sequential or process pool) with resume
- aggregate.py: bias, RMSE, quantile / normal / empirical coverage
- checkpoint.py: CSV checkpoints of finished conditions
"""

from .aggregate import (
    ConditionSummary,
    MethodSummary,
    summarize_condition,
    compute_bias,
    compute_rmse,
    compute_coverage,
    critical_value,
    quantile_coverage,
    normal_coverage,
    bias_by_loading,
)
from .monte_carlo import MonteCarloStudy, StudyResult, run_study

__all__ = [
    'ConditionSummary',
    'MethodSummary',
    'summarize_condition',
    'compute_bias',
    'compute_rmse',
    'compute_coverage',
    'critical_value',
    'quantile_coverage',
    'normal_coverage',
    'bias_by_loading',
    'MonteCarloStudy',
    'StudyResult',
    'run_study',
]
