"""
latentsim: Monte Carlo comparison of latent construct proxies
=============================================================

Compares four ways of carrying a latent factor into a regression:
single indicator, sum score, factor score and full SEM, across a factorial
grid of loading strength, number of items, effect size and sample size.
"""

__version__ = '1.0.0'

from latentsim.config import StudySettings, load_settings
from latentsim.simulation.conditions import Condition, enumerate_conditions
from latentsim.simulation.generator import Replicate, generate, derive_seed
from latentsim.estimation.runner import Estimate, ReplicateResult, run_replicate
from latentsim.validation.aggregate import ConditionSummary, summarize_condition
from latentsim.validation.monte_carlo import MonteCarloStudy, StudyResult, run_study

__all__ = [
    'StudySettings',
    'load_settings',
    'Condition',
    'enumerate_conditions',
    'Replicate',
    'generate',
    'derive_seed',
    'Estimate',
    'ReplicateResult',
    'run_replicate',
    'ConditionSummary',
    'summarize_condition',
    'MonteCarloStudy',
    'StudyResult',
    'run_study',
]
