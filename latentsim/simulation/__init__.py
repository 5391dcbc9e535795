"""
Simulation Module
=================

Data generation for the latent proxy study.

Components:
- conditions.py: Factorial design enumeration (54 reference conditions)
- generator.py: One-factor DGP with a structural path to the outcome
"""

from .conditions import Condition, enumerate_conditions, conditions_from_settings
from .generator import Replicate, generate, standardize, derive_seed, draw_loadings

__all__ = [
    'Condition',
    'enumerate_conditions',
    'conditions_from_settings',
    'Replicate',
    'generate',
    'standardize',
    'derive_seed',
    'draw_loadings',
]
