"""
Centralized Constants for the Latent Proxy Study
=================================================

This module defines all magic numbers and constants used across the
simulation study. Import from here to ensure consistency and avoid
hardcoded values.

Usage:
    from latentsim.constants import INTERCEPT, CONFIDENCE_LEVEL
    # or
    import latentsim.constants as C
    y = C.INTERCEPT + effect * factor
"""

# =============================================================================
# DATA GENERATING PROCESS
# =============================================================================

# Outcome intercept: y = INTERCEPT + effect * std(factor) + e
INTERCEPT = 2.0

# Per-replicate loading draws: lambda_j ~ Normal(mean_loading, LOADING_SD)
LOADING_SD = 0.1

# Largest admissible |loading|; keeps 1 - lambda^2 strictly positive
MAX_LOADING = 0.99

# Re-draw attempts before a loading is clamped to +/- MAX_LOADING
MAX_LOADING_REDRAWS = 100

# Latent factor variance (fixed across the grid)
FACTOR_VARIANCE = 1.0


# =============================================================================
# FACTORIAL DESIGN (reference study)
# =============================================================================

MEAN_LOADINGS = [0.25, 0.5, 0.8]
N_ITEMS = [3, 6]
EFFECT_SIZES = [0.15, 0.3, 0.5]
SAMPLE_SIZES = [100, 500, 1000]

N_REPLICATIONS_DEFAULT = 1000
N_REPLICATIONS_QUICK = 50
SAMPLE_SIZES_QUICK = [100, 500]

# Random seed for reproducibility
SEED_DEFAULT = 1234


# =============================================================================
# METHODS
# =============================================================================

METHOD_SINGLE_ITEM = 'single_item'
METHOD_SUM_SCORE = 'sum_score'
METHOD_FACTOR_SCORE = 'factor_score'
METHOD_SEM = 'sem'

# Two-step methods regress the outcome on an observed score
TWO_STEP_METHODS = [METHOD_SINGLE_ITEM, METHOD_SUM_SCORE, METHOD_FACTOR_SCORE]
METHODS = TWO_STEP_METHODS + [METHOD_SEM]

# Column selected for the single-item proxy (first indicator)
SINGLE_ITEM_INDEX = 0


# =============================================================================
# INFERENCE
# =============================================================================

# Nominal level for all three coverage intervals (z = 1.96, 2.5/97.5 percentiles)
CONFIDENCE_LEVEL = 0.95


# =============================================================================
# ESTIMATION DEFAULTS
# =============================================================================

# Wall-clock budget for a single SEM fit (seconds); None disables
SEM_TIMEOUT_DEFAULT = 60.0

# semopy objective (Wishart maximum likelihood)
SEM_OBJECTIVE = 'MLW'

# semopy bounds variances at 0; estimates at or below this floor are improper
SEM_VARIANCE_FLOOR = 1e-3

# Largest plausible SE of the structural path (standardized outcome metric)
SEM_MAX_STD_ERROR = 1.0

# Latent variable and outcome names used in the SEM description
LATENT_NAME = 'eta'
OUTCOME_NAME = 'y'
INDICATOR_PREFIX = 'x'

# Iteration cap for scikit-learn FactorAnalysis
FA_MAX_ITER = 1000
FA_TOL = 1e-4


# =============================================================================
# FILE PATHS (relative to project root)
# =============================================================================

CONFIG_PATH = 'config/simulation_config.json'
RESULTS_DIR = 'results/simulation'

SUMMARY_FILE = 'summaries.csv'
SUMMARY_WIDE_FILE = 'summaries_wide.csv'
REPLICATES_FILE = 'replicates.csv'
META_FILE = 'study_meta.json'


def indicator_names(n_items: int) -> list:
    """Column names for n indicators: x1..xk."""
    return [f'{INDICATOR_PREFIX}{j}' for j in range(1, n_items + 1)]
