"""
Study Configuration Schema
==========================

This module defines the configuration format for the latent proxy
Monte Carlo study. It provides:
1. Schema definition with validation
2. A settings dataclass with reference-study defaults
3. Loading from JSON with defaults applied

Configuration Structure:
------------------------
{
    "study": {
        "n_replications": int,     # Replicates per condition (1000 reference)
        "seed": int,               # Base seed; unit seeds derive from it
        "n_workers": int,          # Parallel worker processes (1 = sequential)
        "sem_timeout": float,      # Wall-clock budget per SEM fit, null disables
        "single_item_index": int   # Indicator used as the single-item proxy
    },
    "grid": {
        "mean_loadings": list,     # e.g. [0.25, 0.5, 0.8]
        "n_items": list,           # e.g. [3, 6]
        "effect_sizes": list,      # e.g. [0.15, 0.3, 0.5]
        "sample_sizes": list,      # e.g. [100, 500, 1000]
        "factor_variance": float   # fixed at 1.0
    },
    "output": {
        "directory": str,          # Checkpoint / results directory
        "save_replicates": bool    # Also write per-replicate records
    }
}
"""

import json
import warnings
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, List, Optional, Any

from latentsim import constants as C
from latentsim.exceptions import ConfigError


# =============================================================================
# SETTINGS
# =============================================================================

@dataclass
class StudySettings:
    """Resolved settings for one study run."""
    n_replications: int = C.N_REPLICATIONS_DEFAULT
    seed: int = C.SEED_DEFAULT
    n_workers: int = 1
    sem_timeout: Optional[float] = C.SEM_TIMEOUT_DEFAULT
    single_item_index: int = C.SINGLE_ITEM_INDEX

    mean_loadings: List[float] = field(default_factory=lambda: list(C.MEAN_LOADINGS))
    n_items: List[int] = field(default_factory=lambda: list(C.N_ITEMS))
    effect_sizes: List[float] = field(default_factory=lambda: list(C.EFFECT_SIZES))
    sample_sizes: List[int] = field(default_factory=lambda: list(C.SAMPLE_SIZES))
    factor_variance: float = C.FACTOR_VARIANCE

    output_dir: str = C.RESULTS_DIR
    save_replicates: bool = False

    @property
    def n_conditions(self) -> int:
        return (len(self.mean_loadings) * len(self.n_items)
                * len(self.effect_sizes) * len(self.sample_sizes))


# =============================================================================
# SCHEMA VALIDATION
# =============================================================================

@dataclass
class ValidationResult:
    """Result of configuration validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _check_list(values: Any, name: str, errors: List[str], kind=float,
                lower: Optional[float] = None, upper: Optional[float] = None,
                lower_inclusive: bool = True) -> None:
    if not isinstance(values, list) or len(values) == 0:
        errors.append(f"grid.{name} must be a non-empty list")
        return
    for v in values:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            errors.append(f"grid.{name}: {v!r} is not numeric")
            continue
        if kind is int and int(v) != v:
            errors.append(f"grid.{name}: {v!r} must be an integer")
        if lower is not None:
            if (lower_inclusive and v < lower) or (not lower_inclusive and v <= lower):
                errors.append(f"grid.{name}: {v!r} out of range")
        if upper is not None and v > upper:
            errors.append(f"grid.{name}: {v!r} out of range")


def validate_config(config: Dict) -> ValidationResult:
    """
    Validate configuration against schema.

    Args:
        config: Configuration dictionary

    Returns:
        ValidationResult with validity status and any errors/warnings
    """
    errors = []
    warnings_list = []

    if not isinstance(config, dict):
        return ValidationResult(False, ["Configuration must be a JSON object"], [])

    unknown = set(config) - {'study', 'grid', 'output'}
    for key in sorted(unknown):
        warnings_list.append(f"Unknown top-level key ignored: {key}")

    study = config.get('study', {})
    if 'study' not in config:
        warnings_list.append("study section not specified, using defaults")

    n_rep = study.get('n_replications', C.N_REPLICATIONS_DEFAULT)
    if not isinstance(n_rep, int) or isinstance(n_rep, bool) or n_rep < 1:
        errors.append("study.n_replications must be a positive integer")

    if 'seed' not in study:
        warnings_list.append(f"study.seed not specified, using default {C.SEED_DEFAULT}")
    elif not isinstance(study['seed'], int) or study['seed'] < 0:
        errors.append("study.seed must be a non-negative integer")

    n_workers = study.get('n_workers', 1)
    if not isinstance(n_workers, int) or n_workers < 1:
        errors.append("study.n_workers must be >= 1")

    timeout = study.get('sem_timeout', C.SEM_TIMEOUT_DEFAULT)
    if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
        errors.append("study.sem_timeout must be positive or null")

    grid = config.get('grid', {})
    if 'grid' not in config:
        warnings_list.append("grid section not specified, using reference design")

    if 'mean_loadings' in grid:
        _check_list(grid['mean_loadings'], 'mean_loadings', errors,
                    lower=0.0, upper=C.MAX_LOADING, lower_inclusive=False)
    if 'n_items' in grid:
        _check_list(grid['n_items'], 'n_items', errors, kind=int, lower=2)
    if 'effect_sizes' in grid:
        _check_list(grid['effect_sizes'], 'effect_sizes', errors)
    if 'sample_sizes' in grid:
        _check_list(grid['sample_sizes'], 'sample_sizes', errors, kind=int, lower=10)

    fv = grid.get('factor_variance', C.FACTOR_VARIANCE)
    if not isinstance(fv, (int, float)) or fv <= 0:
        errors.append("grid.factor_variance must be positive")

    item_index = study.get('single_item_index', C.SINGLE_ITEM_INDEX)
    if not isinstance(item_index, int) or item_index < 0:
        errors.append("study.single_item_index must be a non-negative integer")
    elif isinstance(grid.get('n_items'), list) and grid['n_items']:
        if all(isinstance(k, int) for k in grid['n_items']) and item_index >= min(grid['n_items']):
            errors.append("study.single_item_index exceeds the smallest item count")

    return ValidationResult(
        is_valid=len(errors) == 0,
        errors=errors,
        warnings=warnings_list
    )


# =============================================================================
# CONFIG LOADING
# =============================================================================

def settings_from_dict(config: Dict) -> StudySettings:
    """
    Build settings from a configuration dictionary, applying defaults.

    Raises:
        ConfigError: If configuration is invalid
    """
    result = validate_config(config)

    if result.warnings:
        for w in result.warnings:
            warnings.warn(w, UserWarning)

    if not result.is_valid:
        raise ConfigError("Invalid configuration:\n" + "\n".join(result.errors))

    defaults = StudySettings()
    study = config.get('study', {})
    grid = config.get('grid', {})
    output = config.get('output', {})

    return StudySettings(
        n_replications=study.get('n_replications', defaults.n_replications),
        seed=study.get('seed', defaults.seed),
        n_workers=study.get('n_workers', defaults.n_workers),
        sem_timeout=study.get('sem_timeout', defaults.sem_timeout),
        single_item_index=study.get('single_item_index', defaults.single_item_index),
        mean_loadings=[float(v) for v in grid.get('mean_loadings', defaults.mean_loadings)],
        n_items=[int(v) for v in grid.get('n_items', defaults.n_items)],
        effect_sizes=[float(v) for v in grid.get('effect_sizes', defaults.effect_sizes)],
        sample_sizes=[int(v) for v in grid.get('sample_sizes', defaults.sample_sizes)],
        factor_variance=float(grid.get('factor_variance', defaults.factor_variance)),
        output_dir=output.get('directory', defaults.output_dir),
        save_replicates=bool(output.get('save_replicates', defaults.save_replicates)),
    )


def load_settings(config_path: Optional[Path] = None) -> StudySettings:
    """
    Load and validate settings from a JSON file.

    Args:
        config_path: Path to the JSON config; None returns reference defaults

    Returns:
        StudySettings
    """
    if config_path is None:
        return StudySettings()

    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        try:
            config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Malformed JSON in {config_path}: {e}") from e

    return settings_from_dict(config)


def settings_to_dict(settings: StudySettings) -> Dict[str, Any]:
    """Serialize settings back into the nested config layout."""
    flat = asdict(settings)
    return {
        'study': {
            'n_replications': flat['n_replications'],
            'seed': flat['seed'],
            'n_workers': flat['n_workers'],
            'sem_timeout': flat['sem_timeout'],
            'single_item_index': flat['single_item_index'],
        },
        'grid': {
            'mean_loadings': flat['mean_loadings'],
            'n_items': flat['n_items'],
            'effect_sizes': flat['effect_sizes'],
            'sample_sizes': flat['sample_sizes'],
            'factor_variance': flat['factor_variance'],
        },
        'output': {
            'directory': flat['output_dir'],
            'save_replicates': flat['save_replicates'],
        },
    }


def validate_settings(settings: StudySettings) -> StudySettings:
    """
    Check settings that were modified after loading (e.g. CLI overrides).

    Raises:
        ConfigError: If the resolved settings are invalid
    """
    result = validate_config(settings_to_dict(settings))
    if not result.is_valid:
        raise ConfigError("Invalid settings:\n" + "\n".join(result.errors))
    return settings
