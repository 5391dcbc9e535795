"""
Error taxonomy for the latent proxy study.

Every per-replicate failure is expressed as one of these exceptions and is
isolated to the replicate/method that raised it.
"""


class LatentSimError(Exception):
    """Base class for all study errors."""


class ConfigError(LatentSimError):
    """Invalid study configuration."""


class GenerationError(LatentSimError):
    """
    Invalid generation parameters (e.g. a loading draw with |lambda| >= 1).

    Recovered inside the data generator by re-drawing or clamping; never
    surfaces to the grid loop.
    """


class DegenerateInputError(LatentSimError):
    """Indicator or score data too degenerate to analyse (k < 2, zero variance)."""


class EstimationFailure(LatentSimError):
    """An estimation routine could not produce a usable estimate."""


class FactorExtractionFailure(EstimationFailure):
    """Factor analysis failed or returned unusable loadings."""


class SemConvergenceFailure(EstimationFailure):
    """SEM fit did not converge, produced invalid statistics, or timed out."""
