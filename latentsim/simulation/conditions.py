"""
Factorial Design
================

Enumerates the cells of the simulation grid:

    mean loading x number of items x effect size x sample size

The reference design is 3 x 2 x 3 x 3 = 54 conditions. Each condition
carries its position in the grid (used for seed derivation) and a stable
string key used to regroup results regardless of completion order.
"""

from dataclasses import dataclass, asdict
from itertools import product
from typing import Dict, List, Optional, Any

from latentsim import constants as C


@dataclass(frozen=True)
class Condition:
    """One cell of the factorial grid."""
    mean_loading: float
    n_items: int
    effect_size: float
    sample_size: int
    factor_variance: float = C.FACTOR_VARIANCE
    index: int = 0

    @property
    def key(self) -> str:
        """Stable grouping key, e.g. 'L0.80_I6_E0.50_N1000'."""
        return (f"L{self.mean_loading:.2f}_I{self.n_items}"
                f"_E{self.effect_size:.2f}_N{self.sample_size}")

    @property
    def true_effect(self) -> float:
        """Structural effect of the standardized factor on the outcome."""
        return self.effect_size

    def to_dict(self) -> Dict[str, Any]:
        record = asdict(self)
        record['condition'] = self.key
        return record


def enumerate_conditions(mean_loadings: Optional[List[float]] = None,
                         n_items: Optional[List[int]] = None,
                         effect_sizes: Optional[List[float]] = None,
                         sample_sizes: Optional[List[int]] = None,
                         factor_variance: float = C.FACTOR_VARIANCE) -> List[Condition]:
    """
    Enumerate the Cartesian product of design factors.

    Order is fixed (loading, items, effect, sample size) so that
    `Condition.index` is reproducible across runs.

    Args:
        mean_loadings: Mean item loadings (default 0.25, 0.5, 0.8)
        n_items: Numbers of indicators (default 3, 6)
        effect_sizes: True structural effects (default 0.15, 0.3, 0.5)
        sample_sizes: Sample sizes (default 100, 500, 1000)
        factor_variance: Latent factor variance

    Returns:
        List of Condition objects
    """
    mean_loadings = C.MEAN_LOADINGS if mean_loadings is None else mean_loadings
    n_items = C.N_ITEMS if n_items is None else n_items
    effect_sizes = C.EFFECT_SIZES if effect_sizes is None else effect_sizes
    sample_sizes = C.SAMPLE_SIZES if sample_sizes is None else sample_sizes

    cells = product(mean_loadings, n_items, effect_sizes, sample_sizes)
    return [
        Condition(
            mean_loading=float(loading),
            n_items=int(k),
            effect_size=float(effect),
            sample_size=int(n),
            factor_variance=float(factor_variance),
            index=i,
        )
        for i, (loading, k, effect, n) in enumerate(cells)
    ]


def conditions_from_settings(settings) -> List[Condition]:
    """Enumerate the grid described by a StudySettings object."""
    return enumerate_conditions(
        mean_loadings=settings.mean_loadings,
        n_items=settings.n_items,
        effect_sizes=settings.effect_sizes,
        sample_sizes=settings.sample_sizes,
        factor_variance=settings.factor_variance,
    )
