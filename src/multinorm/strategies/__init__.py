"""Normalization strategies: how statistics are computed and applied."""

from ..errors import InvalidArgumentError
from .base import NormalizationStrategy
from .min_max import MinMaxStats, MinMaxStrategy
from .standardize import DistributionStats, StandardizeStrategy

STRATEGIES = {
    StandardizeStrategy.name: StandardizeStrategy,
    MinMaxStrategy.name: MinMaxStrategy,
}


def get_strategy(name: str, **params) -> NormalizationStrategy:
    """
    Create a strategy from its registered name.

    Args:
        name: Strategy name ('standardize' or 'min_max')
        **params: Constructor parameters (e.g. min_range/max_range for 'min_max')

    Returns:
        Strategy instance

    Example:
        >>> strategy = get_strategy('min_max', min_range=-1.0, max_range=1.0)
    """
    if name not in STRATEGIES:
        raise InvalidArgumentError(
            f"Unknown normalization strategy '{name}'. Available: {sorted(STRATEGIES)}"
        )
    return STRATEGIES[name](**params)


__all__ = [
    'NormalizationStrategy',
    'StandardizeStrategy',
    'DistributionStats',
    'MinMaxStrategy',
    'MinMaxStats',
    'STRATEGIES',
    'get_strategy',
]
