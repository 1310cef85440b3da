"""
Normalization strategy interface.

A strategy defines *how* statistics are computed and applied; the normalizers
only decide *when* and *over which arrays* that happens. Each strategy has two
associated types:
    - StateT: mutable accumulation state, alive only during one fit pass
    - StatsT: immutable statistics snapshot produced by finalize()

Incremental fitting over many batches is only exact when the strategy's
statistic can be merged with an order-independent reduction (sums, sums of
squares, min, max). Strategies with non-decomposable statistics (e.g. exact
percentiles) cannot support exact incremental fits.
"""

from typing import Any, Dict, Optional, Protocol, Type, TypeVar

import torch

StateT = TypeVar('StateT')
StatsT = TypeVar('StatsT')


class NormalizationStrategy(Protocol[StateT, StatsT]):
    """Capability set consumed by the normalizers."""

    name: str
    stats_type: Type[StatsT]

    def new_accumulator(self) -> StateT:
        """Create an empty accumulation state."""
        ...

    def accumulate(self, state: StateT, array: torch.Tensor, mask: Optional[torch.Tensor]) -> StateT:
        """Fold one array (and optional mask) into the state and return it."""
        ...

    def finalize(self, state: StateT) -> StatsT:
        """Build an immutable statistics snapshot. Raises EmptyFitError if no data was seen."""
        ...

    def transform(self, array: torch.Tensor, mask: Optional[torch.Tensor], stats: StatsT) -> torch.Tensor:
        """Normalize an array in place and return it."""
        ...

    def revert_transform(self, array: torch.Tensor, mask: Optional[torch.Tensor], stats: StatsT) -> torch.Tensor:
        """Undo transform() in place and return the array."""
        ...

    def config(self) -> Dict[str, Any]:
        """Constructor parameters, used when persisting a fitted normalizer."""
        ...
