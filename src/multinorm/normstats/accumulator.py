"""
Incremental statistics bookkeeping.

A StatsAccumulator folds arrays into a strategy's accumulation state and
finalizes it into an immutable snapshot. SlotAccumulators keeps one
accumulator per array slot for a single fit pass, and StatsSet holds the
finalized snapshots.

Slot identity is positional: the i-th feature (or label) array of every batch
is assumed to describe the same quantity. Only the number of slots can be
validated, and it is: every batch in a fit pass must present the same count.
"""

from typing import Generic, Iterable, Iterator, List, Optional, Sequence

import torch

from ..errors import EmptyFitError, SlotCountMismatchError
from ..strategies.base import NormalizationStrategy, StateT, StatsT


class StatsAccumulator(Generic[StateT, StatsT]):
    """
    Accumulates statistics for one array slot.

    Example:
        >>> acc = StatsAccumulator(StandardizeStrategy())
        >>> acc.accumulate(batch_1_features)
        >>> acc.accumulate(batch_2_features)
        >>> stats = acc.finalize()
    """

    def __init__(self, strategy: NormalizationStrategy[StateT, StatsT]):
        self.strategy = strategy
        self._state = strategy.new_accumulator()
        self.num_batches = 0

    def accumulate(self, array: torch.Tensor, mask: Optional[torch.Tensor] = None) -> None:
        self._state = self.strategy.accumulate(self._state, array, mask)
        self.num_batches += 1

    def finalize(self) -> StatsT:
        if self.num_batches == 0:
            raise EmptyFitError("No data was added, statistics cannot be determined")
        return self.strategy.finalize(self._state)


class StatsSet(Generic[StatsT]):
    """Immutable, index-addressed collection of statistics snapshots (one per slot)."""

    def __init__(self, stats: Iterable[StatsT]):
        self._stats = tuple(stats)

    def __len__(self) -> int:
        return len(self._stats)

    def __getitem__(self, index: int) -> StatsT:
        return self._stats[index]

    def __iter__(self) -> Iterator[StatsT]:
        return iter(self._stats)

    def __eq__(self, other):
        if not isinstance(other, StatsSet):
            return NotImplemented
        return len(self) == len(other) and all(a == b for a, b in zip(self, other))

    def __repr__(self):
        return f"StatsSet({list(self._stats)!r})"


class SlotAccumulators(Generic[StateT, StatsT]):
    """
    Per-slot accumulators for one fit pass.

    Accumulators are created lazily from the first batch; the slot count is
    fixed from then on.
    """

    def __init__(self, strategy: NormalizationStrategy[StateT, StatsT], kind: str = 'array'):
        self.strategy = strategy
        self.kind = kind
        self._accumulators: Optional[List[StatsAccumulator]] = None

    @property
    def num_slots(self) -> Optional[int]:
        return None if self._accumulators is None else len(self._accumulators)

    def ensure_slots(self, num_slots: int) -> None:
        """Create the accumulators on first use, then check the slot count."""
        if self._accumulators is None:
            self._accumulators = [StatsAccumulator(self.strategy) for _ in range(num_slots)]
        elif num_slots != len(self._accumulators):
            raise SlotCountMismatchError(
                f"Batch has {num_slots} {self.kind} arrays but earlier batches in this fit "
                f"had {len(self._accumulators)}"
            )

    def accumulate(
        self,
        arrays: Sequence[torch.Tensor],
        masks: Optional[Sequence[Optional[torch.Tensor]]] = None
    ) -> None:
        self.ensure_slots(len(arrays))
        for i, (accumulator, array) in enumerate(zip(self._accumulators, arrays)):
            accumulator.accumulate(array, None if masks is None else masks[i])

    def finalize(self) -> StatsSet:
        if self._accumulators is None:
            raise EmptyFitError(f"No batches were seen, {self.kind} statistics cannot be determined")
        return StatsSet(accumulator.finalize() for accumulator in self._accumulators)
