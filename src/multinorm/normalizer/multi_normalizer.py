"""
Normalizers for batches with several feature and label arrays.

MultiArrayNormalizer orchestrates when and over which arrays a normalization
strategy runs: it fits one set of statistics per feature slot (and, if
enabled, per label slot) over a single batch or a whole batch source, and
then uses them to normalize (pre_process) and de-normalize (revert) batches.
The statistics themselves are computed by the strategy.

Typical usage:
    >>> normalizer = MultiNormalizerStandardize()
    >>> normalizer.fit_label(True)           # regression: normalize targets too
    >>> normalizer.fit(train_source)          # one pass over all training batches
    >>> normalizer.pre_process(batch)         # in place
    >>> predictions = normalizer.revert_label(model_output, None, 0)
"""

from typing import Generic, Iterator, List, Optional, Sequence, Union

import torch
from tqdm import tqdm

from ..data.batch_sources import BatchSource, to_multi_dataset
from ..data.multi_dataset import MultiDataSet
from ..errors import EmptyFitError, InvalidArgumentError, NotFittedError
from ..normstats.accumulator import SlotAccumulators, StatsSet
from ..strategies.base import NormalizationStrategy, StatsT
from ..strategies.min_max import MinMaxStats, MinMaxStrategy
from ..strategies.standardize import DistributionStats, StandardizeStrategy


class MultiArrayNormalizer(Generic[StatsT]):
    """
    Fits, applies and reverts a normalization strategy over multi-array batches.

    State:
        - feature statistics: one snapshot per feature slot (None until fit)
        - label statistics: one snapshot per label slot, only present if
          labels were enabled when the last fit completed
        - fit_labels toggle: whether labels are fitted, transformed and reverted

    A fit replaces both statistic sets at once, and only after the whole pass
    succeeded; a failed fit leaves the previous state untouched.

    Not thread-safe: fit, pre_process and revert must not run concurrently on
    the same instance. Use separate instances for parallel fits.

    Attributes:
        strategy: The normalization strategy used for all slots
    """

    def __init__(self, strategy: NormalizationStrategy, fit_labels: bool = False):
        if strategy is None:
            raise InvalidArgumentError("strategy must not be None")
        self.strategy = strategy
        self._fit_labels = bool(fit_labels)
        self._feature_stats: Optional[StatsSet] = None
        self._label_stats: Optional[StatsSet] = None

    # ------------------------------------------------------------------
    # Configuration and state
    # ------------------------------------------------------------------

    def fit_label(self, enabled: bool) -> None:
        """
        Enable or disable normalization of labels. Default is disabled.

        Takes effect on the next fit(); statistics that were already computed
        are not changed.
        """
        self._fit_labels = bool(enabled)

    def is_fit_label(self) -> bool:
        """Whether labels are normalized too (mostly used for regression)."""
        return self._fit_labels

    def is_fit(self) -> bool:
        return self._feature_stats is not None

    def has_label_stats(self) -> bool:
        """Whether the last fit also computed label statistics."""
        return self._label_stats is not None

    def _assert_is_fit(self) -> None:
        if not self.is_fit():
            raise NotFittedError(
                f"{type(self).__name__} has not been fit yet, call fit() first"
            )

    @property
    def feature_stats(self) -> StatsSet:
        self._assert_is_fit()
        return self._feature_stats

    @property
    def label_stats(self) -> StatsSet:
        self._assert_is_fit()
        if self._label_stats is None:
            raise NotFittedError(
                "No label statistics available: labels were not fitted. "
                "Call fit_label(True) before fit() to normalize labels"
            )
        return self._label_stats

    def get_feature_stats(self, index: int) -> StatsT:
        return _slot_stats(self.feature_stats, index, 'feature')

    def get_label_stats(self, index: int) -> StatsT:
        return _slot_stats(self.label_stats, index, 'label')

    def num_inputs(self) -> int:
        """Number of feature arrays the normalizer was fit on."""
        return len(self.feature_stats)

    def num_outputs(self) -> int:
        """Number of label arrays the normalizer was fit on."""
        return len(self.label_stats)

    # ------------------------------------------------------------------
    # Fitting
    # ------------------------------------------------------------------

    def fit(self, data: Union[MultiDataSet, BatchSource], verbose: bool = False) -> None:
        """
        Compute statistics from a single batch or from every batch of a source.

        A batch source is reset and traversed from its first batch on every
        call. All batches are folded into one running set of accumulators and
        finalized once at the end, so the statistics cover all batches. Label
        statistics are gathered in the same pass when fit_labels is enabled.

        Args:
            data: A MultiDataSet, or a batch source (reset/has_next/next)
            verbose: Show a progress bar and print a summary

        Raises:
            EmptyFitError: The source produced no batches
            SlotCountMismatchError: Batches disagree on the number of feature or label arrays
            InvalidArgumentError: data is None or of an unsupported type
        """
        if data is None:
            raise InvalidArgumentError("Cannot fit on None")

        if isinstance(data, MultiDataSet):
            batches = [data]
            total = 1
        elif isinstance(data, BatchSource):
            batches = _iterate_source(data)
            total = _source_length(data)
        else:
            raise InvalidArgumentError(
                f"fit() expects a MultiDataSet or a batch source, got {type(data).__name__}"
            )

        fit_labels = self._fit_labels
        feature_accumulators = SlotAccumulators(self.strategy, kind='feature')
        label_accumulators = SlotAccumulators(self.strategy, kind='label')

        if verbose:
            batches = tqdm(batches, desc="Fitting normalizer statistics", total=total)

        num_batches = 0
        for batch in batches:
            self._fit_partial(to_multi_dataset(batch), feature_accumulators, label_accumulators, fit_labels)
            num_batches += 1

            if verbose:
                batches.set_postfix({'batches': num_batches})

        if num_batches == 0:
            raise EmptyFitError("Batch source produced no batches, statistics cannot be determined")

        feature_stats = feature_accumulators.finalize()
        label_stats = label_accumulators.finalize() if fit_labels else None

        self._feature_stats = feature_stats
        self._label_stats = label_stats

        if verbose:
            self._print_summary(num_batches)

    def _fit_partial(
        self,
        batch: MultiDataSet,
        feature_accumulators: SlotAccumulators,
        label_accumulators: SlotAccumulators,
        fit_labels: bool
    ) -> None:
        feature_accumulators.accumulate(batch.features, batch.features_masks)

        if fit_labels:
            label_accumulators.accumulate(batch.labels, batch.labels_masks)
        else:
            # Label slot counts are validated even when labels are not fitted
            label_accumulators.ensure_slots(batch.num_label_arrays())

    def _print_summary(self, num_batches: int) -> None:
        print(f"\n{'='*80}")
        print(f"Fitted {type(self).__name__} ({self.strategy!r}):")
        print(f"  Batches: {num_batches}")
        print(f"  Feature arrays: {len(self._feature_stats)}")
        if self._label_stats is not None:
            print(f"  Label arrays: {len(self._label_stats)}")
        else:
            print(f"  Label arrays: not normalized")
        print(f"{'='*80}")

    # ------------------------------------------------------------------
    # Applying and reverting
    # ------------------------------------------------------------------

    def pre_process(self, batch: MultiDataSet) -> MultiDataSet:
        """
        Normalize a batch in place.

        Every feature array is transformed with the statistics of its slot.
        Label arrays are transformed only if fit_labels is enabled.

        Raises:
            NotFittedError: The normalizer (or, with fit_labels, its labels) was not fit
        """
        if batch is None:
            raise InvalidArgumentError("Cannot pre-process None")

        feature_stats = self.feature_stats
        for i in range(batch.num_feature_arrays()):
            stats = _slot_stats(feature_stats, i, 'feature')
            batch.set_features(i, self.strategy.transform(batch.get_features(i), batch.get_features_mask(i), stats))

        if self._fit_labels:
            label_stats = self.label_stats
            for i in range(batch.num_label_arrays()):
                stats = _slot_stats(label_stats, i, 'label')
                batch.set_labels(i, self.strategy.transform(batch.get_labels(i), batch.get_labels_mask(i), stats))

        return batch

    def __call__(self, batch: MultiDataSet) -> MultiDataSet:
        return self.pre_process(batch)

    def revert(self, batch: MultiDataSet) -> MultiDataSet:
        """Undo pre_process() on a batch, in place."""
        if batch is None:
            raise InvalidArgumentError("Cannot revert None")

        self.revert_features(batch.features, batch.features_masks)
        self.revert_labels(batch.labels, batch.labels_masks)
        return batch

    def revert_features(
        self,
        features: Sequence[torch.Tensor],
        masks: Optional[Sequence[Optional[torch.Tensor]]] = None
    ) -> List[torch.Tensor]:
        """
        Undo the normalization of several feature arrays.

        Args:
            features: Feature arrays, one per slot (a list is updated in place)
            masks: Optional masks, one per slot (entries may be None)

        Returns:
            The reverted arrays
        """
        if features is None:
            raise InvalidArgumentError("features must not be None")
        _check_mask_count(features, masks, 'feature')

        reverted = [
            self.revert_feature(array, None if masks is None else masks[i], i)
            for i, array in enumerate(features)
        ]
        if isinstance(features, list):
            features[:] = reverted
        return reverted

    def revert_feature(self, array: torch.Tensor, mask: Optional[torch.Tensor], index: int) -> torch.Tensor:
        """Undo the normalization of the feature array in slot `index`."""
        if array is None:
            raise InvalidArgumentError("array must not be None")
        return self.strategy.revert_transform(array, mask, self.get_feature_stats(index))

    def revert_labels(
        self,
        labels: Sequence[torch.Tensor],
        masks: Optional[Sequence[Optional[torch.Tensor]]] = None
    ) -> List[torch.Tensor]:
        """
        Undo the normalization of several label arrays.

        If label normalization is disabled this is a no-op and the arrays are
        returned unchanged. It can therefore also be called unconditionally to
        revert the output of a regression network.
        """
        if labels is None:
            raise InvalidArgumentError("labels must not be None")
        _check_mask_count(labels, masks, 'label')

        reverted = [
            self.revert_label(array, None if masks is None else masks[i], i)
            for i, array in enumerate(labels)
        ]
        if isinstance(labels, list):
            labels[:] = reverted
        return reverted

    def revert_label(self, array: torch.Tensor, mask: Optional[torch.Tensor], index: int) -> torch.Tensor:
        """
        Undo the normalization of the label array in slot `index`.

        No-op (returns the array unchanged) when label normalization is disabled.
        """
        if array is None:
            raise InvalidArgumentError("array must not be None")
        if not self._fit_labels:
            return array
        return self.strategy.revert_transform(array, mask, self.get_label_stats(index))

    def __repr__(self):
        state = 'fit' if self.is_fit() else 'not fit'
        return f"{type(self).__name__}(strategy={self.strategy!r}, fit_labels={self._fit_labels}, {state})"


class MultiNormalizerStandardize(MultiArrayNormalizer[DistributionStats]):
    """
    Standardizes every feature (and optionally label) array to zero mean and
    unit variance per feature.
    """

    def __init__(self, fit_labels: bool = False):
        super().__init__(StandardizeStrategy(), fit_labels=fit_labels)

    def get_feature_mean(self, input: int) -> torch.Tensor:
        return self.get_feature_stats(input).mean

    def get_feature_std(self, input: int) -> torch.Tensor:
        return self.get_feature_stats(input).std

    def get_label_mean(self, output: int) -> torch.Tensor:
        return self.get_label_stats(output).mean

    def get_label_std(self, output: int) -> torch.Tensor:
        return self.get_label_stats(output).std


class MultiNormalizerMinMaxScaler(MultiArrayNormalizer[MinMaxStats]):
    """
    Scales every feature (and optionally label) array to [min_range, max_range]
    per feature. Default range is [0, 1].
    """

    def __init__(self, min_range: float = 0.0, max_range: float = 1.0, fit_labels: bool = False):
        super().__init__(MinMaxStrategy(min_range, max_range), fit_labels=fit_labels)

    @property
    def target_min(self) -> float:
        return self.strategy.min_range

    @property
    def target_max(self) -> float:
        return self.strategy.max_range

    def get_feature_min(self, input: int) -> torch.Tensor:
        return self.get_feature_stats(input).lower

    def get_feature_max(self, input: int) -> torch.Tensor:
        return self.get_feature_stats(input).upper

    def get_label_min(self, output: int) -> torch.Tensor:
        return self.get_label_stats(output).lower

    def get_label_max(self, output: int) -> torch.Tensor:
        return self.get_label_stats(output).upper


def create_normalizer(strategy: NormalizationStrategy, fit_labels: bool = False) -> MultiArrayNormalizer:
    """Create the normalizer class matching a strategy instance."""
    if isinstance(strategy, StandardizeStrategy):
        return MultiNormalizerStandardize(fit_labels=fit_labels)
    if isinstance(strategy, MinMaxStrategy):
        return MultiNormalizerMinMaxScaler(strategy.min_range, strategy.max_range, fit_labels=fit_labels)
    return MultiArrayNormalizer(strategy, fit_labels=fit_labels)


def restore_normalizer(
    strategy: NormalizationStrategy,
    feature_stats: StatsSet,
    label_stats: Optional[StatsSet] = None,
    fit_labels: Optional[bool] = None
) -> MultiArrayNormalizer:
    """
    Rebuild a fitted normalizer from previously computed statistics.

    Args:
        strategy: Strategy the statistics were computed with
        feature_stats: One snapshot per feature slot
        label_stats: One snapshot per label slot, or None if labels were not fit
        fit_labels: Label toggle; defaults to whether label_stats were given
    """
    if feature_stats is None:
        raise InvalidArgumentError("feature_stats must not be None")
    if fit_labels is None:
        fit_labels = label_stats is not None

    normalizer = create_normalizer(strategy, fit_labels=fit_labels)
    normalizer._feature_stats = StatsSet(feature_stats)
    normalizer._label_stats = None if label_stats is None else StatsSet(label_stats)
    return normalizer


def _iterate_source(source: BatchSource) -> Iterator[MultiDataSet]:
    source.reset()
    while source.has_next():
        yield source.next()


def _slot_stats(stats: StatsSet, index: int, kind: str):
    if not 0 <= index < len(stats):
        raise InvalidArgumentError(
            f"No statistics for {kind} array {index}: the normalizer was fit on "
            f"{len(stats)} {kind} arrays"
        )
    return stats[index]


def _source_length(source: BatchSource) -> Optional[int]:
    # Loaders over an IterableDataset define __len__ but raise TypeError
    try:
        return len(source)
    except TypeError:
        return None


def _check_mask_count(arrays: Sequence[torch.Tensor], masks, kind: str) -> None:
    if masks is not None and len(masks) != len(arrays):
        raise InvalidArgumentError(
            f"Got {len(masks)} {kind} masks for {len(arrays)} {kind} arrays"
        )
