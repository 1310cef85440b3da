"""
Restartable batch sources for fitting normalizers over many batches.

A batch source is a lazy sequence of MultiDataSet batches with an internal
cursor. It supports reset() back to the first batch plus a
has_next()/next() protocol, so every fit starts a fresh traversal instead of
continuing where a previous one stopped. Sources are also iterable: iterating
resets the source and yields every batch.
"""

from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Protocol, Union, runtime_checkable

import torch

from ..errors import InvalidArgumentError
from .multi_dataset import MultiDataSet


@runtime_checkable
class BatchSource(Protocol):
    """Interface consumed by MultiArrayNormalizer.fit()."""

    def reset(self) -> None:
        ...

    def has_next(self) -> bool:
        ...

    def next(self) -> MultiDataSet:
        ...


def _slot_list(value) -> Optional[List[Optional[torch.Tensor]]]:
    if value is None:
        return None
    if isinstance(value, torch.Tensor):
        return [value]
    return list(value)


def to_multi_dataset(item) -> MultiDataSet:
    """
    Convert a loader item into a MultiDataSet.

    Supported formats:
        - MultiDataSet (returned as is)
        - dict with keys 'features', 'labels' and optionally
          'features_masks', 'labels_masks'
        - (features, labels) or (features, labels, features_masks, labels_masks)

    Each entry may be a single tensor (one slot) or a sequence of tensors.
    """
    if isinstance(item, MultiDataSet):
        return item

    if isinstance(item, dict):
        if 'features' not in item:
            raise InvalidArgumentError(f"Batch dict has no 'features' entry (keys: {sorted(item)})")
        return MultiDataSet(
            features=_slot_list(item['features']),
            labels=_slot_list(item.get('labels')),
            features_masks=_slot_list(item.get('features_masks')),
            labels_masks=_slot_list(item.get('labels_masks')),
        )

    if isinstance(item, (tuple, list)) and len(item) in (2, 4):
        features, labels = item[0], item[1]
        features_masks, labels_masks = (item[2], item[3]) if len(item) == 4 else (None, None)
        return MultiDataSet(
            features=_slot_list(features),
            labels=_slot_list(labels),
            features_masks=_slot_list(features_masks),
            labels_masks=_slot_list(labels_masks),
        )

    raise InvalidArgumentError(
        f"Cannot convert {type(item).__name__} to a MultiDataSet. Expected a MultiDataSet, "
        f"a dict or a (features, labels[, features_masks, labels_masks]) tuple"
    )


class BaseBatchSource:
    """Iteration helpers shared by the concrete sources."""

    def reset(self) -> None:
        raise NotImplementedError

    def has_next(self) -> bool:
        raise NotImplementedError

    def next(self) -> MultiDataSet:
        raise NotImplementedError

    def __iter__(self) -> Iterator[MultiDataSet]:
        self.reset()
        while self.has_next():
            yield self.next()


class ListBatchSource(BaseBatchSource):
    """
    In-memory batch source.

    Example:
        >>> source = ListBatchSource([batch_1, batch_2])
        >>> normalizer.fit(source)
    """

    def __init__(self, batches: Iterable[MultiDataSet]):
        self.batches = [to_multi_dataset(batch) for batch in batches]
        self._cursor = 0

    def reset(self) -> None:
        self._cursor = 0

    def has_next(self) -> bool:
        return self._cursor < len(self.batches)

    def next(self) -> MultiDataSet:
        if not self.has_next():
            raise StopIteration("No more batches, call reset() to start over")
        batch = self.batches[self._cursor]
        self._cursor += 1
        return batch

    def __len__(self) -> int:
        return len(self.batches)


class DataLoaderBatchSource(BaseBatchSource):
    """
    Batch source backed by a torch DataLoader (or any re-iterable).

    reset() creates a fresh iterator over the loader, so shuffling loaders
    give a new order on every fit while still covering every batch.

    Example:
        >>> loader = DataLoader(dataset, batch_size=32)
        >>> normalizer.fit(DataLoaderBatchSource(loader))
    """

    _EMPTY = object()

    def __init__(self, loader: Iterable):
        self.loader = loader
        self._iterator: Optional[Iterator] = None
        self._pending = self._EMPTY

    def reset(self) -> None:
        self._iterator = iter(self.loader)
        self._pending = self._EMPTY

    def has_next(self) -> bool:
        if self._iterator is None:
            self.reset()
        if self._pending is self._EMPTY:
            self._pending = next(self._iterator, self._EMPTY)
        return self._pending is not self._EMPTY

    def next(self) -> MultiDataSet:
        if not self.has_next():
            raise StopIteration("No more batches, call reset() to start over")
        item, self._pending = self._pending, self._EMPTY
        return to_multi_dataset(item)

    def __len__(self) -> int:
        """Number of batches; TypeError if the loader has no length (e.g. an IterableDataset)."""
        return len(self.loader)


class TensorFileBatchSource(BaseBatchSource):
    """
    Lazily loads one batch per file from a directory.

    Each file is a torch.save'd dict (see save_batch()). Only the current
    batch is held in memory, so statistics can be fitted over datasets that
    do not fit in memory.

    Attributes:
        directory (Path): Directory containing the batch files
        files (List[Path]): Batch files in sorted order
    """

    def __init__(self, directory: Union[str, Path], pattern: str = '*.pt'):
        self.directory = Path(directory)
        if not self.directory.is_dir():
            raise FileNotFoundError(f"Batch directory not found: {self.directory}")
        self.files = sorted(self.directory.glob(pattern))
        self._cursor = 0

    def reset(self) -> None:
        self._cursor = 0

    def has_next(self) -> bool:
        return self._cursor < len(self.files)

    def next(self) -> MultiDataSet:
        if not self.has_next():
            raise StopIteration("No more batches, call reset() to start over")
        path = self.files[self._cursor]
        self._cursor += 1
        return load_batch(path)

    def __len__(self) -> int:
        return len(self.files)


def save_batch(batch: MultiDataSet, path: Union[str, Path]) -> Path:
    """Save a batch in the format read by TensorFileBatchSource."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    torch.save(
        {
            'features': batch.features,
            'labels': batch.labels,
            'features_masks': batch.features_masks,
            'labels_masks': batch.labels_masks,
        },
        path
    )
    return path


def load_batch(path: Union[str, Path]) -> MultiDataSet:
    """Load a batch written by save_batch()."""
    return to_multi_dataset(torch.load(path, map_location='cpu', weights_only=True))
