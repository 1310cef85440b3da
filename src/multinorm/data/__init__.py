"""Batch containers and restartable batch sources."""

from .multi_dataset import MultiDataSet
from .batch_sources import (
    BatchSource,
    ListBatchSource,
    DataLoaderBatchSource,
    TensorFileBatchSource,
    to_multi_dataset,
    save_batch,
    load_batch,
)

__all__ = [
    'MultiDataSet',
    'BatchSource',
    'ListBatchSource',
    'DataLoaderBatchSource',
    'TensorFileBatchSource',
    'to_multi_dataset',
    'save_batch',
    'load_batch',
]
