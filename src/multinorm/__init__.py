"""
multinorm: fit, apply and revert normalization over batches with several
feature and label arrays.
"""

from .errors import (
    NormalizerError,
    NotFittedError,
    EmptyFitError,
    SlotCountMismatchError,
    InvalidArgumentError,
)
from .data import MultiDataSet, ListBatchSource, DataLoaderBatchSource, TensorFileBatchSource
from .strategies import StandardizeStrategy, MinMaxStrategy, get_strategy
from .normstats import StatsAccumulator, StatsSet, save_normalizer_stats, load_normalizer_stats
from .normalizer import MultiArrayNormalizer, MultiNormalizerStandardize, MultiNormalizerMinMaxScaler

__version__ = '0.1.0'

__all__ = [
    'NormalizerError',
    'NotFittedError',
    'EmptyFitError',
    'SlotCountMismatchError',
    'InvalidArgumentError',
    'MultiDataSet',
    'ListBatchSource',
    'DataLoaderBatchSource',
    'TensorFileBatchSource',
    'StandardizeStrategy',
    'MinMaxStrategy',
    'get_strategy',
    'StatsAccumulator',
    'StatsSet',
    'save_normalizer_stats',
    'load_normalizer_stats',
    'MultiArrayNormalizer',
    'MultiNormalizerStandardize',
    'MultiNormalizerMinMaxScaler',
]
