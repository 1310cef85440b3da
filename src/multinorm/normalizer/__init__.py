"""Multi-array normalizers."""

from .multi_normalizer import (
    MultiArrayNormalizer,
    MultiNormalizerStandardize,
    MultiNormalizerMinMaxScaler,
    create_normalizer,
    restore_normalizer,
)

__all__ = [
    'MultiArrayNormalizer',
    'MultiNormalizerStandardize',
    'MultiNormalizerMinMaxScaler',
    'create_normalizer',
    'restore_normalizer',
]
