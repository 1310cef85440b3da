"""Configuration utilities."""

from .config_utils import (
    load_config,
    create_normalizer_from_config,
    create_batch_source_from_config,
    get_normalizer_name,
    get_stats_dir,
)

__all__ = [
    'load_config',
    'create_normalizer_from_config',
    'create_batch_source_from_config',
    'get_normalizer_name',
    'get_stats_dir',
]
