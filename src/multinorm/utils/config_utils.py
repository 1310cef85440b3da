"""
Utility functions for loading normalizer configuration.

This module reads the YAML configuration file and builds the normalizer and
the training batch source it describes.

Expected layout (all keys optional except where noted):

    normalizer:
      name: example_normalizer
      strategy: standardize        # standardize | min_max
      fit_labels: true
      strategy_params:             # passed to the strategy constructor
        min_range: 0.0
        max_range: 1.0
    data:
      data_dir: data/batches       # required for create_batch_source_from_config
      pattern: "*.pt"
    stats:
      stats_dir: saved_stats
"""

from pathlib import Path
from typing import Any, Dict, Union

import yaml

from ..data.batch_sources import TensorFileBatchSource
from ..errors import InvalidArgumentError
from ..normalizer.multi_normalizer import MultiArrayNormalizer, create_normalizer
from ..strategies import get_strategy

DEFAULT_CONFIG_PATH = "config/normalizer_config.yml"


def load_config(config_path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary (empty if the file is empty)
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_file, 'r') as f:
        config = yaml.safe_load(f)

    return config or {}


def create_normalizer_from_config(config: Dict[str, Any]) -> MultiArrayNormalizer:
    """
    Create an (unfit) normalizer from the 'normalizer' section of a config.

    Example:
        >>> config = load_config("config/normalizer_config.yml")
        >>> normalizer = create_normalizer_from_config(config)
        >>> normalizer.fit(create_batch_source_from_config(config))
    """
    normalizer_config = config.get('normalizer', {}) or {}

    strategy_name = normalizer_config.get('strategy', 'standardize')
    strategy_params = normalizer_config.get('strategy_params', {}) or {}
    fit_labels = bool(normalizer_config.get('fit_labels', False))

    try:
        strategy = get_strategy(strategy_name, **strategy_params)
    except TypeError as e:
        raise InvalidArgumentError(
            f"Invalid strategy_params for strategy '{strategy_name}': {strategy_params}"
        ) from e

    return create_normalizer(strategy, fit_labels=fit_labels)


def create_batch_source_from_config(config: Dict[str, Any]) -> TensorFileBatchSource:
    """Create the training batch source from the 'data' section of a config."""
    data_config = config.get('data', {}) or {}

    data_dir = data_config.get('data_dir')
    if data_dir is None:
        raise InvalidArgumentError("Config has no 'data.data_dir' entry")

    return TensorFileBatchSource(data_dir, pattern=data_config.get('pattern', '*.pt'))


def get_normalizer_name(config: Dict[str, Any]) -> str:
    return (config.get('normalizer', {}) or {}).get('name', 'normalizer')


def get_stats_dir(config: Dict[str, Any]) -> Path:
    return Path((config.get('stats', {}) or {}).get('stats_dir', 'saved_stats'))
