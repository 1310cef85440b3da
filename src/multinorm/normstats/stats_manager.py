"""
Save and load the statistics of fitted normalizers.

This module handles serialization and deserialization of normalizer
statistics to/from disk.
"""

from pathlib import Path
from typing import Dict, List, Optional
import json

import torch

from ..errors import NotFittedError
from ..strategies import get_strategy
from .accumulator import StatsSet

FEATURE_STATS_FILE = 'feature_stats.pt'
LABEL_STATS_FILE = 'label_stats.pt'
METADATA_FILE = 'metadata.json'


def get_stats_directory() -> Path:
    """
    Get the default directory for storing normalizer statistics.

    Returns:
        Path to the saved_stats directory under the current working directory
    """
    stats_dir = Path.cwd() / 'saved_stats'
    stats_dir.mkdir(parents=True, exist_ok=True)
    return stats_dir


def _stats_to_list(stats: StatsSet) -> List[Dict[str, torch.Tensor]]:
    return [snapshot.to_dict() for snapshot in stats]


def _stats_from_list(values: List[Dict[str, torch.Tensor]], stats_type) -> StatsSet:
    return StatsSet(stats_type.from_dict(entry) for entry in values)


def save_normalizer_stats(
    normalizer: "MultiArrayNormalizer",
    name: str,
    output_dir: Optional[Path] = None,
    verbose: bool = True
) -> Path:
    """
    Save the statistics of a fitted normalizer to disk.

    The statistics are saved in a directory named after the normalizer, containing:
    - feature_stats.pt: list with one dict of tensors per feature array
    - label_stats.pt: same for label arrays (only if labels were fit)
    - metadata.json: strategy name and parameters, label toggle and slot counts

    Args:
        normalizer: Fitted MultiArrayNormalizer
        name: Name of the saved statistics (subdirectory name)
        output_dir: Directory to save stats (defaults to ./saved_stats/)
        verbose: Whether to print save location

    Returns:
        Path to the saved stats directory

    Raises:
        NotFittedError: If the normalizer has not been fit

    Example:
        >>> normalizer.fit(train_source)
        >>> save_path = save_normalizer_stats(normalizer, "regression_v1")
    """
    if not normalizer.is_fit():
        raise NotFittedError("Cannot save statistics of a normalizer that has not been fit")

    if output_dir is None:
        output_dir = get_stats_directory()
    else:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

    stats_dir = output_dir / name
    stats_dir.mkdir(parents=True, exist_ok=True)

    feature_path = stats_dir / FEATURE_STATS_FILE
    label_path = stats_dir / LABEL_STATS_FILE
    metadata_path = stats_dir / METADATA_FILE

    torch.save(_stats_to_list(normalizer.feature_stats), feature_path)

    has_labels = normalizer.has_label_stats()
    if has_labels:
        torch.save(_stats_to_list(normalizer.label_stats), label_path)
    elif label_path.exists():
        # Stale labels from an earlier save would be picked up on load
        label_path.unlink()

    metadata = {
        'name': name,
        'normalizer': type(normalizer).__name__,
        'strategy': normalizer.strategy.name,
        'strategy_params': normalizer.strategy.config(),
        'fit_labels': normalizer.is_fit_label(),
        'has_label_stats': has_labels,
        'num_inputs': normalizer.num_inputs(),
        'num_outputs': normalizer.num_outputs() if has_labels else None,
    }

    with open(metadata_path, 'w') as f:
        json.dump(metadata, f, indent=2)

    if verbose:
        print(f"\n{'='*80}")
        print(f"Saved normalizer statistics to: {stats_dir}")
        print(f"  {FEATURE_STATS_FILE}: {feature_path}")
        if has_labels:
            print(f"  {LABEL_STATS_FILE}:   {label_path}")
        print(f"  {METADATA_FILE}:     {metadata_path}")
        print(f"{'='*80}")

    return stats_dir


def load_normalizer_stats(
    name: str,
    stats_dir: Optional[Path] = None,
    verbose: bool = True
) -> "MultiArrayNormalizer":
    """
    Load a fitted normalizer from disk.

    Args:
        name: Name the statistics were saved under
        stats_dir: Directory containing saved stats (defaults to ./saved_stats/)
        verbose: Whether to print load information

    Returns:
        Fitted normalizer with the saved strategy, label toggle and statistics

    Raises:
        FileNotFoundError: If statistics for this name are not found

    Example:
        >>> normalizer = load_normalizer_stats("regression_v1")
        >>> normalizer.pre_process(batch)
    """
    # Import here to avoid circular imports
    from ..normalizer.multi_normalizer import restore_normalizer

    if stats_dir is None:
        stats_dir = get_stats_directory()
    else:
        stats_dir = Path(stats_dir)

    normalizer_dir = stats_dir / name
    if not normalizer_dir.exists():
        raise FileNotFoundError(
            f"Normalizer statistics not found for '{name}' at {normalizer_dir}. "
            f"Please fit a normalizer and save it first using save_normalizer_stats()."
        )

    feature_path = normalizer_dir / FEATURE_STATS_FILE
    label_path = normalizer_dir / LABEL_STATS_FILE
    metadata_path = normalizer_dir / METADATA_FILE

    if not feature_path.exists() or not metadata_path.exists():
        raise FileNotFoundError(
            f"Incomplete statistics files in {normalizer_dir}. "
            f"Expected {FEATURE_STATS_FILE} and {METADATA_FILE}"
        )

    with open(metadata_path, 'r') as f:
        metadata = json.load(f)

    strategy = get_strategy(metadata['strategy'], **metadata.get('strategy_params', {}))

    feature_stats = _stats_from_list(
        torch.load(feature_path, map_location='cpu', weights_only=True),
        strategy.stats_type
    )

    label_stats = None
    if metadata.get('has_label_stats', False):
        if not label_path.exists():
            raise FileNotFoundError(
                f"Metadata in {normalizer_dir} lists label statistics but {LABEL_STATS_FILE} is missing"
            )
        label_stats = _stats_from_list(
            torch.load(label_path, map_location='cpu', weights_only=True),
            strategy.stats_type
        )

    normalizer = restore_normalizer(
        strategy,
        feature_stats,
        label_stats,
        fit_labels=metadata.get('fit_labels', label_stats is not None)
    )

    if verbose:
        print(f"\n{'='*80}")
        print(f"Loaded normalizer statistics for: {name}")
        print(f"  Location: {normalizer_dir}")
        print(f"  Strategy: {strategy!r}")
        print(f"  Feature arrays: {len(feature_stats)}")
        print(f"  Label arrays: {len(label_stats) if label_stats is not None else 'not normalized'}")
        print(f"{'='*80}")

    return normalizer


def stats_exist(name: str, stats_dir: Optional[Path] = None) -> bool:
    """
    Check if normalizer statistics exist for a given name.

    Example:
        >>> if not stats_exist("regression_v1"):
        ...     normalizer.fit(train_source)
        ...     save_normalizer_stats(normalizer, "regression_v1")
    """
    if stats_dir is None:
        stats_dir = get_stats_directory()
    else:
        stats_dir = Path(stats_dir)

    normalizer_dir = stats_dir / name
    if not normalizer_dir.exists():
        return False

    return (normalizer_dir / FEATURE_STATS_FILE).exists() and (normalizer_dir / METADATA_FILE).exists()
