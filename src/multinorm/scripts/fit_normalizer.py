"""
Fit a normalizer over a directory of batch files and save its statistics.

This script:
1. Loads the normalizer configuration
2. Fits the normalizer over every batch (one pass, progress bar)
3. Saves the statistics to disk (skipped if they already exist)

Usage:
    python -m multinorm.scripts.fit_normalizer --config config/normalizer_config.yml
    multinorm-fit --config config/normalizer_config.yml --data-dir data/batches --force-recompute
"""

import argparse
from pathlib import Path
from typing import Optional

from ..normstats import load_normalizer_stats, save_normalizer_stats, stats_exist
from ..data.batch_sources import TensorFileBatchSource
from ..utils.config_utils import (
    create_batch_source_from_config,
    create_normalizer_from_config,
    get_normalizer_name,
    get_stats_dir,
    load_config,
)


def main(argv: Optional[list] = None):
    parser = argparse.ArgumentParser(
        description='Fit normalizer statistics over training batches'
    )
    parser.add_argument(
        '--config',
        type=str,
        default='config/normalizer_config.yml',
        help='Path to configuration file'
    )
    parser.add_argument(
        '--name',
        type=str,
        default=None,
        help='Name to save the statistics under (overrides config file)'
    )
    parser.add_argument(
        '--data-dir',
        type=str,
        default=None,
        help='Directory with batch files (overrides config file)'
    )
    parser.add_argument(
        '--stats-dir',
        type=str,
        default=None,
        help='Directory to save statistics to (overrides config file)'
    )
    parser.add_argument(
        '--force-recompute',
        action='store_true',
        help='Force recompute even if statistics already exist'
    )

    args = parser.parse_args(argv)

    config = load_config(args.config)
    name = args.name if args.name else get_normalizer_name(config)
    stats_dir = Path(args.stats_dir) if args.stats_dir else get_stats_dir(config)

    print("=" * 80)
    print(f"Fitting Normalizer Statistics for: {name}")
    print("=" * 80)

    if stats_exist(name, stats_dir=stats_dir) and not args.force_recompute:
        print(f"\n✓ Statistics already exist for '{name}'")
        print("  Use --force-recompute to recompute")
        print("\nLoading existing statistics...")
        normalizer = load_normalizer_stats(name, stats_dir=stats_dir, verbose=True)
    else:
        if args.data_dir:
            source = TensorFileBatchSource(args.data_dir)
        else:
            source = create_batch_source_from_config(config)
        print(f"\nLoading batches from: {source.directory}")
        print(f"✓ Found {len(source)} batch files")

        normalizer = create_normalizer_from_config(config)
        print(f"\nFitting {normalizer!r}...")
        normalizer.fit(source, verbose=True)

        save_normalizer_stats(normalizer, name, output_dir=stats_dir, verbose=True)
        print(f"\n✓ Statistics saved successfully!")

    print("\n" + "=" * 80)
    print("Statistics Summary")
    print("=" * 80)
    print(f"Name: {name}")
    print(f"Strategy: {normalizer.strategy!r}")
    print(f"Feature arrays: {normalizer.num_inputs()}")
    if normalizer.has_label_stats():
        print(f"Label arrays: {normalizer.num_outputs()}")
    else:
        print(f"Label arrays: not normalized")

    print("\n" + "=" * 80)
    print("Complete!")
    print("=" * 80)
    return normalizer


if __name__ == "__main__":
    main()
