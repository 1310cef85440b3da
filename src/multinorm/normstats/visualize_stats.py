"""
Visualize the statistics of a saved normalizer.

For every feature (and label) array, the per-feature statistic vectors
(mean/std for standardization, lower/upper for min-max scaling) are drawn as
bar charts side by side. Plots are saved next to the statistics unless an
output directory is given.

Usage:
    python -m multinorm.normstats.visualize_stats --name regression_v1
    python -m multinorm.normstats.visualize_stats --name regression_v1 --stats-dir saved_stats --output-dir plots
"""

from pathlib import Path
import argparse
from typing import Dict, Optional

import matplotlib.pyplot as plt
import numpy as np
import torch

from .stats_manager import get_stats_directory, load_normalizer_stats


def plot_slot_statistics(
    values: Dict[str, torch.Tensor],
    slot_name: str,
    output_path: Path
) -> Path:
    """
    Plot the statistic vectors of one array slot side by side.

    Args:
        values: Statistic name -> per-feature vector (e.g. {'mean': ..., 'std': ...})
        slot_name: Title prefix, e.g. 'feature_0'
        output_path: Path to save the plot

    Returns:
        Path of the saved figure
    """
    n_stats = len(values)
    fig, axes = plt.subplots(1, n_stats, figsize=(6 * n_stats, 4), squeeze=False)

    for ax, (stat_name, vector) in zip(axes[0], values.items()):
        vector_np = vector.detach().cpu().to(torch.float64).numpy()
        positions = np.arange(len(vector_np))

        ax.bar(positions, vector_np, color='steelblue')
        ax.set_title(f'{slot_name} - {stat_name}', fontsize=14, fontweight='bold')
        ax.set_xlabel('Feature index')
        ax.set_ylabel(stat_name)

        summary = f"Min: {vector_np.min():.2e}\nMax: {vector_np.max():.2e}\nMean: {vector_np.mean():.2e}"
        ax.text(
            0.02, 0.98, summary,
            transform=ax.transAxes,
            fontsize=9,
            verticalalignment='top',
            bbox=dict(boxstyle='round', facecolor='white', alpha=0.8)
        )

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    return output_path


def plot_normalizer_statistics(
    normalizer,
    name: str,
    output_dir: Path,
    verbose: bool = True
) -> int:
    """
    Plot every feature and label slot of a fitted normalizer.

    Returns:
        Number of plots written
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    slots = [(f'feature_{i}', stats) for i, stats in enumerate(normalizer.feature_stats)]
    if normalizer.has_label_stats():
        slots += [(f'label_{i}', stats) for i, stats in enumerate(normalizer.label_stats)]

    for slot_name, stats in slots:
        output_path = output_dir / f"{name}_{slot_name}_stats.png"
        plot_slot_statistics(stats.to_dict(), slot_name, output_path)
        if verbose:
            print(f"  ✓ {slot_name}")

    return len(slots)


def main(argv: Optional[list] = None):
    parser = argparse.ArgumentParser(
        description='Visualize the statistics of a saved normalizer'
    )
    parser.add_argument(
        '--name',
        type=str,
        required=True,
        help='Name the normalizer statistics were saved under'
    )
    parser.add_argument(
        '--stats-dir',
        type=str,
        default=None,
        help='Directory containing saved statistics (default: ./saved_stats)'
    )
    parser.add_argument(
        '--output-dir',
        type=str,
        default=None,
        help='Output directory for plots (default: <stats-dir>/<name>/visualizations)'
    )

    args = parser.parse_args(argv)

    print("=" * 80)
    print(f"Visualizing Normalizer Statistics: {args.name}")
    print("=" * 80)

    stats_dir = Path(args.stats_dir) if args.stats_dir else get_stats_directory()
    normalizer = load_normalizer_stats(args.name, stats_dir=stats_dir, verbose=True)

    output_dir = Path(args.output_dir) if args.output_dir else stats_dir / args.name / 'visualizations'
    print(f"\nPlots will be saved to: {output_dir}")

    n_plots = plot_normalizer_statistics(normalizer, args.name, output_dir)

    print("\n" + "=" * 80)
    print("Visualization Complete!")
    print("=" * 80)
    print(f"Total plots created: {n_plots}")
    print(f"Output directory: {output_dir}")
    print("=" * 80)


if __name__ == "__main__":
    main()
