"""
Examples showing how to fit and use multi-array normalizers.

Usage:
    python examples/normalizer_usage_examples.py
"""

import sys
from pathlib import Path
import tempfile
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import torch
from torch.utils.data import DataLoader, Dataset

from multinorm.data import DataLoaderBatchSource, ListBatchSource, MultiDataSet
from multinorm.normalizer import MultiNormalizerMinMaxScaler, MultiNormalizerStandardize
from multinorm.normstats import load_normalizer_stats, save_normalizer_stats


def make_batch(num_examples: int = 32) -> MultiDataSet:
    """Two inputs (static features + padded time series) and one regression target."""
    static = torch.randn(num_examples, 4) * 10.0 + 50.0
    series = torch.randn(num_examples, 3, 24)
    series_mask = torch.ones(num_examples, 24)
    series_mask[num_examples // 2:, 18:] = 0  # second half is shorter
    series = series * series_mask.unsqueeze(1)
    target = torch.randn(num_examples, 1) * 200.0 + 1000.0
    return MultiDataSet([static, series], [target], features_masks=[None, series_mask])


# ============================================================================
# Example 1: Fit on a single batch
# ============================================================================
print("=" * 80)
print("Example 1: Standardize a single batch")
print("=" * 80)

batch = make_batch()
normalizer = MultiNormalizerStandardize()
normalizer.fit(batch)
normalizer.pre_process(batch)
print(f"✓ Fitted {normalizer.num_inputs()} feature arrays")
print(f"  Static feature means after normalization: {batch.features[0].mean(dim=0)}")


# ============================================================================
# Example 2: Fit incrementally over many batches (regression targets too)
# ============================================================================
print("\n" + "=" * 80)
print("Example 2: Fit over a batch source, including labels")
print("=" * 80)

source = ListBatchSource([make_batch() for _ in range(10)])
normalizer = MultiNormalizerStandardize(fit_labels=True)
normalizer.fit(source, verbose=True)

batch = make_batch()
normalizer.pre_process(batch)

# A network trained on normalized targets predicts normalized values;
# revert_label maps them back to the original scale
predictions = batch.labels[0].clone()
predictions = normalizer.revert_label(predictions, None, 0)
print(f"✓ Reverted predictions, mean = {predictions.mean():.2f}")


# ============================================================================
# Example 3: Min-max scaling from a DataLoader
# ============================================================================
print("\n" + "=" * 80)
print("Example 3: Min-max scaling with a DataLoader")
print("=" * 80)


class PairDataset(Dataset):
    def __init__(self, num_samples: int = 100):
        self.x = torch.rand(num_samples, 5) * 255.0
        self.y = torch.rand(num_samples, 2)

    def __len__(self):
        return len(self.x)

    def __getitem__(self, idx):
        return self.x[idx], self.y[idx]


loader = DataLoader(PairDataset(), batch_size=16, shuffle=True)
scaler = MultiNormalizerMinMaxScaler(min_range=-1.0, max_range=1.0)
scaler.fit(DataLoaderBatchSource(loader))
print(f"✓ Feature minimum: {scaler.get_feature_min(0)}")
print(f"✓ Feature maximum: {scaler.get_feature_max(0)}")


# ============================================================================
# Example 4: Save and reload the statistics
# ============================================================================
print("\n" + "=" * 80)
print("Example 4: Save and load statistics")
print("=" * 80)

with tempfile.TemporaryDirectory() as stats_dir:
    save_normalizer_stats(normalizer, "example_normalizer", output_dir=Path(stats_dir))
    restored = load_normalizer_stats("example_normalizer", stats_dir=Path(stats_dir))
    print(f"✓ Restored {restored!r}")
