"""
Tests for the standardize and min-max strategies.

Checks that:
1. Statistics match a direct computation over the valid entries
2. Masked (padded) entries are excluded from statistics and zeroed on transform
3. Incremental accumulation equals accumulation over the concatenated data
4. transform/revert_transform are inverses
"""

import sys
from pathlib import Path

import pytest
import torch

# Add src directory to path
current_file = Path(__file__)
tests_dir = current_file.parent
project_root = tests_dir.parent
src_dir = project_root / 'src'
sys.path.insert(0, str(src_dir))

from multinorm.errors import EmptyFitError, InvalidArgumentError
from multinorm.strategies import MinMaxStrategy, StandardizeStrategy, get_strategy
from multinorm.strategies.masking import expand_mask, flatten_features


def population_std(values: torch.Tensor) -> torch.Tensor:
    return ((values - values.mean(dim=0)) ** 2).mean(dim=0).sqrt()


def fit_stats(strategy, *arrays, masks=None):
    state = strategy.new_accumulator()
    for i, array in enumerate(arrays):
        state = strategy.accumulate(state, array, None if masks is None else masks[i])
    return strategy.finalize(state)


def test_standardize_matches_direct_computation():
    torch.manual_seed(0)
    data = torch.randn(50, 4, dtype=torch.float64) * torch.tensor([1.0, 2.0, 5.0, 0.5]) + 3.0

    stats = fit_stats(StandardizeStrategy(), data)

    assert torch.allclose(stats.mean, data.mean(dim=0))
    assert torch.allclose(stats.std, population_std(data))


def test_standardize_incremental_equals_concatenated():
    torch.manual_seed(1)
    part_1 = torch.randn(13, 3, dtype=torch.float64) + 2.0
    part_2 = torch.randn(29, 3, dtype=torch.float64) * 4.0 - 1.0
    strategy = StandardizeStrategy()

    incremental = fit_stats(strategy, part_1, part_2)
    single = fit_stats(strategy, torch.cat([part_1, part_2]))

    assert torch.allclose(incremental.mean, single.mean)
    assert torch.allclose(incremental.std, single.std)


def test_standardize_time_series_with_mask():
    torch.manual_seed(2)
    data = torch.randn(4, 2, 6, dtype=torch.float64)
    mask = torch.ones(4, 6)
    mask[0, 3:] = 0
    mask[2, 5] = 0
    # Padding values must not leak into the statistics
    data[0, :, 3:] = 1000.0

    stats = fit_stats(StandardizeStrategy(), data, masks=[mask])

    for feature in range(2):
        valid = data[:, feature, :][mask.bool()]
        assert torch.allclose(stats.mean[feature], valid.mean())
        assert torch.allclose(stats.std[feature], population_std(valid.unsqueeze(1))[0])


def test_standardize_transform_and_revert():
    torch.manual_seed(3)
    data = torch.randn(20, 3, 5, dtype=torch.float64) * 3.0 + 7.0
    mask = torch.ones(20, 5)
    mask[:, -1] = 0
    strategy = StandardizeStrategy()
    stats = fit_stats(strategy, data, masks=[mask])

    transformed = strategy.transform(data.clone(), mask, stats)
    assert torch.all(transformed[:, :, -1] == 0)

    valid = flatten_features(transformed)[flatten_features(expand_mask(transformed, mask))[:, 0]]
    assert torch.allclose(valid.mean(dim=0), torch.zeros(3, dtype=torch.float64), atol=1e-10)

    reverted = strategy.revert_transform(transformed, mask, stats)
    assert torch.allclose(reverted[:, :, :-1], data[:, :, :-1])
    assert torch.all(reverted[:, :, -1] == 0)


def test_standardize_constant_feature_gets_unit_std():
    data = torch.tensor([[1.0, 5.0], [2.0, 5.0], [3.0, 5.0]])

    stats = fit_stats(StandardizeStrategy(), data)

    assert stats.std[1] == 1.0
    assert stats.mean[1] == 5.0


def test_finalize_without_data_raises():
    strategy = StandardizeStrategy()
    with pytest.raises(EmptyFitError):
        strategy.finalize(strategy.new_accumulator())

    # Everything masked out counts as no data
    state = strategy.accumulate(strategy.new_accumulator(), torch.randn(3, 2, 4), torch.zeros(3, 4))
    with pytest.raises(EmptyFitError):
        strategy.finalize(state)


def test_min_max_statistics_and_scaling():
    data = torch.tensor([[0.0, 10.0], [5.0, 20.0], [10.0, 30.0]], dtype=torch.float64)
    strategy = MinMaxStrategy(min_range=-1.0, max_range=1.0)

    stats = fit_stats(strategy, data[:1], data[1:])
    assert torch.equal(stats.lower, torch.tensor([0.0, 10.0], dtype=torch.float64))
    assert torch.equal(stats.upper, torch.tensor([10.0, 30.0], dtype=torch.float64))

    scaled = strategy.transform(data.clone(), None, stats)
    expected = torch.tensor([[-1.0, -1.0], [0.0, 0.0], [1.0, 1.0]], dtype=torch.float64)
    assert torch.allclose(scaled, expected)

    reverted = strategy.revert_transform(scaled, None, stats)
    assert torch.allclose(reverted, data)


def test_min_max_ignores_masked_entries():
    data = torch.tensor([[[1.0, 2.0, -50.0]], [[3.0, 4.0, 99.0]]])
    mask = torch.tensor([[1.0, 1.0, 0.0], [1.0, 1.0, 0.0]])

    stats = fit_stats(MinMaxStrategy(), data, masks=[mask])

    assert stats.lower.item() == 1.0
    assert stats.upper.item() == 4.0


def test_min_max_invalid_range():
    with pytest.raises(InvalidArgumentError):
        MinMaxStrategy(min_range=1.0, max_range=1.0)


def test_feature_count_change_within_slot_raises():
    strategy = StandardizeStrategy()
    state = strategy.accumulate(strategy.new_accumulator(), torch.randn(4, 3), None)
    with pytest.raises(InvalidArgumentError):
        strategy.accumulate(state, torch.randn(4, 2), None)


def test_invalid_arrays_and_masks():
    strategy = StandardizeStrategy()
    with pytest.raises(InvalidArgumentError):
        strategy.accumulate(strategy.new_accumulator(), torch.randn(5), None)
    with pytest.raises(InvalidArgumentError):
        strategy.accumulate(strategy.new_accumulator(), torch.randn(4, 2, 6), torch.ones(4, 5))

    stats = fit_stats(strategy, torch.randn(4, 2))
    with pytest.raises(InvalidArgumentError):
        strategy.transform(torch.ones(4, 2, dtype=torch.int64), None, stats)


def test_get_strategy():
    strategy = get_strategy('min_max', min_range=-2.0, max_range=2.0)
    assert isinstance(strategy, MinMaxStrategy)
    assert strategy.config() == {'min_range': -2.0, 'max_range': 2.0}
    assert isinstance(get_strategy('standardize'), StandardizeStrategy)

    with pytest.raises(InvalidArgumentError):
        get_strategy('percentile')


if __name__ == "__main__":
    pytest.main([__file__, '-v'])
