"""
Tests for MultiArrayNormalizer and its standardize/min-max variants.

Covers:
1. Round trip: revert(pre_process(batch)) restores the batch, with and without labels
2. Fitting over several batches equals fitting over their concatenation
3. The label toggle does not affect feature statistics
4. Restarting a fit over the same source gives identical statistics
5. revert_labels is a no-op when label normalization is disabled
6. Slot count mismatches and empty sources fail without touching the previous state
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

from multinorm.data import ListBatchSource, MultiDataSet
from multinorm.errors import (
    EmptyFitError,
    InvalidArgumentError,
    NotFittedError,
    SlotCountMismatchError,
)
from multinorm.normalizer import (
    MultiArrayNormalizer,
    MultiNormalizerMinMaxScaler,
    MultiNormalizerStandardize,
)
from multinorm.strategies import StandardizeStrategy


def make_batch(num_examples: int = 16, seed: int = 0, with_masks: bool = False) -> MultiDataSet:
    """Two inputs (matrix + time series) and two outputs (matrix + time series)."""
    generator = torch.Generator().manual_seed(seed)
    features = [
        torch.randn(num_examples, 3, generator=generator, dtype=torch.float64) * 4.0 + 2.0,
        torch.randn(num_examples, 2, 7, generator=generator, dtype=torch.float64) - 5.0,
    ]
    labels = [
        torch.randn(num_examples, 1, generator=generator, dtype=torch.float64) * 100.0,
        torch.randn(num_examples, 2, 7, generator=generator, dtype=torch.float64) * 0.1,
    ]

    if not with_masks:
        return MultiDataSet(features, labels)

    mask = torch.ones(num_examples, 7, dtype=torch.float64)
    mask[::2, 5:] = 0
    # Padded steps hold zeros, like real padded sequences
    features[1] = features[1] * mask.unsqueeze(1)
    labels[1] = labels[1] * mask.unsqueeze(1)
    return MultiDataSet(features, labels, features_masks=[None, mask], labels_masks=[None, mask])


def concat_batches(*batches: MultiDataSet) -> MultiDataSet:
    def cat(slots):
        if all(slot is None for slot in slots):
            return None
        return torch.cat(slots)

    num_inputs = batches[0].num_feature_arrays()
    num_outputs = batches[0].num_label_arrays()
    return MultiDataSet(
        features=[torch.cat([b.get_features(i) for b in batches]) for i in range(num_inputs)],
        labels=[torch.cat([b.get_labels(i) for b in batches]) for i in range(num_outputs)],
        features_masks=[cat([b.get_features_mask(i) for b in batches]) for i in range(num_inputs)],
        labels_masks=[cat([b.get_labels_mask(i) for b in batches]) for i in range(num_outputs)],
    )


def assert_batches_close(actual: MultiDataSet, expected: MultiDataSet):
    for a, e in zip(actual.features, expected.features):
        assert torch.allclose(a, e)
    for a, e in zip(actual.labels, expected.labels):
        assert torch.allclose(a, e)


@pytest.mark.parametrize('fit_labels', [True, False])
@pytest.mark.parametrize('normalizer_cls', [MultiNormalizerStandardize, MultiNormalizerMinMaxScaler])
@pytest.mark.parametrize('with_masks', [False, True])
def test_round_trip(normalizer_cls, fit_labels, with_masks):
    original = make_batch(with_masks=with_masks)
    normalizer = normalizer_cls(fit_labels=fit_labels)
    normalizer.fit(original)

    batch = original.copy()
    normalizer.pre_process(batch)

    assert not torch.allclose(batch.features[0], original.features[0])
    if fit_labels:
        assert not torch.allclose(batch.labels[0], original.labels[0])
    else:
        assert torch.equal(batch.labels[0], original.labels[0])
        assert torch.equal(batch.labels[1], original.labels[1])

    normalizer.revert(batch)
    assert_batches_close(batch, original)


def test_pre_process_standardizes_features():
    batch = make_batch(num_examples=64)
    normalizer = MultiNormalizerStandardize()
    normalizer.fit(batch)
    normalizer.pre_process(batch)

    assert torch.allclose(batch.features[0].mean(dim=0), torch.zeros(3, dtype=torch.float64), atol=1e-10)
    values = batch.features[1].movedim(1, -1).reshape(-1, 2)
    assert torch.allclose(values.mean(dim=0), torch.zeros(2, dtype=torch.float64), atol=1e-10)


def test_min_max_scales_to_target_range():
    batch = make_batch(num_examples=32)
    normalizer = MultiNormalizerMinMaxScaler(min_range=-1.0, max_range=1.0, fit_labels=True)
    normalizer.fit(batch)
    normalizer.pre_process(batch)

    for array in batch.features + batch.labels:
        values = array.movedim(1, -1).reshape(-1, array.shape[1])
        assert torch.allclose(values.min(dim=0).values, torch.full((array.shape[1],), -1.0, dtype=torch.float64))
        assert torch.allclose(values.max(dim=0).values, torch.full((array.shape[1],), 1.0, dtype=torch.float64))

    assert normalizer.target_min == -1.0
    assert normalizer.target_max == 1.0


@pytest.mark.parametrize('normalizer_cls', [MultiNormalizerStandardize, MultiNormalizerMinMaxScaler])
@pytest.mark.parametrize('with_masks', [False, True])
def test_incremental_fit_matches_single_batch(normalizer_cls, with_masks):
    first = make_batch(num_examples=10, seed=1, with_masks=with_masks)
    second = make_batch(num_examples=22, seed=2, with_masks=with_masks)

    incremental = normalizer_cls(fit_labels=True)
    incremental.fit(ListBatchSource([first, second]))

    single = normalizer_cls(fit_labels=True)
    single.fit(concat_batches(first, second))

    for stats_a, stats_b in zip(list(incremental.feature_stats) + list(incremental.label_stats),
                                list(single.feature_stats) + list(single.label_stats)):
        for key, value in stats_a.to_dict().items():
            assert torch.allclose(value, stats_b.to_dict()[key])


def test_fit_over_source_uses_all_batches_not_the_last():
    first = make_batch(num_examples=8, seed=3)
    second = make_batch(num_examples=8, seed=4)

    normalizer = MultiNormalizerStandardize()
    normalizer.fit(ListBatchSource([first, second]))

    last_only = MultiNormalizerStandardize()
    last_only.fit(second)

    assert not torch.allclose(normalizer.get_feature_mean(0), last_only.get_feature_mean(0))


def test_label_toggle_does_not_change_feature_stats():
    batch = make_batch()

    with_labels = MultiNormalizerStandardize()
    with_labels.fit_label(True)
    with_labels.fit(batch)

    without_labels = MultiNormalizerStandardize()
    without_labels.fit_label(False)
    without_labels.fit(batch)

    assert with_labels.feature_stats == without_labels.feature_stats
    assert with_labels.num_outputs() == 2
    assert len(with_labels.label_stats) == 2

    assert not without_labels.has_label_stats()
    with pytest.raises(NotFittedError):
        without_labels.label_stats
    with pytest.raises(NotFittedError):
        without_labels.num_outputs()
    with pytest.raises(NotFittedError):
        without_labels.get_label_mean(0)


def test_refit_with_same_source_is_identical():
    source = ListBatchSource([make_batch(seed=5), make_batch(seed=6), make_batch(seed=7)])
    normalizer = MultiNormalizerStandardize(fit_labels=True)

    normalizer.fit(source)
    first_features, first_labels = normalizer.feature_stats, normalizer.label_stats

    # Leave the cursor somewhere in the middle; fit must start over
    source.reset()
    source.next()
    normalizer.fit(source)

    assert normalizer.feature_stats == first_features
    assert normalizer.label_stats == first_labels


def test_revert_labels_is_noop_when_labels_disabled():
    normalizer = MultiNormalizerStandardize(fit_labels=False)
    labels = [torch.tensor([[1e9, -3.0]]), torch.arange(6).reshape(1, 2, 3)]
    expected = [label.clone() for label in labels]

    # Not even fit yet: still a no-op, not an error
    result = normalizer.revert_labels(labels)
    assert all(torch.equal(r, e) for r, e in zip(result, expected))

    normalizer.fit(make_batch())
    result = normalizer.revert_labels(labels, [None, None])
    assert all(torch.equal(r, e) for r, e in zip(result, expected))
    assert normalizer.revert_label(labels[0], None, 0) is labels[0]


def test_revert_labels_reverts_network_output():
    batch = make_batch()
    normalizer = MultiNormalizerStandardize(fit_labels=True)
    normalizer.fit(batch)

    # Pretend the network predicted the normalized targets exactly
    normalized = batch.copy()
    normalizer.pre_process(normalized)
    predictions = normalizer.revert_label(normalized.labels[0].clone(), None, 0)

    assert torch.allclose(predictions, batch.labels[0])


def test_revert_features_writes_back_into_list():
    batch = make_batch()
    normalizer = MultiNormalizerStandardize()
    normalizer.fit(batch)

    normalized = batch.copy()
    normalizer.pre_process(normalized)
    features = list(normalized.features)
    reverted = normalizer.revert_features(features, normalized.features_masks)

    assert torch.allclose(features[0], batch.features[0])
    assert torch.allclose(reverted[1], batch.features[1])


def test_slot_count_mismatch_fails_before_finalizing():
    two_inputs = MultiDataSet([torch.randn(4, 2), torch.randn(4, 2)], [torch.randn(4, 1)])
    three_inputs = MultiDataSet([torch.randn(4, 2), torch.randn(4, 2), torch.randn(4, 2)], [torch.randn(4, 1)])

    normalizer = MultiNormalizerStandardize()
    with pytest.raises(SlotCountMismatchError):
        normalizer.fit(ListBatchSource([two_inputs, three_inputs]))
    assert not normalizer.is_fit()


def test_label_slot_count_mismatch_detected_even_without_label_fitting():
    one_label = MultiDataSet([torch.randn(4, 2)], [torch.randn(4, 1)])
    two_labels = MultiDataSet([torch.randn(4, 2)], [torch.randn(4, 1), torch.randn(4, 1)])

    normalizer = MultiNormalizerStandardize(fit_labels=False)
    with pytest.raises(SlotCountMismatchError):
        normalizer.fit(ListBatchSource([one_label, two_labels]))


def test_empty_source_fails_and_keeps_previous_state():
    normalizer = MultiNormalizerStandardize(fit_labels=True)

    with pytest.raises(EmptyFitError):
        normalizer.fit(ListBatchSource([]))
    assert not normalizer.is_fit()

    normalizer.fit(make_batch())
    previous_features, previous_labels = normalizer.feature_stats, normalizer.label_stats

    with pytest.raises(EmptyFitError):
        normalizer.fit(ListBatchSource([]))
    assert normalizer.feature_stats is previous_features
    assert normalizer.label_stats is previous_labels


def test_failed_fit_keeps_previous_state():
    normalizer = MultiNormalizerStandardize()
    normalizer.fit(make_batch())
    previous = normalizer.feature_stats

    bad_source = ListBatchSource([
        MultiDataSet([torch.randn(4, 3), torch.randn(4, 2, 7)]),
        MultiDataSet([torch.randn(4, 3)]),
    ])
    with pytest.raises(SlotCountMismatchError):
        normalizer.fit(bad_source)
    assert normalizer.feature_stats is previous


def test_not_fitted_errors():
    normalizer = MultiNormalizerStandardize()
    batch = make_batch()

    assert not normalizer.is_fit()
    with pytest.raises(NotFittedError):
        normalizer.pre_process(batch)
    with pytest.raises(NotFittedError):
        normalizer.num_inputs()
    with pytest.raises(NotFittedError):
        normalizer.num_outputs()
    with pytest.raises(NotFittedError):
        normalizer.revert_features(batch.features)
    with pytest.raises(NotFittedError):
        normalizer.feature_stats


def test_enabling_labels_after_fit_requires_refit():
    batch = make_batch()
    normalizer = MultiNormalizerStandardize(fit_labels=False)
    normalizer.fit(batch)

    normalizer.fit_label(True)
    assert normalizer.is_fit_label()
    with pytest.raises(NotFittedError):
        normalizer.pre_process(batch.copy())

    normalizer.fit(batch)
    assert normalizer.num_outputs() == 2


def test_invalid_arguments():
    normalizer = MultiNormalizerStandardize()
    with pytest.raises(InvalidArgumentError):
        normalizer.fit(None)
    with pytest.raises(InvalidArgumentError):
        normalizer.fit([torch.randn(4, 2)])
    with pytest.raises(InvalidArgumentError):
        MultiArrayNormalizer(None)

    normalizer.fit(make_batch())
    with pytest.raises(InvalidArgumentError):
        normalizer.pre_process(None)
    with pytest.raises(InvalidArgumentError):
        normalizer.revert_feature(torch.randn(2, 3), None, 5)
    with pytest.raises(InvalidArgumentError):
        normalizer.revert_labels(None)


def test_num_inputs_and_outputs():
    normalizer = MultiArrayNormalizer(StandardizeStrategy(), fit_labels=True)
    normalizer.fit(make_batch())

    assert normalizer.num_inputs() == 2
    assert normalizer.num_outputs() == 2


def test_call_applies_pre_process():
    batch = make_batch()
    normalizer = MultiNormalizerStandardize()
    normalizer.fit(batch)

    expected = normalizer.pre_process(batch.copy())
    result = normalizer(batch.copy())

    assert_batches_close(result, expected)


def test_verbose_fit_prints_summary(capsys):
    normalizer = MultiNormalizerStandardize(fit_labels=True)
    normalizer.fit(ListBatchSource([make_batch(seed=8), make_batch(seed=9)]), verbose=True)

    captured = capsys.readouterr()
    assert "Batches: 2" in captured.out
    assert "Label arrays: 2" in captured.out


@pytest.mark.parametrize('normalizer_cls', [MultiNormalizerStandardize, MultiNormalizerMinMaxScaler])
def test_returned_statistics_cannot_change_the_fitted_state(normalizer_cls):
    batch = make_batch()
    normalizer = normalizer_cls(fit_labels=True)
    normalizer.fit(batch)
    fitted_features = normalizer.feature_stats
    fitted_labels = normalizer.label_stats
    expected = normalizer.pre_process(batch.copy())

    snapshot = normalizer.get_feature_stats(0)
    for name, value in snapshot.to_dict().items():
        value.zero_()
        getattr(snapshot, name).zero_()
    if isinstance(normalizer, MultiNormalizerStandardize):
        normalizer.get_feature_mean(0).zero_()
        normalizer.get_label_std(0).zero_()
    else:
        normalizer.get_feature_min(0).zero_()
        normalizer.get_label_max(0).zero_()

    reference = normalizer_cls(fit_labels=True)
    reference.fit(batch)
    assert fitted_features == reference.feature_stats
    assert fitted_labels == reference.label_stats
    assert_batches_close(normalizer.pre_process(batch.copy()), expected)


def test_revert_with_wrong_number_of_masks():
    batch = make_batch(with_masks=True)
    normalizer = MultiNormalizerStandardize(fit_labels=True)
    normalizer.fit(batch)
    normalizer.pre_process(batch)

    with pytest.raises(InvalidArgumentError):
        normalizer.revert_features(batch.features, [None])
    with pytest.raises(InvalidArgumentError):
        normalizer.revert_labels(batch.labels, [None, None, None])


if __name__ == "__main__":
    pytest.main([__file__, '-v'])
