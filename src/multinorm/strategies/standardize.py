"""
Standardization strategy: zero mean and unit variance per feature.

Statistics are accumulated with the parallel form of Welford's algorithm
(per-feature count, mean and sum of squared differences), so fitting over
many batches gives the same result as fitting over their concatenation.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import torch

from ..errors import EmptyFitError, InvalidArgumentError
from .masking import (
    check_array,
    expand_mask,
    feature_view,
    flatten_features,
    set_masked_values_to_zero,
)

STD_EPS = 1e-8


class DistributionStats:
    """
    Per-feature mean and standard deviation.

    The tensors are copied on creation and every accessor returns a fresh
    copy, so a snapshot cannot be changed once it has been finalized.

    Attributes:
        mean: Mean of each feature, shape (features,)
        std: Population standard deviation of each feature, shape (features,)
    """

    __slots__ = ('_mean', '_std')

    def __init__(self, mean: torch.Tensor, std: torch.Tensor):
        self._mean = torch.as_tensor(mean).detach().clone()
        self._std = torch.as_tensor(std).detach().clone()

    @property
    def mean(self) -> torch.Tensor:
        return self._mean.clone()

    @property
    def std(self) -> torch.Tensor:
        return self._std.clone()

    def __eq__(self, other):
        if not isinstance(other, DistributionStats):
            return NotImplemented
        return torch.equal(self._mean, other._mean) and torch.equal(self._std, other._std)

    __hash__ = None

    def __repr__(self):
        return f"DistributionStats(mean={self._mean!r}, std={self._std!r})"

    def to_dict(self) -> Dict[str, torch.Tensor]:
        return {'mean': self.mean, 'std': self.std}

    @classmethod
    def from_dict(cls, values: Dict[str, torch.Tensor]) -> 'DistributionStats':
        return cls(mean=values['mean'], std=values['std'])


@dataclass
class DistributionAccumulator:
    """Running per-feature count, mean and M2 (sum of squared differences)."""
    count: Optional[torch.Tensor] = None
    mean: Optional[torch.Tensor] = None
    m2: Optional[torch.Tensor] = None


class StandardizeStrategy:
    """
    Standardize each feature using statistics gathered from training data.

    transform:        x -> (x - mean) / std
    revert_transform: x -> x * std + mean

    Masked (padded) entries are excluded from the statistics and are set to
    zero after both transform and revert.
    """

    name = 'standardize'
    stats_type = DistributionStats

    def new_accumulator(self) -> DistributionAccumulator:
        return DistributionAccumulator()

    def accumulate(
        self,
        state: DistributionAccumulator,
        array: torch.Tensor,
        mask: Optional[torch.Tensor] = None
    ) -> DistributionAccumulator:
        check_array(array)

        data = flatten_features(array.detach()).to(torch.float64)
        valid = expand_mask(array, mask)
        if valid is None:
            valid = torch.ones_like(data, dtype=torch.bool)
        else:
            valid = flatten_features(valid)

        zeros = torch.zeros_like(data)
        batch_count = valid.sum(dim=0).to(torch.float64)
        batch_mean = torch.where(valid, data, zeros).sum(dim=0) / batch_count.clamp(min=1)
        diff = torch.where(valid, data - batch_mean, zeros)
        batch_m2 = (diff ** 2).sum(dim=0)

        if state.count is None:
            state.count = batch_count
            state.mean = batch_mean
            state.m2 = batch_m2
            return state

        if state.mean.shape != batch_mean.shape:
            raise InvalidArgumentError(
                f"Array has {batch_mean.shape[0]} features but previous arrays in this "
                f"slot had {state.mean.shape[0]}"
            )

        # Chan et al. merge of two partial results
        total = state.count + batch_count
        safe_total = total.clamp(min=1)
        delta = batch_mean.to(state.mean.device) - state.mean
        state.mean = state.mean + delta * batch_count / safe_total
        state.m2 = state.m2 + batch_m2.to(state.m2.device) + delta ** 2 * state.count * batch_count / safe_total
        state.count = total
        return state

    def finalize(self, state: DistributionAccumulator) -> DistributionStats:
        if state.count is None or state.count.sum() == 0:
            raise EmptyFitError("No data was accumulated, statistics cannot be determined")

        has_data = state.count > 0
        mean = torch.where(has_data, state.mean, torch.zeros_like(state.mean))
        std = torch.sqrt(state.m2 / state.count.clamp(min=1))

        # Constant or empty features would otherwise divide by zero
        std = torch.where((std < STD_EPS) | ~has_data, torch.ones_like(std), std)

        return DistributionStats(mean=mean.cpu(), std=std.cpu())

    def transform(
        self,
        array: torch.Tensor,
        mask: Optional[torch.Tensor],
        stats: DistributionStats
    ) -> torch.Tensor:
        check_array(array, floating=True)
        array.sub_(feature_view(stats.mean, array)).div_(feature_view(stats.std, array))
        return set_masked_values_to_zero(array, mask)

    def revert_transform(
        self,
        array: torch.Tensor,
        mask: Optional[torch.Tensor],
        stats: DistributionStats
    ) -> torch.Tensor:
        check_array(array, floating=True)
        array.mul_(feature_view(stats.std, array)).add_(feature_view(stats.mean, array))
        return set_masked_values_to_zero(array, mask)

    def config(self) -> Dict[str, Any]:
        return {}

    def __repr__(self):
        return 'StandardizeStrategy()'
