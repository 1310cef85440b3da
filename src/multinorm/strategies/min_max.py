"""
Min-max scaling strategy: maps each feature onto a target range.
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

RANGE_EPS = 1e-8


class MinMaxStats:
    """
    Per-feature lower and upper bounds observed during fitting.

    Copied on creation; accessors return fresh copies.

    Attributes:
        lower: Minimum of each feature, shape (features,)
        upper: Maximum of each feature, shape (features,)
    """

    __slots__ = ('_lower', '_upper')

    def __init__(self, lower: torch.Tensor, upper: torch.Tensor):
        self._lower = torch.as_tensor(lower).detach().clone()
        self._upper = torch.as_tensor(upper).detach().clone()

    @property
    def lower(self) -> torch.Tensor:
        return self._lower.clone()

    @property
    def upper(self) -> torch.Tensor:
        return self._upper.clone()

    @property
    def range(self) -> torch.Tensor:
        """upper - lower, floored to avoid division by zero for constant features."""
        return torch.clamp(self._upper - self._lower, min=RANGE_EPS)

    def __eq__(self, other):
        if not isinstance(other, MinMaxStats):
            return NotImplemented
        return torch.equal(self._lower, other._lower) and torch.equal(self._upper, other._upper)

    __hash__ = None

    def __repr__(self):
        return f"MinMaxStats(lower={self._lower!r}, upper={self._upper!r})"

    def to_dict(self) -> Dict[str, torch.Tensor]:
        return {'lower': self.lower, 'upper': self.upper}

    @classmethod
    def from_dict(cls, values: Dict[str, torch.Tensor]) -> 'MinMaxStats':
        return cls(lower=values['lower'], upper=values['upper'])


@dataclass
class MinMaxAccumulator:
    count: Optional[torch.Tensor] = None
    lower: Optional[torch.Tensor] = None
    upper: Optional[torch.Tensor] = None


class MinMaxStrategy:
    """
    Scale each feature to [min_range, max_range].

    transform:        x -> (x - lower) / (upper - lower) * (max_range - min_range) + min_range
    revert_transform: the exact inverse of the above

    Masked entries do not contribute to lower/upper and are zeroed after
    transform and revert.
    """

    name = 'min_max'
    stats_type = MinMaxStats

    def __init__(self, min_range: float = 0.0, max_range: float = 1.0):
        if min_range >= max_range:
            raise InvalidArgumentError(
                f"min_range must be smaller than max_range, got [{min_range}, {max_range}]"
            )
        self.min_range = float(min_range)
        self.max_range = float(max_range)

    def new_accumulator(self) -> MinMaxAccumulator:
        return MinMaxAccumulator()

    def accumulate(
        self,
        state: MinMaxAccumulator,
        array: torch.Tensor,
        mask: Optional[torch.Tensor] = None
    ) -> MinMaxAccumulator:
        check_array(array)

        data = flatten_features(array.detach()).to(torch.float64)
        valid = expand_mask(array, mask)
        if valid is None:
            valid = torch.ones_like(data, dtype=torch.bool)
        else:
            valid = flatten_features(valid)

        num_features = data.shape[1]
        batch_count = valid.sum(dim=0).to(torch.float64)
        if data.shape[0] == 0:
            batch_lower = torch.full((num_features,), float('inf'), dtype=torch.float64, device=data.device)
            batch_upper = torch.full((num_features,), float('-inf'), dtype=torch.float64, device=data.device)
        else:
            batch_lower = torch.where(valid, data, torch.full_like(data, float('inf'))).amin(dim=0)
            batch_upper = torch.where(valid, data, torch.full_like(data, float('-inf'))).amax(dim=0)

        if state.count is None:
            state.count = batch_count
            state.lower = batch_lower
            state.upper = batch_upper
            return state

        if state.lower.shape != batch_lower.shape:
            raise InvalidArgumentError(
                f"Array has {num_features} features but previous arrays in this "
                f"slot had {state.lower.shape[0]}"
            )

        state.count = state.count + batch_count.to(state.count.device)
        state.lower = torch.minimum(state.lower, batch_lower.to(state.lower.device))
        state.upper = torch.maximum(state.upper, batch_upper.to(state.upper.device))
        return state

    def finalize(self, state: MinMaxAccumulator) -> MinMaxStats:
        if state.count is None or state.count.sum() == 0:
            raise EmptyFitError("No data was accumulated, statistics cannot be determined")

        # Features that were fully masked fall back to the identity range [0, 1]
        has_data = state.count > 0
        lower = torch.where(has_data, state.lower, torch.zeros_like(state.lower))
        upper = torch.where(has_data, state.upper, torch.ones_like(state.upper))

        return MinMaxStats(lower=lower.cpu(), upper=upper.cpu())

    def transform(
        self,
        array: torch.Tensor,
        mask: Optional[torch.Tensor],
        stats: MinMaxStats
    ) -> torch.Tensor:
        check_array(array, floating=True)
        array.sub_(feature_view(stats.lower, array)).div_(feature_view(stats.range, array))
        array.mul_(self.max_range - self.min_range).add_(self.min_range)
        return set_masked_values_to_zero(array, mask)

    def revert_transform(
        self,
        array: torch.Tensor,
        mask: Optional[torch.Tensor],
        stats: MinMaxStats
    ) -> torch.Tensor:
        check_array(array, floating=True)
        array.sub_(self.min_range).div_(self.max_range - self.min_range)
        array.mul_(feature_view(stats.range, array)).add_(feature_view(stats.lower, array))
        return set_masked_values_to_zero(array, mask)

    def config(self) -> Dict[str, Any]:
        return {'min_range': self.min_range, 'max_range': self.max_range}

    def __repr__(self):
        return f'MinMaxStrategy(min_range={self.min_range}, max_range={self.max_range})'
