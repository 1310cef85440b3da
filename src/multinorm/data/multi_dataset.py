"""
Container for one batch of multiple feature and label arrays.
"""

from typing import List, Optional, Sequence

import torch

from ..errors import InvalidArgumentError


def _as_list(arrays) -> List[torch.Tensor]:
    if isinstance(arrays, torch.Tensor):
        return [arrays]
    return list(arrays)


def _check_masks(masks, arrays: List[torch.Tensor], what: str) -> Optional[List[Optional[torch.Tensor]]]:
    if masks is None:
        return None
    masks = _as_list(masks)
    if len(masks) != len(arrays):
        raise InvalidArgumentError(
            f"Got {len(masks)} {what} masks for {len(arrays)} {what} arrays"
        )
    return masks


class MultiDataSet:
    """
    One batch with several feature arrays and several label arrays.

    Slots are positional: get_features(i) is the i-th input of a network with
    several inputs, get_labels(j) its j-th output. Mask lists are optional and
    may hold None entries, meaning "every element of that slot is valid".

    Attributes:
        features (List[torch.Tensor]): Feature arrays, one per input slot
        labels (List[torch.Tensor]): Label arrays, one per output slot
        features_masks (Optional[List[Optional[torch.Tensor]]]): Masks for features
        labels_masks (Optional[List[Optional[torch.Tensor]]]): Masks for labels

    Example:
        >>> batch = MultiDataSet(
        ...     features=[torch.randn(32, 5), torch.randn(32, 3, 20)],
        ...     labels=[torch.randn(32, 1)],
        ...     features_masks=[None, torch.ones(32, 20)],
        ... )
    """

    def __init__(
        self,
        features: Sequence[torch.Tensor],
        labels: Optional[Sequence[torch.Tensor]] = None,
        features_masks: Optional[Sequence[Optional[torch.Tensor]]] = None,
        labels_masks: Optional[Sequence[Optional[torch.Tensor]]] = None,
    ):
        if features is None:
            raise InvalidArgumentError("features must not be None")

        self.features = _as_list(features)
        self.labels = [] if labels is None else _as_list(labels)

        for i, array in enumerate(self.features):
            if array is None:
                raise InvalidArgumentError(f"Feature array {i} is None")
        for i, array in enumerate(self.labels):
            if array is None:
                raise InvalidArgumentError(f"Label array {i} is None")

        self.features_masks = _check_masks(features_masks, self.features, 'feature')
        self.labels_masks = _check_masks(labels_masks, self.labels, 'label')

    def num_feature_arrays(self) -> int:
        return len(self.features)

    def num_label_arrays(self) -> int:
        return len(self.labels)

    def get_features(self, index: int) -> torch.Tensor:
        return self.features[index]

    def get_labels(self, index: int) -> torch.Tensor:
        return self.labels[index]

    def get_features_mask(self, index: int) -> Optional[torch.Tensor]:
        return None if self.features_masks is None else self.features_masks[index]

    def get_labels_mask(self, index: int) -> Optional[torch.Tensor]:
        return None if self.labels_masks is None else self.labels_masks[index]

    def set_features(self, index: int, array: torch.Tensor) -> None:
        self.features[index] = array

    def set_labels(self, index: int, array: torch.Tensor) -> None:
        self.labels[index] = array

    def copy(self) -> 'MultiDataSet':
        """Deep copy of all arrays (masks are shared, they are never modified)."""
        return MultiDataSet(
            features=[array.clone() for array in self.features],
            labels=[array.clone() for array in self.labels],
            features_masks=None if self.features_masks is None else list(self.features_masks),
            labels_masks=None if self.labels_masks is None else list(self.labels_masks),
        )

    def __repr__(self):
        feature_shapes = [tuple(a.shape) for a in self.features]
        label_shapes = [tuple(a.shape) for a in self.labels]
        return f"MultiDataSet(features={feature_shapes}, labels={label_shapes})"
