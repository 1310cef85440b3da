"""
Mask and shape helpers shared by the normalization strategies.

Statistics are always computed per feature, where the feature axis is dim 1:
    - (examples, features)                  for plain feature matrices
    - (examples, features, timesteps)       for time series
    - (examples, channels, height, width)   for images

A mask marks valid (non-zero) vs padded (zero) entries. It may either have the
full shape of the array, or the array shape with the feature axis removed
(e.g. (examples, timesteps) for a time series), in which case it applies to
every feature at that position.
"""

from typing import Optional

import torch

from ..errors import InvalidArgumentError


def check_array(array: torch.Tensor, what: str = "array", floating: bool = False) -> torch.Tensor:
    """Validate that an array is a tensor of rank >= 2 (and floating point if requested)."""
    if array is None:
        raise InvalidArgumentError(f"{what} must not be None")
    if not isinstance(array, torch.Tensor):
        raise InvalidArgumentError(
            f"{what} must be a torch.Tensor, got {type(array).__name__}"
        )
    if array.dim() < 2:
        raise InvalidArgumentError(
            f"{what} must have at least 2 dimensions (examples, features, ...), "
            f"got {array.dim()}D with shape {tuple(array.shape)}"
        )
    if floating and not array.is_floating_point():
        raise InvalidArgumentError(
            f"{what} must be a floating point tensor to be normalized in place, got {array.dtype}"
        )
    return array


def expand_mask(array: torch.Tensor, mask: Optional[torch.Tensor]) -> Optional[torch.Tensor]:
    """
    Expand a mask to a boolean tensor with the same shape as the array.

    Args:
        array: Data array, shape (examples, features, ...)
        mask: Optional mask, shape of the array or the array without dim 1

    Returns:
        Boolean tensor (True = valid), or None when no mask was given
    """
    if mask is None:
        return None

    mask = mask.to(device=array.device)
    if mask.dim() == array.dim():
        candidate = mask
    elif mask.dim() == array.dim() - 1:
        # Per-position mask: same for every feature
        candidate = mask.unsqueeze(1)
    else:
        raise InvalidArgumentError(
            f"Mask shape {tuple(mask.shape)} is not compatible with array shape "
            f"{tuple(array.shape)}"
        )

    try:
        candidate = candidate.expand_as(array)
    except RuntimeError as e:
        raise InvalidArgumentError(
            f"Mask shape {tuple(mask.shape)} is not compatible with array shape "
            f"{tuple(array.shape)}"
        ) from e

    return candidate != 0


def flatten_features(array: torch.Tensor) -> torch.Tensor:
    """Reshape (examples, features, ...) to (N, features)."""
    return array.movedim(1, -1).reshape(-1, array.shape[1])


def feature_view(values: torch.Tensor, array: torch.Tensor) -> torch.Tensor:
    """Reshape a per-feature vector so it broadcasts against the array."""
    shape = (1, -1) + (1,) * (array.dim() - 2)
    return values.to(dtype=array.dtype, device=array.device).view(shape)


def set_masked_values_to_zero(array: torch.Tensor, mask: Optional[torch.Tensor]) -> torch.Tensor:
    """Zero out padded entries in place."""
    valid = expand_mask(array, mask)
    if valid is not None:
        array.masked_fill_(~valid, 0)
    return array
