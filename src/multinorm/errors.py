"""
Exception types raised by the normalizers.

All errors derive from NormalizerError so callers can catch the whole family,
and each one also derives from the closest builtin (ValueError/RuntimeError)
so plain ``except ValueError`` handlers keep working.
"""


class NormalizerError(Exception):
    """Base class for all normalizer errors."""


class NotFittedError(NormalizerError, RuntimeError):
    """Statistics were requested before a successful fit."""


class EmptyFitError(NormalizerError, ValueError):
    """A fit pass saw no data, so no statistics can be finalized."""


class SlotCountMismatchError(NormalizerError, ValueError):
    """Batches within one fit pass disagree on the number of array slots."""


class InvalidArgumentError(NormalizerError, ValueError):
    """A required argument is missing or has an unsupported shape/type."""
