"""
Normalization statistics accumulation and management.

This module provides the per-slot statistics bookkeeping used while fitting,
and functionality to save and load the statistics of a fitted normalizer.
"""

from .accumulator import StatsAccumulator, StatsSet, SlotAccumulators
from .stats_manager import save_normalizer_stats, load_normalizer_stats, stats_exist, get_stats_directory

__all__ = [
    'StatsAccumulator',
    'StatsSet',
    'SlotAccumulators',
    'save_normalizer_stats',
    'load_normalizer_stats',
    'stats_exist',
    'get_stats_directory',
]
