"""
Memory subsystem: the full-layer weight cache.
"""

from .weight_cache import CacheState, WeightCacheSim

__all__ = ["CacheState", "WeightCacheSim"]
