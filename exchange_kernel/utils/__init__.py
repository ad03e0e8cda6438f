"""Kernel utilities."""

from exchange_kernel.utils.cache import CacheStats, TTLCache

__all__ = ["CacheStats", "TTLCache"]
