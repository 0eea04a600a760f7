"""
Local storage layer for the E-Learning data layer
Handles durable key-value persistence and in-memory caching
"""

from .database import KeyValueStore, StoreError
from .cache import FreshnessCache, CacheEntry

__all__ = ['KeyValueStore', 'StoreError', 'FreshnessCache', 'CacheEntry']
