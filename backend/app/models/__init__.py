# This file makes the 'models' directory a Python package.

from .offline_cache import CacheBucket, CacheEntry
