"""
Shared utilities for dashboard services.

Provides the cache and identifier validation used by the dataset store and
dashboard service.
"""

from kco_finops.core.services._shared.cache import LRUCache, CacheEntry, create_cache
from kco_finops.core.services._shared.validation import (
    validate_dataset_id,
    validate_choice,
    DATASET_ID_PATTERN,
)

__all__ = [
    # Cache
    "LRUCache",
    "CacheEntry",
    "create_cache",
    # Validation
    "validate_dataset_id",
    "validate_choice",
    "DATASET_ID_PATTERN",
]
