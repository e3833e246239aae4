"""
Lookup resolution on top of the record store.
"""

from .batch import BatchCoordinator
from .policy import CachePolicy
from .single import SingleLookup

__all__ = ["BatchCoordinator", "CachePolicy", "SingleLookup"]
