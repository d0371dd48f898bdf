"""
Repository implementations for data access.
"""

from shipreport.repositories.cache_repo import InMemoryResponseCache

__all__ = ["InMemoryResponseCache"]
