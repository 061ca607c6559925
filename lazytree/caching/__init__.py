"""Caching layer for tree sources."""

from .adapter import CachingTreeSource

__all__ = ['CachingTreeSource']
