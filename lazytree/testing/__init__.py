"""Testing utilities for lazytree.

This module provides fixtures for testing code that consumes lazytree.
These are not part of the main API but are stable for testing purposes.
"""

from .fixtures import InMemoryTreeSource

__all__ = ['InMemoryTreeSource']
