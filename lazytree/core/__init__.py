"""Core abstractions: value types and the tree source interface."""

from .node import (
    SourceNode,
    LoadableSet,
    ViewNode,
    ViewState,
    MaterializedTree,
)
from .source import AsyncTreeSource, FunctionTreeSource

__all__ = [
    # Values
    'SourceNode',
    'LoadableSet',
    'ViewNode',
    'ViewState',
    'MaterializedTree',
    # Sources
    'AsyncTreeSource',
    'FunctionTreeSource',
]
