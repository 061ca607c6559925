"""lazytree - view models for lazily loaded trees.

lazytree turns an asynchronous tree source (children of a node, path of a
node to its root) and a small view state (active node, expanded nodes)
into a tree of annotated view nodes. Unchanged subtrees keep their object
identity across updates, so renderers can skip them.

Typical use:
━━━━━━━━━━━━━━━━━━━━━━━━━━
    from lazytree import TreeContainer

    async with TreeContainer(source, default_state={'active_id': 'a1'}) as container:
        container.subscribe(render)
        container.controller.toggle_expanded('b')
━━━━━━━━━━━━━━━━━━━━━━━━━━
"""

__version__ = "0.1.0"

from .core import (
    SourceNode,
    LoadableSet,
    ViewNode,
    ViewState,
    MaterializedTree,
    AsyncTreeSource,
    FunctionTreeSource,
)
from .config import LoaderConfig
from .loader import TreeLoader
from .controller import (
    TreeController,
    TreeNodeController,
    TreeNodesController,
    NOOP_TREE_CONTROLLER,
    noop_update_state,
)
from .container import StateBinding, TreeContext, TreeContainer
from .error_policies import (
    TreeError,
    UnknownNodeError,
    ErrorPolicy,
    StallPolicy,
    CollectErrorsPolicy,
    MarkFailedPolicy,
    ThresholdPolicy,
)
from .caching import CachingTreeSource
from .api import load_tree_async, iter_visible, find_node, format_tree

__all__ = [
    "__version__",
    # Values
    "SourceNode",
    "LoadableSet",
    "ViewNode",
    "ViewState",
    "MaterializedTree",
    # Sources
    "AsyncTreeSource",
    "FunctionTreeSource",
    "CachingTreeSource",
    # Loading
    "LoaderConfig",
    "TreeLoader",
    # Control
    "TreeController",
    "TreeNodeController",
    "TreeNodesController",
    "NOOP_TREE_CONTROLLER",
    "noop_update_state",
    "StateBinding",
    "TreeContext",
    "TreeContainer",
    # Errors
    "TreeError",
    "UnknownNodeError",
    "ErrorPolicy",
    "StallPolicy",
    "CollectErrorsPolicy",
    "MarkFailedPolicy",
    "ThresholdPolicy",
    # High-level API
    "load_tree_async",
    "iter_visible",
    "find_node",
    "format_tree",
]
