"""High-level API for lazytree.

Simple functions for one-shot loading and for walking a materialized
tree the way a renderer would.
"""

from typing import Any, Iterator, Optional

from .core.node import MaterializedTree, ViewNode
from .error_policies import ErrorPolicy
from .loader import TreeLoader


async def load_tree_async(
    source: Any,
    state: Any = None,
    config: Any = None,
    policy: Optional[ErrorPolicy] = None,
) -> MaterializedTree:
    """Load everything a view state needs and return the final tree.

    Args:
        source: Tree source
        state: ViewState or mapping (active node, expanded ids)
        config: LoaderConfig or mapping of loader options
        policy: Failure policy for the loader

    Returns:
        The materialized tree once no fetch is left in flight

    Example:
        >>> tree = await load_tree_async(source, {'active_id': 'a1'})
        >>> [node.id for node in iter_visible(tree)]
        ['a', 'a1', 'b']
    """
    async with TreeLoader(config, policy) as loader:
        loader.subscribe(lambda: loader.materialize(source, state))
        loader.materialize(source, state)
        await loader.settle()
        return loader.materialize(source, state)


def iter_visible(tree: MaterializedTree) -> Iterator[ViewNode]:
    """Yield view nodes in display order.

    Depth-first, parents before children, descending only into expanded
    nodes.
    """
    stack = list(reversed(tree.items))
    while stack:
        node = stack.pop()
        yield node
        if node.is_expanded:
            stack.extend(reversed(node.children.items))


def find_node(tree: MaterializedTree, node_id: str) -> Optional[ViewNode]:
    """Look up any node materialized so far, visible or not."""
    return tree.all_nodes.get(node_id)


def format_tree(tree: MaterializedTree, indent: str = '  ') -> str:
    """Plain-text outline of the visible nodes, for logs and debugging."""
    lines = []
    for node in iter_visible(tree):
        marker = '*' if node.is_active else ('-' if node.is_expanded else '+')
        suffix = ' (loading)' if node.is_expanded and node.children.is_loading else ''
        lines.append(f"{indent * node.depth}{marker} {node.id}{suffix}")
    if tree.is_loading:
        lines.append('(loading)')
    return '\n'.join(lines)
