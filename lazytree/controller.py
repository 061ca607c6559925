"""State policy and controllers.

The functions at the top of this module are the state policy: pure
transformations ``(ViewState, MaterializedTree, ...) -> ViewState``.
They return the very same state object when nothing changes, so the
owner of the state can skip no-op writes.

``TreeController`` applies them through a single ``update_state``
primitive supplied by whoever owns the state (usually a TreeContainer).
"""

from typing import Any, Callable, Iterable, Optional, Sequence, Tuple, Union

from .core.node import MaterializedTree, ViewState

TreeStateUpdater = Callable[[ViewState, MaterializedTree], ViewState]
UpdateState = Callable[[TreeStateUpdater], None]


def _node_id(item: Union[str, Any]) -> str:
    return item if isinstance(item, str) else item.id


# State policy

def effective_expanded(state: ViewState, tree: MaterializedTree, node_id: str) -> bool:
    """Current effective expansion of a node, as the loader computes it."""
    explicit = state.expanded_ids.get(node_id)
    node = tree.all_nodes.get(node_id)
    on_trail = node is not None and node.is_active_trail
    return explicit is True or (on_trail and explicit is None)


def apply_set_expanded(state: ViewState, node_id: str, expanded: Optional[bool] = True) -> ViewState:
    """Only an explicit False collapses; None counts as expand."""
    return state.with_expanded(node_id, expanded is not False)


def apply_toggle_expanded(state: ViewState, tree: MaterializedTree, node_id: str) -> ViewState:
    """Flip the effective expansion of a node.

    Toggling a node that is open only because it is on the active trail
    writes an explicit False.
    """
    return state.with_expanded(node_id, not effective_expanded(state, tree, node_id))


def apply_set_all_expanded(state: ViewState, tree: MaterializedTree, node_ids: Iterable[str]) -> ViewState:
    """Expand every listed node the tree knows about; unknown ids are ignored."""
    if isinstance(node_ids, str):
        raise TypeError("node_ids must be an iterable of ids, not a single string")
    wanted = set(node_ids)
    known = [node_id for node_id in tree.all_nodes if node_id in wanted]
    return state.with_expanded_many(known, True)


def apply_set_active_id(state: ViewState, node_id: Optional[str]) -> ViewState:
    return state.with_active_id(node_id)


# Controllers

def noop_update_state(updater: TreeStateUpdater) -> None:
    pass


class TreeController:
    """
    Operations that rewrite the view state.

    Example:
        controller = TreeController(container.update_state)
        controller.set_active_id('a1')
        controller.toggle_expanded('a')
    """

    def __init__(self, update_state: UpdateState):
        """
        Args:
            update_state: Callable applying a ``(state, tree) -> state``
                transform to the canonical state
        """
        self.update_state = update_state

    def set_expanded(self, node_id: str, expanded: bool = True) -> None:
        self.update_state(lambda state, tree: apply_set_expanded(state, node_id, expanded))

    def toggle_expanded(self, node_id: str) -> None:
        self.update_state(lambda state, tree: apply_toggle_expanded(state, tree, node_id))

    def set_all_expanded(self, node_ids: Iterable[str]) -> None:
        if isinstance(node_ids, str):
            raise TypeError("node_ids must be an iterable of ids, not a single string")
        node_ids = tuple(node_ids)
        self.update_state(lambda state, tree: apply_set_all_expanded(state, tree, node_ids))

    def set_active_id(self, node_id: Optional[str]) -> None:
        self.update_state(lambda state, tree: apply_set_active_id(state, node_id))

    def for_node(self, item: Union[str, Any]) -> 'TreeNodeController':
        """Controller bound to one node (an id or any object with ``id``)."""
        return TreeNodeController(self, _node_id(item))

    def for_nodes(self, items: Iterable[Union[str, Any]]) -> 'TreeNodesController':
        """Controller bound to a set of nodes."""
        return TreeNodesController(self, [_node_id(item) for item in items])


class TreeNodeController:
    """TreeController operations with the node id bound once, for a single row."""

    def __init__(self, controller: TreeController, node_id: str):
        self.controller = controller
        self.node_id = node_id

    def toggle_expanded(self) -> None:
        self.controller.toggle_expanded(self.node_id)

    def set_expanded(self, expanded: bool = True) -> None:
        self.controller.set_expanded(self.node_id, expanded)

    def set_active(self, active: bool = True) -> None:
        """Make this node the active one, or clear it if it currently is."""
        node_id = self.node_id
        if active:
            self.controller.set_active_id(node_id)
        else:
            self.controller.update_state(
                lambda state, tree: state.with_active_id(None) if state.active_id == node_id else state)

    def __repr__(self) -> str:
        return f"TreeNodeController({self.node_id!r})"


class TreeNodesController:
    """TreeController operations bound to a fixed set of nodes."""

    def __init__(self, controller: TreeController, node_ids: Sequence[str]):
        self.controller = controller
        self.node_ids: Tuple[str, ...] = tuple(node_ids)

    def set_all_expanded(self) -> None:
        self.controller.set_all_expanded(self.node_ids)


NOOP_TREE_CONTROLLER = TreeController(noop_update_state)
