"""
Tree container: binds a view state to a loader and republishes the result.

The container owns the canonical ViewState (either controlled from the
outside or kept internally from a default), feeds it together with the
source to a TreeLoader, and exposes the materialized tree and a
TreeController through a TreeContext handed down to consumers.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, TypeVar, Union

from .controller import NOOP_TREE_CONTROLLER, TreeController, TreeNodeController, TreeStateUpdater
from .core.node import MaterializedTree, ViewState
from .error_policies import ErrorPolicy
from .loader import TreeLoader

logger = logging.getLogger(__name__)

V = TypeVar('V')


class StateBinding(Generic[V]):
    """
    Controlled/uncontrolled value holder.

    When ``value`` is given the binding is controlled: ``set()`` only
    reports the requested value through ``on_change`` and the owner is
    expected to push it back with ``control()``. Otherwise the binding
    keeps the value itself, starting from ``default_value``.
    """

    def __init__(self, default_value: Optional[V] = None, value: Optional[V] = None,
                 on_change: Optional[Callable[[V], None]] = None, fallback: Optional[V] = None):
        self._inner = default_value if default_value is not None else fallback
        self._controlled = value
        self.on_change = on_change

    @property
    def is_controlled(self) -> bool:
        return self._controlled is not None

    @property
    def value(self) -> Optional[V]:
        return self._controlled if self._controlled is not None else self._inner

    def set(self, value: V) -> None:
        """Request a new value; no-op when it is the current one."""
        if value is self.value:
            return
        if self._controlled is None:
            self._inner = value
        if self.on_change is not None:
            self.on_change(value)

    def control(self, value: Optional[V]) -> None:
        """Replace the controlled value. None switches back to uncontrolled."""
        if value is None and self._controlled is not None:
            self._inner = self._controlled
        self._controlled = value


@dataclass(frozen=True)
class TreeContext:
    """
    What nested consumers need: the current tree and its controller.

    Pass it down explicitly. ``TreeContext.empty()`` is a harmless
    default whose controller ignores every call.
    """

    tree: MaterializedTree
    controller: TreeController

    @classmethod
    def empty(cls) -> 'TreeContext':
        return cls(tree=MaterializedTree.empty(), controller=NOOP_TREE_CONTROLLER)

    def node_controller(self, item: Union[str, Any]) -> TreeNodeController:
        return self.controller.for_node(item)


class TreeContainer:
    """
    Owner of a view state, a loader and the resulting tree.

    Example:
        async with TreeContainer(source, default_state={'active_id': 'a1'}) as container:
            container.subscribe(lambda tree: render(tree))
            container.controller.toggle_expanded('b')

    Must be used from within a running asyncio event loop.
    """

    def __init__(
        self,
        source: Any,
        default_state: Any = None,
        state: Any = None,
        on_state_change: Optional[Callable[[ViewState], None]] = None,
        loader_options: Any = None,
        policy: Optional[ErrorPolicy] = None,
    ):
        """
        Initialize the container.

        Args:
            source: Tree source
            default_state: Initial state when uncontrolled
            state: Controlled state; use set_state() to push updates
            on_state_change: Called with every requested new state
            loader_options: LoaderConfig or mapping of loader options
            policy: Failure policy for the loader
        """
        self._source = source
        self._binding: StateBinding[ViewState] = StateBinding(
            default_value=ViewState.coerce(default_state) if default_state is not None else None,
            value=ViewState.coerce(state) if state is not None else None,
            on_change=on_state_change,
            fallback=ViewState(),
        )
        self.loader = TreeLoader(loader_options, policy)
        self._unsubscribe_loader = self.loader.subscribe(self.refresh)
        self.controller = TreeController(self.update_state)
        self._tree: Optional[MaterializedTree] = None
        self._listeners: List[Callable[[MaterializedTree], None]] = []

    @property
    def source(self) -> Any:
        return self._source

    @property
    def state(self) -> ViewState:
        return self._binding.value

    @property
    def tree(self) -> MaterializedTree:
        if self._tree is None:
            return self.refresh()
        return self._tree

    @property
    def context(self) -> TreeContext:
        return TreeContext(tree=self.tree, controller=self.controller)

    def refresh(self) -> MaterializedTree:
        """Materialize again and publish the tree if it changed."""
        tree = self.loader.materialize(self._source, self.state)
        if tree is not self._tree:
            self._tree = tree
            for listener in list(self._listeners):
                listener(tree)
        return tree

    def update_state(self, updater: TreeStateUpdater) -> None:
        """Apply a ``(state, tree) -> state`` transform to the canonical state."""
        current = self.state
        new_state = ViewState.coerce(updater(current, self.tree))
        if new_state is current or new_state == current:
            return
        logger.debug("View state change: %r", new_state)
        self._binding.set(new_state)
        self.refresh()

    def set_state(self, state: Any) -> None:
        """Push a new controlled state (None reverts to uncontrolled)."""
        self._binding.control(ViewState.coerce(state) if state is not None else None)
        self.refresh()

    def set_source(self, source: Any) -> None:
        """Replace the source; everything loaded so far is discarded."""
        if source is self._source:
            return
        self._source = source
        self.refresh()

    def subscribe(self, listener: Callable[[MaterializedTree], None]) -> Callable[[], None]:
        """
        Register a callback fired with every newly published tree.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def settle(self) -> MaterializedTree:
        """Wait for all pending fetches and return the resulting tree."""
        if self._tree is None:
            self.refresh()
        await self.loader.settle()
        return self.tree

    async def aclose(self) -> None:
        self._unsubscribe_loader()
        self._listeners.clear()
        await self.loader.aclose()

    async def __aenter__(self):
        self.refresh()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def __repr__(self) -> str:
        return f"TreeContainer(source={self._source!r}, state={self.state!r})"
