"""
Tree loader: turns a lazy tree source plus a view state into a tree of
annotated view nodes.

The loader owns three tables, all scoped to the current source instance:

- the root nodes,
- the children of every node fetched so far (id -> LoadableSet),
- the trail (path to a root) of every node whose trail is known.

``materialize()`` is synchronous. It schedules whatever fetches the view
state calls for as asyncio tasks and immediately returns a tree built
from what is already known. When a fetch commits, subscribers are
notified so the owner can materialize again.
"""

import asyncio
import logging
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .config import LoaderConfig
from .core.node import LoadableSet, MaterializedTree, ViewNode, ViewState
from .error_policies import ErrorPolicy, MarkFailedPolicy, StallPolicy

logger = logging.getLogger(__name__)

Trail = Tuple[Any, ...]


def suffixes(trail: Sequence[Any]) -> List[Trail]:
    """All non-empty suffixes of a trail, longest first.

    Each suffix is the trail of its first element.
    """
    return [tuple(trail[i:]) for i in range(len(trail))]


def same_items(first: Sequence[Any], second: Sequence[Any]) -> bool:
    """Element-wise identity comparison."""
    if first is second:
        return True
    if len(first) != len(second):
        return False
    return all(a is b for a, b in zip(first, second))


def is_expanded(state: ViewState, node_id: str, is_active_trail: bool) -> bool:
    """Effective expansion of a node.

    An explicit True always opens, an explicit False always closes and
    nodes on the active trail are open by default.
    """
    explicit = state.expanded_ids.get(node_id)
    return explicit is True or (is_active_trail and explicit is not False)


class TreeLoader:
    """
    Materializer for lazily loaded trees.

    Example:
        loader = TreeLoader({'loading_transition_ms': 100})
        loader.subscribe(lambda: render(loader.materialize(source, state)))
        render(loader.materialize(source, state))

    Must be used from within a running asyncio event loop.
    """

    def __init__(self, config: Any = None, policy: Optional[ErrorPolicy] = None):
        """
        Initialize the loader.

        Args:
            config: LoaderConfig, mapping of options, or None for defaults
            policy: Failure policy (defaults to StallPolicy, or
                MarkFailedPolicy when config.mark_failures is set)
        """
        self.config = LoaderConfig.coerce(config)
        if policy is None:
            policy = MarkFailedPolicy() if self.config.mark_failures else StallPolicy()
        self.policy = policy

        self._source: Any = None
        self._roots: LoadableSet = LoadableSet.pending()
        self._children: Dict[str, LoadableSet] = {}
        self._trails: Dict[str, Trail] = {}
        self._view_nodes: Dict[str, ViewNode] = {}
        self._all_nodes = MappingProxyType(self._view_nodes)
        self._tree: Optional[MaterializedTree] = None
        self._state = ViewState()

        # Ids with a fetch in flight (or failed and stalled) for this source
        self._pending_children: Set[str] = set()
        self._pending_trails: Set[str] = set()

        self._tasks: Set[asyncio.Task] = set()
        self._listeners: List[Callable[[], None]] = []
        self._closed = False
        # Policy errors raised out of a task, already counted as failures
        self._aborts: Dict[int, BaseException] = {}

        self.stats = {
            'root_fetches': 0,
            'trail_fetches': 0,
            'children_batches': 0,
            'children_fetches': 0,
            'stale_discarded': 0,
            'failures': 0,
            'source_swaps': 0,
        }

    # Public API

    @property
    def source(self) -> Any:
        return self._source

    @property
    def state(self) -> ViewState:
        return self._state

    @property
    def tree(self) -> Optional[MaterializedTree]:
        """The last materialized tree, or None before the first call."""
        return self._tree

    def materialize(self, source: Any, state: Any = None) -> MaterializedTree:
        """
        Build the view tree for a source and a view state.

        Schedules root, trail and children fetches as needed. Returns the
        same MaterializedTree instance as the previous call when nothing
        visible at the root level changed.

        Args:
            source: Tree source (compared by identity across calls)
            state: ViewState, mapping, or None for an empty state

        Returns:
            The current MaterializedTree
        """
        if self._closed:
            raise RuntimeError("TreeLoader is closed")

        state = ViewState.coerce(state)
        if source is not self._source:
            self._attach(source)
        self._state = state

        self._ensure_trail(state.active_id)
        active_trail_ids = self.active_trail_ids(state.active_id)
        self._ensure_children(state, active_trail_ids)

        return self._build(state, active_trail_ids)

    def active_trail_ids(self, active_id: Optional[str]) -> Tuple[str, ...]:
        """Ids on the trail of the active node, active node first."""
        if active_id is None:
            return ()
        trail = self._trails.get(active_id)
        if trail is None:
            return ()
        return tuple(node.id for node in trail)

    def get_trail(self, node_id: str) -> Optional[Trail]:
        return self._trails.get(node_id)

    def get_children(self, node_id: str) -> Optional[LoadableSet]:
        return self._children.get(node_id)

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """
        Register a callback fired after every committed fetch.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def settle(self) -> None:
        """Wait until no fetch is in flight.

        Fetches scheduled by listeners while waiting are waited for too.
        Never returns if the source never answers.
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def get_stats(self) -> dict:
        """
        Get loader statistics for monitoring and debugging.
        """
        return {
            **self.stats,
            'in_flight': len(self._tasks),
            'known_nodes': len(self._view_nodes),
            'known_trails': len(self._trails),
            'loaded_children': sum(1 for s in self._children.values() if not s.is_loading),
        }

    async def aclose(self) -> None:
        """Cancel in-flight fetches and drop listeners."""
        self._closed = True
        self._listeners.clear()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    # Source lifecycle

    def _attach(self, source: Any) -> None:
        """Reset every table and start loading the roots of a new source.

        Fetches still running against the previous source are left alone;
        their results are dropped when they arrive.
        """
        if self._source is not None:
            self.stats['source_swaps'] += 1
            logger.debug("Tree source replaced, resetting %d nodes", len(self._view_nodes))

        self._source = source
        self._roots = LoadableSet.pending()
        self._children = {}
        self._trails = {}
        self._view_nodes.clear()
        self._pending_children = set()
        self._pending_trails = set()
        self._tree = None

        self._spawn(self._load_roots(source))

    def _is_stale(self, source: Any) -> bool:
        if source is not self._source:
            self.stats['stale_discarded'] += 1
            logger.debug("Discarding result from a replaced tree source")
            return True
        return False

    def _spawn(self, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            raise RuntimeError("TreeLoader.materialize() must be called from a running event loop") from None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            if self._aborts.pop(id(error), None) is None:
                self.stats['failures'] += 1
            logger.error("Tree loader task failed", exc_info=error)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    def _add_trails(self, trails: Iterable[Trail]) -> None:
        for trail in trails:
            if trail:
                self._trails[trail[0].id] = trail

    async def _handle_failure(self, source: Any, error: Exception, method_name: str,
                              node_id: Optional[str], aborts: List[Exception]) -> Optional[LoadableSet]:
        """Ask the policy what to commit for a failed fetch.

        A policy that raises stalls the id; the error is collected in
        ``aborts`` and raised by the caller once its update has committed.
        """
        self.stats['failures'] += 1
        try:
            outcome = await self.policy.handle(error, method_name, node_id)
        except Exception as abort:
            aborts.append(abort)
            return None
        if source is not self._source:
            return None
        return outcome

    def _raise_aborts(self, aborts: List[Exception]) -> None:
        if aborts:
            abort = aborts[0]
            self._aborts[id(abort)] = abort
            raise abort

    # Fetches

    async def _load_roots(self, source: Any) -> None:
        self.stats['root_fetches'] += 1
        try:
            nodes = tuple(await source.children(None))
        except Exception as error:
            if self._is_stale(source):
                return
            aborts: List[Exception] = []
            outcome = await self._handle_failure(source, error, 'children', None, aborts)
            if outcome is not None:
                self._roots = outcome
                self._notify()
            self._raise_aborts(aborts)
            return

        if self._is_stale(source):
            return
        logger.debug("Loaded %d root nodes", len(nodes))
        self._roots = LoadableSet.resolved(nodes)
        self._add_trails((node,) for node in nodes)
        self._notify()

    def _ensure_trail(self, active_id: Optional[str]) -> None:
        if active_id is None or active_id in self._trails or active_id in self._pending_trails:
            return
        self._pending_trails.add(active_id)
        self._spawn(self._load_trail(self._source, active_id))

    async def _load_trail(self, source: Any, node_id: str) -> None:
        self.stats['trail_fetches'] += 1
        try:
            trail = tuple(await source.trail(node_id))
        except Exception as error:
            if self._is_stale(source):
                return
            # Stays in _pending_trails: not retried for this source
            aborts: List[Exception] = []
            await self._handle_failure(source, error, 'trail', node_id, aborts)
            self._raise_aborts(aborts)
            return

        if self._is_stale(source):
            return
        self._pending_trails.discard(node_id)
        logger.debug("Loaded trail of %r (%d nodes)", node_id, len(trail))
        self._add_trails(suffixes(trail))
        self._notify()

    def _ensure_children(self, state: ViewState, active_trail_ids: Sequence[str]) -> None:
        wanted = [node_id for node_id, expanded in state.expanded_ids.items() if expanded is True]
        wanted.extend(active_trail_ids)

        node_ids = []
        for node_id in wanted:
            if node_id in self._children or node_id in self._pending_children or node_id in node_ids:
                continue
            node_ids.append(node_id)
        if not node_ids:
            return

        self._pending_children.update(node_ids)
        if self.config.loading_transition_ms <= 0:
            self._show_loading(self._source, node_ids)
        self._spawn(self._load_children(self._source, tuple(node_ids)))

    def _show_loading(self, source: Any, node_ids: Sequence[str]) -> bool:
        if source is not self._source:
            return False
        placeholders = {node_id: LoadableSet.pending() for node_id in node_ids
                        if node_id not in self._children}
        self._children.update(placeholders)
        return bool(placeholders)

    async def _load_children(self, source: Any, node_ids: Tuple[str, ...]) -> None:
        """Fetch one batch of children and commit it as a single update."""
        self.stats['children_batches'] += 1
        self.stats['children_fetches'] += len(node_ids)
        logger.debug("Loading children of %s", ', '.join(map(repr, node_ids)))

        batch = asyncio.gather(*(source.children(node_id) for node_id in node_ids),
                               return_exceptions=True)
        try:
            delay = self.config.loading_transition_seconds
            if delay > 0:
                done, _ = await asyncio.wait({batch}, timeout=delay)
                if not done and self._show_loading(source, node_ids):
                    self._notify()
            results = await batch
        finally:
            if not batch.done():
                batch.cancel()

        if self._is_stale(source):
            return

        loaded: Dict[str, LoadableSet] = {}
        aborts: List[Exception] = []
        for node_id, result in zip(node_ids, results):
            if isinstance(result, Exception):
                outcome = await self._handle_failure(source, result, 'children', node_id, aborts)
                if outcome is not None:
                    loaded[node_id] = outcome
            elif isinstance(result, BaseException):
                raise result
            else:
                loaded[node_id] = LoadableSet.resolved(result)

        if source is not self._source:
            self._raise_aborts(aborts)
            return

        stalled = [node_id for node_id in node_ids if node_id not in loaded]
        self._children.update(loaded)
        self._show_loading(source, stalled)
        self._pending_children.difference_update(loaded)

        new_trails = []
        for node_id, children in loaded.items():
            parent_trail = self._trails.get(node_id)
            if parent_trail is None:
                continue
            new_trails.extend((child,) + parent_trail for child in children.items)
        self._add_trails(new_trails)

        self._notify()
        self._raise_aborts(aborts)

    # Tree reconstruction

    def _build(self, state: ViewState, active_trail_ids: Sequence[str]) -> MaterializedTree:
        active_id = state.active_id
        trail_index = frozenset(active_trail_ids)
        children_table = self._children
        view_nodes = self._view_nodes

        def build(node: Any, depth: int) -> ViewNode:
            node_id = node.id
            loadable = children_table.get(node_id)
            if loadable is not None:
                mapped = tuple(build(child, depth + 1) for child in loadable.items)
                is_loading = loadable.is_loading
                error = loadable.error
            else:
                mapped = ()
                is_loading = False
                error = None
            is_active = node_id == active_id
            is_active_trail = node_id in trail_index
            expanded = is_expanded(state, node_id, is_active_trail)

            current = view_nodes.get(node_id)
            if (current is not None
                    and current.node is node
                    and current.is_expanded == expanded
                    and current.is_active == is_active
                    and current.is_active_trail == is_active_trail
                    and current.depth == depth
                    and current.children.is_loading == is_loading
                    and current.children.error is error
                    and same_items(current.children.items, mapped)):
                # Still up to date: hand back the same instance
                return current

            view_node = ViewNode(
                node=node,
                is_expanded=expanded,
                is_active=is_active,
                is_active_trail=is_active_trail,
                depth=depth,
                children=LoadableSet(is_loading=is_loading, items=mapped, error=error),
            )
            view_nodes[node_id] = view_node
            return view_node

        items = tuple(build(node, 0) for node in self._roots.items)
        previous = self._tree
        if (previous is not None
                and previous.is_loading == self._roots.is_loading
                and previous.error is self._roots.error
                and same_items(previous.items, items)):
            return previous

        self._tree = MaterializedTree(
            items=items,
            is_loading=self._roots.is_loading,
            all_nodes=self._all_nodes,
            error=self._roots.error,
        )
        return self._tree

    def __repr__(self) -> str:
        return (f"TreeLoader(source={self._source!r}, nodes={len(self._view_nodes)}, "
                f"in_flight={len(self._tasks)})")
