"""Test fixtures for lazytree consumers.

These fixtures provide an in-memory tree source whose answers can be
held back, delayed or failed on demand, so tests can control the order
in which fetches resolve.
"""

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..core import AsyncTreeSource, SourceNode
from ..error_policies import UnknownNodeError

CallKey = Tuple[str, Optional[str]]


class InMemoryTreeSource(AsyncTreeSource):
    """Tree source backed by a parent -> children mapping.

    Example:
        source = InMemoryTreeSource.from_nested({'a': {'a1': {}}, 'b': {}})

        gate = source.hold('children', 'a')   # children('a') now blocks
        ...
        source.release('children', 'a')

    Every call is recorded in ``calls`` as ``(method_name, node_id)``.
    """

    def __init__(self, children: Mapping[Optional[str], Sequence[Union[str, SourceNode]]],
                 delay: float = 0.0):
        """
        Args:
            children: Parent id (None for roots) -> ordered children. Children
                may be SourceNode objects or plain ids.
            delay: Seconds every call sleeps before answering
        """
        super().__init__()
        self.delay = delay
        self.calls: List[CallKey] = []
        self._nodes: Dict[str, SourceNode] = {}
        self._children: Dict[Optional[str], Tuple[SourceNode, ...]] = {}
        self._parents: Dict[str, Optional[str]] = {}
        self._gates: Dict[CallKey, asyncio.Event] = {}
        self._delays: Dict[CallKey, float] = {}
        self._failures: Dict[CallKey, Exception] = {}

        for parent_id, items in children.items():
            nodes = tuple(self._node(item) for item in items)
            self._children[parent_id] = nodes
            for node in nodes:
                self._parents[node.id] = parent_id

    @classmethod
    def from_nested(cls, nested: Mapping[str, Any], delay: float = 0.0) -> 'InMemoryTreeSource':
        """Build a source from nested dicts: ``{'a': {'a1': {}}, 'b': {}}``."""
        table: Dict[Optional[str], List[str]] = {}

        def walk(parent_id: Optional[str], level: Mapping[str, Any]) -> None:
            table[parent_id] = list(level)
            for node_id, sub in level.items():
                walk(node_id, sub or {})

        walk(None, nested)
        return cls(table, delay=delay)

    def _node(self, item: Union[str, SourceNode]) -> SourceNode:
        node = item if isinstance(item, SourceNode) else SourceNode(item, {'name': item})
        self._nodes[node.id] = node
        return node

    def node(self, node_id: str) -> SourceNode:
        return self._nodes[node_id]

    # Controls

    def hold(self, method_name: str, node_id: Optional[str]) -> asyncio.Event:
        """Block calls for this key until release() is called."""
        gate = asyncio.Event()
        self._gates[(method_name, node_id)] = gate
        return gate

    def release(self, method_name: str, node_id: Optional[str]) -> None:
        gate = self._gates.pop((method_name, node_id), None)
        if gate is not None:
            gate.set()

    def release_all(self) -> None:
        for key in list(self._gates):
            self.release(*key)

    def set_delay(self, method_name: str, node_id: Optional[str], seconds: float) -> None:
        self._delays[(method_name, node_id)] = seconds

    def fail(self, method_name: str, node_id: Optional[str], error: Exception) -> None:
        """Make calls for this key raise ``error``."""
        self._failures[(method_name, node_id)] = error

    def count(self, method_name: str, node_id: Optional[str]) -> int:
        return self.calls.count((method_name, node_id))

    # AsyncTreeSource

    async def _answer(self, key: CallKey) -> None:
        self.calls.append(key)
        gate = self._gates.get(key)
        if gate is not None:
            await gate.wait()
        delay = self._delays.get(key, self.delay)
        await asyncio.sleep(delay)
        error = self._failures.get(key)
        if error is not None:
            raise error

    async def children(self, node_id: Optional[str]) -> Sequence[SourceNode]:
        await self._answer(('children', node_id))
        if node_id is not None and node_id not in self._nodes:
            raise UnknownNodeError(node_id)
        return list(self._children.get(node_id, ()))

    async def trail(self, node_id: str) -> Sequence[SourceNode]:
        await self._answer(('trail', node_id))
        if node_id not in self._nodes:
            raise UnknownNodeError(node_id)
        trail = []
        current: Optional[str] = node_id
        while current is not None:
            trail.append(self._nodes[current])
            current = self._parents.get(current)
        return trail

    async def get_stats(self) -> dict:
        return {
            'calls': len(self.calls),
            'children_calls': sum(1 for method, _ in self.calls if method == 'children'),
            'trail_calls': sum(1 for method, _ in self.calls if method == 'trail'),
        }

    def __repr__(self) -> str:
        return f"InMemoryTreeSource({len(self._nodes)} nodes)"
