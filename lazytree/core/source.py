"""Async tree source abstraction.

Defines how a hierarchical data set is exposed to the loader. A source
answers two questions, both asynchronously: what are the children of a
node, and what is the path from a node up to a root.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Sequence, Set


class AsyncTreeSource(ABC):
    """Abstract base class for tree sources.

    Sources bridge between the loader and a concrete data set (an API,
    a database, an in-memory structure...). Both queries must be
    idempotent for the same id for as long as the source instance lives;
    the loader fetches each id at most once per source instance.

    The loader does not require this base class: any object with
    ``children`` and ``trail`` coroutine methods is accepted.
    """

    def __init__(self):
        self._capabilities = self._define_capabilities()

    @abstractmethod
    async def children(self, node_id: Optional[str]) -> Sequence[Any]:
        """Get the ordered children of a node.

        Args:
            node_id: Parent id, or None for the root nodes

        Returns:
            Ordered sequence of nodes, each with an ``id`` attribute
        """
        pass

    @abstractmethod
    async def trail(self, node_id: str) -> Sequence[Any]:
        """Get the path from a node to a root.

        The node itself comes first and a root node comes last. Every
        suffix of a trail is the trail of its first element.

        Args:
            node_id: Node to resolve

        Returns:
            Ordered sequence of nodes, node first

        Raises:
            Implementation-defined error if the id is unknown
        """
        pass

    # Optional methods with default implementations

    def supports_capability(self, capability: str) -> bool:
        """Check if source supports a specific capability.

        Args:
            capability: Capability name

        Returns:
            True if capability is supported
        """
        return capability in self._capabilities

    def _define_capabilities(self) -> Set[str]:
        """Define source capabilities.

        Override in subclasses to declare supported features.
        """
        return {'children', 'trail'}

    async def get_stats(self) -> dict:
        """Get source statistics (call counts, cache hits, etc.)."""
        return {}

    async def close(self):
        """Clean up source resources.

        Override if the source holds connections or files.
        """
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class FunctionTreeSource(AsyncTreeSource):
    """Source built from two coroutine functions.

    Example:
        source = FunctionTreeSource(api.list_children, api.get_path)
    """

    def __init__(
        self,
        children: Callable[[Optional[str]], Awaitable[Sequence[Any]]],
        trail: Callable[[str], Awaitable[Sequence[Any]]],
    ):
        super().__init__()
        self._children = children
        self._trail = trail

    async def children(self, node_id: Optional[str]) -> Sequence[Any]:
        return await self._children(node_id)

    async def trail(self, node_id: str) -> Sequence[Any]:
        return await self._trail(node_id)

    def __repr__(self) -> str:
        return f"FunctionTreeSource({self._children!r}, {self._trail!r})"
