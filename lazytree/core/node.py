"""Value types shared by the loader, the controller and the container.

Everything in this module is immutable. State changes are expressed by
building new values (``ViewState.with_expanded`` and friends), so that
consumers can detect change by identity.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Tuple


@dataclass(frozen=True)
class SourceNode:
    """A node as supplied by a tree source.

    ``id`` is the identity key used everywhere in the library. ``data`` is
    an opaque payload that is carried through untouched.

    Sources may also return their own objects instead of ``SourceNode``;
    anything with an ``id`` attribute works.
    """

    id: str
    data: Any = None


@dataclass(frozen=True, eq=False)
class LoadableSet:
    """Result of one asynchronous fetch, paired with a loading flag.

    ``error`` is only set when an error policy chose to surface a failed
    fetch instead of leaving it loading.
    """

    is_loading: bool
    items: Tuple[Any, ...] = ()
    error: Optional[BaseException] = None

    @classmethod
    def pending(cls) -> 'LoadableSet':
        return _PENDING

    @classmethod
    def resolved(cls, items: Iterable[Any]) -> 'LoadableSet':
        return cls(is_loading=False, items=tuple(items))

    @classmethod
    def failed_with(cls, error: BaseException) -> 'LoadableSet':
        return cls(is_loading=False, items=(), error=error)

    @property
    def failed(self) -> bool:
        return self.error is not None

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


_PENDING = LoadableSet(is_loading=True)


@dataclass(frozen=True, eq=False)
class ViewNode:
    """A source node annotated with everything a renderer needs.

    View nodes are rebuilt on every materialization but the loader hands
    back the previous instance whenever none of the derived fields nor
    the children changed, so ``old is new`` means "nothing to redraw".
    """

    node: Any
    is_expanded: bool
    is_active: bool
    is_active_trail: bool
    depth: int
    children: LoadableSet

    @property
    def id(self) -> str:
        return self.node.id

    @property
    def data(self) -> Any:
        return getattr(self.node, 'data', None)

    def __repr__(self) -> str:
        flags = ''.join([
            'E' if self.is_expanded else '-',
            'A' if self.is_active else '-',
            'T' if self.is_active_trail else '-',
            'L' if self.children.is_loading else '-',
        ])
        return f"ViewNode({self.id!r}, depth={self.depth}, {flags}, children={len(self.children)})"


@dataclass(frozen=True)
class ViewState:
    """User-driven view state: the active node and explicit expand flags.

    ``expanded_ids[id] is True`` forces a node open, ``False`` forces it
    closed and a missing key defers to the default (open when the node
    is on the active trail).
    """

    active_id: Optional[str] = None
    expanded_ids: Mapping[str, bool] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'expanded_ids', MappingProxyType(dict(self.expanded_ids)))

    @classmethod
    def coerce(cls, value: Any) -> 'ViewState':
        """Build a ViewState from None, a ViewState or a plain mapping.

        Mappings may use either ``active_id``/``expanded_ids`` or the
        camel-case ``activeId``/``expandedIds`` keys.
        """
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            active_id = value.get('active_id', value.get('activeId'))
            expanded_ids = value.get('expanded_ids', value.get('expandedIds')) or {}
            return cls(active_id=active_id, expanded_ids=expanded_ids)
        raise TypeError(f"Cannot build a ViewState from {type(value).__name__}")

    def explicit_expanded(self, node_id: str) -> Optional[bool]:
        return self.expanded_ids.get(node_id)

    def with_active_id(self, node_id: Optional[str]) -> 'ViewState':
        if node_id == self.active_id:
            return self
        return replace(self, active_id=node_id)

    def with_expanded(self, node_id: str, expanded: bool) -> 'ViewState':
        if self.expanded_ids.get(node_id) is expanded:
            return self
        expanded_ids = dict(self.expanded_ids)
        expanded_ids[node_id] = expanded
        return replace(self, expanded_ids=expanded_ids)

    def with_expanded_many(self, node_ids: Iterable[str], expanded: bool = True) -> 'ViewState':
        changes = {node_id: expanded for node_id in node_ids
                   if self.expanded_ids.get(node_id) is not expanded}
        if not changes:
            return self
        return replace(self, expanded_ids={**self.expanded_ids, **changes})

    def to_dict(self) -> dict:
        return {'active_id': self.active_id, 'expanded_ids': dict(self.expanded_ids)}

    def __hash__(self) -> int:
        return hash((self.active_id, frozenset(self.expanded_ids.items())))


@dataclass(frozen=True, eq=False)
class MaterializedTree:
    """The annotated tree handed to consumers.

    ``all_nodes`` is a live read-only view of every view node built for
    the current source, including nodes that are no longer visible.
    """

    items: Tuple[ViewNode, ...]
    is_loading: bool
    all_nodes: Mapping[str, ViewNode]
    error: Optional[BaseException] = None

    @classmethod
    def empty(cls) -> 'MaterializedTree':
        return cls(items=(), is_loading=True, all_nodes=MappingProxyType({}))

    def get(self, node_id: str) -> Optional[ViewNode]:
        return self.all_nodes.get(node_id)

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)
