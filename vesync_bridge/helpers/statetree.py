"""
StateTree store contract.

The bridge doesn't own a persistent store: it talks to any hierarchical
key/value store through the StateTreeStore interface. MemoryStateTree is a
plain in-memory implementation used by the tests and by embedders which
don't carry their own store.
"""

import abc
from dataclasses import dataclass, field
import enum
import typing

if typing.TYPE_CHECKING:
    from typing import Any, Callable, Final, Iterator

    StateChangeCallback = Callable[[str, Any, bool], Any]


class StateTreeError(Exception):
    """store invariant violation (undeclared parent/path, writing a non-leaf)"""


class NodeKind(enum.StrEnum):
    DEVICE = "device"
    CHANNEL = "channel"
    STATE = "state"


class EnsureOutcome(enum.Enum):
    CREATED = enum.auto()
    UPDATED = enum.auto()
    UNCHANGED = enum.auto()
    KIND_CHANGED = enum.auto()


@dataclass(frozen=True)
class NodeShape:
    """The declaration part of a node: re-declaring the same shape is a no-op"""

    kind: NodeKind
    name: str = ""
    value_type: str | None = None
    read: bool = True
    write: bool = False
    default: "Any" = None
    description: str = ""


@dataclass
class StateNode:
    path: str
    shape: NodeShape
    value: "Any" = None
    remote_origin: bool = True
    """False when the last write came from a local (user) write"""

    @property
    def kind(self):
        return self.shape.kind

    @property
    def value_type(self):
        return self.shape.value_type

    @property
    def name(self):
        return self.shape.name


def parent_path(path: str) -> str | None:
    index = path.rfind(".")
    return path[:index] if index > 0 else None


class StateTreeStore(abc.ABC):
    """
    Hierarchical store addressed by dot separated paths.
    Parents must be declared before their children.
    """

    @abc.abstractmethod
    def ensure_node(self, path: str, shape: NodeShape) -> EnsureOutcome:
        """
        Idempotent declaration (upsert). A declaration changing the node kind
        (channel <-> leaf) drops the former value and any descendant.
        """

    @abc.abstractmethod
    def write_leaf(self, path: str, value: "Any", remote_origin: bool) -> None:
        """
        Sets the leaf value. remote_origin=True marks the value as acknowledged
        (it reflects the remote state) while False is a local (pending) command.
        Observers are always notified, even if the value didn't change.
        """

    @abc.abstractmethod
    def read_leaf(self, path: str) -> "Any":
        """Returns the leaf value or None when the path is unknown"""

    @abc.abstractmethod
    def subscribe_all(self, callback: "StateChangeCallback") -> "Callable[[], None]":
        """
        Registers callback(path, value, remote_origin) for every leaf write.
        Returns the unsubscribe function.
        """


class MemoryStateTree(StateTreeStore):
    if typing.TYPE_CHECKING:
        nodes: Final[dict[str, StateNode]]
        _listeners: Final[list[StateChangeCallback]]

    __slots__ = (
        "nodes",
        "_listeners",
    )

    def __init__(self):
        self.nodes = {}
        self._listeners = []

    def __contains__(self, path: str):
        return path in self.nodes

    def get_node(self, path: str) -> StateNode | None:
        return self.nodes.get(path)

    def iter_children(self, path: str) -> "Iterator[StateNode]":
        """direct children of path (in declaration order)"""
        for node in self.nodes.values():
            if parent_path(node.path) == path:
                yield node

    def ensure_node(self, path: str, shape: NodeShape) -> EnsureOutcome:
        if not path:
            raise StateTreeError("Empty node path")
        _parent_path = parent_path(path)
        if _parent_path and (_parent_path not in self.nodes):
            raise StateTreeError(f"Parent of {path} is not declared")
        try:
            node = self.nodes[path]
        except KeyError:
            self.nodes[path] = StateNode(path, shape, shape.default)
            return EnsureOutcome.CREATED
        if node.shape == shape:
            return EnsureOutcome.UNCHANGED
        if (node.kind is NodeKind.STATE) != (shape.kind is NodeKind.STATE):
            prefix = path + "."
            for _path in [_path for _path in self.nodes if _path.startswith(prefix)]:
                del self.nodes[_path]
            self.nodes[path] = StateNode(path, shape, shape.default)
            return EnsureOutcome.KIND_CHANGED
        node.shape = shape
        return EnsureOutcome.UPDATED

    def write_leaf(self, path: str, value: "Any", remote_origin: bool) -> None:
        try:
            node = self.nodes[path]
        except KeyError as error:
            raise StateTreeError(f"Writing undeclared node {path}") from error
        if node.kind is not NodeKind.STATE:
            raise StateTreeError(f"Writing {node.kind} node {path}")
        node.value = value
        node.remote_origin = remote_origin
        for listener in list(self._listeners):
            listener(path, value, remote_origin)

    def read_leaf(self, path: str) -> "Any":
        node = self.nodes.get(path)
        return node.value if node else None

    def subscribe_all(self, callback: "StateChangeCallback"):
        self._listeners.append(callback)

        def _unsubscribe():
            self._listeners.remove(callback)

        return _unsubscribe
