"""
JSON flattening: converts any json value into the set of node
declarations and leaf writes needed to represent it in the state tree.

flatten is pure (it only builds the operations list) so that it is
deterministic and testable without a store. apply_operations then
replays the operations against a StateTreeStore.
"""

from dataclasses import dataclass
import logging
import typing

from . import LOGGER
from ..vesyncclient import sanitize_path_segment
from .statetree import EnsureOutcome, NodeKind, NodeShape

if typing.TYPE_CHECKING:
    from typing import Any, Iterable

    from . import Loggable
    from .statetree import StateTreeStore


@dataclass(frozen=True)
class FlattenOptions:
    force_indexed_arrays: bool = False
    writable_leaves: bool = False
    preferred_array_key_field: str | None = None
    root_channel_label: str | None = None


@dataclass(frozen=True)
class DeclareNode:
    path: str
    shape: NodeShape


@dataclass(frozen=True)
class WriteLeaf:
    """leaf writes from flattening are always acknowledged (remote origin)"""

    path: str
    value: "Any"


FlattenOperation = DeclareNode | WriteLeaf

VALUE_TYPE_BOOLEAN = "boolean"
VALUE_TYPE_NUMBER = "number"
VALUE_TYPE_STRING = "string"
VALUE_TYPE_JSON = "json"


def infer_leaf(value: "Any") -> tuple[str, "Any"]:
    """Returns (value_type, value) coercing unsupported types to str"""
    if isinstance(value, bool):
        return VALUE_TYPE_BOOLEAN, value
    if isinstance(value, (int, float)):
        return VALUE_TYPE_NUMBER, value
    if isinstance(value, str):
        return VALUE_TYPE_STRING, value
    if value is None:
        return VALUE_TYPE_STRING, None
    return VALUE_TYPE_STRING, str(value)


def _segment(key) -> str:
    # an empty segment would produce an invalid "a..b" path
    return sanitize_path_segment(key) or "_"


def _unique(name: str, used: set[str]) -> str:
    if name in used:
        suffix = 2
        while f"{name}_{suffix}" in used:
            suffix += 1
        name = f"{name}_{suffix}"
    used.add(name)
    return name


def _array_keys(items: list, options: FlattenOptions) -> list[str]:
    key_field = options.preferred_array_key_field
    if key_field:
        keys = []
        for item in items:
            if not isinstance(item, dict):
                break
            key = item.get(key_field)
            if isinstance(key, bool) or not isinstance(key, (str, int, float)):
                break
            keys.append(key)
        else:
            if len(set(keys)) == len(keys):
                used = set()
                return [_unique(_segment(key), used) for key in keys]
    # index naming is the fallback whenever elements are not uniquely keyable
    return [str(index) for index in range(len(items))]


class _Flattener:
    __slots__ = ("options", "operations")

    def __init__(self, options: FlattenOptions):
        self.options = options
        self.operations: list[FlattenOperation] = []

    def leaf(self, path: str, name: str, value: "Any"):
        value_type, value = infer_leaf(value)
        self.operations.append(
            DeclareNode(
                path,
                NodeShape(
                    NodeKind.STATE,
                    name,
                    value_type,
                    read=True,
                    write=self.options.writable_leaves,
                ),
            )
        )
        self.operations.append(WriteLeaf(path, value))

    def channel(self, path: str, name: str):
        self.operations.append(DeclareNode(path, NodeShape(NodeKind.CHANNEL, name)))

    def walk(self, path: str, name: str, value: "Any", is_root: bool = False):
        if isinstance(value, dict):
            if not is_root:
                self.channel(path, name)
            used = set()
            for key, child in value.items():
                key = _unique(_segment(key), used)
                self.walk(f"{path}.{key}", key, child)
        elif isinstance(value, (list, tuple)):
            if not value:
                if is_root:
                    return
                # an empty array has no children to carry its shape
                self.operations.append(
                    DeclareNode(
                        path,
                        NodeShape(
                            NodeKind.STATE,
                            name,
                            VALUE_TYPE_JSON,
                            read=True,
                            write=self.options.writable_leaves,
                        ),
                    )
                )
                self.operations.append(WriteLeaf(path, "[]"))
                return
            if not is_root:
                self.channel(path, name)
            for key, child in zip(_array_keys(value, self.options), value):
                self.walk(f"{path}.{key}", key, child)
        else:
            self.leaf(path, name, value)


def flatten(
    root_path: str, value: "Any", options: FlattenOptions = FlattenOptions()
) -> list[FlattenOperation]:
    """
    Builds the ordered list of operations representing value under root_path.
    When options.root_channel_label is set the root is declared as a channel
    with that name, else it is assumed already declared (i.e. a device node).
    A primitive value at root is always declared as a leaf.
    """
    flattener = _Flattener(options)
    name = root_path.rsplit(".", 1)[-1]
    if isinstance(value, (dict, list, tuple)):
        if options.root_channel_label is not None:
            flattener.channel(root_path, options.root_channel_label)
        flattener.walk(root_path, name, value, True)
    else:
        flattener.walk(root_path, name, value)
    return flattener.operations


def apply_operations(
    store: "StateTreeStore",
    operations: "Iterable[FlattenOperation]",
    logger: "Loggable | logging.Logger" = LOGGER,
):
    for operation in operations:
        if isinstance(operation, DeclareNode):
            if store.ensure_node(operation.path, operation.shape) is EnsureOutcome.KIND_CHANGED:
                logger.log(
                    logging.WARNING,
                    "Node %s changed kind to %s",
                    operation.path,
                    operation.shape.kind,
                )
        else:
            store.write_leaf(operation.path, operation.value, True)


def flatten_to_store(
    store: "StateTreeStore",
    root_path: str,
    value: "Any",
    options: FlattenOptions = FlattenOptions(),
    logger: "Loggable | logging.Logger" = LOGGER,
):
    apply_operations(store, flatten(root_path, value, options), logger)
