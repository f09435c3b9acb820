"""Arena representation of a parsed symbolic-reference tree.

The parser is an external collaborator: it hands each file over as a JSON tree
document (nested node objects).  :class:`ReferenceTree` flattens the document
into a list of :class:`Node` records indexed in depth-first pre-order, each
holding the index of its parent.  Walking towards the root is therefore a
bounded index-chasing loop and never needs back references.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .models import SourceLocation

CONST = "const"
CBASE = "cbase"
SEND = "send"
STR = "str"
SYM = "sym"
HASH = "hash"
PAIR = "pair"
ARRAY = "array"
BLOCK = "block"
MODULE = "module"
CLASS = "class"

NAMESPACE_SEPARATOR = "::"


class TreeFormatError(ValueError):
    """Raised when a tree document does not have the expected shape."""


@dataclass(frozen=True, slots=True)
class Node:
    """Single node of a reference tree.

    ``children`` holds child node indices by slot; absent slots (an implicit
    receiver, a class without superclass) are ``None``.  ``value`` carries the
    literal payload: the short name of a const, the method of a send, or the
    content of a str/sym literal.
    """

    index: int
    type: str
    value: str | None
    parent: int | None
    children: tuple[int | None, ...]
    source: str
    location: SourceLocation


class ReferenceTree:
    """Immutable arena of :class:`Node` records for one source file."""

    def __init__(self, path: str, nodes: Sequence[Node]) -> None:
        self._path = path
        self._nodes = tuple(nodes)

    @property
    def path(self) -> str:
        return self._path

    @property
    def root(self) -> Node | None:
        return self._nodes[0] if self._nodes else None

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        # Indices are assigned in pre-order, so arena order is the walk order.
        return iter(self._nodes)

    def node(self, index: int) -> Node:
        return self._nodes[index]

    def parent(self, node: Node) -> Node | None:
        if node.parent is None:
            return None
        return self._nodes[node.parent]

    def child(self, node: Node, slot: int) -> Node | None:
        if slot >= len(node.children):
            return None
        index = node.children[slot]
        return None if index is None else self._nodes[index]

    def present_children(self, node: Node) -> list[Node]:
        return [self._nodes[index] for index in node.children if index is not None]

    # ------------------------------------------------------------------
    # Constant helpers
    # ------------------------------------------------------------------
    def const_name(self, node: Node) -> str | None:
        """Dotted name of a const node, ignoring a leading ``::``.

        A chain scoped by anything other than a const or ``::`` (``foo::Bar``)
        has no static name and yields ``None``.
        """

        if node.type != CONST:
            return None
        parts = [node.value or ""]
        scope = self.child(node, 0)
        while scope is not None and scope.type == CONST:
            parts.append(scope.value or "")
            scope = self.child(scope, 0)
        if scope is not None and scope.type != CBASE:
            return None
        return NAMESPACE_SEPARATOR.join(reversed(parts))

    def const_lineage(self, node: Node, limit: int) -> tuple[Node, ...]:
        """Return ``node`` and its enclosing const nodes, at most ``limit`` of them."""

        lineage: list[Node] = []
        current: Node | None = node
        while current is not None and current.type == CONST and len(lineage) < limit:
            lineage.append(current)
            current = self.parent(current)
        return tuple(lineage)

    def outermost_const(self, node: Node) -> Node:
        current = node
        parent = self.parent(current)
        while parent is not None and parent.type == CONST:
            current = parent
            parent = self.parent(current)
        return current

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    def from_mapping(cls, document: Mapping[str, Any]) -> ReferenceTree:
        if not isinstance(document, Mapping):
            raise TreeFormatError(
                f"tree document must be a mapping, got {type(document).__name__}"
            )
        path = document.get("path")
        if not isinstance(path, str) or not path:
            raise TreeFormatError("tree document requires a non-empty 'path'")
        root = document.get("root")
        if root is None:
            return cls(path, ())
        return cls(path, _flatten(root, path))

    @classmethod
    def loads(cls, text: str) -> ReferenceTree:
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            raise TreeFormatError(f"invalid tree document JSON: {exc}") from exc
        return cls.from_mapping(document)


def load_tree(path: Path | str) -> ReferenceTree:
    """Read a tree document from ``path``."""

    source = Path(path)
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as exc:
        raise TreeFormatError(f"failed to read tree document {source}: {exc}") from exc
    return ReferenceTree.loads(text)


def _flatten(root: Any, path: str) -> list[Node]:
    records: list[tuple[Mapping[str, Any], int | None]] = []
    slots: list[list[int | None]] = []
    stack: list[tuple[Any, int | None, int | None]] = [(root, None, None)]
    while stack:
        raw, parent, slot = stack.pop()
        if not isinstance(raw, Mapping):
            raise TreeFormatError(f"{path}: node must be a mapping, got {type(raw).__name__}")
        raw_children = raw.get("children", ())
        if not isinstance(raw_children, list | tuple):
            raise TreeFormatError(f"{path}: node 'children' must be a list")
        index = len(records)
        records.append((raw, parent))
        slots.append([None] * len(raw_children))
        if parent is not None and slot is not None:
            slots[parent][slot] = index
        for child_slot in reversed(range(len(raw_children))):
            child = raw_children[child_slot]
            if child is not None:
                stack.append((child, index, child_slot))

    types: list[str] = []
    values: list[str | None] = []
    for raw, _ in records:
        node_type = raw.get("type")
        if not isinstance(node_type, str) or not node_type:
            raise TreeFormatError(f"{path}: node 'type' must be a non-empty string")
        types.append(node_type)
        values.append(_coerce_value(raw.get("value"), path))

    # Children always carry larger indices than their parent, so sources can be
    # derived bottom-up in a single reverse pass.
    sources: list[str] = [""] * len(records)
    for index in reversed(range(len(records))):
        raw, _ = records[index]
        explicit = raw.get("source")
        if explicit is not None:
            if not isinstance(explicit, str):
                raise TreeFormatError(f"{path}: node 'source' must be a string")
            sources[index] = explicit
            continue
        sources[index] = _derive_source(types[index], values[index], slots[index], sources)

    nodes: list[Node] = []
    for index, (raw, parent) in enumerate(records):
        nodes.append(
            Node(
                index=index,
                type=types[index],
                value=values[index],
                parent=parent,
                children=tuple(slots[index]),
                source=sources[index],
                location=SourceLocation(
                    line=_coerce_int(raw.get("line", 1), "line", path),
                    column=_coerce_int(raw.get("column", 0), "column", path),
                ),
            )
        )
    return nodes


def _derive_source(
    node_type: str,
    value: str | None,
    children: Sequence[int | None],
    sources: Sequence[str],
) -> str:
    if node_type == CBASE:
        return NAMESPACE_SEPARATOR
    if node_type == CONST:
        scope = children[0] if children else None
        if scope is None:
            return value or ""
        prefix = sources[scope]
        if prefix.endswith(NAMESPACE_SEPARATOR):
            return f"{prefix}{value or ''}"
        return f"{prefix}{NAMESPACE_SEPARATOR}{value or ''}"
    if node_type == STR:
        return json.dumps(value or "")
    if node_type == SYM:
        return f":{value or ''}"
    return value or ""


def _coerce_value(value: Any, path: str) -> str | None:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool | int | float):
        return str(value)
    raise TreeFormatError(f"{path}: node 'value' must be a scalar, got {type(value).__name__}")


def _coerce_int(value: Any, field: str, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TreeFormatError(f"{path}: node '{field}' must be an integer")
    return value


__all__ = [
    "ARRAY",
    "BLOCK",
    "CBASE",
    "CLASS",
    "CONST",
    "HASH",
    "MODULE",
    "NAMESPACE_SEPARATOR",
    "PAIR",
    "SEND",
    "STR",
    "SYM",
    "Node",
    "ReferenceTree",
    "TreeFormatError",
    "load_tree",
]
