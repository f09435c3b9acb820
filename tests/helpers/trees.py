"""Builders for tree documents used across the unit tests."""

from __future__ import annotations

from typing import Any

from engine_boundary.tree import ReferenceTree

Raw = dict[str, Any]


def const(name: str, *, line: int = 1, column: int = 0) -> Raw:
    """Nested const chain for ``A::B::C`` (a leading ``::`` becomes a cbase)."""

    scope: Raw | None = None
    if name.startswith("::"):
        scope = {"type": "cbase", "line": line, "column": column}
        name = name[2:]
    for segment in name.split("::"):
        scope = {
            "type": "const",
            "value": segment,
            "children": [scope],
            "line": line,
            "column": column,
        }
    assert scope is not None
    return scope


def send(receiver: Raw | None, method: str, *args: Raw, line: int = 1) -> Raw:
    return {"type": "send", "value": method, "children": [receiver, *args], "line": line}


def sym(value: str, *, line: int = 1) -> Raw:
    return {"type": "sym", "value": value, "line": line}


def string(value: str, *, line: int = 1, column: int = 0) -> Raw:
    return {"type": "str", "value": value, "line": line, "column": column}


def pair(key: str, value: Raw) -> Raw:
    return {"type": "pair", "children": [sym(key), value]}


def hash_(**entries: Raw) -> Raw:
    return {"type": "hash", "children": [pair(key, value) for key, value in entries.items()]}


def array(*items: Raw) -> Raw:
    return {"type": "array", "children": list(items)}


def block(call: Raw, *body: Raw) -> Raw:
    return {
        "type": "block",
        "children": [call, {"type": "args", "children": []}, begin(*body) if body else None],
    }


def begin(*statements: Raw) -> Raw:
    return {"type": "begin", "children": list(statements)}


def module(name: str, *body: Raw) -> Raw:
    return {"type": "module", "children": [const(name), begin(*body) if body else None]}


def klass(name: str, superclass: str | None = None, *body: Raw) -> Raw:
    return {
        "type": "class",
        "children": [
            const(name),
            const(superclass) if superclass else None,
            begin(*body) if body else None,
        ],
    }


def document(path: str, *statements: Raw) -> Raw:
    return {"path": path, "root": begin(*statements)}


def tree(path: str, *statements: Raw) -> ReferenceTree:
    return ReferenceTree.from_mapping(document(path, *statements))
