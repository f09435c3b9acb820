"""Decision trace for boundary checks."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

__all__ = ["TraceEvent", "TraceEventEmitter"]


def _freeze_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze_value(item) for key, item in value.items()})
    if isinstance(value, list | tuple):
        return tuple(_freeze_value(item) for item in value)
    if isinstance(value, set | frozenset):
        return frozenset(_freeze_value(item) for item in value)
    return value


@dataclass(frozen=True, slots=True)
class TraceEvent:
    """Immutable record of one evaluated reference."""

    event: str
    path: str
    line: int
    payload: Mapping[str, Any]

    def as_dict(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "path": self.path,
            "line": self.line,
            **{key: _thaw(value) for key, value in self.payload.items()},
        }


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple | frozenset):
        return [_thaw(item) for item in value]
    return value


class TraceEventEmitter:
    """Collect trace events and forward them to an optional sink."""

    def __init__(self, sink: Callable[[TraceEvent], None] | None = None) -> None:
        self._events: list[TraceEvent] = []
        self._sink = sink

    def attach_sink(self, sink: Callable[[TraceEvent], None] | None) -> None:
        self._sink = sink

    def emit(
        self,
        event: str,
        *,
        path: str,
        line: int,
        payload: Mapping[str, Any] | None = None,
    ) -> TraceEvent:
        record = TraceEvent(
            event=event,
            path=path,
            line=line,
            payload=_freeze_value(dict(payload or {})),
        )
        self._events.append(record)
        if self._sink is not None:
            self._sink(record)
        return record

    @property
    def events(self) -> tuple[TraceEvent, ...]:
        return tuple(self._events)

    def clear(self) -> None:
        self._events.clear()
