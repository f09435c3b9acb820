"""Shared records for the engine boundary analyzer.

These models stay deliberately small: the analyzer hands them across module
seams (reader -> validator -> reporter -> CLI) and never mutates them after
construction, so every container is a ``tuple`` or ``frozenset``.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SourceLocation:
    """Position of a node in the analyzed source file (1-based line)."""

    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


@dataclass(frozen=True, slots=True)
class ApiArtifacts:
    """Declared API surface of one engine."""

    allowlist: tuple[str, ...] = ()
    legacy_dependents: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Offense:
    """A single boundary violation attached to a source location."""

    path: str
    location: SourceLocation
    message: str
    accessed_engine: str
    current_engine: str | None

    def as_dict(self) -> dict[str, object]:
        return {
            "path": self.path,
            "line": self.location.line,
            "column": self.location.column,
            "message": self.message,
            "accessed_engine": self.accessed_engine,
            "current_engine": self.current_engine,
        }


@dataclass(frozen=True, slots=True)
class Factory:
    """Parsed ``factory`` declaration from a fixture definition file."""

    name: str
    aliases: tuple[str, ...]
    parent: str | None
    model_class_name: str | None


__all__ = ["ApiArtifacts", "Factory", "Offense", "SourceLocation"]
