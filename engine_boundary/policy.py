"""Policy store: which engines exist and how strongly each one is protected."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType

from .config import PolicyConfig
from .inflector import camelize, camelize_all

LOGGER = logging.getLogger(__name__)


class PolicyStore:
    """Derive engine protection tiers from configuration and the engines directory.

    The directory listing is taken once, lazily, and memoized for the life of
    the store.  ``root`` anchors a relative ``EnginesPath``; it defaults to the
    process working directory.
    """

    def __init__(self, config: PolicyConfig, *, root: Path | str | None = None) -> None:
        self._config = config
        self._root = Path(root) if root is not None else None
        self._unprotected = camelize_all(config.unprotected_engines)
        self._strongly_protected = camelize_all(config.strongly_protected_engines)
        self._overrides = {
            camelize(engine): tuple(modules) for engine, modules in config.overrides.items()
        }
        self._directories: Mapping[str, str] | None = None
        self._protected: frozenset[str] | None = None

    @property
    def config(self) -> PolicyConfig:
        return self._config

    @property
    def engines_path(self) -> str:
        return self._config.engines_path

    @property
    def engines_dir(self) -> Path:
        engines_dir = Path(self._config.engines_path)
        if self._root is not None and not engines_dir.is_absolute():
            return self._root / engines_dir
        return engines_dir

    def all_engines(self) -> frozenset[str]:
        return frozenset(self.engine_directories())

    def engine_directories(self) -> Mapping[str, str]:
        """Engine name -> directory name under the engines directory."""

        if self._directories is None:
            self._directories = MappingProxyType(
                {camelize(name): name for name in self._engine_directories()}
            )
        return self._directories

    def engine_directory(self, engine: str) -> str | None:
        return self.engine_directories().get(engine)

    def protected_engines(self) -> frozenset[str]:
        if self._protected is None:
            self._protected = self.all_engines() - self._unprotected
            LOGGER.debug("Protected engines: %s", ", ".join(sorted(self._protected)) or "<none>")
        return self._protected

    def is_protected(self, engine: str | None) -> bool:
        return engine is not None and engine in self.protected_engines()

    def is_strongly_protected(self, engine: str | None) -> bool:
        return engine is not None and engine in self._strongly_protected

    def overrides_for(self, engine: str | None) -> tuple[str, ...] | None:
        if engine is None:
            return None
        return self._overrides.get(engine)

    def current_engine(self, file_path: str | None) -> str | None:
        """Engine owning ``file_path``, or ``None`` for main application code."""

        if not file_path:
            return None
        _, separator, tail = file_path.rpartition(self.engines_path)
        if not separator:
            return None
        engine_dir = tail.split("/", 1)[0]
        if not engine_dir:
            return None
        return camelize(engine_dir)

    def _engine_directories(self) -> list[str]:
        engines_dir = self.engines_dir
        try:
            return sorted(entry.name for entry in engines_dir.iterdir() if entry.is_dir())
        except OSError as exc:
            LOGGER.debug("Engines directory %s unavailable: %s", engines_dir, exc)
            return []


__all__ = ["PolicyStore"]
