"""Model-access oracle: is a constant a persistence-backed model?

Only persistence-backed models are subject to bare-constant boundary checks.
Answering that requires loading the symbol in the application runtime, so the
question is asked through the :class:`ModelOracle` protocol.  Implementations:

* :class:`StaticModelOracle` answers from a fixed set of names (tests, offline
  runs).
* :class:`RunnerModelOracle` runs the application's runner command and looks
  for the persistence base class among the symbol's ancestors.
* :class:`CachedModelOracle` memoizes another oracle for the life of a run.

Every failure answers "not a model": a missed warning is preferable to an
aborted run.
"""

from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Iterable, Sequence
from typing import Protocol, runtime_checkable

from .config import (
    DEFAULT_ORACLE_COMMAND,
    DEFAULT_ORACLE_TIMEOUT,
    DEFAULT_PERSISTENCE_BASE,
    OracleConfig,
)

LOGGER = logging.getLogger(__name__)

_QUALIFIED_NAME = re.compile(r"[A-Z]\w*(?:::[A-Z]\w*)*")


@runtime_checkable
class ModelOracle(Protocol):
    """Protocol implemented by persistence-model lookups."""

    def is_persistence_model(self, name: str) -> bool:
        """Return ``True`` when ``name`` denotes a persistence-backed model."""


class StaticModelOracle:
    """In-process oracle backed by a fixed set of model names."""

    def __init__(self, models: Iterable[str] = ()) -> None:
        self._models = frozenset(name.lstrip(":") for name in models)

    def is_persistence_model(self, name: str) -> bool:
        return name.lstrip(":") in self._models


class RunnerModelOracle:
    """Query the application runtime for a constant's ancestry."""

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_ORACLE_COMMAND,
        *,
        persistence_base: str = DEFAULT_PERSISTENCE_BASE,
        timeout: float = DEFAULT_ORACLE_TIMEOUT,
        cwd: str | None = None,
    ) -> None:
        if not command:
            raise ValueError("oracle command must not be empty")
        self._command = tuple(command)
        self._persistence_base = persistence_base
        self._timeout = timeout
        self._cwd = cwd

    def command_for(self, name: str) -> list[str]:
        return [part.replace("{name}", name) for part in self._command]

    def is_persistence_model(self, name: str) -> bool:
        name = name.lstrip(":")
        if not _QUALIFIED_NAME.fullmatch(name):
            LOGGER.debug("Refusing to query oracle for malformed constant %r", name)
            return False

        command = self.command_for(name)
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                cwd=self._cwd,
                check=False,
            )
        except subprocess.TimeoutExpired:
            LOGGER.warning(
                "Model oracle timed out after %.1fs for %s; treating as non-model",
                self._timeout,
                name,
            )
            return False
        except OSError as exc:
            LOGGER.warning("Model oracle unavailable (%s); treating %s as non-model", exc, name)
            return False

        if result.returncode != 0:
            LOGGER.warning(
                "Model oracle exited with status %d for %s; treating as non-model",
                result.returncode,
                name,
            )
            return False
        return self._persistence_base in result.stdout.split()


class CachedModelOracle:
    """Memoize answers of another oracle per fully qualified name."""

    def __init__(self, inner: ModelOracle) -> None:
        self._inner = inner
        self._answers: dict[str, bool] = {}

    @property
    def inner(self) -> ModelOracle:
        return self._inner

    def is_persistence_model(self, name: str) -> bool:
        cached = self._answers.get(name)
        if cached is not None:
            return cached
        answer = bool(self._inner.is_persistence_model(name))
        self._answers[name] = answer
        LOGGER.debug("Model oracle: %s -> %s", name, "model" if answer else "not a model")
        return answer


def build_oracle(config: OracleConfig) -> CachedModelOracle:
    """Construct the memoized oracle described by ``config``."""

    inner: ModelOracle
    if config.kind == "static":
        inner = StaticModelOracle(config.models)
    else:
        inner = RunnerModelOracle(
            config.command,
            persistence_base=config.persistence_base,
            timeout=config.timeout_seconds,
            cwd=config.working_directory,
        )
    return CachedModelOracle(inner)


__all__ = [
    "CachedModelOracle",
    "ModelOracle",
    "RunnerModelOracle",
    "StaticModelOracle",
    "build_oracle",
]
