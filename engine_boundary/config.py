from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml
from jsonschema import validators
from jsonschema.exceptions import ValidationError

from .inflector import camelize, camelize_all

LOGGER = logging.getLogger(__name__)

SECTION_NAME = "EngineApiBoundary"

DEFAULT_API_PATH = "{engine}/app/api/{engine}/api"
DEFAULT_ORACLE_COMMAND = ("bin/rails", "runner", "puts {name}.ancestors")
DEFAULT_PERSISTENCE_BASE = "ActiveRecord::Base"
DEFAULT_ORACLE_TIMEOUT = 60.0

_ENGINE_LIST = {"type": "array", "items": {"type": "string", "minLength": 1}}

CONFIG_SCHEMA: Mapping[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["EnginesPath"],
    "properties": {
        "EnginesPath": {"type": "string", "minLength": 1},
        "UnprotectedEngines": {"anyOf": [_ENGINE_LIST, {"type": "null"}]},
        "StronglyProtectedEngines": {"anyOf": [_ENGINE_LIST, {"type": "null"}]},
        "EngineSpecificOverrides": {
            "anyOf": [
                {"type": "null"},
                {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["Engine"],
                        "properties": {
                            "Engine": {"type": "string", "minLength": 1},
                            "AllowedModules": {"anyOf": [_ENGINE_LIST, {"type": "null"}]},
                        },
                    },
                },
            ]
        },
        "ApiPath": {"type": "string", "pattern": "\\{engine\\}"},
        "ModelOracle": {
            "type": "object",
            "properties": {
                "Kind": {"enum": ["runner", "static"]},
                "Command": {
                    "type": "array",
                    "minItems": 1,
                    "items": {"type": "string"},
                },
                "PersistenceBase": {"type": "string", "minLength": 1},
                "TimeoutSeconds": {"type": "number", "exclusiveMinimum": 0},
                "WorkingDirectory": {"type": "string"},
                "Models": _ENGINE_LIST,
            },
            "additionalProperties": False,
        },
    },
}


class ConfigError(Exception):
    """Raised when the analyzer configuration cannot be loaded."""


@dataclass(frozen=True, slots=True)
class OracleConfig:
    """How the model-access oracle answers persistence queries."""

    kind: str = "runner"
    command: tuple[str, ...] = DEFAULT_ORACLE_COMMAND
    persistence_base: str = DEFAULT_PERSISTENCE_BASE
    timeout_seconds: float = DEFAULT_ORACLE_TIMEOUT
    working_directory: str | None = None
    models: frozenset[str] = frozenset()


@dataclass(frozen=True, slots=True)
class PolicyConfig:
    """Normalized boundary policy; immutable for the duration of a run."""

    engines_path: str
    unprotected_engines: frozenset[str] = frozenset()
    strongly_protected_engines: frozenset[str] = frozenset()
    overrides: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    api_path: str = DEFAULT_API_PATH
    oracle: OracleConfig = field(default_factory=OracleConfig)

    def __post_init__(self) -> None:
        engines_path = self.engines_path
        if not engines_path.endswith("/"):
            engines_path += "/"
        object.__setattr__(self, "engines_path", engines_path)
        object.__setattr__(self, "overrides", MappingProxyType(dict(self.overrides)))


def config_from_mapping(data: Any) -> PolicyConfig:
    """Validate a settings document and build the :class:`PolicyConfig`."""

    if isinstance(data, Mapping) and isinstance(data.get(SECTION_NAME), Mapping):
        data = data[SECTION_NAME]
    if not isinstance(data, Mapping):
        raise ConfigError(f"configuration must be a mapping, got {type(data).__name__}")

    _validate(data)

    overrides: dict[str, tuple[str, ...]] = {}
    for raw_override in data.get("EngineSpecificOverrides") or ():
        engine = camelize(raw_override["Engine"])
        allowed = tuple(raw_override.get("AllowedModules") or ())
        # Later entries for the same engine replace earlier ones.
        overrides[engine] = allowed

    return PolicyConfig(
        engines_path=data["EnginesPath"],
        unprotected_engines=camelize_all(data.get("UnprotectedEngines") or ()),
        strongly_protected_engines=camelize_all(data.get("StronglyProtectedEngines") or ()),
        overrides=overrides,
        api_path=data.get("ApiPath", DEFAULT_API_PATH),
        oracle=_oracle_config(data.get("ModelOracle") or {}),
    )


def load_config(path: Path | str) -> PolicyConfig:
    """Load a YAML settings document from ``path``."""

    source = Path(path)
    try:
        with source.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as exc:
        raise ConfigError(f"Failed to read configuration {source}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML for configuration {source}: {exc}") from exc

    try:
        config = config_from_mapping(data)
    except ConfigError as exc:
        raise ConfigError(f"{source}: {exc}") from exc
    LOGGER.debug(
        "Loaded boundary configuration from %s (engines path %s, %d strongly protected)",
        source,
        config.engines_path,
        len(config.strongly_protected_engines),
    )
    return config


def _validate(data: Mapping[str, Any]) -> None:
    validator_cls = validators.validator_for(CONFIG_SCHEMA)
    validator = validator_cls(CONFIG_SCHEMA)
    try:
        validator.validate(data)
    except ValidationError as exc:
        location = "/".join(str(part) for part in exc.absolute_path) or "<root>"
        raise ConfigError(f"invalid configuration at {location}: {exc.message}") from exc


def _oracle_config(raw: Mapping[str, Any]) -> OracleConfig:
    return OracleConfig(
        kind=raw.get("Kind", "runner"),
        command=tuple(raw.get("Command", DEFAULT_ORACLE_COMMAND)),
        persistence_base=raw.get("PersistenceBase", DEFAULT_PERSISTENCE_BASE),
        timeout_seconds=float(raw.get("TimeoutSeconds", DEFAULT_ORACLE_TIMEOUT)),
        working_directory=raw.get("WorkingDirectory"),
        models=frozenset(raw.get("Models", ())),
    )


__all__ = [
    "CONFIG_SCHEMA",
    "ConfigError",
    "OracleConfig",
    "PolicyConfig",
    "config_from_mapping",
    "load_config",
]
