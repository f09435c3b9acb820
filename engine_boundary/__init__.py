"""Engine API boundary analyzer exports."""

from .analyzer import EngineApiBoundary  # noqa: F401
from .api_metadata import ApiMetadataReader, parse_api_list  # noqa: F401
from .classifier import (  # noqa: F401
    MAIN_APP_NAME,
    AssociationInspector,
    ClassifiedReference,
    ReferenceClassifier,
    RelationKind,
)
from .config import (  # noqa: F401
    ConfigError,
    OracleConfig,
    PolicyConfig,
    config_from_mapping,
    load_config,
)
from .fixtures import FactoryIndex, factory_usage, is_spec_file  # noqa: F401
from .inflector import camelize, underscore  # noqa: F401
from .models import ApiArtifacts, Factory, Offense, SourceLocation  # noqa: F401
from .oracle import (  # noqa: F401
    CachedModelOracle,
    ModelOracle,
    RunnerModelOracle,
    StaticModelOracle,
    build_oracle,
)
from .policy import PolicyStore  # noqa: F401
from .reporter import OffenseReporter  # noqa: F401
from .trace import TraceEvent, TraceEventEmitter  # noqa: F401
from .tree import Node, ReferenceTree, TreeFormatError, load_tree  # noqa: F401
from .validator import AccessDecision, AccessValidator  # noqa: F401

__all__ = [
    "MAIN_APP_NAME",
    "AccessDecision",
    "AccessValidator",
    "ApiArtifacts",
    "ApiMetadataReader",
    "AssociationInspector",
    "CachedModelOracle",
    "ClassifiedReference",
    "ConfigError",
    "EngineApiBoundary",
    "Factory",
    "FactoryIndex",
    "ModelOracle",
    "Node",
    "Offense",
    "OffenseReporter",
    "OracleConfig",
    "PolicyConfig",
    "PolicyStore",
    "ReferenceClassifier",
    "ReferenceTree",
    "RelationKind",
    "RunnerModelOracle",
    "SourceLocation",
    "StaticModelOracle",
    "TraceEvent",
    "TraceEventEmitter",
    "TreeFormatError",
    "build_oracle",
    "camelize",
    "config_from_mapping",
    "factory_usage",
    "is_spec_file",
    "load_config",
    "load_tree",
    "parse_api_list",
    "underscore",
]
