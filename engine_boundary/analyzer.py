"""Engine API boundary analyzer.

Prevents code outside an engine from reaching into it without going through
its API.  An engine's API surface is:

* anything under ``<Engine>::Api`` (source files in the engine's ``api/``
  directory);
* modules listed in the engine's ``_allowlist.rb`` (or ``_whitelist.rb``);
* for files on the engine's ``_legacy_dependents.rb`` burn-down list,
  everything.

Engines listed as strongly protected allow neither inbound nor outbound direct
access, whatever the other engine's API declares; only an engine-specific
override lifts that.  Cross-engine associations declared with a literal
``class_name:`` are checked as well.

The guard is best effort: metaprogramming can sidestep it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .api_metadata import ApiMetadataReader
from .classifier import AssociationInspector, ClassifiedReference, ReferenceClassifier
from .config import PolicyConfig
from .models import Offense
from .oracle import CachedModelOracle, ModelOracle, build_oracle
from .policy import PolicyStore
from .reporter import OffenseReporter
from .trace import TraceEventEmitter
from .tree import CONST, SEND, ReferenceTree, load_tree
from .validator import AccessDecision, AccessValidator

LOGGER = logging.getLogger(__name__)


class EngineApiBoundary:
    """Check every reference of a file against the engine boundary policy.

    One instance owns the policy store, the API artifact cache and the oracle
    memo, and is meant to be reused for every file analyzed in a process.
    """

    def __init__(
        self,
        config: PolicyConfig,
        *,
        root: Path | str | None = None,
        oracle: ModelOracle | None = None,
        trace: TraceEventEmitter | None = None,
    ) -> None:
        self._config = config
        self._policy = PolicyStore(config, root=root)
        self._metadata = ApiMetadataReader(
            self._policy.engines_dir,
            api_path=config.api_path,
            directory_for=self._policy.engine_directory,
        )
        if oracle is None:
            self._oracle = build_oracle(config.oracle)
        elif isinstance(oracle, CachedModelOracle):
            self._oracle = oracle
        else:
            self._oracle = CachedModelOracle(oracle)
        self._classifier = ReferenceClassifier(self._policy)
        self._associations = AssociationInspector(self._policy)
        self._validator = AccessValidator(self._policy, self._metadata)
        self._reporter = OffenseReporter(self._policy)
        self._trace = trace

    @property
    def policy(self) -> PolicyStore:
        return self._policy

    @property
    def metadata(self) -> ApiMetadataReader:
        return self._metadata

    @property
    def validator(self) -> AccessValidator:
        return self._validator

    def external_dependency_checksum(self) -> str:
        return self._metadata.checksum()

    def inspect_file(self, path: Path | str) -> list[Offense]:
        return self.inspect(load_tree(path))

    def inspect(self, tree: ReferenceTree) -> list[Offense]:
        self._metadata.revalidate()
        current_engine = self._policy.current_engine(tree.path)
        offenses: list[Offense] = []
        for node in tree:
            offense: Offense | None = None
            if node.type == CONST:
                reference = self._classifier.classify(tree, node, current_engine)
                if reference is not None:
                    offense = self._check(tree, reference, current_engine, kind="const")
            elif node.type == SEND:
                reference = self._associations.inspect(tree, node)
                if reference is not None:
                    offense = self._check(tree, reference, current_engine, kind="association")
            if offense is not None:
                offenses.append(offense)
        LOGGER.debug(
            "%s: %d offense(s) (engine %s)", tree.path, len(offenses), current_engine or "<main>"
        )
        return offenses

    def _check(
        self,
        tree: ReferenceTree,
        reference: ClassifiedReference,
        current_engine: str | None,
        *,
        kind: str,
    ) -> Offense | None:
        decision = self._validator.decide(reference, current_engine, tree.path)
        self._record(tree, reference, decision, kind=kind)
        if decision.allowed:
            return None
        # Bare constants only matter when they leak a persistence-backed model;
        # associations are model-to-model by construction.
        if reference.model_name is not None:
            if not self._oracle.is_persistence_model(reference.model_name):
                self._emit(tree, reference, "non_model_skipped", {"model": reference.model_name})
                return None
        return self._reporter.offense(
            tree.path, reference.node, reference.accessed_engine, current_engine
        )

    def _record(
        self,
        tree: ReferenceTree,
        reference: ClassifiedReference,
        decision: AccessDecision,
        *,
        kind: str,
    ) -> None:
        self._emit(
            tree,
            reference,
            "reference_checked",
            {
                "kind": kind,
                "reference": reference.lineage[0] if reference.lineage else None,
                "accessed_engine": decision.accessed_engine,
                "current_engine": decision.current_engine,
                "allowed": decision.allowed,
                "reason": decision.reason,
                "matched": decision.matched,
            },
        )

    def _emit(
        self,
        tree: ReferenceTree,
        reference: ClassifiedReference,
        event: str,
        payload: dict[str, object],
    ) -> None:
        if self._trace is None:
            return
        self._trace.emit(event, path=tree.path, line=reference.node.location.line, payload=payload)


__all__ = ["EngineApiBoundary"]
