"""Layered access rules for cross-engine references."""

from __future__ import annotations

from dataclasses import dataclass

from .api_metadata import ApiMetadataReader
from .classifier import ClassifiedReference
from .policy import PolicyStore


SAME_ENGINE = "same_engine"
OVERRIDE = "override"
STRONGLY_PROTECTED_CURRENT = "strongly_protected_current"
STRONGLY_PROTECTED_ACCESSED = "strongly_protected_accessed"
LEGACY_DEPENDENT = "legacy_dependent"
THROUGH_API = "through_api"
ALLOWLISTED = "allowlisted"
NO_API_ACCESS = "no_api_access"


@dataclass(frozen=True, slots=True)
class AccessDecision:
    """Outcome of evaluating one reference against the boundary policy."""

    allowed: bool
    reason: str
    accessed_engine: str
    current_engine: str | None
    matched: str | None = None


class AccessValidator:
    """Evaluate the boundary policy in fixed precedence order.

    1. same-engine access is always valid;
    2. an engine-specific override wins over strong protection;
    3. a strongly protected current engine may not reach out;
    4. a strongly protected accessed engine may not be reached into;
    5. otherwise the access must be a legacy dependent, go through ``Api``,
       or name an allow-listed module.
    """

    def __init__(self, policy: PolicyStore, metadata: ApiMetadataReader) -> None:
        self._policy = policy
        self._metadata = metadata

    def is_valid(
        self,
        reference: ClassifiedReference,
        current_engine: str | None,
        file_path: str,
    ) -> bool:
        return self.decide(reference, current_engine, file_path).allowed

    def decide(
        self,
        reference: ClassifiedReference,
        current_engine: str | None,
        file_path: str,
    ) -> AccessDecision:
        accessed_engine = reference.accessed_engine

        def decision(allowed: bool, reason: str, matched: str | None = None) -> AccessDecision:
            return AccessDecision(
                allowed=allowed,
                reason=reason,
                accessed_engine=accessed_engine,
                current_engine=current_engine,
                matched=matched,
            )

        if current_engine == accessed_engine:
            return decision(True, SAME_ENGINE)

        override = self.engine_specific_override(reference, current_engine)
        if override is not None:
            return decision(True, OVERRIDE, override)

        if self._policy.is_strongly_protected(current_engine):
            return decision(False, STRONGLY_PROTECTED_CURRENT)
        if self._policy.is_strongly_protected(accessed_engine):
            return decision(False, STRONGLY_PROTECTED_ACCESSED)

        legacy = self.legacy_dependent_entry(file_path, accessed_engine)
        if legacy is not None:
            return decision(True, LEGACY_DEPENDENT, legacy)
        if reference.through_api:
            return decision(True, THROUGH_API)
        allowlisted = self.allowlisted_name(reference, accessed_engine)
        if allowlisted is not None:
            return decision(True, ALLOWLISTED, allowlisted)
        return decision(False, NO_API_ACCESS)

    def engine_specific_override(
        self, reference: ClassifiedReference, current_engine: str | None
    ) -> str | None:
        allowed_modules = self._policy.overrides_for(current_engine)
        if not allowed_modules:
            return None
        for name in (reference.accessed_engine, *reference.lineage):
            if name in allowed_modules:
                return name
        return None

    def legacy_dependent_entry(self, file_path: str, accessed_engine: str) -> str | None:
        for legacy_dependent in self._metadata.legacy_dependents(accessed_engine):
            if legacy_dependent and legacy_dependent in file_path:
                return legacy_dependent
        return None

    def allowlisted_name(self, reference: ClassifiedReference, accessed_engine: str) -> str | None:
        allowlist = self._metadata.allowlist(accessed_engine)
        if not allowlist:
            return None
        for name in reference.lineage:
            if name in allowlist:
                return name
        return None


__all__ = [
    "ALLOWLISTED",
    "LEGACY_DEPENDENT",
    "NO_API_ACCESS",
    "OVERRIDE",
    "SAME_ENGINE",
    "STRONGLY_PROTECTED_ACCESSED",
    "STRONGLY_PROTECTED_CURRENT",
    "THROUGH_API",
    "AccessDecision",
    "AccessValidator",
]
