from __future__ import annotations

from .models import Offense
from .policy import PolicyStore
from .tree import Node

MSG = "Direct access of {accessed_engine} engine. Only access engine via {accessed_engine}::Api."

STRONGLY_PROTECTED_MSG = (
    "All direct access of {accessed_engine} engine disallowed because "
    "it is in StronglyProtectedEngines list."
)

STRONGLY_PROTECTED_CURRENT_MSG = (
    "Direct access of {accessed_engine} is disallowed in this file "
    "because it's in the {current_engine} engine, which "
    "is in the StronglyProtectedEngines list."
)


class OffenseReporter:
    """Turn a rejected reference into an :class:`Offense`."""

    def __init__(self, policy: PolicyStore) -> None:
        self._policy = policy

    def message(self, accessed_engine: str, current_engine: str | None) -> str:
        if self._policy.is_strongly_protected(accessed_engine):
            return STRONGLY_PROTECTED_MSG.format(accessed_engine=accessed_engine)
        if self._policy.is_strongly_protected(current_engine):
            return STRONGLY_PROTECTED_CURRENT_MSG.format(
                accessed_engine=accessed_engine, current_engine=current_engine
            )
        return MSG.format(accessed_engine=accessed_engine)

    def offense(
        self,
        path: str,
        node: Node,
        accessed_engine: str,
        current_engine: str | None,
    ) -> Offense:
        return Offense(
            path=path,
            location=node.location,
            message=self.message(accessed_engine, current_engine),
            accessed_engine=accessed_engine,
            current_engine=current_engine,
        )


__all__ = ["MSG", "STRONGLY_PROTECTED_CURRENT_MSG", "STRONGLY_PROTECTED_MSG", "OffenseReporter"]
