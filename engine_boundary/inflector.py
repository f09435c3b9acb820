"""Engine-name normalization helpers.

Engine directories are snake_case (``billing_core``) while references in code
are CamelCase namespaces (``BillingCore``).  Every comparison point normalizes
through :func:`camelize` so both spellings meet in the same form.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

_LEADING_WORD = re.compile(r"^[a-z\d]*")
_WORD_BOUNDARY = re.compile(r"(?:_|(/))([a-z\d]*)", re.IGNORECASE)
_ACRONYM_BOUNDARY = re.compile(r"([A-Z\d]+)([A-Z][a-z])")
_CASE_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")


def camelize(term: str) -> str:
    """Return ``term`` in CamelCase with ``/`` mapped to the ``::`` separator."""

    result = _LEADING_WORD.sub(lambda match: match.group(0).capitalize(), term, count=1)
    result = _WORD_BOUNDARY.sub(
        lambda match: (match.group(1) or "") + match.group(2).capitalize(), result
    )
    return result.replace("/", "::")


def camelize_all(terms: Iterable[str]) -> frozenset[str]:
    return frozenset(camelize(str(term)) for term in terms)


def underscore(term: str) -> str:
    """Inverse of :func:`camelize`: ``BillingCore::Api`` -> ``billing_core/api``."""

    word = term.replace("::", "/")
    word = _ACRONYM_BOUNDARY.sub(r"\1_\2", word)
    word = _CASE_BOUNDARY.sub(r"\1_\2", word)
    return word.replace("-", "_").lower()


__all__ = ["camelize", "camelize_all", "underscore"]
