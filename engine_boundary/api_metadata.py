"""Read the declared API artifacts of each engine.

An engine's API directory may hold three artifacts:

``_allowlist.rb`` / ``_whitelist.rb``
    Modules outside code may reference directly::

        module MyEngine::Api::Allowlist
          PUBLIC_MODULES = [
            MyEngine::BarService,
          ]
        end

``_legacy_dependents.rb``
    Burn-down list of files still allowed to reach into the engine::

        module MyEngine::Api::LegacyDependents
          FILES_WITH_DIRECT_ACCESS = [
            "app/models/some_old_legacy_model.rb",
          ]
        end

Lists are pulled out by structural text matching; the artifacts are never
evaluated.  Anything that does not have the declared shape reads as an empty
list.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .config import DEFAULT_API_PATH
from .inflector import underscore
from .models import ApiArtifacts

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ApiFile:
    basename: str
    declaration: str
    constant: str


API_FILES = {
    "allowlist": ApiFile("_allowlist.rb", "Allowlist", "PUBLIC_MODULES"),
    "whitelist": ApiFile("_whitelist.rb", "Whitelist", "PUBLIC_MODULES"),
    "legacy_dependents": ApiFile(
        "_legacy_dependents.rb", "LegacyDependents", "FILES_WITH_DIRECT_ACCESS"
    ),
}

_LIST_TOKEN = re.compile(
    r"""
      (?P<space>\s+)
    | (?P<comment>\#[^\n]*)
    | "(?P<dq>(?:[^"\\]|\\.)*)"
    | '(?P<sq>(?:[^'\\]|\\.)*)'
    | (?P<const>(?:::)?[A-Z]\w*(?:::[A-Z]\w*)*)
    | (?P<comma>,)
    | (?P<close>\])
    """,
    re.VERBOSE,
)


def parse_api_list(text: str, kind: str) -> tuple[str, ...]:
    """Extract the declared list of an API artifact of ``kind``."""

    api_file = API_FILES[kind]
    declaration = re.compile(
        rf"^\s*module\s+(?:::)?(?:[A-Z]\w*::)*Api::{api_file.declaration}\b", re.MULTILINE
    )
    match = declaration.search(text)
    if match is None:
        return ()
    assignment = re.compile(rf"\b{api_file.constant}\s*=\s*\[")
    start = assignment.search(text, match.end())
    if start is None:
        return ()

    entries: list[str] = []
    position = start.end()
    expect_entry = True
    while position < len(text):
        token = _LIST_TOKEN.match(text, position)
        if token is None:
            return ()
        position = token.end()
        group = token.lastgroup
        if group in ("space", "comment"):
            continue
        if group == "close":
            return tuple(entries)
        if group == "comma":
            if expect_entry:
                return ()
            expect_entry = True
            continue
        if not expect_entry:
            return ()
        entries.append(token.group(group) or "")
        expect_entry = False
    # Unterminated list literal.
    return ()


@dataclass(slots=True)
class _CacheEntry:
    checksum: str
    artifacts: ApiArtifacts


class ApiMetadataReader:
    """Lazily read and cache per-engine API artifacts.

    Entries are keyed by engine and revalidated against a checksum over the
    modification times of the engine's API directory.  The checksum is taken
    at most once per engine between calls to :meth:`revalidate`, which the
    analyzer invokes at the start of every file.
    """

    def __init__(
        self,
        engines_dir: Path | str,
        *,
        api_path: str = DEFAULT_API_PATH,
        directory_for: Callable[[str], str | None] | None = None,
    ) -> None:
        self._engines_dir = Path(engines_dir)
        self._api_path = api_path
        self._directory_for = directory_for
        self._cache: dict[str, _CacheEntry] = {}
        self._verified: set[str] = set()

    def api_dir(self, engine: str) -> Path:
        directory = self._directory_for(engine) if self._directory_for is not None else None
        return self._api_dir_for(directory or underscore(engine))

    def revalidate(self) -> None:
        self._verified.clear()

    def allowlist(self, engine: str) -> tuple[str, ...]:
        return self.artifacts(engine).allowlist

    def legacy_dependents(self, engine: str) -> tuple[str, ...]:
        return self.artifacts(engine).legacy_dependents

    def artifacts(self, engine: str) -> ApiArtifacts:
        entry = self._cache.get(engine)
        if entry is not None and engine in self._verified:
            return entry.artifacts

        checksum = self.engine_checksum(engine)
        self._verified.add(engine)
        if entry is not None and entry.checksum == checksum:
            return entry.artifacts

        artifacts = self._read_artifacts(engine)
        self._cache[engine] = _CacheEntry(checksum=checksum, artifacts=artifacts)
        return artifacts

    def engine_checksum(self, engine: str) -> str:
        return _mtime_digest(_api_files(self.api_dir(engine)))

    def checksum(self) -> str:
        """Digest over every API file of every engine under the engines directory."""

        files: list[Path] = []
        try:
            engine_dirs = sorted(entry for entry in self._engines_dir.iterdir() if entry.is_dir())
        except OSError:
            engine_dirs = []
        for engine_dir in engine_dirs:
            files.extend(_api_files(self._api_dir_for(engine_dir.name)))
        return _mtime_digest(files)

    def _api_dir_for(self, directory: str) -> Path:
        return self._engines_dir / self._api_path.format(engine=directory)

    def _read_artifacts(self, engine: str) -> ApiArtifacts:
        allowlist = self._read_list(engine, "allowlist")
        if not allowlist:
            allowlist = self._read_list(engine, "whitelist")
        legacy_dependents = self._read_list(engine, "legacy_dependents")
        LOGGER.debug(
            "Read API artifacts for %s: %d allowlisted, %d legacy dependents",
            engine,
            len(allowlist),
            len(legacy_dependents),
        )
        return ApiArtifacts(allowlist=allowlist, legacy_dependents=legacy_dependents)

    def _read_list(self, engine: str, kind: str) -> tuple[str, ...]:
        path = self.api_dir(engine) / API_FILES[kind].basename
        if not path.is_file():
            return ()
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.debug("Unreadable API artifact %s: %s", path, exc)
            return ()
        entries = parse_api_list(text, kind)
        if not entries:
            LOGGER.debug("API artifact %s declares no %s entries", path, kind)
        return entries


def _api_files(api_dir: Path) -> list[Path]:
    if not api_dir.is_dir():
        return []
    return sorted(path for path in api_dir.rglob("*") if path.is_file())


def _mtime_digest(files: list[Path]) -> str:
    digest = hashlib.sha256()
    for path in files:
        try:
            mtime = path.stat().st_mtime_ns
        except OSError:
            continue
        digest.update(f"{path.as_posix()}:{mtime}\n".encode("utf-8"))
    return digest.hexdigest()


__all__ = ["API_FILES", "ApiFile", "ApiMetadataReader", "parse_api_list"]
