"""File and line inclusion filters.

Filters are stateless. A file is scanned only if every filter accepts it;
a finding survives only if every applicable filter accepts its line.
"""

from __future__ import annotations

import functools
import logging
import re
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from secretscan.config import ScanConfiguration, normalize_extension

logger = logging.getLogger(__name__)

INLINE_IGNORE_MARKER = "secretscan:ignore"


@runtime_checkable
class Filter(Protocol):
    """Protocol for inclusion rules."""

    @property
    def name(self) -> str: ...

    def should_include_file(self, path: Path, relative_path: str) -> bool:
        """Whether the file should be handed to the detectors at all."""
        ...

    def should_include_line(self, line: str, line_number: int, path: Path) -> bool:
        """Whether findings on this line should be kept."""
        ...

    def is_applicable(self, path: Path, extension: str) -> bool:
        """Whether this filter has an opinion about the given file."""
        ...


# --- Globs -------------------------------------------------------------------


def _normalize_glob(pattern: str) -> str:
    pattern = pattern.strip().replace("\\", "/")
    rooted = pattern.startswith("/")
    pattern = pattern.lstrip("/")
    body = pattern.rstrip("/")
    if pattern.endswith("/"):
        pattern = body + "/**"
    # Slash-free patterns match at any depth, as in .gitignore
    if not rooted and "/" not in body and not pattern.startswith("**"):
        pattern = "**/" + pattern
    return pattern


@functools.lru_cache(maxsize=512)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Translate a ``**``-aware glob into a regex over POSIX relative paths.

    ``*`` and ``?`` never cross a ``/``; ``**/`` matches zero or more
    directories; a trailing ``/`` means "this directory and everything
    below it".
    """
    glob = _normalize_glob(pattern)
    out: list[str] = []
    i = 0
    n = len(glob)
    while i < n:
        if glob.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif glob.startswith("/**", i) and i + 3 == n:
            out.append("(?:/.*)?")
            i += 3
        elif glob.startswith("**", i):
            out.append(".*")
            i += 2
        elif glob[i] == "*":
            out.append("[^/]*")
            i += 1
        elif glob[i] == "?":
            out.append("[^/]")
            i += 1
        elif glob[i] == "[":
            close = glob.find("]", i + 1)
            if close == -1:
                out.append(re.escape(glob[i]))
                i += 1
            else:
                body = glob[i + 1 : close]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append("[" + body.replace("\\", "\\\\") + "]")
                i = close + 1
        else:
            out.append(re.escape(glob[i]))
            i += 1
    return re.compile("^" + "".join(out) + "$")


def glob_matches(pattern: str, relative_path: str) -> bool:
    return compile_glob(pattern).match(relative_path) is not None


def matches_any(patterns: Iterable[str], relative_path: str) -> bool:
    return any(glob_matches(p, relative_path) for p in patterns)


def is_test_path(relative_path: str, test_globs: Sequence[str]) -> bool:
    return matches_any(test_globs, relative_path)


# --- Extensions --------------------------------------------------------------


def file_extension(path: str | Path) -> str:
    """Lower-case extension with leading dot; dotfiles like ``.env`` keep their name."""
    name = Path(path).name.lower()
    if name.startswith(".env"):
        return ".env"
    if name == "dockerfile":
        return ".dockerfile"
    if name.startswith(".") and name.count(".") == 1:
        return name
    return Path(name).suffix


def extension_candidates(path: str | Path) -> set[str]:
    """Every compound suffix of the name: ``a.gradle.kts`` -> ``.kts``, ``.gradle.kts``."""
    name = Path(path).name.lower()
    parts = name.split(".")[1:]
    candidates = {"." + ".".join(parts[i:]) for i in range(len(parts))}
    ext = file_extension(path)
    if ext:
        candidates.add(ext)
    return candidates


# --- Filters -----------------------------------------------------------------


class ExtensionFilter:
    """Accept files whose extension is included (when an include set exists) and not excluded."""

    name = "extension"

    def __init__(self, include: Iterable[str] = (), exclude: Iterable[str] = ()) -> None:
        self._include = frozenset(normalize_extension(e) for e in include if e)
        self._exclude = frozenset(normalize_extension(e) for e in exclude if e)

    def should_include_file(self, path: Path, relative_path: str) -> bool:
        candidates = extension_candidates(path)
        if self._include and not candidates & self._include:
            return False
        return not candidates & self._exclude

    def should_include_line(self, line: str, line_number: int, path: Path) -> bool:
        return True

    def is_applicable(self, path: Path, extension: str) -> bool:
        return True


class PathFilter:
    """Reject paths matching an exclude glob; with include globs, require a match."""

    name = "path"

    def __init__(self, include: Iterable[str] = (), exclude: Iterable[str] = ()) -> None:
        self._include = tuple(include)
        self._exclude = tuple(exclude)
        for pattern in self._include + self._exclude:
            compile_glob(pattern)

    def should_include_file(self, path: Path, relative_path: str) -> bool:
        if matches_any(self._exclude, relative_path):
            return False
        return not self._include or matches_any(self._include, relative_path)

    def excludes_directory(self, relative_dir: str) -> bool:
        """True when the whole directory is excluded and need not be walked."""
        return any(
            p.rstrip().endswith(("/", "/**")) and glob_matches(p, relative_dir)
            for p in self._exclude
        )

    def should_include_line(self, line: str, line_number: int, path: Path) -> bool:
        return True

    def is_applicable(self, path: Path, extension: str) -> bool:
        return True


class SkipTestFilesFilter:
    """Exclude test files; installed only when test files are not scanned."""

    name = "test-files"

    def __init__(self, test_globs: Iterable[str]) -> None:
        self._globs = tuple(test_globs)

    def should_include_file(self, path: Path, relative_path: str) -> bool:
        return not is_test_path(relative_path, self._globs)

    def should_include_line(self, line: str, line_number: int, path: Path) -> bool:
        return True

    def is_applicable(self, path: Path, extension: str) -> bool:
        return True


class WhitelistFilter:
    """Post-detection suppression of known-safe values and marked lines.

    A value is whitelisted when it contains any configured substring
    (case-insensitive) or any configured regex matches it. A line is dropped
    when it carries the ``secretscan:ignore`` marker or a regex matches it.
    """

    name = "whitelist"

    def __init__(self, substrings: Iterable[str] = (), patterns: Iterable[str] = ()) -> None:
        self._substrings = tuple(s.lower() for s in substrings if s)
        self._patterns = tuple(re.compile(p) for p in patterns)

    def should_include_file(self, path: Path, relative_path: str) -> bool:
        return True

    def should_include_line(self, line: str, line_number: int, path: Path) -> bool:
        if INLINE_IGNORE_MARKER in line:
            return False
        return not any(p.search(line) for p in self._patterns)

    def should_include_value(self, value: str) -> bool:
        lowered = value.lower()
        if any(s in lowered for s in self._substrings):
            return False
        return not any(p.search(value) for p in self._patterns)

    def is_applicable(self, path: Path, extension: str) -> bool:
        return True


def read_ignore_file(root: Path, name: str | None) -> list[str]:
    """Glob entries from a ``.gitignore``-style file at ``root``, if present."""
    if not name:
        return []
    path = root / name
    if not path.is_file():
        return []
    patterns = []
    for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            patterns.append(line)
    logger.debug("Loaded %d ignore patterns from %s", len(patterns), path)
    return patterns


def build_filters(
    config: ScanConfiguration,
    extra_excludes: Sequence[str] = (),
) -> list[Filter]:
    """The configured filter chain, cheapest checks first."""
    filters: list[Filter] = [
        ExtensionFilter(config.include_extensions, config.exclude_extensions),
        PathFilter(config.include_globs, tuple(config.exclude_globs) + tuple(extra_excludes)),
    ]
    if not config.scan_test_files:
        filters.append(SkipTestFilesFilter(config.test_globs))
    filters.append(WhitelistFilter(config.whitelist, config.whitelist_patterns))
    return filters
