"""Scan configuration — defaults, eager validation, env var overrides."""

from __future__ import annotations

import enum
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING

import psutil

from secretscan.errors import ConfigurationError, PathNotFoundError

if TYPE_CHECKING:
    from secretscan.scanner.patterns import Pattern


class DetectorKind(enum.Enum):
    """Detection strategies the composite detector can fan out to."""

    PATTERN = "pattern"
    ENTROPY = "entropy"
    CONTEXT = "context"


class Charset(enum.Enum):
    """Character classes the entropy tokenizer extracts runs of."""

    BASE64 = "base64"
    HEX = "hex"


DEFAULT_EXCLUDE_GLOBS: tuple[str, ...] = (
    ".git/",
    ".hg/",
    ".svn/",
    "node_modules/",
    "build/",
    "dist/",
    "target/",
    "out/",
    ".gradle/",
    ".idea/",
    ".vscode/",
    "__pycache__/",
    ".venv/",
    "venv/",
    ".tox/",
    ".mypy_cache/",
    ".pytest_cache/",
    ".ruff_cache/",
)

DEFAULT_EXCLUDE_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".class", ".jar", ".war", ".ear", ".pyc", ".pyo", ".so", ".dylib",
        ".dll", ".exe", ".bin", ".o", ".a",
        ".zip", ".tar", ".gz", ".bz2", ".xz", ".7z", ".rar", ".whl", ".egg",
        ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".webp",
        ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
        ".mp3", ".mp4", ".avi", ".mov", ".wav",
        ".woff", ".woff2", ".ttf", ".eot",
        ".db", ".sqlite", ".sqlite3",
        ".log", ".tmp", ".cache", ".lock",
    }
)

DEFAULT_TEST_GLOBS: tuple[str, ...] = (
    "**/test/**",
    "**/tests/**",
    "**/__tests__/**",
    "**/testdata/**",
    "**/fixtures/**",
    "**/*Test.*",
    "**/*Tests.*",
    "**/*Spec.*",
    "**/*_test.*",
    "**/test_*.*",
    "**/*.test.*",
    "**/*.spec.*",
)

DEFAULT_MAX_FILE_SIZE = 1_048_576

IGNORE_FILE_NAME = ".secretscanignore"


def default_workers() -> int:
    """Number of logical CPUs, at least one."""
    return psutil.cpu_count(logical=True) or os.cpu_count() or 1


@dataclass(frozen=True)
class ScanConfiguration:
    """Immutable description of a scan run, shared read-only by every component."""

    roots: tuple[Path, ...] = ()
    include_globs: tuple[str, ...] = ()
    exclude_globs: tuple[str, ...] = DEFAULT_EXCLUDE_GLOBS
    include_extensions: frozenset[str] = frozenset()
    exclude_extensions: frozenset[str] = DEFAULT_EXCLUDE_EXTENSIONS
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    detectors: tuple[DetectorKind, ...] = (
        DetectorKind.PATTERN,
        DetectorKind.ENTROPY,
        DetectorKind.CONTEXT,
    )

    # Entropy detector
    entropy_threshold: float = 4.5
    hex_entropy_threshold: float = 3.0
    min_token_length: int = 20
    max_token_length: int = 100
    entropy_charsets: tuple[Charset, ...] = (Charset.BASE64, Charset.HEX)

    # Context-aware detector
    analyze_comments: bool = False
    context_min_length: int = 8
    context_min_entropy: float = 3.0

    # Pattern detector
    enabled_patterns: frozenset[str] = frozenset()
    disabled_patterns: frozenset[str] = frozenset()
    custom_patterns: tuple[Pattern, ...] = ()

    # Test files
    scan_test_files: bool = True
    relaxed_test_rules: bool = True
    test_globs: tuple[str, ...] = DEFAULT_TEST_GLOBS

    # Whitelisting
    whitelist: tuple[str, ...] = ()
    whitelist_patterns: tuple[str, ...] = ()
    ignore_file: str | None = IGNORE_FILE_NAME

    min_confidence: float = 0.0

    # Performance
    workers: int = field(default_factory=default_workers)
    file_timeout: float | None = None
    scan_timeout: float | None = None
    follow_symlinks: bool = False

    def validate(self) -> None:
        """Raise ConfigurationError (or PathNotFoundError) on the first bad field."""
        if self.entropy_threshold <= 0:
            raise ConfigurationError("entropy_threshold", "must be greater than 0")
        if self.hex_entropy_threshold <= 0:
            raise ConfigurationError("hex_entropy_threshold", "must be greater than 0")
        if self.max_file_size <= 0:
            raise ConfigurationError("max_file_size", "must be greater than 0")
        if self.min_token_length < 1:
            raise ConfigurationError("min_token_length", "must be at least 1")
        if self.max_token_length < self.min_token_length:
            raise ConfigurationError(
                "max_token_length", "must not be smaller than min_token_length"
            )
        if self.context_min_length < 1:
            raise ConfigurationError("context_min_length", "must be at least 1")
        if self.workers < 1:
            raise ConfigurationError("workers", "must be at least 1")
        if not self.detectors:
            raise ConfigurationError("detectors", "at least one detector must be enabled")
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ConfigurationError("min_confidence", "must be within [0, 1]")
        for name in ("file_timeout", "scan_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigurationError(name, "must be greater than 0 when set")
        for regex in self.whitelist_patterns:
            try:
                re.compile(regex)
            except re.error as e:
                raise ConfigurationError("whitelist_patterns", f"invalid regex {regex!r}: {e}") from e
        for root in self.roots:
            if not Path(root).exists():
                raise PathNotFoundError(root)

    def has_detector(self, kind: DetectorKind) -> bool:
        return kind in self.detectors


_ENV_PREFIX = "SECRETSCAN_"


def apply_env_overrides(
    config: ScanConfiguration,
    environ: Mapping[str, str] | None = None,
) -> ScanConfiguration:
    """Return ``config`` with ``SECRETSCAN_*`` environment overrides applied."""
    env = os.environ if environ is None else environ
    changes: dict[str, object] = {}

    workers = env.get(f"{_ENV_PREFIX}WORKERS")
    if workers:
        changes["workers"] = _parse(workers, int, "WORKERS")

    threshold = env.get(f"{_ENV_PREFIX}ENTROPY_THRESHOLD")
    if threshold:
        changes["entropy_threshold"] = _parse(threshold, float, "ENTROPY_THRESHOLD")

    max_size = env.get(f"{_ENV_PREFIX}MAX_FILE_SIZE")
    if max_size:
        changes["max_file_size"] = _parse(max_size, int, "MAX_FILE_SIZE")

    min_confidence = env.get(f"{_ENV_PREFIX}MIN_CONFIDENCE")
    if min_confidence:
        changes["min_confidence"] = _parse(min_confidence, float, "MIN_CONFIDENCE")

    return replace(config, **changes) if changes else config


def _parse(raw: str, kind: type, name: str):
    try:
        return kind(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{_ENV_PREFIX}{name}", f"cannot parse {raw!r} as {kind.__name__}"
        ) from e


def normalize_extension(ext: str) -> str:
    """``"Py"`` / ``".PY"`` -> ``".py"``."""
    ext = ext.strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext
