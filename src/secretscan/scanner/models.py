"""Scanner data models — findings, per-file context, and scan results."""

from __future__ import annotations

import bisect
import enum
import time
from collections import Counter
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import TYPE_CHECKING

from secretscan.errors import ScanTimeoutError
from secretscan.scanner.syntax import SyntaxMap, build_syntax_map

if TYPE_CHECKING:
    from secretscan.config import ScanConfiguration


class Severity(enum.Enum):
    """Business impact tier of a finding's secret type."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def lowered(self) -> Severity:
        """One level down, never below LOW."""
        return _SEVERITY_BY_RANK[max(1, self.rank - 1)]

    @classmethod
    def parse(cls, value: str) -> Severity:
        return cls(value.strip().lower())


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}
_SEVERITY_BY_RANK = {rank: sev for sev, rank in _SEVERITY_RANK.items()}


class Confidence(enum.Enum):
    """Coarse bucket derived from a continuous confidence score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_score(cls, score: float) -> Confidence:
        if score >= 0.8:
            return cls.HIGH
        if score >= 0.5:
            return cls.MEDIUM
        return cls.LOW


class Category(enum.Enum):
    """Kind of secret a finding represents."""

    API_KEY = "api_key"
    CLOUD_CREDENTIAL = "cloud_credential"
    DATABASE = "database"
    CRYPTO_KEY = "crypto_key"
    TOKEN = "token"
    PASSWORD = "password"
    GENERIC = "generic"
    HIGH_ENTROPY = "high_entropy"


class SkipReason(enum.Enum):
    """Why a file was not scanned. Skips are not errors."""

    TOO_LARGE = "too-large"
    BINARY = "binary"
    FILTERED = "filtered"


class ErrorKind(enum.Enum):
    READ = "read"
    DETECTOR = "detector"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class FindingContext:
    """Where a finding sits in its file."""

    line: str
    before: tuple[str, ...] = ()
    after: tuple[str, ...] = ()
    in_comment: bool = False
    in_string_literal: bool = False
    in_test_file: bool = False
    in_config_file: bool = False
    variable: str = ""

    def to_dict(self, mask: str = "") -> dict:
        """Serialize; occurrences of ``mask`` in the quoted lines are redacted."""

        def scrub(text: str) -> str:
            return text.replace(mask, redact(mask)) if mask else text

        return {
            "line": scrub(self.line),
            "before": [scrub(line) for line in self.before],
            "after": [scrub(line) for line in self.after],
            "in_comment": self.in_comment,
            "in_string_literal": self.in_string_literal,
            "in_test_file": self.in_test_file,
            "in_config_file": self.in_config_file,
            "variable": self.variable,
        }


@dataclass
class Finding:
    """A single located, classified occurrence of a suspected secret.

    ``column`` is 1-based and inclusive, ``column_end`` is exclusive, so
    ``column_end - column == len(matched_value)`` for single-line matches.
    Only the composite detector mutates a finding (merge and confidence
    adjustment); once the engine aggregates it the finding is treated as
    read-only.
    """

    file_path: str
    line: int
    column: int
    column_end: int
    matched_value: str
    detector: str
    rule: str
    severity: Severity
    confidence: float
    category: Category
    context: FindingContext
    relative_path: str = ""
    detected_by: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.detected_by:
            self.detected_by = (self.detector,)

    @property
    def confidence_level(self) -> Confidence:
        return Confidence.from_score(self.confidence)

    @property
    def redacted_value(self) -> str:
        return redact(self.matched_value)

    @property
    def sort_key(self) -> tuple:
        return (self.file_path, self.line, self.column, self.column_end, self.rule)

    def overlaps(self, other: Finding) -> bool:
        """Same file and line, with intersecting column ranges."""
        return (
            self.file_path == other.file_path
            and self.line == other.line
            and self.column < other.column_end
            and other.column < self.column_end
        )

    def to_dict(self, redact_value: bool = True) -> dict:
        return {
            "file": self.relative_path or self.file_path,
            "path": self.file_path,
            "line": self.line,
            "column": self.column,
            "column_end": self.column_end,
            "detector": self.detector,
            "detected_by": list(self.detected_by),
            "rule": self.rule,
            "severity": self.severity.value,
            "confidence": round(self.confidence, 4),
            "confidence_level": self.confidence_level.value,
            "category": self.category.value,
            "matched_value": self.redacted_value if redact_value else self.matched_value,
            "context": self.context.to_dict(
                self.matched_value.split("\n", 1)[0] if redact_value else ""
            ),
        }


def redact(value: str) -> str:
    """Mask a secret, keeping a few edge characters for recognition."""
    if len(value) <= 4:
        return "*" * len(value)
    if len(value) <= 8:
        return value[:2] + "*" * (len(value) - 4) + value[-2:]
    return value[:3] + "*" * (len(value) - 6) + value[-3:]


@dataclass(frozen=True)
class ScanContext:
    """Immutable snapshot of one file, handed to every detector.

    Created by the file scanner right before detection and dropped once the
    file's findings are collected; never shared between files.
    """

    path: Path
    relative_path: str
    extension: str
    content: str
    size: int
    is_test_file: bool
    config: ScanConfiguration
    deadline: float | None = None

    @cached_property
    def lines(self) -> tuple[str, ...]:
        return tuple(self.content.split("\n"))

    @cached_property
    def line_starts(self) -> tuple[int, ...]:
        starts = [0]
        index = self.content.find("\n")
        while index != -1:
            starts.append(index + 1)
            index = self.content.find("\n", index + 1)
        return tuple(starts)

    @cached_property
    def syntax(self) -> SyntaxMap:
        return build_syntax_map(self.content, self.extension)

    def position(self, offset: int) -> tuple[int, int]:
        """Translate a content offset to a 1-based ``(line, column)``."""
        index = bisect.bisect_right(self.line_starts, offset) - 1
        return index + 1, offset - self.line_starts[index] + 1

    def offset(self, line: int, column: int) -> int:
        return self.line_starts[line - 1] + column - 1

    def line_at(self, line: int) -> str:
        if 1 <= line <= len(self.lines):
            return self.lines[line - 1].rstrip("\r")
        return ""

    def surrounding(self, line: int, radius: int = 2) -> tuple[tuple[str, ...], tuple[str, ...]]:
        """Lines before and after ``line`` (1-based), up to ``radius`` each."""
        start = max(1, line - radius)
        end = min(len(self.lines), line + radius)
        before = tuple(self.line_at(n) for n in range(start, line))
        after = tuple(self.line_at(n) for n in range(line + 1, end + 1))
        return before, after

    def check_deadline(self) -> None:
        """Raise if the per-file time budget is spent."""
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise ScanTimeoutError(self.path, self.config.file_timeout or 0.0)


@dataclass(frozen=True)
class SkippedFile:
    path: str
    reason: SkipReason


@dataclass(frozen=True)
class FileError:
    path: str
    message: str
    kind: ErrorKind = ErrorKind.READ


@dataclass(frozen=True)
class ScanSummary:
    """Counts derived from a finished result."""

    by_severity: dict[str, int]
    by_detector: dict[str, int]
    by_category: dict[str, int]
    by_file: dict[str, int]
    skipped_by_reason: dict[str, int]

    @classmethod
    def from_result(cls, result: ScanResult) -> ScanSummary:
        by_severity = {sev.value: 0 for sev in Severity}
        by_severity.update(Counter(f.severity.value for f in result.findings))
        by_detector: Counter[str] = Counter()
        for finding in result.findings:
            by_detector.update(finding.detected_by)
        return cls(
            by_severity=by_severity,
            by_detector=dict(sorted(by_detector.items())),
            by_category=dict(sorted(Counter(f.category.value for f in result.findings).items())),
            by_file=dict(sorted(Counter(f.relative_path or f.file_path for f in result.findings).items())),
            skipped_by_reason=dict(sorted(Counter(s.reason.value for s in result.skipped).items())),
        )

    def to_dict(self) -> dict:
        return {
            "by_severity": dict(self.by_severity),
            "by_detector": dict(self.by_detector),
            "by_category": dict(self.by_category),
            "by_file": dict(self.by_file),
            "skipped_by_reason": dict(self.skipped_by_reason),
        }


@dataclass
class ScanResult:
    """Aggregate result of a scan run."""

    root: str
    findings: list[Finding] = field(default_factory=list)
    files_scanned: int = 0
    skipped: list[SkippedFile] = field(default_factory=list)
    errors: list[FileError] = field(default_factory=list)
    duration: float = 0.0
    timed_out: bool = False
    timestamp: float = field(default_factory=time.time)

    @property
    def files_skipped(self) -> int:
        return len(self.skipped)

    @property
    def summary(self) -> ScanSummary:
        return ScanSummary.from_result(self)

    def has_severity(self, level: Severity) -> bool:
        """True if any finding meets or exceeds ``level``."""
        return any(f.severity.rank >= level.rank for f in self.findings)

    def to_dict(self, redact_values: bool = True) -> dict:
        return {
            "root": self.root,
            "files_scanned": self.files_scanned,
            "files_skipped": self.files_skipped,
            "total_findings": len(self.findings),
            "duration": round(self.duration, 3),
            "timed_out": self.timed_out,
            "timestamp": self.timestamp,
            "summary": self.summary.to_dict(),
            "findings": [f.to_dict(redact_values) for f in self.findings],
            "skipped": [{"path": s.path, "reason": s.reason.value} for s in self.skipped],
            "errors": [
                {"path": e.path, "message": e.message, "kind": e.kind.value}
                for e in self.errors
            ],
        }
