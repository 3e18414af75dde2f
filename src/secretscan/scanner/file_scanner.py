"""Per-file scanning: size and binary checks, context building, detection."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from secretscan.config import ScanConfiguration
from secretscan.errors import (
    DetectorError,
    FileReadError,
    InvalidFileError,
    ScanError,
    ScanTimeoutError,
)
from secretscan.scanner.detectors import CompositeDetector, Detector, build_detectors
from secretscan.scanner.filters import (
    Filter,
    WhitelistFilter,
    build_filters,
    file_extension,
    is_test_path,
)
from secretscan.scanner.models import (
    ErrorKind,
    FileError,
    Finding,
    ScanContext,
    SkippedFile,
    SkipReason,
)

logger = logging.getLogger(__name__)

# Share of U+FFFD replacement characters tolerated before a file counts as binary.
_UNDECODABLE_TOLERANCE = 0.1
_CONTROL_TOLERANCE = 0.3
_TEXT_CONTROLS = frozenset("\n\r\t\f\b\v\x1b")


@dataclass(frozen=True)
class FileOutcome:
    """What happened to one file: findings, a skip, or an error. Never more than one."""

    path: str
    findings: tuple[Finding, ...] = ()
    skipped: SkippedFile | None = None
    error: FileError | None = None

    @property
    def scanned(self) -> bool:
        return self.skipped is None and self.error is None


def decode_text(data: bytes) -> str | None:
    """Decode file bytes as UTF-8 text, or return None if they look binary."""
    if b"\x00" in data:
        return None
    text = data.decode("utf-8", errors="replace")
    if not text:
        return text
    if text.count("\ufffd") / len(text) > _UNDECODABLE_TOLERANCE:
        return None
    controls = sum(1 for ch in text if ch < " " and ch not in _TEXT_CONTROLS)
    if controls / len(text) > _CONTROL_TOLERANCE:
        return None
    return text


class FileScanner:
    """Scans single files with a shared, read-only detector and filter set.

    Safe to call from several threads at once: every call builds its own
    ``ScanContext`` and keeps no other state.
    """

    def __init__(
        self,
        config: ScanConfiguration,
        detector: Detector | None = None,
        filters: Sequence[Filter] | None = None,
        root: str | Path | None = None,
    ) -> None:
        self._config = config
        self._detector = detector or CompositeDetector(build_detectors(config))
        self._filters = tuple(build_filters(config) if filters is None else filters)
        self._root = Path(root).resolve() if root is not None else None

    @property
    def config(self) -> ScanConfiguration:
        return self._config

    @property
    def filters(self) -> tuple[Filter, ...]:
        return self._filters

    def scan_file(self, path: str | Path, relative_path: str | None = None) -> list[Finding]:
        """Scan one file and return its findings.

        Raises InvalidFileError if ``path`` is not an existing file. Read
        failures raise FileReadError and detector or filter failures raise
        DetectorError. Skipped files (too large, binary, filtered) return an
        empty list.
        """
        result = self._process(Path(path), relative_path, check_filters=True)
        if isinstance(result, SkippedFile):
            logger.debug("Skipped %s (%s)", result.path, result.reason.value)
            return []
        return result

    def scan(
        self,
        path: str | Path,
        relative_path: str | None = None,
        check_filters: bool = True,
    ) -> FileOutcome:
        """Like ``scan_file`` but every per-file failure becomes part of the outcome."""
        path = Path(path)
        try:
            result = self._process(path, relative_path, check_filters)
        except ScanTimeoutError as e:
            return _failed(path, str(e), ErrorKind.TIMEOUT)
        except DetectorError as e:
            return _failed(path, str(e), ErrorKind.DETECTOR)
        except ScanError as e:
            return _failed(path, str(e), ErrorKind.READ)
        if isinstance(result, SkippedFile):
            return FileOutcome(path=str(path), skipped=result)
        return FileOutcome(path=str(path), findings=tuple(result))

    def admit(self, path: Path, relative_path: str) -> FileOutcome | None:
        """Run the file-level filters. None means the file should be scanned."""
        try:
            included = self._include_file(path, relative_path)
        except DetectorError as e:
            return _failed(path, str(e), ErrorKind.DETECTOR)
        if included:
            return None
        return FileOutcome(path=str(path), skipped=SkippedFile(str(path), SkipReason.FILTERED))

    # --- Internals ---------------------------------------------------------

    def _process(
        self,
        path: Path,
        relative_path: str | None,
        check_filters: bool,
    ) -> list[Finding] | SkippedFile:
        if not path.is_file():
            raise InvalidFileError(path)
        relative_path = relative_path or self._relative(path)

        if check_filters and not self._include_file(path, relative_path):
            return SkippedFile(str(path), SkipReason.FILTERED)

        try:
            size = path.stat().st_size
        except OSError as e:
            raise FileReadError(path, e.strerror or str(e)) from e
        if size > self._config.max_file_size:
            return SkippedFile(str(path), SkipReason.TOO_LARGE)

        try:
            data = path.read_bytes()
        except OSError as e:
            raise FileReadError(path, e.strerror or str(e)) from e
        content = decode_text(data)
        if content is None:
            return SkippedFile(str(path), SkipReason.BINARY)

        deadline = None
        if self._config.file_timeout is not None:
            deadline = time.monotonic() + self._config.file_timeout

        context = ScanContext(
            path=path,
            relative_path=relative_path,
            extension=file_extension(path),
            content=content,
            size=size,
            is_test_file=is_test_path(relative_path, self._config.test_globs),
            config=self._config,
            deadline=deadline,
        )
        try:
            findings = self._detector.detect(context)
        except ScanError:
            raise
        except Exception as e:
            raise DetectorError(self._detector.name, path, e) from e
        return self._keep(findings, context)

    def _include_file(self, path: Path, relative_path: str) -> bool:
        for f in self._filters:
            try:
                if not f.should_include_file(path, relative_path):
                    logger.debug("%s excluded by %s filter", relative_path, f.name)
                    return False
            except Exception as e:
                raise DetectorError(f"{f.name} filter", path, e) from e
        return True

    def _keep(self, findings: list[Finding], context: ScanContext) -> list[Finding]:
        applicable = []
        for f in self._filters:
            try:
                if f.is_applicable(context.path, context.extension):
                    applicable.append(f)
            except Exception as e:
                raise DetectorError(f"{f.name} filter", context.path, e) from e

        kept: list[Finding] = []
        for finding in findings:
            if finding.confidence < self._config.min_confidence:
                continue
            line = context.line_at(finding.line)
            try:
                if not all(
                    f.should_include_line(line, finding.line, context.path) for f in applicable
                ):
                    continue
                if any(
                    isinstance(f, WhitelistFilter) and not f.should_include_value(finding.matched_value)
                    for f in applicable
                ):
                    continue
            except Exception as e:
                raise DetectorError("line filter", context.path, e) from e
            kept.append(finding)
        return kept

    def _relative(self, path: Path) -> str:
        if self._root is not None:
            try:
                return path.resolve().relative_to(self._root).as_posix()
            except ValueError:
                pass
        return path.name


def _failed(path: Path, message: str, kind: ErrorKind) -> FileOutcome:
    return FileOutcome(path=str(path), error=FileError(str(path), message, kind))
