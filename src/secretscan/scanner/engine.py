"""Scan engine — walks the tree and dispatches files to a bounded worker pool."""

from __future__ import annotations

import enum
import logging
import os
import threading
import time
from collections.abc import Iterator, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, as_completed, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from pathlib import Path

from secretscan.config import ScanConfiguration
from secretscan.errors import ConfigurationError, EngineStateError, PathNotFoundError
from secretscan.scanner.detectors import CompositeDetector, Detector, build_detectors
from secretscan.scanner.file_scanner import FileOutcome, FileScanner
from secretscan.scanner.filters import Filter, PathFilter, build_filters, read_ignore_file
from secretscan.scanner.models import ErrorKind, FileError, ScanResult

logger = logging.getLogger(__name__)

# In-flight files per worker; bounds memory on very large trees.
_QUEUE_FACTOR = 4
_PROGRESS_EVERY = 100


class EngineState(enum.Enum):
    """Lifecycle of a ScanEngine."""

    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class _ResultSink:
    """Single aggregation point for worker outcomes.

    Workers only append under the lock; sorting happens once, in finalize().
    Outcomes arriving after close() (abandoned workers of a timed-out run)
    are dropped.
    """

    result: ScanResult
    _closed: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def add(self, outcome: FileOutcome) -> None:
        with self._lock:
            if self._closed:
                return
            if outcome.error is not None:
                self.result.errors.append(outcome.error)
            elif outcome.skipped is not None:
                self.result.skipped.append(outcome.skipped)
            else:
                self.result.files_scanned += 1
                self.result.findings.extend(outcome.findings)
                scanned = self.result.files_scanned
        if outcome.error is not None:
            logger.warning("%s", outcome.error.message)
        elif outcome.skipped is not None:
            logger.debug("Skipped %s (%s)", outcome.path, outcome.skipped.reason.value)
        elif scanned % _PROGRESS_EVERY == 0:
            logger.debug("Scanned %d files", scanned)

    def close(self) -> None:
        with self._lock:
            self._closed = True

    def finalize(self, duration: float) -> ScanResult:
        self.close()
        result = self.result
        result.findings.sort(key=lambda f: f.sort_key)
        result.skipped.sort(key=lambda s: s.path)
        result.errors.sort(key=lambda e: (e.path, e.kind.value))
        result.duration = duration
        return result


class ScanEngine:
    """Orchestrates a secret scan over one or more directory trees.

    The configuration is validated at construction. ``scan()`` blocks until
    every dispatched file is done; per-file failures land in
    ``ScanResult.errors`` and never abort the run.
    """

    def __init__(
        self,
        config: ScanConfiguration,
        detector: Detector | None = None,
        filters: Sequence[Filter] | None = None,
    ) -> None:
        config.validate()
        self._config = config
        self._detector = detector or CompositeDetector(build_detectors(config))
        self._filters = tuple(filters) if filters is not None else None
        self._state = EngineState.CREATED
        self._state_lock = threading.Lock()

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def config(self) -> ScanConfiguration:
        return self._config

    def scan(self, root: str | Path | None = None) -> ScanResult:
        """Scan ``root`` (or the configured roots) and return the sorted result."""
        with self._state_lock:
            if self._state is EngineState.RUNNING:
                raise EngineStateError("A scan is already running on this engine")
            if self._state is EngineState.FAILED:
                raise EngineStateError("Engine failed; create a new one to scan again")
            self._state = EngineState.RUNNING

        try:
            roots = self._resolve_roots(root)
            result = self._run(roots)
        except BaseException:
            self._state = EngineState.FAILED
            raise
        self._state = EngineState.COMPLETED
        return result

    def _resolve_roots(self, root: str | Path | None) -> list[Path]:
        candidates = [Path(root)] if root is not None else list(self._config.roots)
        if not candidates:
            raise ConfigurationError("roots", "no scan root given")
        roots = []
        for candidate in candidates:
            if not candidate.exists():
                raise PathNotFoundError(candidate)
            roots.append(candidate.resolve())
        return roots

    def _run(self, roots: list[Path]) -> ScanResult:
        start = time.monotonic()
        sink = _ResultSink(ScanResult(root=", ".join(str(r) for r in roots)))
        logger.info(
            "Scanning %s with %d worker(s)", sink.result.root, self._config.workers
        )

        run_deadline = None
        if self._config.scan_timeout is not None:
            run_deadline = start + self._config.scan_timeout

        for root in roots:
            if self._scan_root(root, sink, run_deadline):
                sink.result.timed_out = True
                logger.warning("Scan timeout of %gs exceeded", self._config.scan_timeout)
                break

        result = sink.finalize(time.monotonic() - start)
        logger.info(
            "Scan finished: %d files scanned, %d skipped, %d findings, %d errors in %.2fs",
            result.files_scanned,
            result.files_skipped,
            len(result.findings),
            len(result.errors),
            result.duration,
        )
        return result

    # --- Dispatch ----------------------------------------------------------

    def _scanner_for(self, root: Path) -> FileScanner:
        filters = self._filters
        if filters is None:
            ignored = read_ignore_file(root, self._config.ignore_file)
            filters = tuple(build_filters(self._config, ignored))
        return FileScanner(self._config, self._detector, filters, root=root)

    def _scan_root(
        self, root: Path, sink: _ResultSink, run_deadline: float | None
    ) -> bool:
        """Dispatch every admitted file under ``root``; True if the run timed out.

        Files run on pool threads even with one worker; the caller stops
        waiting at the run deadline and marks the unfinished files timed out.
        """
        scanner = self._scanner_for(root)
        limit = self._config.workers * _QUEUE_FACTOR
        pending: dict[Future[FileOutcome], str] = {}
        timed_out = False

        pool = ThreadPoolExecutor(
            max_workers=self._config.workers, thread_name_prefix="secretscan"
        )
        try:
            for path, relative in self._walk(root, scanner, sink):
                while len(pending) >= limit and not timed_out:
                    done, _ = wait(
                        pending, timeout=_remaining(run_deadline), return_when=FIRST_COMPLETED
                    )
                    if not done:
                        timed_out = True
                    for future in done:
                        del pending[future]
                        sink.add(future.result())
                if timed_out or _expired(run_deadline):
                    timed_out = True
                    break
                future = pool.submit(scanner.scan, path, relative, False)
                pending[future] = str(path)

            if not timed_out:
                try:
                    for future in as_completed(list(pending), timeout=_remaining(run_deadline)):
                        del pending[future]
                        sink.add(future.result())
                except FutureTimeoutError:
                    timed_out = True

            if timed_out:
                for future, path in sorted(pending.items(), key=lambda item: item[1]):
                    future.cancel()
                    sink.add(
                        FileOutcome(
                            path=path,
                            error=FileError(path, "Scan timeout exceeded", ErrorKind.TIMEOUT),
                        )
                    )
                sink.close()
        finally:
            pool.shutdown(wait=not timed_out, cancel_futures=True)
        return timed_out

    # --- Tree walk ---------------------------------------------------------

    def _walk(
        self, root: Path, scanner: FileScanner, sink: _ResultSink
    ) -> Iterator[tuple[Path, str]]:
        """Yield ``(path, relative_path)`` for every file the filters admit.

        Rejected files are recorded as filtered skips; excluded directories
        are pruned without being entered.
        """
        if root.is_file():
            rel = _single_file_relative(root)
            outcome = scanner.admit(root, rel)
            if outcome is None:
                yield root, rel
            else:
                sink.add(outcome)
            return

        def unreadable(error: OSError) -> None:
            path = str(error.filename or root)
            message = f"Cannot list {path}: {error.strerror or error}"
            sink.add(FileOutcome(path=path, error=FileError(path, message, ErrorKind.READ)))

        path_filters = [f for f in scanner.filters if isinstance(f, PathFilter)]
        follow = self._config.follow_symlinks
        for dirpath, dirnames, filenames in os.walk(root, onerror=unreadable, followlinks=follow):
            current = Path(dirpath)
            rel_dir = current.relative_to(root).as_posix() if current != root else ""

            # Prune excluded directories in-place, sorted for a stable order
            kept = []
            for name in sorted(dirnames):
                rel = f"{rel_dir}/{name}" if rel_dir else name
                if any(pf.excludes_directory(rel) for pf in path_filters):
                    logger.debug("Pruned %s", rel)
                    continue
                kept.append(name)
            dirnames[:] = kept

            for name in sorted(filenames):
                path = current / name
                if not follow and path.is_symlink():
                    continue
                rel = f"{rel_dir}/{name}" if rel_dir else name
                outcome = scanner.admit(path, rel)
                if outcome is not None:
                    sink.add(outcome)
                    continue
                yield path, rel


def _single_file_relative(path: Path) -> str:
    """Relative path for a file given directly as a root.

    Relative to the working directory when the file lies under it, so test
    and exclude globs see its parent directories; otherwise just the name.
    """
    try:
        return path.relative_to(Path.cwd().resolve()).as_posix()
    except ValueError:
        return path.name


def _remaining(deadline: float | None) -> float | None:
    if deadline is None:
        return None
    return max(0.0, deadline - time.monotonic())


def _expired(deadline: float | None) -> bool:
    return deadline is not None and time.monotonic() > deadline
