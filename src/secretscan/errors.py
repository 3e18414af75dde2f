"""Error taxonomy shared by the engine, the file scanner, and the CLI."""

from __future__ import annotations

from pathlib import Path


class ScanError(Exception):
    """Base class for every error raised by secretscan."""


class ConfigurationError(ScanError):
    """A configuration value is invalid. Raised before any file is touched."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class PathNotFoundError(ScanError):
    """A scan root does not exist on disk."""

    def __init__(self, path: str | Path) -> None:
        super().__init__(f"Scan root does not exist: {path}")
        self.path = str(path)


class InvalidFileError(ScanError, ValueError):
    """``scan_file`` was handed something that is not an existing file."""

    def __init__(self, path: str | Path, message: str = "file does not exist") -> None:
        super().__init__(f"{path}: {message}")
        self.path = str(path)


class FileReadError(ScanError):
    """A file could not be read (permissions, I/O failure)."""

    def __init__(self, path: str | Path, message: str) -> None:
        super().__init__(f"Failed to read {path}: {message}")
        self.path = str(path)
        self.message = message


class DetectorError(ScanError):
    """A detector or filter raised while processing a single file."""

    def __init__(self, detector: str, path: str | Path, cause: BaseException) -> None:
        super().__init__(f"{detector} failed on {path}: {cause}")
        self.detector = detector
        self.path = str(path)
        self.cause = cause


class ScanTimeoutError(ScanError):
    """A file scan exceeded its time budget."""

    def __init__(self, path: str | Path, seconds: float) -> None:
        super().__init__(f"Scan of {path} exceeded {seconds:g}s")
        self.path = str(path)
        self.seconds = seconds


class EngineStateError(ScanError):
    """``scan()`` was called while the engine could not accept it."""
