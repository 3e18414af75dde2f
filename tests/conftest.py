"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from secretscan.config import ScanConfiguration
from secretscan.scanner.filters import file_extension, is_test_path
from secretscan.scanner.models import ScanContext


@pytest.fixture
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def config() -> ScanConfiguration:
    return ScanConfiguration(workers=1)


@pytest.fixture
def make_context(config: ScanConfiguration) -> Callable[..., ScanContext]:
    """Build a ScanContext for in-memory content, as the file scanner would."""

    def _make(
        content: str,
        relative_path: str = "app/settings.py",
        scan_config: ScanConfiguration | None = None,
    ) -> ScanContext:
        cfg = scan_config or config
        return ScanContext(
            path=Path("/repo") / relative_path,
            relative_path=relative_path,
            extension=file_extension(relative_path),
            content=content,
            size=len(content.encode("utf-8")),
            is_test_file=is_test_path(relative_path, cfg.test_globs),
            config=cfg,
        )

    return _make


@pytest.fixture
def write_tree(tmp_path: Path) -> Callable[[dict[str, str | bytes]], Path]:
    """Write ``{relative_path: content}`` under tmp_path and return the root."""

    def _write(files: dict[str, str | bytes]) -> Path:
        for relative, content in files.items():
            path = tmp_path / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8")
        return tmp_path

    return _write
