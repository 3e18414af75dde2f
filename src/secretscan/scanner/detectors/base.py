"""Detector protocol — every detection strategy must satisfy this."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from secretscan.scanner.models import (
    Category,
    Finding,
    FindingContext,
    ScanContext,
    Severity,
)

CONFIG_EXTENSIONS = frozenset(
    {".properties", ".yml", ".yaml", ".toml", ".ini", ".conf", ".cfg", ".env"}
)


@runtime_checkable
class Detector(Protocol):
    """Protocol for detection strategies."""

    @property
    def name(self) -> str:
        """Stable identifier, reported in ``Finding.detector``."""
        ...

    def detect(self, context: ScanContext) -> list[Finding]:
        """Return every finding in the file. No match is an empty list, never an error."""
        ...


def is_config_file(extension: str) -> bool:
    return extension in CONFIG_EXTENSIONS


def build_finding(
    context: ScanContext,
    start: int,
    value: str,
    *,
    detector: str,
    rule: str,
    severity: Severity,
    confidence: float,
    category: Category,
    variable: str = "",
    in_config_file: bool | None = None,
) -> Finding:
    """Locate ``value`` at content offset ``start`` and wrap it in a Finding.

    Multi-line values (PEM blocks) report the column range of their first line.
    """
    line, column = context.position(start)
    first_line = value.split("\n", 1)[0].rstrip("\r")
    before, after = context.surrounding(line)
    syntax = context.syntax
    if in_config_file is None:
        in_config_file = is_config_file(context.extension)
    return Finding(
        file_path=str(context.path),
        relative_path=context.relative_path,
        line=line,
        column=column,
        column_end=column + max(1, len(first_line)),
        matched_value=value,
        detector=detector,
        rule=rule,
        severity=severity,
        confidence=max(0.0, min(1.0, confidence)),
        category=category,
        context=FindingContext(
            line=context.line_at(line),
            before=before,
            after=after,
            in_comment=syntax.in_comment(start),
            in_string_literal=syntax.in_string(start),
            in_test_file=context.is_test_file,
            in_config_file=in_config_file,
            variable=variable,
        ),
    )
