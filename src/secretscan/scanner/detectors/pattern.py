"""Pattern detector — the pattern catalog applied to whole-file content."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from secretscan.scanner.detectors.base import build_finding
from secretscan.scanner.models import Finding, ScanContext
from secretscan.scanner.patterns import Pattern

logger = logging.getLogger(__name__)


class PatternDetector:
    """Applies each active pattern to the full content, so multi-line patterns match."""

    name = "pattern"

    def __init__(self, patterns: Sequence[Pattern]) -> None:
        self._patterns = tuple(patterns)

    @property
    def patterns(self) -> tuple[Pattern, ...]:
        return self._patterns

    def detect(self, context: ScanContext) -> list[Finding]:
        findings: list[Finding] = []
        for pattern in self._patterns:
            context.check_deadline()
            for match in pattern.regex.finditer(context.content):
                if pattern.regex.groups and match.group(1) is not None:
                    value, start = match.group(1), match.start(1)
                else:
                    value, start = match.group(0), match.start()
                if not value:
                    continue
                if _has_indicator(value, pattern.false_positive_indicators):
                    logger.debug(
                        "%s: %s match discarded by false-positive indicator",
                        context.relative_path,
                        pattern.name,
                    )
                    continue
                if pattern.context_keywords and not _line_mentions(
                    context, start, pattern.context_keywords
                ):
                    continue
                findings.append(
                    build_finding(
                        context,
                        start,
                        value,
                        detector=self.name,
                        rule=pattern.name,
                        severity=pattern.severity,
                        confidence=pattern.confidence,
                        category=pattern.category,
                    )
                )
        return findings


def _has_indicator(value: str, indicators: Sequence[str]) -> bool:
    lowered = value.lower()
    return any(indicator.lower() in lowered for indicator in indicators)


def _line_mentions(context: ScanContext, offset: int, keywords: Sequence[str]) -> bool:
    line, _ = context.position(offset)
    text = context.line_at(line).lower()
    return any(keyword in text for keyword in keywords)
