"""Composite detector — fans out to every configured strategy, then merges."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence

from secretscan.config import DetectorKind, ScanConfiguration
from secretscan.errors import DetectorError, ScanError
from secretscan.scanner.detectors.base import Detector
from secretscan.scanner.detectors.context import (
    ContextAwareDetector,
    apply_context_adjustments,
)
from secretscan.scanner.detectors.entropy import EntropyDetector
from secretscan.scanner.detectors.pattern import PatternDetector
from secretscan.scanner.models import Finding, ScanContext
from secretscan.scanner.patterns import Pattern, active_patterns

logger = logging.getLogger(__name__)


class CompositeDetector:
    """Runs its detectors on the same context and deduplicates their findings.

    The detector list is resolved once, at construction, and reused for every
    file.
    """

    name = "composite"

    def __init__(self, detectors: Sequence[Detector]) -> None:
        self._detectors = tuple(detectors)

    @property
    def detectors(self) -> tuple[Detector, ...]:
        return self._detectors

    def detect(self, context: ScanContext) -> list[Finding]:
        raw: list[Finding] = []
        for detector in self._detectors:
            try:
                raw.extend(detector.detect(context))
            except ScanError:
                raise
            except Exception as e:
                raise DetectorError(detector.name, context.path, e) from e

        merged = merge_findings(raw)
        for finding in merged:
            apply_context_adjustments(finding, context)
        if len(merged) < len(raw):
            logger.debug(
                "%s: merged %d findings into %d", context.relative_path, len(raw), len(merged)
            )
        return merged


def merge_findings(findings: Iterable[Finding]) -> list[Finding]:
    """Collapse findings on the same file and line with overlapping column ranges.

    Overlap is transitive: a chain of pairwise-overlapping findings is one
    occurrence. The survivor has the highest severity, then the highest
    confidence, then the first detector name alphabetically; its
    ``detected_by`` lists every detector that reported the occurrence.
    Output is sorted by (file, line, column).
    """
    by_line: dict[tuple[str, int], list[Finding]] = defaultdict(list)
    for finding in findings:
        by_line[(finding.file_path, finding.line)].append(finding)

    merged: list[Finding] = []
    for group in by_line.values():
        group.sort(key=lambda f: (f.column, f.column_end, f.detector, f.rule))
        cluster = [group[0]]
        cluster_end = group[0].column_end
        for finding in group[1:]:
            if finding.column < cluster_end:
                cluster.append(finding)
                cluster_end = max(cluster_end, finding.column_end)
            else:
                merged.append(_collapse(cluster))
                cluster = [finding]
                cluster_end = finding.column_end
        merged.append(_collapse(cluster))

    merged.sort(key=lambda f: f.sort_key)
    return merged


def _collapse(cluster: list[Finding]) -> Finding:
    winner = min(
        cluster,
        key=lambda f: (-f.severity.rank, -f.confidence, f.detector, f.rule, f.column),
    )
    winner.detected_by = tuple(sorted({d for f in cluster for d in f.detected_by}))
    return winner


def build_detectors(
    config: ScanConfiguration,
    patterns: Sequence[Pattern] | None = None,
) -> list[Detector]:
    """Instantiate the detectors enabled in ``config``, in a fixed order."""
    detectors: list[Detector] = []
    if config.has_detector(DetectorKind.PATTERN):
        detectors.append(PatternDetector(active_patterns(config) if patterns is None else patterns))
    if config.has_detector(DetectorKind.ENTROPY):
        detectors.append(EntropyDetector.from_config(config))
    if config.has_detector(DetectorKind.CONTEXT):
        detectors.append(ContextAwareDetector.from_config(config))
    return detectors
