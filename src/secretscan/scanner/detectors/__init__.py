"""Detection strategies and the composite that merges them."""

from secretscan.scanner.detectors.base import Detector
from secretscan.scanner.detectors.composite import (
    CompositeDetector,
    build_detectors,
    merge_findings,
)
from secretscan.scanner.detectors.context import ContextAwareDetector
from secretscan.scanner.detectors.entropy import EntropyDetector
from secretscan.scanner.detectors.pattern import PatternDetector

__all__ = [
    "CompositeDetector",
    "ContextAwareDetector",
    "Detector",
    "EntropyDetector",
    "PatternDetector",
    "build_detectors",
    "merge_findings",
]
