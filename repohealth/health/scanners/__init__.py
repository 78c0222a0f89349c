"""Specialized scanners whose findings are merged into dimension results."""

from repohealth.health.scanners.dependencies import DependencyScanner, OutdatedReport
from repohealth.health.scanners.performance import PerformanceAnalyzer
from repohealth.health.scanners.security import SecurityScanner, Signature

__all__ = [
    "DependencyScanner",
    "OutdatedReport",
    "PerformanceAnalyzer",
    "SecurityScanner",
    "Signature",
]
