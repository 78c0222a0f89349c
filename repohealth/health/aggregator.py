"""Combine dimension results into the overall health report."""

from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from repohealth.health.config import HealthConfig
from repohealth.health.models import (
    Dimension,
    DimensionResult,
    Finding,
    HealthReport,
    HealthStatus,
    Severity,
)

EXIT_OK = 0
EXIT_POOR = 1
EXIT_CRITICAL = 2
POOR_SCORE = 50

DIMENSION_ORDER = {dimension.value: index for index, dimension in enumerate(Dimension)}


def _dimension_key(result: DimensionResult) -> tuple[int, str]:
    return (DIMENSION_ORDER.get(result.name, len(DIMENSION_ORDER)), result.name)


def overall_score(results: Iterable[DimensionResult]) -> int:
    """Weighted mean of the complete dimensions, rounded half up.

    Incomplete dimensions are left out of both sums; when nothing is complete
    the score is 0.
    """
    complete = [r for r in results if r.complete]
    total_weight = sum(r.weight for r in complete)
    if total_weight == 0:
        return 0
    weighted = sum(r.weighted_score for r in complete)
    score = (2 * weighted + total_weight) // (2 * total_weight)
    return max(0, min(100, score))


def aggregate(
    results: Iterable[DimensionResult],
    config: HealthConfig,
    project_path: Path | None = None,
    generated_at: datetime | None = None,
) -> HealthReport:
    """Build the health report from per-dimension results.

    Pure: the result depends only on the arguments, not on the order the
    results arrive in.

    Args:
        results: One result per assessed dimension
        config: Run configuration (thresholds)
        project_path: Project root recorded on the report
        generated_at: Timestamp override, mostly for tests

    Returns:
        HealthReport with overall score, status and bucketed findings
    """
    dimensions = tuple(sorted(results, key=_dimension_key))
    score = overall_score(dimensions)

    findings: list[Finding] = [f for d in dimensions for f in d.findings]
    # sorted() is stable, so emission order survives within a severity
    critical = sorted(
        (f for f in findings if f.severity.is_blocking), key=lambda f: f.severity, reverse=True
    )
    warnings = sorted(
        (f for f in findings if f.severity.is_warning), key=lambda f: f.severity, reverse=True
    )

    status = HealthStatus.from_score(score, config.thresholds)
    if any(f.severity == Severity.CRITICAL for f in critical):
        status = HealthStatus.CRITICAL

    extra: dict[str, datetime] = {}
    if generated_at is not None:
        extra["generated_at"] = generated_at
    return HealthReport(
        overall_score=score,
        status=status,
        dimensions=dimensions,
        critical_findings=tuple(critical),
        warnings=tuple(warnings),
        project_path=project_path or Path("."),
        **extra,
    )


def exit_code(report: HealthReport) -> int:
    """Map a report to the process exit code.

    2 when any CRITICAL or HIGH finding exists, 1 when the overall score is
    below 50, otherwise 0.
    """
    if report.has_critical_findings:
        return EXIT_CRITICAL
    if report.overall_score < POOR_SCORE:
        return EXIT_POOR
    return EXIT_OK
