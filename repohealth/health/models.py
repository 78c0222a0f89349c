"""Data models for the health assessment engine."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any


class Dimension(Enum):
    """The independently scored health dimensions."""

    CODE_QUALITY = "code_quality"
    TEST_COVERAGE = "test_coverage"
    SECURITY = "security"
    PERFORMANCE = "performance"
    MAINTENANCE = "maintenance"
    DOCUMENTATION = "documentation"

    @property
    def label(self) -> str:
        """Human readable name."""
        return self.value.replace("_", " ").title()


class Severity(Enum):
    """Severity of a finding, ordered from most to least important."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Numeric rank; higher is more severe."""
        ranks = {
            Severity.CRITICAL: 4,
            Severity.HIGH: 3,
            Severity.MEDIUM: 2,
            Severity.LOW: 1,
            Severity.INFO: 0,
        }
        return ranks[self]

    @property
    def penalty_range(self) -> tuple[int, int]:
        """Deduction band used by the security scanner for this severity."""
        ranges = {
            Severity.CRITICAL: (20, 30),
            Severity.HIGH: (10, 20),
            Severity.MEDIUM: (5, 10),
            Severity.LOW: (3, 5),
            Severity.INFO: (0, 0),
        }
        return ranges[self]

    @property
    def is_blocking(self) -> bool:
        """Whether findings of this severity force the critical exit code."""
        return self in (Severity.CRITICAL, Severity.HIGH)

    @property
    def is_warning(self) -> bool:
        return self in (Severity.MEDIUM, Severity.LOW)

    @property
    def color(self) -> str:
        """Get the display color for this severity."""
        colors = {
            Severity.CRITICAL: "bold red",
            Severity.HIGH: "red",
            Severity.MEDIUM: "yellow",
            Severity.LOW: "cyan",
            Severity.INFO: "dim",
        }
        return colors.get(self, "white")

    @property
    def icon(self) -> str:
        icons = {
            Severity.CRITICAL: "✗",
            Severity.HIGH: "✗",
            Severity.MEDIUM: "⚠",
            Severity.LOW: "⚠",
            Severity.INFO: "ℹ",
        }
        return icons.get(self, "•")

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


class HealthStatus(Enum):
    """Overall health label derived from the overall score."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"

    @classmethod
    def from_score(cls, score: int, thresholds: dict[str, int]) -> "HealthStatus":
        """Convert a numeric score to a status using descending thresholds.

        Args:
            score: Overall score from 0-100
            thresholds: Minimum score per status name (e.g. {"excellent": 90})

        Returns:
            The highest status whose minimum the score meets, else CRITICAL
        """
        for status in (cls.EXCELLENT, cls.GOOD, cls.FAIR, cls.POOR):
            minimum = thresholds.get(status.value)
            if minimum is not None and score >= minimum:
                return status
        return cls.CRITICAL

    @property
    def color(self) -> str:
        """Get the display color for this status."""
        colors = {
            HealthStatus.EXCELLENT: "green",
            HealthStatus.GOOD: "cyan",
            HealthStatus.FAIR: "yellow",
            HealthStatus.POOR: "orange1",
            HealthStatus.CRITICAL: "red",
        }
        return colors.get(self, "white")

    @property
    def emoji(self) -> str:
        """Get the emoji for this status."""
        emojis = {
            HealthStatus.EXCELLENT: "🟢",
            HealthStatus.GOOD: "🔵",
            HealthStatus.FAIR: "🟡",
            HealthStatus.POOR: "🟠",
            HealthStatus.CRITICAL: "🔴",
        }
        return emojis.get(self, "⚪")


@dataclass(frozen=True)
class Finding:
    """A single detected issue or positive signal."""

    severity: Severity
    category: str
    message: str
    source_assessor: str
    location: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "severity": self.severity.value,
            "category": self.category,
            "message": self.message,
            "source_assessor": self.source_assessor,
            "location": self.location,
        }


@dataclass(frozen=True)
class DimensionResult:
    """Result of one assessor run. Never mutated after it is returned."""

    name: str
    score: int  # 0-100
    weight: int  # > 0
    findings: tuple[Finding, ...] = ()
    recommendations: tuple[str, ...] = ()
    description: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    complete: bool = True

    def __post_init__(self) -> None:
        if self.weight <= 0:
            raise ValueError(f"Dimension weight must be positive, got {self.weight}")
        object.__setattr__(self, "score", max(0, min(100, int(self.score))))
        object.__setattr__(self, "findings", tuple(self.findings))
        object.__setattr__(self, "recommendations", tuple(self.recommendations))

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()

    @property
    def weighted_score(self) -> int:
        """Calculate the weighted score contribution."""
        return self.score * self.weight

    def findings_at(self, *severities: Severity) -> list[Finding]:
        """Findings of the given severities, in emission order."""
        return [f for f in self.findings if f.severity in severities]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "score": self.score if self.complete else None,
            "weight": self.weight,
            "complete": self.complete,
            "description": self.description,
            "findings": [f.to_dict() for f in self.findings],
            "recommendations": list(self.recommendations),
            "details": self.details,
        }


@dataclass(frozen=True)
class HealthReport:
    """Complete health verdict for a project, built once by the aggregator."""

    overall_score: int  # 0-100
    status: HealthStatus
    dimensions: tuple[DimensionResult, ...] = ()
    critical_findings: tuple[Finding, ...] = ()
    warnings: tuple[Finding, ...] = ()
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    project_path: Path = field(default_factory=lambda: Path("."))

    @property
    def summary(self) -> str:
        """Get a summary string of the health report."""
        return (
            f"{self.status.emoji} {self.status.value.upper()} "
            f"({self.overall_score}/100)"
        )

    @property
    def info_findings(self) -> list[Finding]:
        return [
            f for d in self.dimensions for f in d.findings if f.severity == Severity.INFO
        ]

    @property
    def has_critical_findings(self) -> bool:
        return bool(self.critical_findings)

    @property
    def top_recommendations(self) -> list[str]:
        """Get the top 5 recommendations across all dimensions."""
        all_recs: list[tuple[int, str]] = []
        for dimension in self.dimensions:
            # Weight recommendations by how much improvement they could provide
            improvement_potential = 100 - dimension.score
            for rec in dimension.recommendations:
                all_recs.append((improvement_potential * dimension.weight, rec))

        # Stable sort keeps emission order for equal potential
        all_recs.sort(key=lambda x: x[0], reverse=True)
        seen: set[str] = set()
        unique_recs: list[str] = []
        for _, rec in all_recs:
            if rec not in seen:
                seen.add(rec)
                unique_recs.append(rec)
                if len(unique_recs) >= 5:
                    break
        return unique_recs

    def dimension(self, name: str) -> DimensionResult | None:
        """Look up a dimension result by name."""
        for result in self.dimensions:
            if result.name == name:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "overall_score": self.overall_score,
            "status": self.status.value,
            "project_path": str(self.project_path),
            "generated_at": self.generated_at.isoformat(),
            "dimensions": [d.to_dict() for d in self.dimensions],
            "critical_findings": [f.to_dict() for f in self.critical_findings],
            "warnings": [f.to_dict() for f in self.warnings],
            "summary": {
                "total_critical": sum(
                    1 for f in self.critical_findings if f.severity == Severity.CRITICAL
                ),
                "total_high": sum(
                    1 for f in self.critical_findings if f.severity == Severity.HIGH
                ),
                "total_medium": sum(1 for f in self.warnings if f.severity == Severity.MEDIUM),
                "total_low": sum(1 for f in self.warnings if f.severity == Severity.LOW),
                "total_info": len(self.info_findings),
            },
            "recommendations": self.top_recommendations,
        }
