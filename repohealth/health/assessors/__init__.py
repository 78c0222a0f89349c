"""Base class, scoring helper and registry for dimension assessors."""

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from repohealth.health.config import HealthConfig
from repohealth.health.models import DimensionResult, Finding, Severity
from repohealth.health.probes import ProjectFiles
from repohealth.health.tools import ToolResult, ToolRunner


@dataclass
class AssessmentContext:
    """Collaborators handed to an assessor for one run."""

    files: ProjectFiles
    tools: ToolRunner
    cancel_event: threading.Event

    @classmethod
    def create(
        cls,
        project_path: Path,
        config: HealthConfig,
        tools: ToolRunner | None = None,
        cancel_event: threading.Event | None = None,
    ) -> "AssessmentContext":
        cancel_event = cancel_event or (tools.cancel_event if tools else threading.Event())
        if tools is None:
            tools = ToolRunner(
                default_timeout=config.tool_timeout,
                cancel_event=cancel_event,
                enabled=config.run_tools,
            )
        files = ProjectFiles(
            project_path,
            exclude_paths=config.exclude_paths,
            cancel_event=cancel_event,
            max_scan_bytes=config.max_scan_bytes,
        )
        return cls(files=files, tools=tools, cancel_event=cancel_event)

    def age_days(self, relpath: str, now: float | None = None) -> float | None:
        """Days since a file last changed.

        Uses the last commit touching the file when the project is a git
        checkout, falling back to the filesystem modification time.
        """
        if not self.files.file_exists(relpath):
            return None
        if self.files.dir_exists(".git"):
            result = self.tools.run_tool(
                "git",
                ["log", "-1", "--format=%ct", "--", relpath],
                cwd=self.files.root,
            )
            stamp = result.stdout.strip() if result.ok else ""
            if stamp.isdigit():
                return ((now if now is not None else time.time()) - int(stamp)) / 86400
        return self.files.age_days(relpath, now=now)


@dataclass
class ScoreCard:
    """Accumulates findings and deductions for a single assessor run.

    Deductions are summed and the score is ``max(0, start - total)``, which is
    the same as clamping after every subtraction and makes the checks
    order-independent.
    """

    source: str
    start: int = 100
    penalty: int = 0
    findings: list[Finding] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def score(self) -> int:
        return max(0, min(100, self.start - self.penalty))

    def deduct(
        self,
        severity: Severity,
        category: str,
        message: str,
        points: int,
        location: str | None = None,
    ) -> Finding:
        """Record a finding and subtract its points."""
        finding = Finding(
            severity=severity,
            category=category,
            message=message,
            source_assessor=self.source,
            location=location,
        )
        self.findings.append(finding)
        if severity != Severity.INFO:
            self.penalty += max(0, points)
        return finding

    def info(self, category: str, message: str, location: str | None = None) -> Finding:
        """Record an informational finding; never affects the score."""
        return self.deduct(Severity.INFO, category, message, 0, location)

    def skipped_tool(self, category: str, result: ToolResult, purpose: str) -> Finding:
        """Record that an external tool could not be used for a check."""
        return self.info(category, f"{purpose} skipped: {result.skip_reason}")

    def recommend(self, *texts: str) -> None:
        for text in texts:
            if text not in self.recommendations:
                self.recommendations.append(text)

    def merge(self, other: "ScoreCard", prefix: str | None = None) -> None:
        """Fold another card's findings, deductions and advice into this one."""
        for finding in other.findings:
            if prefix:
                finding = Finding(
                    severity=finding.severity,
                    category=finding.category,
                    message=f"[{prefix}] {finding.message}",
                    source_assessor=finding.source_assessor,
                    location=finding.location,
                )
            self.findings.append(finding)
        self.penalty += other.penalty
        self.recommend(*other.recommendations)
        for key, value in other.details.items():
            self.details.setdefault(key, value)

    def count(self, severity: Severity) -> int:
        return sum(1 for f in self.findings if f.severity == severity)


class BaseAssessor(ABC):
    """Abstract base class for dimension assessors."""

    #: Weight used when the configuration does not name this dimension
    default_weight: int = 10

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the dimension name."""
        ...

    def weight(self, config: HealthConfig) -> int:
        """Return the configured weight for this dimension."""
        return config.weight_for(self.name, self.default_weight)

    def assess(
        self,
        project_path: Path,
        config: HealthConfig,
        context: AssessmentContext | None = None,
    ) -> DimensionResult:
        """Assess the project and return this dimension's result.

        Args:
            project_path: Path to the project root
            config: Run configuration
            context: Probes and tool runner; created on demand if omitted

        Returns:
            DimensionResult with score, findings and recommendations
        """
        if context is None:
            context = AssessmentContext.create(project_path, config)
        card = ScoreCard(source=self.name)
        self.run_checks(card, config, context)
        self.add_recommendations(card)
        return self._create_result(card, config)

    @abstractmethod
    def run_checks(
        self, card: ScoreCard, config: HealthConfig, context: AssessmentContext
    ) -> None:
        """Run every check, recording findings on ``card``."""
        ...

    #: Advice keyed by the score below which it applies (90, 80, 70)
    band_advice: dict[int, tuple[str, ...]] = {}

    def add_recommendations(self, card: ScoreCard) -> None:
        """Add advice for every score band the card has dropped below."""
        for band in sorted(self.band_advice, reverse=True):
            if card.score < band:
                card.recommend(*self.band_advice[band])

    def describe(self, card: ScoreCard) -> str:
        issues = sum(1 for f in card.findings if f.severity != Severity.INFO)
        if issues == 0:
            return "No issues found"
        return f"{issues} issue{'s' if issues != 1 else ''} found"

    def _create_result(self, card: ScoreCard, config: HealthConfig) -> DimensionResult:
        """Helper to create a DimensionResult from a finished card."""
        return DimensionResult(
            name=self.name,
            score=card.score,
            weight=self.weight(config),
            findings=tuple(card.findings),
            recommendations=tuple(card.recommendations),
            description=self.describe(card),
            details=dict(card.details),
        )


class AssessorRegistry:
    """Ordered collection of assessors keyed by dimension name."""

    def __init__(self, assessors: Iterable[BaseAssessor] = ()) -> None:
        self._assessors: dict[str, BaseAssessor] = {}
        for assessor in assessors:
            self.register(assessor)

    def register(self, assessor: BaseAssessor, replace: bool = False) -> None:
        if assessor.name in self._assessors and not replace:
            raise ValueError(f"Assessor already registered for '{assessor.name}'")
        self._assessors[assessor.name] = assessor

    def unregister(self, name: str) -> None:
        self._assessors.pop(name, None)

    def get(self, name: str) -> BaseAssessor | None:
        return self._assessors.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._assessors)

    def __iter__(self) -> Iterator[BaseAssessor]:
        return iter(list(self._assessors.values()))

    def __len__(self) -> int:
        return len(self._assessors)

    def __contains__(self, name: object) -> bool:
        return name in self._assessors


def default_registry() -> AssessorRegistry:
    """Build a fresh registry holding the six standard dimensions."""
    from repohealth.health.assessors.code_quality import CodeQualityAssessor
    from repohealth.health.assessors.documentation import DocumentationAssessor
    from repohealth.health.assessors.maintenance import MaintenanceAssessor
    from repohealth.health.assessors.performance import PerformanceAssessor
    from repohealth.health.assessors.security import SecurityAssessor
    from repohealth.health.assessors.test_coverage import TestCoverageAssessor

    return AssessorRegistry(
        [
            CodeQualityAssessor(),
            TestCoverageAssessor(),
            SecurityAssessor(),
            PerformanceAssessor(),
            MaintenanceAssessor(),
            DocumentationAssessor(),
        ]
    )
