"""Repository health assessment engine.

Scores a repository across six dimensions (code quality, test coverage,
security, performance, maintenance and documentation) and combines them
into a weighted overall verdict.

Example:
    >>> from repohealth.health import HealthCalculator, load_config
    >>> report = HealthCalculator().calculate(Path("."), load_config(Path(".")))
    >>> print(report.summary)
    🔵 GOOD (82/100)
"""

from repohealth.health.aggregator import aggregate, exit_code
from repohealth.health.assessors import (
    AssessmentContext,
    AssessorRegistry,
    BaseAssessor,
    ScoreCard,
    default_registry,
)
from repohealth.health.calculator import HealthCalculator, RunState
from repohealth.health.config import HealthConfig, load_config
from repohealth.health.errors import (
    AssessmentCancelled,
    ConfigError,
    HealthError,
    ProjectNotFoundError,
)
from repohealth.health.models import (
    Dimension,
    DimensionResult,
    Finding,
    HealthReport,
    HealthStatus,
    Severity,
)
from repohealth.health.report import (
    generate_json_report,
    generate_markdown_report,
    render_human,
    save_report,
)

__all__ = [
    # Orchestration
    "HealthCalculator",
    "RunState",
    "aggregate",
    "exit_code",
    # Assessors
    "AssessmentContext",
    "AssessorRegistry",
    "BaseAssessor",
    "ScoreCard",
    "default_registry",
    # Configuration
    "HealthConfig",
    "load_config",
    # Errors
    "AssessmentCancelled",
    "ConfigError",
    "HealthError",
    "ProjectNotFoundError",
    # Models
    "Dimension",
    "DimensionResult",
    "Finding",
    "HealthReport",
    "HealthStatus",
    "Severity",
    # Report functions
    "generate_json_report",
    "generate_markdown_report",
    "render_human",
    "save_report",
]
