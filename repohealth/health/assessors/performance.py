"""Performance assessor."""

from repohealth.health.assessors import AssessmentContext, BaseAssessor, ScoreCard
from repohealth.health.config import HealthConfig
from repohealth.health.models import Dimension
from repohealth.health.scanners.performance import PerformanceAnalyzer


class PerformanceAssessor(BaseAssessor):
    """Scores the project using the performance analyzer's findings."""

    default_weight = 15
    band_advice = {
        90: ("Set up performance budgets to track metrics over time",),
        80: (
            "Implement performance monitoring in production",
            "Run lighthouse audits regularly",
        ),
        70: (
            "Conduct a thorough performance audit using Chrome DevTools",
            "Consider using a CDN for static assets",
        ),
    }

    @property
    def name(self) -> str:
        return Dimension.PERFORMANCE.value

    def run_checks(
        self, card: ScoreCard, config: HealthConfig, context: AssessmentContext
    ) -> None:
        card.merge(PerformanceAnalyzer(config).analyze(context))
