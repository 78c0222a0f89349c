"""Security assessor."""

from repohealth.health.assessors import AssessmentContext, BaseAssessor, ScoreCard
from repohealth.health.config import HealthConfig
from repohealth.health.models import Dimension, Severity
from repohealth.health.scanners.security import SecurityScanner


class SecurityAssessor(BaseAssessor):
    """Scores the project using the security scanner's findings."""

    default_weight = 25

    @property
    def name(self) -> str:
        return Dimension.SECURITY.value

    def run_checks(
        self, card: ScoreCard, config: HealthConfig, context: AssessmentContext
    ) -> None:
        card.merge(SecurityScanner(config).scan(context))

    def describe(self, card: ScoreCard) -> str:
        critical = card.count(Severity.CRITICAL)
        high = card.count(Severity.HIGH)
        if critical or high:
            return f"{critical} critical, {high} high severity issues"
        return super().describe(card)
