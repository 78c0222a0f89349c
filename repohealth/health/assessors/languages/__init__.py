"""Optional language-specific checks merged into the code quality dimension."""

from abc import ABC, abstractmethod

from repohealth.health.assessors import AssessmentContext, ScoreCard
from repohealth.health.config import HealthConfig
from repohealth.health.models import Dimension


class LanguageAssessor(ABC):
    """Base class for per-language assessors.

    A language assessor only runs when one of its marker files exists in the
    project root. Its card is merged into the code quality result.
    """

    #: Files whose presence marks a project as using this language
    markers: tuple[str, ...] = ()

    #: Advice keyed by the score below which it applies
    band_advice: dict[int, tuple[str, ...]] = {}

    @property
    @abstractmethod
    def language(self) -> str:
        ...

    def applies(self, context: AssessmentContext) -> bool:
        return context.files.any_exists(*self.markers)

    def assess(self, config: HealthConfig, context: AssessmentContext) -> ScoreCard:
        card = ScoreCard(source=Dimension.CODE_QUALITY.value)
        self.run_checks(card, config, context)
        for band in sorted(self.band_advice, reverse=True):
            if card.score < band:
                card.recommend(*self.band_advice[band])
        card.details = {f"{self.language}_score": card.score}
        return card

    @abstractmethod
    def run_checks(
        self, card: ScoreCard, config: HealthConfig, context: AssessmentContext
    ) -> None:
        ...


def language_assessors(languages: tuple[str, ...]) -> list[LanguageAssessor]:
    """Instantiate the assessors for the enabled languages, in a stable order."""
    from repohealth.health.assessors.languages.go import GoAssessor
    from repohealth.health.assessors.languages.javascript import JavaScriptAssessor
    from repohealth.health.assessors.languages.python import PythonAssessor
    from repohealth.health.assessors.languages.rust import RustAssessor

    available: dict[str, type[LanguageAssessor]] = {
        "python": PythonAssessor,
        "javascript": JavaScriptAssessor,
        "go": GoAssessor,
        "rust": RustAssessor,
    }
    return [available[name]() for name in available if name in languages]
