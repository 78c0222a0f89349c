"""Maintenance assessor: project upkeep signals and dependency freshness."""

from repohealth.health.assessors import AssessmentContext, BaseAssessor, ScoreCard
from repohealth.health.config import HealthConfig
from repohealth.health.models import Dimension, Severity
from repohealth.health.probes import ProjectFiles
from repohealth.health.scanners.dependencies import DependencyScanner

CI_CONFIGS = (
    ".gitlab-ci.yml",
    ".circleci/config.yml",
    ".travis.yml",
    "azure-pipelines.yml",
    "Jenkinsfile",
    "bitbucket-pipelines.yml",
)
LICENSE_FILES = ("LICENSE", "LICENSE.md", "LICENSE.txt", "LICENCE", "LICENCE.md", "COPYING")
CHANGELOG_FILES = ("CHANGELOG.md", "CHANGELOG", "CHANGELOG.rst", "CHANGELOG.txt", "CHANGES.md", "HISTORY.md")
CONTRIBUTING_FILES = ("CONTRIBUTING.md", "CONTRIBUTING.rst", ".github/CONTRIBUTING.md", "docs/CONTRIBUTING.md")

# (more than N outdated, severity, points), checked from the top
OUTDATED_TIERS = (
    (15, Severity.MEDIUM, 20),
    (5, Severity.MEDIUM, 10),
    (0, Severity.LOW, 5),
)


def has_ci_config(files: ProjectFiles) -> bool:
    """Check for a CI pipeline definition."""
    if files.any_exists(*CI_CONFIGS):
        return True
    return bool(files.glob_root(".github/workflows/*.yml") or files.glob_root(".github/workflows/*.yaml"))


class MaintenanceAssessor(BaseAssessor):
    """Scores project upkeep.

    Checks:
    - CI configuration, LICENSE, .gitignore, CONTRIBUTING guide
    - CHANGELOG presence and how recently it changed
    - Number of outdated dependencies
    """

    default_weight = 10
    band_advice = {
        90: ("Keep dependencies and the changelog up to date",),
        80: ("Automate dependency updates with Dependabot or Renovate",),
        70: ("Set up continuous integration and document the contribution process",),
    }

    @property
    def name(self) -> str:
        return Dimension.MAINTENANCE.value

    def run_checks(
        self, card: ScoreCard, config: HealthConfig, context: AssessmentContext
    ) -> None:
        files = context.files

        if not has_ci_config(files):
            card.deduct(Severity.MEDIUM, "ci", "No CI configuration found", 15)
            card.recommend("Add a CI workflow that runs tests on every push")

        if not files.any_exists(*LICENSE_FILES):
            card.deduct(Severity.MEDIUM, "license", "No LICENSE file found", 10)

        if not files.file_exists(".gitignore"):
            card.deduct(Severity.LOW, "hygiene", "No .gitignore file found", 5)

        self._check_changelog(card, config, context)

        if not files.any_exists(*CONTRIBUTING_FILES):
            card.deduct(Severity.LOW, "community", "No CONTRIBUTING guide found", 3)

        self._check_dependencies(card, config, context)

    def _check_changelog(
        self, card: ScoreCard, config: HealthConfig, context: AssessmentContext
    ) -> None:
        changelog = context.files.first_existing(*CHANGELOG_FILES)
        if changelog is None:
            card.deduct(Severity.LOW, "changelog", "No CHANGELOG found", 5)
            return

        age = context.age_days(changelog)
        if age is None:
            return
        card.details["changelog_age_days"] = int(age)
        if age > config.max_changelog_age_days:
            card.deduct(
                Severity.LOW,
                "changelog",
                f"{changelog} not updated in {int(age)} days",
                10,
                changelog,
            )

    def _check_dependencies(
        self, card: ScoreCard, config: HealthConfig, context: AssessmentContext
    ) -> None:
        report = DependencyScanner(config).scan(context)
        for note in report.notes:
            card.info("dependencies", note)

        card.details.update(
            {"declared_dependencies": len(report.declared), "outdated_dependencies": report.count}
        )
        if report.count == 0:
            return

        for floor, severity, points in OUTDATED_TIERS:
            if report.count > floor:
                card.deduct(
                    severity,
                    "dependencies",
                    f"{report.count} outdated dependenc{'ies' if report.count != 1 else 'y'}",
                    points,
                )
                break
        card.recommend(*report.recommendations())
