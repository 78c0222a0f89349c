"""Test coverage assessor."""

import json
import logging
import re
import sqlite3
from pathlib import Path

from repohealth.health.assessors import AssessmentContext, BaseAssessor, ScoreCard
from repohealth.health.config import HealthConfig
from repohealth.health.models import Dimension, Severity
from repohealth.health.probes import ProjectFiles, declared_js_dependencies, package_json

logger = logging.getLogger(__name__)

JS_TEST_CONFIGS = (
    "jest.config.js",
    "jest.config.ts",
    "jest.config.cjs",
    "jest.config.mjs",
    "vitest.config.ts",
    "vitest.config.js",
    "vitest.config.mts",
    ".mocharc.json",
    ".mocharc.js",
    ".mocharc.yml",
    "playwright.config.ts",
    "cypress.config.ts",
    "cypress.config.js",
)
JS_TEST_FRAMEWORKS = ("jest", "vitest", "mocha", "ava", "jasmine", "@playwright/test", "cypress")
NPM_PLACEHOLDER_TEST = "no test specified"

LOW_COVERAGE = 50


class TestCoverageAssessor(BaseAssessor):
    """Scores how well the project is tested.

    Uses the ratio of test files to source files and, when a coverage report
    is present, its line coverage percentage.
    """

    __test__ = False  # not a pytest test class

    default_weight = 20
    band_advice = {
        90: ("Consider increasing test coverage to 80% or higher",),
        80: ("Add tests alongside new source files",),
        70: ("Increase test coverage to at least 50%",),
    }

    @property
    def name(self) -> str:
        return Dimension.TEST_COVERAGE.value

    def run_checks(
        self, card: ScoreCard, config: HealthConfig, context: AssessmentContext
    ) -> None:
        files = context.files
        sources = files.source_files()
        tests = files.test_files()
        card.details.update({"source_files": len(sources), "test_files": len(tests)})

        if not sources:
            card.info("tests", "No source files found; test ratio not assessed")
        elif not tests:
            card.deduct(
                Severity.HIGH,
                "tests",
                f"No test files found for {len(sources)} source files",
                40,
            )
        else:
            ratio = len(tests) * 100 / len(sources)
            card.details["test_ratio"] = round(ratio, 1)
            if ratio < 10:
                card.deduct(
                    Severity.MEDIUM,
                    "tests",
                    f"Very low test coverage: {len(tests)} test files for {len(sources)} source files",
                    25,
                )
            elif ratio < 30:
                card.deduct(
                    Severity.LOW,
                    "tests",
                    f"Low test coverage: {len(tests)} test files for {len(sources)} source files",
                    10,
                )

        if files.file_exists("package.json") and not self._has_js_test_setup(files):
            card.deduct(
                Severity.LOW,
                "tests",
                "No test script or test framework configuration found",
                5,
                "package.json",
            )

        coverage, source = get_coverage(files.root)
        if coverage is None:
            card.info("coverage", "No coverage report found")
            card.recommend("Run tests with coverage: pytest --cov")
            return

        percent = coverage * 100
        card.details.update({"coverage_percentage": round(percent, 1), "coverage_source": source})
        if percent < LOW_COVERAGE:
            card.deduct(
                Severity.MEDIUM, "coverage", f"Line coverage is {percent:.0f}%", 20, source
            )
        elif percent < config.min_coverage:
            card.deduct(
                Severity.LOW,
                "coverage",
                f"Line coverage is {percent:.0f}%, below the {config.min_coverage}% target",
                10,
                source,
            )

    def describe(self, card: ScoreCard) -> str:
        if "coverage_percentage" in card.details:
            return f"{card.details['coverage_percentage']:.0f}% line coverage"
        return super().describe(card)

    def _has_js_test_setup(self, files: ProjectFiles) -> bool:
        scripts = package_json(files).get("scripts") or {}
        test_script = scripts.get("test") if isinstance(scripts, dict) else None
        if test_script and NPM_PLACEHOLDER_TEST not in str(test_script):
            return True
        if files.any_exists(*JS_TEST_CONFIGS):
            return True
        declared = declared_js_dependencies(files)
        return any(name in declared for name in JS_TEST_FRAMEWORKS)


def get_coverage(project_path: Path) -> tuple[float | None, str]:
    """Get test coverage from available report files.

    Args:
        project_path: Path to the project

    Returns:
        Tuple of (coverage as 0-1 or None, report file relative path)
    """
    # Try coverage.json first (pytest-cov JSON output)
    coverage_json = project_path / "coverage.json"
    if coverage_json.is_file():
        try:
            data = json.loads(coverage_json.read_text())
            percent = data.get("totals", {}).get("percent_covered")
            if percent is not None:
                return float(percent) / 100, "coverage.json"
        except (OSError, ValueError, AttributeError) as e:
            logger.debug(f"Failed to parse coverage.json: {e}")

    # Istanbul json-summary
    summary = project_path / "coverage" / "coverage-summary.json"
    if summary.is_file():
        try:
            data = json.loads(summary.read_text())
            percent = data["total"]["lines"]["pct"]
            return float(percent) / 100, "coverage/coverage-summary.json"
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.debug(f"Failed to parse coverage-summary.json: {e}")

    coverage_xml = project_path / "coverage.xml"
    if coverage_xml.is_file():
        coverage = _parse_coverage_xml(coverage_xml)
        if coverage is not None:
            return coverage, "coverage.xml"

    for relpath in ("lcov.info", "coverage/lcov.info"):
        lcov = project_path / relpath
        if lcov.is_file():
            coverage = _parse_lcov(lcov)
            if coverage is not None:
                return coverage, relpath

    htmlcov_index = project_path / "htmlcov" / "index.html"
    if htmlcov_index.is_file():
        coverage = _parse_htmlcov(htmlcov_index)
        if coverage is not None:
            return coverage, "htmlcov/index.html"

    coverage_db = project_path / ".coverage"
    if coverage_db.is_file():
        coverage = _read_coverage_db(coverage_db)
        if coverage is not None:
            return coverage, ".coverage"

    return None, ""


def _parse_coverage_xml(xml_path: Path) -> float | None:
    """Parse coverage from Cobertura XML format."""
    try:
        content = xml_path.read_text(errors="replace")
    except OSError as e:
        logger.debug(f"Failed to read coverage.xml: {e}")
        return None
    # Look for the line-rate="0.85" attribute of the root element
    match = re.search(r'line-rate="(\d+(?:\.\d+)?)"', content)
    return float(match.group(1)) if match else None


def _parse_lcov(lcov_path: Path) -> float | None:
    """Sum LF (lines found) and LH (lines hit) records of an lcov trace file."""
    try:
        content = lcov_path.read_text(errors="replace")
    except OSError as e:
        logger.debug(f"Failed to read {lcov_path}: {e}")
        return None

    found = 0
    hit = 0
    for line in content.splitlines():
        if line.startswith("LF:") and line[3:].strip().isdigit():
            found += int(line[3:])
        elif line.startswith("LH:") and line[3:].strip().isdigit():
            hit += int(line[3:])
    return hit / found if found else None


def _parse_htmlcov(index_path: Path) -> float | None:
    """Parse the total percentage from an htmlcov index page."""
    try:
        content = index_path.read_text(errors="replace")
    except OSError as e:
        logger.debug(f"Failed to read htmlcov: {e}")
        return None
    match = re.search(r'class="pc_cov">\s*(\d+(?:\.\d+)?)\s*%', content) or re.search(
        r"(\d+(?:\.\d+)?)\s*%", content
    )
    return float(match.group(1)) / 100 if match else None


def _read_coverage_db(db_path: Path) -> float | None:
    """Read coverage from a coverage.py SQLite data file.

    The data file records executed lines but not executable ones, so this
    only yields a value for databases that carry a ``line_counts`` summary.
    """
    try:
        conn = sqlite3.connect(db_path)
        try:
            row = conn.execute("SELECT SUM(num_lines), SUM(num_hits) FROM line_counts").fetchone()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.debug(f"Failed to read .coverage database: {e}")
        return None

    if row and row[0]:
        return float((row[1] or 0) / row[0])
    return None
