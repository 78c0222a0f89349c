"""Code quality assessor: linting, formatting, typing and hygiene signals."""

import logging
import re

from repohealth.health.assessors import AssessmentContext, BaseAssessor, ScoreCard
from repohealth.health.assessors.languages import language_assessors
from repohealth.health.config import HealthConfig
from repohealth.health.models import Dimension, Severity
from repohealth.health.probes import SOURCE_EXTENSIONS, ProjectFiles, package_json

logger = logging.getLogger(__name__)

SOURCE_GLOBS = tuple(sorted(f"*{ext}" for ext in SOURCE_EXTENSIONS))

PRE_COMMIT_CONFIGS = (".pre-commit-config.yaml", ".husky", "lefthook.yml", "lefthook.yaml")

LINTER_CONFIGS = (
    ".eslintrc",
    ".eslintrc.js",
    ".eslintrc.cjs",
    ".eslintrc.json",
    ".eslintrc.yml",
    ".eslintrc.yaml",
    "eslint.config.js",
    "eslint.config.mjs",
    "eslint.config.cjs",
    "eslint.config.ts",
    "biome.json",
    "biome.jsonc",
    "ruff.toml",
    ".ruff.toml",
    ".flake8",
    ".pylintrc",
    "pylintrc",
    ".golangci.yml",
    ".golangci.yaml",
    "clippy.toml",
    ".clippy.toml",
)

FORMATTER_CONFIGS = (
    ".prettierrc",
    ".prettierrc.js",
    ".prettierrc.cjs",
    ".prettierrc.json",
    ".prettierrc.yml",
    ".prettierrc.yaml",
    "prettier.config.js",
    "prettier.config.cjs",
    "biome.json",
    "biome.jsonc",
    "rustfmt.toml",
    ".rustfmt.toml",
    ".editorconfig",
)

TYPE_CHECK_CONFIGS = (
    "mypy.ini",
    ".mypy.ini",
    "pyrightconfig.json",
    "tsconfig.json",
    # Statically typed toolchains
    "go.mod",
    "Cargo.toml",
)

PYPROJECT_LINTERS = re.compile(r"^\[tool\.(?:ruff|pylint|flake8)", re.MULTILINE)
PYPROJECT_FORMATTERS = re.compile(r"^\[tool\.(?:black|ruff\.format|ruff)\]", re.MULTILINE)
PYPROJECT_TYPE_CHECKERS = re.compile(r"^\[tool\.(?:mypy|pyright)", re.MULTILINE)
SETUP_CFG_LINTERS = re.compile(r"^\[(?:flake8|pylint)", re.MULTILINE)
SETUP_CFG_TYPE_CHECKERS = re.compile(r"^\[mypy", re.MULTILINE)
TS_STRICT = re.compile(r'"strict"\s*:\s*true')
TODO_MARKERS = re.compile(r"\b(?:TODO|FIXME|HACK)\b")

LONG_FILE_POINTS = 3
LONG_FILE_MAX_POINTS = 15


class CodeQualityAssessor(BaseAssessor):
    """Scores the tooling a project uses to keep its code consistent.

    Starts from 100 and deducts for missing pre-commit hooks, linters,
    formatters and type checking, oversized source files and an
    accumulation of TODO markers. When languages are enabled in the
    configuration, the matching language assessors run as well and their
    deductions are folded into this dimension.
    """

    default_weight = 25
    band_advice = {
        90: ("Address remaining code quality warnings",),
        80: ("Set up pre-commit hooks to enforce linting and formatting",),
        70: ("Set up linting, formatting, and pre-commit hooks",),
    }

    @property
    def name(self) -> str:
        return Dimension.CODE_QUALITY.value

    def run_checks(
        self, card: ScoreCard, config: HealthConfig, context: AssessmentContext
    ) -> None:
        files = context.files
        pyproject = files.read_text("pyproject.toml") or ""
        setup_cfg = files.read_text("setup.cfg") or ""
        has_pre_commit = files.any_exists(*PRE_COMMIT_CONFIGS)

        if not has_pre_commit:
            card.deduct(Severity.MEDIUM, "tooling", "No pre-commit hooks configured", 10)

        has_linter = (
            has_pre_commit
            or files.any_exists(*LINTER_CONFIGS)
            or PYPROJECT_LINTERS.search(pyproject) is not None
            or SETUP_CFG_LINTERS.search(setup_cfg) is not None
            or "eslintConfig" in package_json(files)
        )
        if not has_linter:
            card.deduct(Severity.MEDIUM, "tooling", "No linting configuration found", 10)

        has_formatter = (
            has_pre_commit
            or files.any_exists(*FORMATTER_CONFIGS)
            or PYPROJECT_FORMATTERS.search(pyproject) is not None
            or "prettier" in package_json(files)
        )
        if not has_formatter:
            card.deduct(Severity.LOW, "tooling", "No code formatting configuration found", 5)

        sources = files.source_files()
        has_type_checking = (
            files.any_exists(*TYPE_CHECK_CONFIGS)
            or PYPROJECT_TYPE_CHECKERS.search(pyproject) is not None
            or SETUP_CFG_TYPE_CHECKERS.search(setup_cfg) is not None
        )
        if sources and not has_type_checking:
            card.deduct(Severity.LOW, "typing", "No type checking configured", 5)

        tsconfig = files.read_text("tsconfig.json")
        if tsconfig is not None and not TS_STRICT.search(tsconfig):
            card.deduct(
                Severity.LOW, "typing", "TypeScript strict mode not enabled", 5, "tsconfig.json"
            )

        self._check_file_length(card, config, files)
        self._check_todo_markers(card, config, files)
        self._run_language_checks(card, config, context)

        card.details.update(
            {
                "source_files": len(sources),
                "pre_commit": has_pre_commit,
                "linter": has_linter,
                "formatter": has_formatter,
                "type_checking": has_type_checking,
            }
        )

    def _check_file_length(
        self, card: ScoreCard, config: HealthConfig, files: ProjectFiles
    ) -> None:
        long_files: list[tuple[str, int]] = []
        for path, content in files.iter_text_files(SOURCE_GLOBS):
            if files.is_test_file(path):
                continue
            line_count = len(content.splitlines())
            if line_count > config.max_file_lines:
                long_files.append((files.relative(path), line_count))

        card.details["long_files"] = len(long_files)
        if not long_files:
            return

        points = min(LONG_FILE_POINTS * len(long_files), LONG_FILE_MAX_POINTS)
        longest, lines = max(long_files, key=lambda item: item[1])
        card.deduct(
            Severity.LOW,
            "complexity",
            f"{len(long_files)} source file{'s' if len(long_files) != 1 else ''} "
            f"longer than {config.max_file_lines} lines (longest: {longest}, {lines} lines)",
            points,
            longest,
        )
        card.recommend("Split large modules into smaller, focused files")

    def _check_todo_markers(
        self, card: ScoreCard, config: HealthConfig, files: ProjectFiles
    ) -> None:
        markers = files.count_matches(TODO_MARKERS, SOURCE_GLOBS)
        card.details["todo_markers"] = markers
        if markers > config.max_todo_markers:
            card.deduct(
                Severity.LOW,
                "hygiene",
                f"{markers} TODO/FIXME/HACK markers in source files",
                5,
            )
            card.recommend("Resolve or track outstanding TODO markers in an issue tracker")

    def _run_language_checks(
        self, card: ScoreCard, config: HealthConfig, context: AssessmentContext
    ) -> None:
        for assessor in language_assessors(config.languages):
            if not assessor.applies(context):
                logger.debug(f"Skipping {assessor.language} checks: no marker files")
                continue
            card.merge(assessor.assess(config, context), prefix=assessor.language)
