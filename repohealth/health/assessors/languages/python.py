"""Python project checks."""

import re

from repohealth.health.assessors import AssessmentContext, ScoreCard
from repohealth.health.assessors.languages import LanguageAssessor
from repohealth.health.config import HealthConfig
from repohealth.health.models import Severity
from repohealth.health.probes import parse_toml

DEPENDENCY_FILES = ("requirements.txt", "pyproject.toml", "setup.py", "Pipfile")
VENV_DIRS = ("venv", ".venv", "env")
HARDCODED_SECRET_KEY = re.compile(r"^\s*SECRET_KEY\s*=\s*[\"'][^\"']+[\"']", re.MULTILINE)


class PythonAssessor(LanguageAssessor):
    markers = DEPENDENCY_FILES
    band_advice = {
        90: ("Set up pre-commit hooks for code quality",),
        80: (
            "Configure black, flake8, and mypy for code quality",
            "Add comprehensive test suite with pytest",
        ),
        70: (
            "Pin all dependencies with specific versions",
            "Add security scanning to CI/CD pipeline",
        ),
    }

    @property
    def language(self) -> str:
        return "python"

    def run_checks(
        self, card: ScoreCard, config: HealthConfig, context: AssessmentContext
    ) -> None:
        files = context.files
        pyproject = files.read_text("pyproject.toml") or ""
        setup_cfg = files.read_text("setup.cfg") or ""

        self._check_dependencies(card, context)

        # Virtual environments
        venv = next((d for d in VENV_DIRS if files.dir_exists(d)), None)
        if venv is None and not files.file_exists("Pipfile"):
            card.recommend("Use virtual environments for isolated dependencies")
        gitignore = files.read_text(".gitignore")
        if venv is not None and gitignore is not None and not re.search(r"venv", gitignore):
            card.deduct(
                Severity.MEDIUM, "python", "Virtual environment not in .gitignore", 10, ".gitignore"
            )

        # Code quality tooling
        has_tools = (
            files.any_exists(".flake8", ".pylintrc", "mypy.ini", ".mypy.ini", "ruff.toml", ".ruff.toml")
            or re.search(r"\[tool\.(?:black|mypy|ruff|flake8|pylint)", pyproject)
            or re.search(r"\[(?:flake8|mypy)\]", setup_cfg)
        )
        if not has_tools:
            card.deduct(
                Severity.MEDIUM,
                "python",
                "No code quality tools configured (ruff, flake8, black, mypy)",
                15,
            )

        # Testing
        if not files.any_exists("tests", "test"):
            card.deduct(Severity.MEDIUM, "python", "No test directory found", 10)
        has_coverage_config = files.file_exists(".coveragerc") or "[tool.coverage" in pyproject
        if not has_coverage_config:
            card.deduct(Severity.LOW, "python", "No test coverage configuration found", 5)
        if files.file_exists("tox.ini") or files.file_exists("noxfile.py"):
            card.info("python", "Good: Using tox or nox for multi-environment testing")

        # Security hygiene
        if files.any_match(r"\.env\b", ["*.py"]) and not files.any_exists(
            ".env.example", ".env.template"
        ):
            card.deduct(Severity.LOW, "python", "Using .env but no .env.example provided", 5)
        if not files.file_exists(".bandit") and "[tool.bandit" not in pyproject:
            card.recommend("Consider using bandit for security scanning")

        self._check_frameworks(card, context)
        self._check_packages(card, context)

    def _check_dependencies(self, card: ScoreCard, context: AssessmentContext) -> None:
        files = context.files
        if not files.any_exists(*DEPENDENCY_FILES):
            card.deduct(Severity.MEDIUM, "python", "No dependency management file found", 20)
            return

        requirements = files.read_text("requirements.txt")
        if requirements is not None:
            unpinned = [
                line
                for line in (raw.strip() for raw in requirements.splitlines())
                if line and not line.startswith(("#", "-")) and "==" not in line
            ]
            if len(unpinned) > 3:
                card.deduct(
                    Severity.MEDIUM,
                    "python",
                    f"Many unpinned dependencies in requirements.txt ({len(unpinned)})",
                    10,
                    "requirements.txt",
                )
            if not files.file_exists("requirements-dev.txt"):
                card.recommend("Consider separating dev dependencies into requirements-dev.txt")

        pyproject = files.read_text("pyproject.toml")
        if pyproject is not None:
            try:
                parse_toml(pyproject)
            except ValueError:
                card.deduct(
                    Severity.MEDIUM, "python", "Invalid pyproject.toml syntax", 15, "pyproject.toml"
                )

    def _check_frameworks(self, card: ScoreCard, context: AssessmentContext) -> None:
        files = context.files
        if files.file_exists("manage.py"):
            for path, content in files.iter_text_files(["settings.py"]):
                if HARDCODED_SECRET_KEY.search(content):
                    card.deduct(
                        Severity.HIGH,
                        "python",
                        "Django SECRET_KEY appears to be hardcoded",
                        15,
                        files.relative(path),
                    )
                    break
            if not files.dir_exists("settings"):
                card.recommend("Consider splitting Django settings for different environments")

        if files.any_match(r"^\s*(?:from flask import|import flask)", ["*.py"], flags=re.MULTILINE):
            if not files.any_match(r"\bdef create_app\b", ["*.py"]):
                card.recommend("Consider using Flask app factory pattern")
        if files.any_match(r"^\s*(?:from fastapi import|import fastapi)", ["*.py"], flags=re.MULTILINE):
            card.info("python", "Good: Using FastAPI with built-in validation")

    def _check_packages(self, card: ScoreCard, context: AssessmentContext) -> None:
        """Subdirectories of a package that hold modules but no __init__.py."""
        files = context.files
        if not files.any_exists("setup.py", "pyproject.toml"):
            return

        module_dirs = {p.parent for p in files.iter_files(["*.py"]) if not files.is_test_file(p)}
        missing = sorted(
            files.relative(d)
            for d in module_dirs
            if d != files.root
            and (d.parent / "__init__.py").is_file()
            and not (d / "__init__.py").is_file()
        )
        if missing:
            card.deduct(
                Severity.LOW,
                "python",
                f"{len(missing)} package director{'ies' if len(missing) != 1 else 'y'} missing __init__.py",
                5,
                missing[0],
            )
