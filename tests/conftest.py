"""Pytest configuration and shared fixtures."""

import os
import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from repohealth.health.assessors import AssessmentContext, BaseAssessor
from repohealth.health.config import HealthConfig
from repohealth.health.models import DimensionResult
from repohealth.health.tools import ToolResult


class FakeToolRunner:
    """Stands in for ToolRunner with scripted results.

    Responses are keyed by the full command line (``"pip list --outdated
    --format=json"``) or by the bare command name. Anything else reports
    the tool as unavailable, as on a machine without it installed.
    """

    def __init__(self, responses: dict[str, ToolResult] | None = None) -> None:
        self.responses = dict(responses or {})
        self.cancel_event = threading.Event()
        self.default_timeout = 30.0
        self.enabled = True
        self.calls: list[str] = []

    def script(self, command_line: str, stdout: str = "", exit_code: int = 0) -> None:
        command = command_line.split()[0]
        self.responses[command_line] = ToolResult(
            command=command, exit_code=exit_code, stdout=stdout
        )

    def run_tool(
        self,
        command: str,
        args: Sequence[str] = (),
        timeout: float | None = None,
        cwd: Path | None = None,
    ) -> ToolResult:
        line = " ".join([command, *args])
        self.calls.append(line)
        if self.cancel_event.is_set():
            return ToolResult(command=command, exit_code=None, cancelled=True)
        if line in self.responses:
            return self.responses[line]
        if command in self.responses:
            return self.responses[command]
        return ToolResult.unavailable(command, "not found on PATH")

    def cancel(self) -> None:
        self.cancel_event.set()


ProjectFactory = Callable[[dict[str, str]], Path]


def write_files(root: Path, files: dict[str, str]) -> Path:
    """Create ``files`` (relative path -> content) under ``root``."""
    root.mkdir(parents=True, exist_ok=True)
    for relpath, content in files.items():
        path = root / relpath
        if relpath.endswith("/"):
            path.mkdir(parents=True, exist_ok=True)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


def age_file(path: Path, days: float) -> None:
    """Backdate a file's modification time."""
    stamp = time.time() - days * 86400
    os.utime(path, (stamp, stamp))


HEALTHY_FILES: dict[str, str] = {
    "README.md": (
        "# Inventory\n"
        "\n"
        "Tracks stock levels for small shops.\n"
        "\n"
        "## Installation\n"
        "\n"
        "Copy the app directory into your project.\n"
        "\n"
        "## Usage\n"
        "\n"
        "Call app.main.run() with a list of items.\n"
    ),
    "LICENSE": "MIT License\n\nCopyright (c) 2024 Inventory authors\n",
    "CHANGELOG.md": "# Changelog\n\n## 1.0.0\n\n- First release\n",
    "CONTRIBUTING.md": "# Contributing\n\nOpen a pull request with tests.\n",
    ".gitignore": "__pycache__/\n*.pyc\n.venv/\n",
    ".pre-commit-config.yaml": (
        "repos:\n"
        "  - repo: https://github.com/psf/black\n"
        "    rev: 24.1.0\n"
        "    hooks:\n"
        "      - id: black\n"
    ),
    "mypy.ini": "[mypy]\nstrict = True\n",
    ".github/workflows/ci.yml": (
        "name: CI\n"
        "on: [push]\n"
        "jobs:\n"
        "  test:\n"
        "    runs-on: ubuntu-latest\n"
        "    steps:\n"
        "      - uses: actions/checkout@v4\n"
        "      - run: make test\n"
    ),
    "docs/index.md": "# Inventory documentation\n",
    "app/__init__.py": '"""Inventory application."""\n',
    "app/main.py": (
        '"""Entry points."""\n'
        "\n"
        "\n"
        "def run(items: list[str]) -> int:\n"
        '    """Count the items in stock."""\n'
        "    return len(items)\n"
    ),
    "app/util.py": (
        '"""Helpers."""\n'
        "\n"
        "\n"
        "def normalize(name: str) -> str:\n"
        '    """Normalize an item name."""\n'
        "    return name.strip().lower()\n"
    ),
    "tests/test_main.py": (
        "from app.main import run\n"
        "\n"
        "\n"
        "def test_run():\n"
        "    assert run(['a']) == 1\n"
    ),
}


@pytest.fixture
def fake_tools() -> FakeToolRunner:
    return FakeToolRunner()


@pytest.fixture
def config() -> HealthConfig:
    return HealthConfig()


@pytest.fixture
def make_project(tmp_path: Path) -> ProjectFactory:
    """Return a factory that writes a project tree and returns its root."""
    counter = iter(range(1000))

    def factory(files: dict[str, str]) -> Path:
        return write_files(tmp_path / f"project{next(counter)}", files)

    return factory


@pytest.fixture
def healthy_project(make_project: ProjectFactory) -> Path:
    """A small, well-kept Python project that scores full marks."""
    return make_project(HEALTHY_FILES)


@pytest.fixture
def run_assessor(
    fake_tools: FakeToolRunner, config: HealthConfig
) -> Callable[..., DimensionResult]:
    """Run a single assessor against a project with the fake tool runner."""

    def runner(
        assessor: BaseAssessor,
        project: Path,
        cfg: HealthConfig | None = None,
        tools: FakeToolRunner | None = None,
    ) -> DimensionResult:
        cfg = cfg or config
        context = AssessmentContext.create(project, cfg, tools=tools or fake_tools)  # type: ignore[arg-type]
        return assessor.assess(project, cfg, context)

    return runner


@pytest.fixture
def context_for(
    fake_tools: FakeToolRunner, config: HealthConfig
) -> Callable[..., AssessmentContext]:
    def factory(project: Path, cfg: HealthConfig | None = None) -> AssessmentContext:
        return AssessmentContext.create(project, cfg or config, tools=fake_tools)  # type: ignore[arg-type]

    return factory
