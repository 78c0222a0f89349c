"""Tests for the dimension assessors and the dependency freshness scanner."""

import json
import sqlite3
import time
from pathlib import Path
from unittest.mock import patch

import httpx
import libcst as cst
import pytest
from packaging.version import Version

from repohealth.health.assessors.code_quality import CodeQualityAssessor
from repohealth.health.assessors.documentation import DocumentationAssessor, FunctionAnalyzer
from repohealth.health.assessors.maintenance import MaintenanceAssessor
from repohealth.health.assessors.performance import PerformanceAssessor
from repohealth.health.assessors.test_coverage import TestCoverageAssessor, get_coverage
from repohealth.health.config import HealthConfig
from repohealth.health.models import Severity
from repohealth.health.scanners.dependencies import (
    DependencyScanner,
    OutdatedDependency,
    OutdatedReport,
    read_declared,
)

from conftest import HEALTHY_FILES, FakeToolRunner, age_file

PRE_COMMIT = {".pre-commit-config.yaml": "repos: []\n", "mypy.ini": "[mypy]\n"}


def messages(result) -> list[str]:
    return [f.message for f in result.findings if f.severity != Severity.INFO]


# ==============================================================================
# Code Quality
# ==============================================================================


class TestCodeQualityAssessor:
    def test_well_tooled_project(self, healthy_project: Path, run_assessor) -> None:
        result = run_assessor(CodeQualityAssessor(), healthy_project)
        assert result.score == 100
        assert result.weight == 25
        assert result.details["pre_commit"] is True
        assert result.description == "No issues found"

    def test_project_without_tooling(self, make_project, run_assessor) -> None:
        project = make_project({"app.py": "def f():\n    return 1\n"})
        result = run_assessor(CodeQualityAssessor(), project)
        assert messages(result) == [
            "No pre-commit hooks configured",
            "No linting configuration found",
            "No code formatting configuration found",
            "No type checking configured",
        ]
        assert result.score == 70
        assert result.recommendations == (
            "Address remaining code quality warnings",
            "Set up pre-commit hooks to enforce linting and formatting",
        )

    def test_pyproject_tool_tables(self, make_project, run_assessor) -> None:
        project = make_project(
            {
                "pyproject.toml": "[tool.ruff]\nline-length = 100\n\n[tool.mypy]\nstrict = true\n",
                "app.py": "x = 1\n",
            }
        )
        result = run_assessor(CodeQualityAssessor(), project)
        assert messages(result) == ["No pre-commit hooks configured"]
        assert result.score == 90

    def test_typescript_without_strict_mode(self, make_project, run_assessor) -> None:
        project = make_project(
            {
                **PRE_COMMIT,
                "tsconfig.json": '{"compilerOptions": {"target": "es2020"}}',
                "index.ts": "export const x = 1;\n",
            }
        )
        result = run_assessor(CodeQualityAssessor(), project)
        assert messages(result) == ["TypeScript strict mode not enabled"]

    def test_long_files_summarized(self, make_project, run_assessor) -> None:
        project = make_project(
            {
                **PRE_COMMIT,
                "a.py": "x = 1\n" * 20,
                "b.py": "x = 1\n" * 30,
                "tests/test_big.py": "x = 1\n" * 50,
            }
        )
        result = run_assessor(CodeQualityAssessor(), project, HealthConfig(max_file_lines=10))
        [finding] = [f for f in result.findings if f.category == "complexity"]
        assert finding.message == "2 source files longer than 10 lines (longest: b.py, 30 lines)"
        assert finding.location == "b.py"
        assert result.score == 94

    def test_todo_markers(self, make_project, run_assessor) -> None:
        project = make_project({**PRE_COMMIT, "a.py": "# TODO one\n# FIXME two\n# HACK three\n"})
        result = run_assessor(CodeQualityAssessor(), project, HealthConfig(max_todo_markers=2))
        assert messages(result) == ["3 TODO/FIXME/HACK markers in source files"]
        assert result.score == 95

    def test_language_checks_are_merged(self, make_project, run_assessor) -> None:
        project = make_project(
            {
                ".pre-commit-config.yaml": "repos: []\n",
                "go.mod": "module example.com/demo\n\ngo 1.22\n",
                "main.go": "package main\n\nfunc main() {}\n",
                "main_test.go": "package main\n",
                ".golangci.yml": "linters: {}\n",
                "Makefile": "build:\n\tgo build ./...\n",
            }
        )
        result = run_assessor(CodeQualityAssessor(), project, HealthConfig(languages=("go",)))
        assert messages(result) == ["[go] Missing go.sum file"]
        assert result.score == 90
        assert result.details["go_score"] == 90

    def test_language_checks_off_by_default(self, make_project, run_assessor) -> None:
        project = make_project({**PRE_COMMIT, "go.mod": "module example.com/demo\n"})
        result = run_assessor(CodeQualityAssessor(), project)
        assert "go_score" not in result.details


# ==============================================================================
# Test Coverage
# ==============================================================================


class TestTestCoverageAssessor:
    def test_no_source_files(self, make_project, run_assessor) -> None:
        result = run_assessor(TestCoverageAssessor(), make_project({"README.md": "# x\n"}))
        assert result.score == 100
        assert all(f.severity == Severity.INFO for f in result.findings)

    def test_no_tests(self, make_project, run_assessor) -> None:
        project = make_project({"app.py": "x = 1\n", "lib.py": "y = 2\n"})
        result = run_assessor(TestCoverageAssessor(), project)
        [finding] = [f for f in result.findings if f.severity == Severity.HIGH]
        assert finding.message == "No test files found for 2 source files"
        assert result.score == 60
        assert "Increase test coverage to at least 50%" in result.recommendations

    def test_very_low_ratio(self, make_project, run_assessor) -> None:
        files = {f"pkg/mod{i}.py": "x = 1\n" for i in range(11)}
        files["tests/test_mod0.py"] = "def test_x():\n    pass\n"
        result = run_assessor(TestCoverageAssessor(), make_project(files))
        assert result.score == 75

    def test_low_ratio(self, make_project, run_assessor) -> None:
        files = {f"pkg/mod{i}.py": "x = 1\n" for i in range(4)}
        files["tests/test_mod0.py"] = "def test_x():\n    pass\n"
        result = run_assessor(TestCoverageAssessor(), make_project(files))
        assert result.score == 90
        assert result.details["test_ratio"] == 25.0

    def test_placeholder_npm_test_script(self, make_project, run_assessor) -> None:
        manifest = {"name": "web", "scripts": {"test": 'echo "Error: no test specified" && exit 1'}}
        project = make_project(
            {
                "package.json": json.dumps(manifest),
                "index.js": "module.exports = 1;\n",
                "index.test.js": "test('x', () => {});\n",
            }
        )
        result = run_assessor(TestCoverageAssessor(), project)
        assert messages(result) == ["No test script or test framework configuration found"]
        assert result.score == 95

    @pytest.mark.parametrize(
        "percent,score,severity",
        [(45.0, 80, Severity.MEDIUM), (70.0, 90, Severity.LOW), (85.0, 100, None)],
    )
    def test_coverage_report_tiers(
        self, make_project, run_assessor, percent: float, score: int, severity
    ) -> None:
        project = make_project(
            {
                "app.py": "x = 1\n",
                "tests/test_app.py": "def test_x():\n    pass\n",
                "coverage.json": json.dumps({"totals": {"percent_covered": percent}}),
            }
        )
        result = run_assessor(TestCoverageAssessor(), project)
        assert result.score == score
        coverage = [f for f in result.findings if f.category == "coverage"]
        assert [f.severity for f in coverage] == ([severity] if severity else [])
        assert result.description == f"{percent:.0f}% line coverage"

    def test_missing_report_is_informational(self, healthy_project: Path, run_assessor) -> None:
        result = run_assessor(TestCoverageAssessor(), healthy_project)
        assert result.score == 100
        assert [f.message for f in result.findings] == ["No coverage report found"]
        assert "Run tests with coverage: pytest --cov" in result.recommendations


class TestGetCoverage:
    def test_no_report(self, tmp_path: Path) -> None:
        assert get_coverage(tmp_path) == (None, "")

    def test_cobertura_xml(self, tmp_path: Path) -> None:
        (tmp_path / "coverage.xml").write_text('<coverage line-rate="0.72" branch-rate="0">')
        assert get_coverage(tmp_path) == (pytest.approx(0.72), "coverage.xml")

    def test_istanbul_summary(self, tmp_path: Path) -> None:
        (tmp_path / "coverage").mkdir()
        (tmp_path / "coverage" / "coverage-summary.json").write_text(
            json.dumps({"total": {"lines": {"pct": 64.5}}})
        )
        coverage, source = get_coverage(tmp_path)
        assert coverage == pytest.approx(0.645)
        assert source == "coverage/coverage-summary.json"

    def test_lcov(self, tmp_path: Path) -> None:
        (tmp_path / "coverage").mkdir()
        (tmp_path / "coverage" / "lcov.info").write_text(
            "SF:a.js\nLF:10\nLH:5\nend_of_record\nSF:b.js\nLF:10\nLH:10\nend_of_record\n"
        )
        assert get_coverage(tmp_path) == (pytest.approx(0.75), "coverage/lcov.info")

    def test_htmlcov(self, tmp_path: Path) -> None:
        (tmp_path / "htmlcov").mkdir()
        (tmp_path / "htmlcov" / "index.html").write_text('<span class="pc_cov">91%</span>')
        assert get_coverage(tmp_path) == (pytest.approx(0.91), "htmlcov/index.html")

    def test_coverage_database(self, tmp_path: Path) -> None:
        conn = sqlite3.connect(tmp_path / ".coverage")
        conn.execute("CREATE TABLE line_counts (num_lines INTEGER, num_hits INTEGER)")
        conn.execute("INSERT INTO line_counts VALUES (100, 80)")
        conn.commit()
        conn.close()
        assert get_coverage(tmp_path) == (pytest.approx(0.8), ".coverage")

    def test_json_takes_precedence(self, tmp_path: Path) -> None:
        (tmp_path / "coverage.json").write_text(json.dumps({"totals": {"percent_covered": 90}}))
        (tmp_path / "coverage.xml").write_text('<coverage line-rate="0.10">')
        assert get_coverage(tmp_path) == (pytest.approx(0.9), "coverage.json")


# ==============================================================================
# Performance
# ==============================================================================

FLASK_APP = (
    "from flask import Flask\n"
    "\n"
    "app = Flask(__name__)\n"
    "\n"
    "\n"
    "@app.route('/')\n"
    "def index():\n"
    "    return 'ok'\n"
)


class TestPerformanceAssessor:
    def test_library_project(self, healthy_project: Path, run_assessor) -> None:
        result = run_assessor(PerformanceAssessor(), healthy_project)
        assert result.score == 100
        assert result.details["service"] is False
        [monitoring] = [f for f in result.findings if f.category == "monitoring"]
        assert monitoring.severity == Severity.INFO

    def test_service_without_safeguards(self, make_project, run_assessor) -> None:
        result = run_assessor(PerformanceAssessor(), make_project({"app.py": FLASK_APP}))
        assert result.details["service"] is True
        assert messages(result) == [
            "No performance monitoring tools detected",
            "No rate limiting detected for APIs",
            "Little or no pagination found in API code",
        ]
        assert result.score == 87

    def test_service_with_monitoring(self, make_project, run_assessor) -> None:
        project = make_project(
            {"app.py": FLASK_APP, "requirements.txt": "flask==3.0.0\nsentry-sdk==1.40.0\n"}
        )
        result = run_assessor(PerformanceAssessor(), project)
        assert "Good: Performance monitoring detected" in [f.message for f in result.findings]
        assert result.score == 92

    def test_oversized_bundle(self, make_project, run_assessor) -> None:
        project = make_project(
            {
                "package.json": json.dumps({"name": "web", "scripts": {"build": "vite build"}}),
                "dist/app.js": "x" * 2048,
            }
        )
        result = run_assessor(PerformanceAssessor(), project, HealthConfig(max_bundle_kb=1))
        [finding] = [f for f in result.findings if f.category == "bundle-size"]
        assert finding.location == "dist/app.js"
        assert result.score == 85
        assert result.details["bundle_bytes"] == 2048

    def test_missing_minification(self, make_project, run_assessor) -> None:
        project = make_project({"package.json": json.dumps({"name": "web"})})
        result = run_assessor(PerformanceAssessor(), project)
        assert messages(result) == ["No compression or minification tools detected"]

    def test_large_images(self, make_project, run_assessor) -> None:
        project = make_project({"README.md": "# x\n"})
        for i in range(6):
            (project / f"img{i}.png").write_bytes(b"\x89PNG\x00" + b"\x01" * 2048)
        result = run_assessor(PerformanceAssessor(), project, HealthConfig(max_image_kb=1))
        assert messages(result) == ["Found 6 images larger than 1KB"]
        assert (
            "Consider using modern image formats (WebP, AVIF) for better compression"
            in result.recommendations
        )

    def test_schema_without_indexes(self, make_project, run_assessor) -> None:
        project = make_project({"schema.sql": "CREATE TABLE users (id INT);\n"})
        result = run_assessor(PerformanceAssessor(), project)
        assert messages(result) == ["No database indexes found"]
        assert result.score == 90


# ==============================================================================
# Maintenance
# ==============================================================================


def pip_outdated(names: list[str]) -> str:
    entries = [{"name": n, "version": "1.0.0", "latest_version": "2.0.0"} for n in names]
    entries.append({"name": "setuptools", "version": "60.0.0", "latest_version": "70.0.0"})
    return json.dumps(entries)


class TestMaintenanceAssessor:
    def test_well_kept_project(self, healthy_project: Path, run_assessor) -> None:
        result = run_assessor(MaintenanceAssessor(), healthy_project)
        assert result.score == 100
        assert result.weight == 10

    def test_bare_project(self, make_project, run_assessor) -> None:
        result = run_assessor(MaintenanceAssessor(), make_project({"app.py": "x = 1\n"}))
        assert messages(result) == [
            "No CI configuration found",
            "No LICENSE file found",
            "No .gitignore file found",
            "No CHANGELOG found",
            "No CONTRIBUTING guide found",
        ]
        assert result.score == 62

    def test_stale_changelog(self, healthy_project: Path, run_assessor) -> None:
        age_file(healthy_project / "CHANGELOG.md", 200)
        result = run_assessor(MaintenanceAssessor(), healthy_project)
        [finding] = [f for f in result.findings if f.category == "changelog"]
        assert finding.severity == Severity.LOW
        assert finding.message == "CHANGELOG.md not updated in 200 days"
        assert result.score == 90

    def test_changelog_age_from_git(
        self, healthy_project: Path, run_assessor, fake_tools: FakeToolRunner
    ) -> None:
        (healthy_project / ".git").mkdir()
        stamp = int(time.time()) - 400 * 86400
        fake_tools.script("git log -1 --format=%ct -- CHANGELOG.md", f"{stamp}\n")
        result = run_assessor(MaintenanceAssessor(), healthy_project)
        assert result.details["changelog_age_days"] in (399, 400)
        assert result.score == 90

    @pytest.mark.parametrize(
        "count,severity,score",
        [(3, Severity.LOW, 95), (6, Severity.MEDIUM, 90), (16, Severity.MEDIUM, 80)],
    )
    def test_outdated_dependency_tiers(
        self,
        make_project,
        run_assessor,
        fake_tools: FakeToolRunner,
        count: int,
        severity: Severity,
        score: int,
    ) -> None:
        names = [f"pkg{i}" for i in range(count)]
        project = make_project(
            {**HEALTHY_FILES, "requirements.txt": "".join(f"{n}==1.0.0\n" for n in names)}
        )
        fake_tools.script("pip list --outdated --format=json", pip_outdated(names))
        result = run_assessor(MaintenanceAssessor(), project)

        [finding] = [f for f in result.findings if f.category == "dependencies"]
        assert finding.severity == severity
        assert finding.message == f"{count} outdated dependencies"
        assert result.details["outdated_dependencies"] == count
        assert result.score == score
        assert result.recommendations[0].startswith("Update major versions: pkg0 (1.0.0 -> 2.0.0)")

    def test_freshness_skipped_without_pip(self, make_project, run_assessor) -> None:
        project = make_project({**HEALTHY_FILES, "requirements.txt": "click==8.1.0\n"})
        result = run_assessor(MaintenanceAssessor(), project)
        [note] = [f for f in result.findings if f.category == "dependencies"]
        assert note.severity == Severity.INFO
        assert note.message == "Python freshness check skipped: pip not available"
        assert result.score == 100


# ==============================================================================
# Documentation
# ==============================================================================


class TestDocumentationAssessor:
    def test_documented_project(self, healthy_project: Path, run_assessor) -> None:
        result = run_assessor(DocumentationAssessor(), healthy_project)
        assert result.score == 100
        assert result.details["documented_ratio"] == 1.0

    def test_undocumented_project(self, make_project, run_assessor) -> None:
        result = run_assessor(DocumentationAssessor(), make_project({"app.py": "def f():\n    return 1\n"}))
        assert messages(result) == [
            "No README found",
            "No docs/ directory found",
            "No LICENSE file found",
            "Low docstring coverage: 0/1 functions documented",
        ]
        assert result.score == 45

    def test_thin_readme(self, make_project, run_assessor) -> None:
        project = make_project(
            {"README.md": "# Demo\n\nSmall.\n", "LICENSE": "MIT\n", "docs/index.md": "# Docs\n"}
        )
        result = run_assessor(DocumentationAssessor(), project)
        assert messages(result) == [
            "README.md is very short (2 lines)",
            "README.md has no usage or installation section",
        ]
        assert result.score == 85

    def test_unparsable_python_is_skipped(self, make_project, run_assessor) -> None:
        project = make_project(
            {
                **HEALTHY_FILES,
                "app/broken.py": "def (:\n",
            }
        )
        result = run_assessor(DocumentationAssessor(), project)
        assert result.score == 100
        assert result.details["function_count"] == 2


class TestFunctionAnalyzer:
    def test_counts_methods_and_nested_functions(self) -> None:
        source = (
            "class Store:\n"
            '    def add(self, item: str) -> None:\n'
            '        """Add an item."""\n'
            "\n"
            "        def helper():\n"
            "            pass\n"
            "\n"
            "\n"
            "def total(items):\n"
            "    return len(items)\n"
        )
        visitor = FunctionAnalyzer()
        cst.parse_module(source).visit(visitor)
        assert visitor.total_functions == 3
        assert visitor.documented_functions == 1
        assert visitor.typed_functions == 1


# ==============================================================================
# Dependency freshness
# ==============================================================================


class TestDependencyScanner:
    def test_read_declared(self, make_project, context_for) -> None:
        project = make_project(
            {
                "requirements.txt": (
                    "requests==2.31.0  # http\n-r other.txt\nflask>=2.0\n\ngit+https://host/repo\n"
                ),
                "pyproject.toml": (
                    "[project]\n"
                    'dependencies = ["httpx>=0.25", "Requests>=2"]\n'
                    "\n"
                    "[tool.poetry.dependencies]\n"
                    'python = "^3.10"\n'
                    'rich = "^13.0"\n'
                ),
                "package.json": json.dumps({"dependencies": {"left-pad": "^1.3.0"}}),
            }
        )
        declared = {(d.ecosystem, d.name): d for d in read_declared(context_for(project).files)}
        assert set(declared) == {
            ("python", "requests"),
            ("python", "flask"),
            ("python", "httpx"),
            ("python", "rich"),
            ("javascript", "left-pad"),
        }
        assert declared[("python", "requests")].version == Version("2.31.0")
        assert declared[("python", "rich")].version == Version("13.0")

    def test_truncated_pyproject_is_ignored(self, make_project, context_for) -> None:
        project = make_project(
            {
                "requirements.txt": "requests==2.31.0\n",
                "pyproject.toml": 'dependencies = ["httpx>=0.25",\n',
            }
        )
        declared = read_declared(context_for(project).files)
        assert [d.name for d in declared] == ["requests"]

    def test_major_versions_behind(self) -> None:
        assert OutdatedDependency("a", "python", "1.2.0", "3.0.0").major_versions_behind == 2
        assert OutdatedDependency("a", "python", "unknown", "3.0.0").major_versions_behind == 0

    def test_recommendations(self) -> None:
        report = OutdatedReport(
            outdated=[
                OutdatedDependency("a", "python", "1.0", "2.0"),
                OutdatedDependency("b", "python", "1.0", "2.0"),
                OutdatedDependency("c", "python", "1.0", "2.0"),
                OutdatedDependency("d", "python", "1.0", "2.0"),
                OutdatedDependency("e", "python", "1.0", "1.5"),
            ]
        )
        assert report.recommendations() == [
            "Update major versions: a (1.0 -> 2.0), b (1.0 -> 2.0), c (1.0 -> 2.0) (+1 more)",
            "Update 1 dependencies with minor version updates",
        ]

    def test_npm_outdated(self, make_project, context_for, fake_tools: FakeToolRunner) -> None:
        fake_tools.script(
            "npm outdated --json",
            json.dumps({"lodash": {"current": "4.17.0", "wanted": "4.17.21", "latest": "4.17.21"}}),
            exit_code=1,
        )
        project = make_project({"package.json": json.dumps({"dependencies": {"lodash": "^4.17.0"}})})
        report = DependencyScanner(HealthConfig()).scan(context_for(project))
        assert [(d.name, d.latest) for d in report.outdated] == [("lodash", "4.17.21")]

    def test_online_uses_pypi(self, make_project, context_for, fake_tools: FakeToolRunner) -> None:
        project = make_project({"requirements.txt": "requests==2.31.0\nflask\n"})
        config = HealthConfig(online=True)
        with patch.object(
            DependencyScanner, "_get_latest_version", return_value=Version("3.0.0")
        ) as latest:
            report = DependencyScanner(config).scan(context_for(project, config))
        latest.assert_called_once()
        assert [(d.name, d.current, d.latest) for d in report.outdated] == [
            ("requests", "2.31.0", "3.0.0")
        ]
        assert fake_tools.calls == []

    def test_get_latest_version(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/pypi/requests/json":
                return httpx.Response(200, json={"info": {"version": "2.32.3"}})
            if request.url.path == "/pypi/offline/json":
                raise httpx.ConnectError("network down", request=request)
            return httpx.Response(404)

        scanner = DependencyScanner(HealthConfig())
        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            assert scanner._get_latest_version(client, "requests") == Version("2.32.3")
            assert scanner._get_latest_version(client, "missing") is None
            assert scanner._get_latest_version(client, "offline") is None
