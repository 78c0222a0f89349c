"""Go module checks."""

import re

from repohealth.health.assessors import AssessmentContext, ScoreCard
from repohealth.health.assessors.languages import LanguageAssessor
from repohealth.health.config import HealthConfig
from repohealth.health.models import Severity

EXPORTED_FUNC = re.compile(r"^func (?:\([^)]*\) )?[A-Z]")


class GoAssessor(LanguageAssessor):
    markers = ("go.mod",)
    band_advice = {
        90: (
            "Run 'go mod tidy' to clean up dependencies",
            "Use 'golangci-lint' for comprehensive linting",
        ),
        80: ("Increase test coverage", "Add godoc comments to exported functions"),
        70: ("Follow standard Go project layout", "Enable Go modules if not already done"),
    }

    @property
    def language(self) -> str:
        return "go"

    def run_checks(
        self, card: ScoreCard, config: HealthConfig, context: AssessmentContext
    ) -> None:
        files = context.files
        root = files.root

        verify = context.tools.run_tool("go", ["mod", "verify"], cwd=root)
        if not verify.usable:
            card.skipped_tool("go", verify, "Go module verification")
        elif not verify.ok:
            card.deduct(Severity.MEDIUM, "go", "Go module verification failed", 15, "go.mod")

        if not files.file_exists("go.sum"):
            card.deduct(Severity.MEDIUM, "go", "Missing go.sum file", 10)

        replaces = len(re.findall(r"^replace\b", files.read_text("go.mod") or "", re.MULTILINE))
        if replaces:
            card.deduct(Severity.LOW, "go", f"{replaces} replace directives in go.mod", 5, "go.mod")
            card.recommend("Review and remove replace directives for production")

        go_files = list(files.iter_files(["*.go"]))
        sources = [p for p in go_files if not p.name.endswith("_test.go")]
        tests = [p for p in go_files if p.name.endswith("_test.go")]

        root_files = [p for p in go_files if p.parent == root]
        if len(go_files) > 10 and len(root_files) > 5:
            card.deduct(Severity.MEDIUM, "go", "Too many Go files in root directory", 10)
            card.recommend("Organize code into packages following standard Go layout")

        if not tests:
            card.deduct(Severity.MEDIUM, "go", "No test files found", 20)
        elif sources and len(tests) * 100 // len(sources) < 30:
            ratio = len(tests) * 100 // len(sources)
            card.deduct(Severity.LOW, "go", f"Low test file coverage ({ratio}%)", 10)

        if not files.count_matches(r"^func Benchmark", ["*_test.go"]):
            card.recommend("Add benchmark tests for performance-critical code")
        if not files.count_matches(r"^func Example", ["*_test.go"]):
            card.recommend("Add example tests for better documentation")

        gofmt = context.tools.run_tool("gofmt", ["-l", "."], cwd=root)
        if not gofmt.usable:
            card.skipped_tool("go", gofmt, "gofmt check")
        else:
            unformatted = [
                line for line in gofmt.stdout.splitlines() if line and not line.startswith("vendor/")
            ]
            if unformatted:
                card.deduct(Severity.MEDIUM, "go", f"{len(unformatted)} files need formatting", 10)

        if not files.any_exists(".golangci.yml", ".golangci.yaml"):
            card.deduct(Severity.LOW, "go", "No golangci-lint configuration", 5)
            card.recommend("Add .golangci.yml for consistent linting")

        build = context.tools.run_tool("go", ["build", "./..."], cwd=root)
        if not build.usable:
            card.skipped_tool("go", build, "Go build")
        elif not build.ok:
            card.deduct(Severity.HIGH, "go", "Project fails to build", 25)

        if not files.file_exists("Makefile"):
            card.deduct(Severity.LOW, "go", "No Makefile for build automation", 5)
        if not files.file_exists("Dockerfile"):
            card.recommend("Add Dockerfile for containerization")

        self._check_godoc(card, context, sources)
        self._check_concurrency(card, context)

    def _check_godoc(self, card: ScoreCard, context: AssessmentContext, sources: list) -> None:
        exported = 0
        documented = 0
        for path in sources:
            lines = (context.files.read_text(context.files.relative(path)) or "").splitlines()
            for index, line in enumerate(lines):
                if EXPORTED_FUNC.match(line):
                    exported += 1
                    if index > 0 and lines[index - 1].startswith("//"):
                        documented += 1
        if exported:
            ratio = documented * 100 // exported
            if ratio < 50:
                card.deduct(Severity.MEDIUM, "go", f"Low godoc coverage ({ratio}%)", 10)

    def _check_concurrency(self, card: ScoreCard, context: AssessmentContext) -> None:
        files = context.files
        wait_groups = files.count_matches(r"sync\.WaitGroup", ["*.go"])
        done_calls = files.count_matches(r"defer.*Done\(\)", ["*.go"])
        if wait_groups and done_calls < wait_groups:
            card.recommend("Review WaitGroup usage for potential goroutine leaks")
        if not files.count_matches(r"context\.Context", ["*.go"]):
            card.recommend("Use context.Context for cancellation and timeouts")
