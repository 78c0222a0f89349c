"""Rust crate checks."""

import re

from repohealth.health.assessors import AssessmentContext, ScoreCard
from repohealth.health.assessors.languages import LanguageAssessor
from repohealth.health.config import HealthConfig
from repohealth.health.models import Severity
from repohealth.health.probes import parse_toml

MIN_EDITION = "2021"


class RustAssessor(LanguageAssessor):
    markers = ("Cargo.toml",)
    band_advice = {
        90: ("Run 'cargo fmt' to format code", "Run 'cargo clippy' for additional linting"),
        80: ("Add more tests (unit and integration)", "Document all public APIs"),
        70: ("Set up continuous integration", "Address compilation errors"),
    }

    @property
    def language(self) -> str:
        return "rust"

    def run_checks(
        self, card: ScoreCard, config: HealthConfig, context: AssessmentContext
    ) -> None:
        files = context.files
        manifest_text = files.read_text("Cargo.toml") or ""
        try:
            manifest = parse_toml(manifest_text)
        except ValueError:
            card.deduct(Severity.MEDIUM, "rust", "Invalid Cargo.toml syntax", 20, "Cargo.toml")
            return

        self._check_manifest(card, context, manifest)
        self._check_layout(card, context, manifest)
        self._check_tests(card, context)
        self._check_code(card, context)

        build = context.tools.run_tool("cargo", ["check", "--quiet"], cwd=files.root)
        if not build.usable:
            card.skipped_tool("rust", build, "cargo check")
        elif not build.ok:
            card.deduct(Severity.HIGH, "rust", "Project fails to compile", 25)

        if not files.file_exists("CHANGELOG.md"):
            card.recommend("Add CHANGELOG.md to track version history")

    def _check_manifest(self, card: ScoreCard, context: AssessmentContext, manifest: dict) -> None:
        package = manifest.get("package") or {}
        workspace = "workspace" in manifest

        if not workspace:
            if not package.get("name"):
                card.deduct(Severity.MEDIUM, "rust", "Missing 'name' in Cargo.toml", 10, "Cargo.toml")
            if not package.get("version"):
                card.deduct(Severity.LOW, "rust", "Missing 'version' in Cargo.toml", 5, "Cargo.toml")

        edition = package.get("edition")
        if package and not edition:
            card.deduct(Severity.LOW, "rust", "No Rust edition specified", 5, "Cargo.toml")
        elif isinstance(edition, str) and edition < MIN_EDITION:
            card.deduct(
                Severity.LOW, "rust", f"Using outdated Rust edition: {edition}", 5, "Cargo.toml"
            )
            card.recommend("Update to Rust 2021 edition or later")

        if context.files.dir_exists("crates") and not workspace:
            card.deduct(
                Severity.LOW, "rust", "Multi-crate project without workspace configuration", 5
            )

        if not context.files.file_exists("Cargo.lock"):
            if "lib" in manifest or context.files.file_exists("src/lib.rs"):
                card.recommend("Consider committing Cargo.lock for reproducible builds")
            else:
                card.deduct(Severity.MEDIUM, "rust", "Missing Cargo.lock for binary project", 10)

        card.recommend("Run 'cargo audit' to check for security vulnerabilities")

    def _check_layout(self, card: ScoreCard, context: AssessmentContext, manifest: dict) -> None:
        files = context.files
        if not files.dir_exists("src") and "workspace" not in manifest:
            card.deduct(Severity.MEDIUM, "rust", "Missing src directory", 20)
            return

        has_lib = files.file_exists("src/lib.rs")
        if has_lib and files.file_exists("src/main.rs"):
            card.recommend("Consider separating library and binary code")
        if files.dir_exists("examples"):
            card.info("rust", "Good: Examples directory present")
        elif has_lib:
            card.recommend("Consider adding examples directory for library usage")
        if files.dir_exists("benches"):
            card.info("rust", "Good: Benchmarks directory present")

    def _check_tests(self, card: ScoreCard, context: AssessmentContext) -> None:
        files = context.files
        has_integration = False
        if files.dir_exists("tests"):
            has_integration = files.count_files(["*.rs"], under="tests") > 0
            if not has_integration:
                card.deduct(
                    Severity.MEDIUM, "rust", "Tests directory exists but contains no test files", 10
                )

        unit_tests = files.count_matches(r"#\[test\]", ["*.rs"], under="src") if files.dir_exists("src") else 0
        if unit_tests == 0 and not has_integration:
            card.deduct(Severity.MEDIUM, "rust", "No tests found", 20)
        elif unit_tests < 5:
            card.deduct(Severity.MEDIUM, "rust", "Very few unit tests found", 10)

    def _check_code(self, card: ScoreCard, context: AssessmentContext) -> None:
        files = context.files
        if not files.any_exists("clippy.toml", ".clippy.toml"):
            card.recommend("Add clippy.toml for consistent linting")
        if not files.any_exists("rustfmt.toml", ".rustfmt.toml"):
            card.deduct(Severity.LOW, "rust", "No rustfmt configuration", 5)
        if not files.dir_exists("src"):
            return

        risky = files.find_matches(r"\.unwrap\(\)|panic!", ["*.rs"], under="src")
        unwraps = sum(1 for m in risky if m.text == ".unwrap()" and "test" not in m.line)
        panics = sum(1 for m in risky if m.text == "panic!" and "test" not in m.line)

        pub_items = 0
        doc_comments = 0
        doc_tests = 0
        for _, content in files.iter_text_files(["*.rs"], under="src"):
            for line in content.splitlines():
                if re.match(r"pub ", line):
                    pub_items += 1
                if line.startswith("///"):
                    doc_comments += 1
                    doc_tests += "```" in line

        if unwraps > 10:
            card.deduct(Severity.MEDIUM, "rust", f"Excessive use of unwrap() ({unwraps} occurrences)", 10)
            card.recommend("Replace unwrap() with proper error handling")
        if panics > 5:
            card.deduct(Severity.LOW, "rust", f"Multiple panic! calls found ({panics} occurrences)", 5)

        if pub_items and not doc_comments:
            card.deduct(Severity.MEDIUM, "rust", "No documentation comments for public items", 15)
        elif pub_items:
            ratio = doc_comments * 100 // pub_items
            if ratio < 50:
                card.deduct(Severity.MEDIUM, "rust", f"Low documentation coverage ({ratio}%)", 10)
        if not doc_tests:
            card.recommend("Add doc tests in documentation comments")
