"""JavaScript and TypeScript project checks."""

from repohealth.health.assessors import AssessmentContext, ScoreCard
from repohealth.health.assessors.languages import LanguageAssessor
from repohealth.health.config import HealthConfig
from repohealth.health.models import Severity

LOCKFILES = ("package-lock.json", "yarn.lock", "pnpm-lock.yaml", "bun.lockb")
ESLINT_CONFIGS = (
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
)
PRETTIER_CONFIGS = (
    ".prettierrc",
    ".prettierrc.js",
    ".prettierrc.cjs",
    ".prettierrc.json",
    ".prettierrc.yml",
    ".prettierrc.yaml",
    "prettier.config.js",
    "prettier.config.cjs",
)
TEST_FRAMEWORK_CONFIGS = (
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
)
TEST_FRAMEWORKS = ("jest", "vitest", "mocha", "ava", "jasmine", "@playwright/test", "cypress")
BUNDLER_CONFIGS = (
    "webpack.config.js",
    "next.config.js",
    "next.config.mjs",
    "next.config.ts",
    "vite.config.js",
    "vite.config.ts",
)
BUNDLE_ANALYZERS = ("webpack-bundle-analyzer", "source-map-explorer", "size-limit", "@next/bundle-analyzer")
LOCKFILE_MAX_AGE_DAYS = 180


class JavaScriptAssessor(LanguageAssessor):
    markers = ("package.json",)
    band_advice = {
        90: ("Run 'npm audit fix' to fix vulnerabilities",),
        80: (
            "Set up ESLint and Prettier for code quality",
            "Add comprehensive test suite with coverage",
        ),
        70: ("Update dependencies regularly", "Configure TypeScript strict mode"),
    }

    @property
    def language(self) -> str:
        return "javascript"

    def run_checks(
        self, card: ScoreCard, config: HealthConfig, context: AssessmentContext
    ) -> None:
        files = context.files
        manifest = files.read_json("package.json")
        if not isinstance(manifest, dict):
            card.deduct(
                Severity.MEDIUM, "javascript", "Invalid package.json syntax", 20, "package.json"
            )
            return

        for field, points in (("name", 5), ("version", 5), ("description", 3)):
            if not manifest.get(field):
                card.deduct(
                    Severity.LOW,
                    "javascript",
                    f"Missing '{field}' field in package.json",
                    points,
                    "package.json",
                )

        runtime = manifest.get("dependencies") or {}
        dev = manifest.get("devDependencies") or {}
        declared = {**runtime, **dev}

        self._check_scripts(card, context, manifest.get("scripts") or {})
        self._check_lockfile(card, context)
        self._check_audit(card, context)

        duplicates = sorted(set(runtime) & set(dev))
        if duplicates:
            card.deduct(
                Severity.LOW,
                "javascript",
                f"{len(duplicates)} dependencies appear in both dependencies and devDependencies",
                5,
                "package.json",
            )

        if "typescript" in declared and not files.file_exists("tsconfig.json"):
            card.deduct(
                Severity.MEDIUM,
                "javascript",
                "TypeScript dependency found but no tsconfig.json",
                10,
            )

        if "eslint" in declared and not (
            files.any_exists(*ESLINT_CONFIGS) or "eslintConfig" in manifest
        ):
            card.deduct(Severity.LOW, "javascript", "ESLint installed but not configured", 5)
        if "prettier" in declared and not (
            files.any_exists(*PRETTIER_CONFIGS) or "prettier" in manifest
        ):
            card.deduct(Severity.LOW, "javascript", "Prettier installed but not configured", 3)

        if files.any_exists(*BUNDLER_CONFIGS) and not any(a in declared for a in BUNDLE_ANALYZERS):
            card.deduct(
                Severity.LOW, "javascript", "No bundle size analysis tools configured", 5
            )

        self._check_tests(card, context, declared)

        if "next" in declared and not files.any_exists(
            "next.config.js", "next.config.mjs", "next.config.ts"
        ):
            card.deduct(Severity.LOW, "javascript", "Next.js project without configuration file", 3)
        if "vue" in declared and not files.any_exists(
            "vue.config.js", "vite.config.js", "vite.config.ts"
        ):
            card.recommend("Consider adding Vue configuration file")

    def _check_scripts(
        self, card: ScoreCard, context: AssessmentContext, scripts: dict
    ) -> None:
        if "test" not in scripts:
            card.deduct(Severity.MEDIUM, "javascript", "No test script defined", 10, "package.json")
        compiled = context.files.any_exists("tsconfig.json", "webpack.config.js")
        if "build" not in scripts and compiled:
            card.deduct(
                Severity.LOW, "javascript", "No build script for compiled project", 5, "package.json"
            )
        if "lint" not in scripts:
            card.deduct(Severity.LOW, "javascript", "No lint script defined", 5, "package.json")

    def _check_lockfile(self, card: ScoreCard, context: AssessmentContext) -> None:
        if not context.files.any_exists(*LOCKFILES):
            card.deduct(
                Severity.MEDIUM,
                "javascript",
                "No lockfile found (package-lock.json, yarn.lock, or pnpm-lock.yaml)",
                20,
            )
            return
        age = context.age_days("package-lock.json")
        if age is not None and age > LOCKFILE_MAX_AGE_DAYS:
            card.deduct(
                Severity.MEDIUM,
                "javascript",
                "package-lock.json not updated in 6+ months",
                10,
                "package-lock.json",
            )

    def _check_audit(self, card: ScoreCard, context: AssessmentContext) -> None:
        if not context.files.file_exists("package-lock.json"):
            return
        result = context.tools.run_tool("npm", ["audit", "--json"], cwd=context.files.root)
        if not result.usable:
            card.skipped_tool("javascript", result, "npm audit")
            return
        data = result.json()
        counts = data.get("metadata", {}).get("vulnerabilities", {}) if isinstance(data, dict) else {}
        total = int(counts.get("total") or 0) if isinstance(counts, dict) else 0
        if total > 20:
            card.deduct(
                Severity.MEDIUM, "javascript", f"High number of vulnerabilities: {total}", 15
            )
        elif total > 5:
            card.deduct(Severity.LOW, "javascript", f"{total} vulnerabilities found", 8)

    def _check_tests(
        self, card: ScoreCard, context: AssessmentContext, declared: dict
    ) -> None:
        files = context.files
        has_framework = files.any_exists(*TEST_FRAMEWORK_CONFIGS) or any(
            name in declared for name in TEST_FRAMEWORKS
        )
        if not files.any_exists("test", "tests", "__tests__", "spec") and not files.test_files():
            card.deduct(Severity.MEDIUM, "javascript", "No test directory found", 10)
        if not has_framework:
            card.deduct(Severity.MEDIUM, "javascript", "No test framework configured", 10)
            return

        coverage_configured = "coverage" in (files.read_text("package.json") or "") or any(
            files.contains(name, r"coverage") for name in TEST_FRAMEWORK_CONFIGS
        )
        if not coverage_configured:
            card.deduct(Severity.LOW, "javascript", "Test coverage not configured", 5)
