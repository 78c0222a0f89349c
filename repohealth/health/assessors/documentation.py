"""Documentation assessor."""

import logging
import re

import libcst as cst

from repohealth.health.assessors import AssessmentContext, BaseAssessor, ScoreCard
from repohealth.health.config import HealthConfig
from repohealth.health.models import Dimension, Severity
from repohealth.health.probes import ProjectFiles

logger = logging.getLogger(__name__)

README_FILES = ("README.md", "README.rst", "README.txt", "README", "readme.md")
LICENSE_FILES = ("LICENSE", "LICENSE.md", "LICENSE.txt", "LICENCE", "LICENCE.md", "COPYING")
DOCS_DIRS = ("docs", "doc", "documentation")
USAGE_HEADING = re.compile(
    r"^(?:#+\s*|\.\.\s+_)?(?:usage|installation|install|getting started|quick ?start)\b",
    re.IGNORECASE | re.MULTILINE,
)
MIN_README_LINES = 5
MIN_DOCSTRING_RATIO = 0.3


class DocumentationAssessor(BaseAssessor):
    """Scores project documentation.

    Looks at the README, a docs directory, the license and, for Python
    code, the share of functions carrying a docstring.
    """

    default_weight = 5
    band_advice = {
        90: ("Keep the README and docs in sync with the code",),
        80: ("Document public APIs with docstrings",),
        70: ("Add comprehensive documentation and inline comments",),
    }

    @property
    def name(self) -> str:
        return Dimension.DOCUMENTATION.value

    def run_checks(
        self, card: ScoreCard, config: HealthConfig, context: AssessmentContext
    ) -> None:
        files = context.files

        readme = files.first_existing(*README_FILES)
        if readme is None:
            card.deduct(Severity.MEDIUM, "readme", "No README found", 30)
            card.recommend("Add a README describing what the project does and how to use it")
        else:
            self._check_readme(card, readme, files.read_text(readme) or "")

        if not any(files.dir_exists(d) for d in DOCS_DIRS):
            card.deduct(Severity.LOW, "docs", "No docs/ directory found", 10)

        if not files.any_exists(*LICENSE_FILES):
            card.deduct(Severity.LOW, "license", "No LICENSE file found", 5)

        self._check_docstrings(card, files)

    def _check_readme(self, card: ScoreCard, readme: str, content: str) -> None:
        lines = [line for line in content.splitlines() if line.strip()]
        card.details["readme_lines"] = len(lines)
        if len(lines) < MIN_README_LINES:
            card.deduct(
                Severity.LOW, "readme", f"{readme} is very short ({len(lines)} lines)", 10, readme
            )
        if not USAGE_HEADING.search(content):
            card.deduct(
                Severity.LOW, "readme", f"{readme} has no usage or installation section", 5, readme
            )

    def _check_docstrings(self, card: ScoreCard, files: ProjectFiles) -> None:
        total_functions = 0
        typed_functions = 0
        documented_functions = 0

        for path, source in files.iter_text_files(["*.py"]):
            if files.is_test_file(path):
                continue
            try:
                tree = cst.parse_module(source)
            except cst.ParserSyntaxError as e:
                logger.debug(f"Failed to analyze {path}: {e}")
                continue
            visitor = FunctionAnalyzer()
            tree.visit(visitor)
            total_functions += visitor.total_functions
            typed_functions += visitor.typed_functions
            documented_functions += visitor.documented_functions

        if total_functions == 0:
            return

        documented_ratio = documented_functions / total_functions
        typed_ratio = typed_functions / total_functions
        card.details.update(
            {
                "function_count": total_functions,
                "documented_count": documented_functions,
                "typed_count": typed_functions,
                "documented_ratio": round(documented_ratio, 3),
                "typed_ratio": round(typed_ratio, 3),
            }
        )

        if documented_ratio < MIN_DOCSTRING_RATIO:
            card.deduct(
                Severity.LOW,
                "docstrings",
                f"Low docstring coverage: {documented_functions}/{total_functions} functions documented",
                10,
            )
            card.recommend(
                f"Add docstrings to functions ({documented_functions}/{total_functions} documented)"
            )
        if typed_ratio < 0.5:
            card.recommend(f"Add type hints to functions ({typed_functions}/{total_functions} typed)")


class FunctionAnalyzer(cst.CSTVisitor):
    """CST visitor to analyze functions for type hints and docstrings."""

    def __init__(self) -> None:
        self.total_functions = 0
        self.typed_functions = 0
        self.documented_functions = 0

    def visit_FunctionDef(self, node: cst.FunctionDef) -> bool:
        self.total_functions += 1
        if self._has_type_hints(node):
            self.typed_functions += 1
        if node.get_docstring() is not None:
            self.documented_functions += 1
        return True  # Continue visiting nested functions

    def _has_type_hints(self, node: cst.FunctionDef) -> bool:
        """True if the function has a return annotation or any annotated parameter."""
        if node.returns is not None:
            return True
        return any(param.annotation is not None for param in node.params.params)
