"""Dependency freshness: declared dependencies and how far behind they are."""

import logging
import re
from dataclasses import dataclass, field

import httpx
from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

from repohealth.health.assessors import AssessmentContext
from repohealth.health.config import HealthConfig
from repohealth.health.probes import ProjectFiles, declared_js_dependencies, parse_toml

logger = logging.getLogger(__name__)

# PyPI API timeout
PYPI_TIMEOUT = 5.0
PYPI_URL = "https://pypi.org/pypi/{name}/json"


@dataclass(frozen=True)
class DeclaredDependency:
    """A dependency named in one of the project's manifests."""

    name: str
    ecosystem: str  # "python" or "javascript"
    version: Version | None = None
    source: str = ""


@dataclass(frozen=True)
class OutdatedDependency:
    name: str
    ecosystem: str
    current: str | None
    latest: str | None

    @property
    def major_versions_behind(self) -> int:
        try:
            current = Version(self.current or "")
            latest = Version(self.latest or "")
        except InvalidVersion:
            return 0
        return max(0, latest.major - current.major)


@dataclass
class OutdatedReport:
    """Result of a freshness scan."""

    declared: list[DeclaredDependency] = field(default_factory=list)
    outdated: list[OutdatedDependency] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.outdated)

    def recommendations(self) -> list[str]:
        """Update advice, major upgrades first."""
        major = [
            f"{d.name} ({d.current} -> {d.latest})"
            for d in self.outdated
            if d.major_versions_behind > 0
        ]
        recommendations: list[str] = []
        if major:
            recommendations.append(
                f"Update major versions: {', '.join(major[:3])}"
                + (f" (+{len(major) - 3} more)" if len(major) > 3 else "")
            )
        if len(self.outdated) > len(major):
            minor_count = len(self.outdated) - len(major)
            recommendations.append(f"Update {minor_count} dependencies with minor version updates")
        return recommendations


def _parse_requirement(line: str, source: str) -> DeclaredDependency | None:
    try:
        requirement = Requirement(line)
    except InvalidRequirement:
        logger.debug(f"Skipping unparsable requirement in {source}: {line}")
        return None

    version = None
    for spec in requirement.specifier:
        if spec.operator in ("==", "===", ">=", "~=", "<=") and "*" not in spec.version:
            try:
                version = Version(spec.version)
            except InvalidVersion:
                continue
            if spec.operator in ("==", "==="):
                break
    return DeclaredDependency(requirement.name, "python", version, source)


def read_requirements(files: ProjectFiles, relpath: str) -> list[DeclaredDependency]:
    text = files.read_text(relpath) or ""
    dependencies = []
    for raw in text.splitlines():
        line = raw.split(" #", 1)[0].strip()
        if not line or line.startswith(("#", "-", "git+", "http://", "https://")):
            continue
        dependency = _parse_requirement(line, relpath)
        if dependency is not None:
            dependencies.append(dependency)
    return dependencies


def read_pyproject(files: ProjectFiles) -> list[DeclaredDependency]:
    text = files.read_text("pyproject.toml")
    if text is None:
        return []
    try:
        data = parse_toml(text)
    except ValueError as e:
        logger.debug(f"Failed to parse pyproject.toml: {e}")
        return []

    dependencies: list[DeclaredDependency] = []
    project = data.get("project", {})
    for line in project.get("dependencies", []) or []:
        dependency = _parse_requirement(str(line), "pyproject.toml")
        if dependency is not None:
            dependencies.append(dependency)

    poetry = data.get("tool", {}).get("poetry", {}).get("dependencies", {})
    for name, constraint in (poetry or {}).items():
        if name.lower() == "python":
            continue
        version = None
        if isinstance(constraint, str):
            match = re.search(r"\d+(?:\.\d+)*", constraint)
            if match:
                version = Version(match.group(0))
        dependencies.append(DeclaredDependency(name, "python", version, "pyproject.toml"))
    return dependencies


def read_declared(files: ProjectFiles) -> list[DeclaredDependency]:
    """Every dependency declared by the project's manifests, de-duplicated."""
    declared: list[DeclaredDependency] = []
    for path in files.glob_root("requirements*.txt"):
        declared.extend(read_requirements(files, path.name))
    declared.extend(read_pyproject(files))
    for name, spec in declared_js_dependencies(files).items():
        match = re.search(r"\d+(?:\.\d+)*", spec)
        version = Version(match.group(0)) if match else None
        declared.append(DeclaredDependency(name, "javascript", version, "package.json"))

    unique: dict[tuple[str, str], DeclaredDependency] = {}
    for dependency in declared:
        key = (dependency.ecosystem, canonicalize_name(dependency.name))
        unique.setdefault(key, dependency)
    return list(unique.values())


class DependencyScanner:
    """Counts outdated dependencies.

    Offline by default: asks the local package managers (``pip list
    --outdated``, ``npm outdated``). With ``online`` enabled, Python
    dependencies are compared against the latest releases on PyPI instead.
    """

    def __init__(self, config: HealthConfig):
        self.config = config

    def scan(self, context: AssessmentContext) -> OutdatedReport:
        report = OutdatedReport(declared=read_declared(context.files))
        python_deps = [d for d in report.declared if d.ecosystem == "python"]

        if python_deps:
            if self.config.online:
                self._check_pypi(context, python_deps, report)
            else:
                self._check_pip(context, python_deps, report)
        if context.files.file_exists("package.json"):
            self._check_npm(context, report)
        return report

    def _check_pip(
        self,
        context: AssessmentContext,
        declared: list[DeclaredDependency],
        report: OutdatedReport,
    ) -> None:
        result = context.tools.run_tool(
            "pip", ["list", "--outdated", "--format=json"], cwd=context.files.root
        )
        if not result.usable:
            report.notes.append(f"Python freshness check skipped: {result.skip_reason}")
            return
        data = result.json()
        if not isinstance(data, list):
            report.notes.append("pip list output could not be parsed")
            return

        wanted = {canonicalize_name(d.name) for d in declared}
        for entry in data:
            if not isinstance(entry, dict):
                continue
            name = str(entry.get("name", ""))
            if canonicalize_name(name) in wanted:
                report.outdated.append(
                    OutdatedDependency(
                        name=name,
                        ecosystem="python",
                        current=entry.get("version"),
                        latest=entry.get("latest_version"),
                    )
                )

    def _check_npm(self, context: AssessmentContext, report: OutdatedReport) -> None:
        result = context.tools.run_tool("npm", ["outdated", "--json"], cwd=context.files.root)
        if not result.usable:
            report.notes.append(f"JavaScript freshness check skipped: {result.skip_reason}")
            return
        if not result.stdout.strip():
            return
        data = result.json()
        if not isinstance(data, dict):
            report.notes.append("npm outdated output could not be parsed")
            return
        for name, entry in sorted(data.items()):
            entry = entry if isinstance(entry, dict) else {}
            report.outdated.append(
                OutdatedDependency(
                    name=name,
                    ecosystem="javascript",
                    current=entry.get("current"),
                    latest=entry.get("latest"),
                )
            )

    def _check_pypi(
        self,
        context: AssessmentContext,
        declared: list[DeclaredDependency],
        report: OutdatedReport,
    ) -> None:
        with httpx.Client(timeout=PYPI_TIMEOUT) as client:
            for dependency in declared:
                context.files.check_cancelled()
                if dependency.version is None:
                    continue
                latest = self._get_latest_version(client, dependency.name)
                if latest is not None and dependency.version < latest:
                    report.outdated.append(
                        OutdatedDependency(
                            name=dependency.name,
                            ecosystem="python",
                            current=str(dependency.version),
                            latest=str(latest),
                        )
                    )

    def _get_latest_version(self, client: httpx.Client, package_name: str) -> Version | None:
        """Get the latest version of a package from PyPI.

        Args:
            client: HTTP client to use
            package_name: Name of the package

        Returns:
            Latest Version or None if not found
        """
        try:
            response = client.get(PYPI_URL.format(name=package_name))
            if response.status_code == 200:
                version_str = response.json().get("info", {}).get("version")
                if version_str:
                    return Version(version_str)
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Failed to get latest version for {package_name}: {e}")

        return None
