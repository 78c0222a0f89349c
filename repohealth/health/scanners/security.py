"""Security scanner: secret signatures, risky files and dependency audits."""

import fnmatch
import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from repohealth.health.assessors import AssessmentContext, ScoreCard
from repohealth.health.config import CONFIG_FILENAMES, WHITELIST_FILENAME, HealthConfig
from repohealth.health.models import Dimension, Severity
from repohealth.health.probes import declared_js_dependencies
from repohealth.health.whitelist import Whitelist

logger = logging.getLogger(__name__)

CODE_FILES = (
    "*.py",
    "*.js",
    "*.jsx",
    "*.mjs",
    "*.cjs",
    "*.ts",
    "*.tsx",
    "*.go",
    "*.rs",
    "*.java",
    "*.rb",
    "*.php",
)

# Never scanned for signatures
SKIPPED_FILES = (
    "*.md",
    "*.lock",
    "*.sum",
    "package-lock.json",
    "pnpm-lock.yaml",
    "npm-shrinkwrap.json",
    ".env.example",
    ".env.template",
    ".env.sample",
    WHITELIST_FILENAME,
    *CONFIG_FILENAMES,
)

ENV_FILES = (".env", ".env.*")
ENV_TEMPLATES = (".env.example", ".env.template", ".env.sample")

KEY_MATERIAL_FILES = (
    "*.pem",
    "*.key",
    "*.p12",
    "*.pfx",
    "id_rsa",
    "id_dsa",
    "id_ecdsa",
    "id_ed25519",
    "credentials.json",
    "service-account*.json",
)

DATABASE_FILES = ("*.sqlite", "*.sqlite3", "*.db")
BACKUP_FILES = ("*.bak", "*.backup", "*.old")

URGENT_ADVICE = (
    "URGENT: Address all critical security issues immediately",
    "Remove all hardcoded secrets and use environment variables",
    "Add sensitive files to .gitignore",
)
HIGH_ADVICE = (
    "Update vulnerable dependencies",
    "Implement proper secret management",
    "Review and fix authentication implementations",
)
LOW_SCORE_ADVICE = (
    "Implement automated security scanning in CI/CD",
    "Use tools like: npm audit, pip-audit (Python), cargo audit (Rust)",
    "Consider using pre-commit hooks for security checks",
    "Implement dependency update automation (Dependabot, Renovate)",
)


@dataclass(frozen=True)
class Signature:
    """A regex that flags a risky construct in source text."""

    name: str
    severity: Severity
    points: int
    pattern: re.Pattern[str]
    message: str
    file_patterns: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        low, high = self.severity.penalty_range
        if not low <= self.points <= high:
            raise ValueError(
                f"{self.name}: {self.points} points is outside the {self.severity.value} "
                f"range {low}-{high}"
            )

    def applies_to(self, filename: str) -> bool:
        if self.file_patterns is None:
            return True
        return any(fnmatch.fnmatch(filename, p) for p in self.file_patterns)

    def outranks(self, other: "Signature") -> bool:
        return (self.severity.rank, self.points) > (other.severity.rank, other.points)


def _assignment(names: str, min_length: int) -> re.Pattern[str]:
    """Match ``<name> = "<literal>"`` style assignments for the given key names."""
    return re.compile(
        rf"\b[A-Za-z0-9_]*(?:{names})[A-Za-z0-9_]*\b[\"']?\s*[:=]\s*[\"'][^\"'\s]{{{min_length},}}[\"']",
        re.IGNORECASE,
    )


IP_PATTERN = re.compile(r"(?<![\w.])(?:\d{1,3}\.){3}\d{1,3}(?!\w|\.\d)")

SIGNATURES: tuple[Signature, ...] = (
    Signature(
        name="private-key",
        severity=Severity.CRITICAL,
        points=30,
        pattern=re.compile(
            r"-----BEGIN (?:RSA |DSA |EC |OPENSSH |PGP |ENCRYPTED )?PRIVATE KEY(?: BLOCK)?-----"
        ),
        message="Private key material committed",
    ),
    Signature(
        name="aws-credentials",
        severity=Severity.CRITICAL,
        points=25,
        pattern=re.compile(
            r"\bAKIA[0-9A-Z]{16}\b"
            r"|(?i:aws_secret_access_key[\"']?\s*[:=]\s*[\"']?[A-Za-z0-9/+=]{40})"
        ),
        message="AWS credentials",
    ),
    Signature(
        name="provider-token",
        severity=Severity.CRITICAL,
        points=20,
        pattern=re.compile(r"\bsk-(?:proj-|ant-(?:api\d{2}-)?)?[A-Za-z0-9_-]{20,}"),
        message="API provider token",
    ),
    Signature(
        name="hardcoded-password",
        severity=Severity.CRITICAL,
        points=20,
        pattern=_assignment("password|passwd|pwd", 4),
        message="Hardcoded password",
    ),
    Signature(
        name="hardcoded-secret",
        severity=Severity.CRITICAL,
        points=20,
        pattern=_assignment(
            "secret|api_?key|access_?key|auth_?token|client_?secret|private_?key", 8
        ),
        message="Hardcoded secret or API key",
    ),
    Signature(
        name="service-token",
        severity=Severity.HIGH,
        points=15,
        pattern=re.compile(
            r"\bgh[pousr]_[A-Za-z0-9]{36}\b"
            r"|\bgithub_pat_[A-Za-z0-9_]{22,}"
            r"|\bxox[abprs]-[A-Za-z0-9-]{10,}"
            r"|\btskey-[A-Za-z0-9-]{10,}"
        ),
        message="GitHub, Slack or Tailscale token",
    ),
    Signature(
        name="sql-concatenation",
        severity=Severity.HIGH,
        points=10,
        pattern=re.compile(
            r"[\"'][^\"']*\b(?:SELECT|INSERT INTO|UPDATE|DELETE FROM)\b[^\"']*[\"']\s*(?:\+|%\s*[\w(])"
            r"|[\"'][^\"']*\b(?:SELECT|INSERT INTO|UPDATE|DELETE FROM)\b[^\"']*[\"']\.format\("
            r"|(?i:\b(?:execute|query|raw)\s*\(\s*f[\"'])[^\"']*\b(?:SELECT|INSERT|UPDATE|DELETE)\b"
            r"|\bWHERE\b[^\"']*[\"']\s*\+"
        ),
        message="SQL built by string concatenation or formatting (possible injection)",
        file_patterns=CODE_FILES,
    ),
    Signature(
        name="insecure-url",
        severity=Severity.MEDIUM,
        points=5,
        pattern=re.compile(r"http://[^\s\"'<>)`]+"),
        message="Non-HTTPS URL",
        file_patterns=CODE_FILES,
    ),
    Signature(
        name="public-ip",
        severity=Severity.LOW,
        points=3,
        pattern=IP_PATTERN,
        message="Hardcoded public IP address",
    ),
    Signature(
        name="parameterized-query",
        severity=Severity.INFO,
        points=0,
        pattern=re.compile(
            r"(?i:\b(?:execute|query)\s*\(\s*)[\"'][^\"']*(?:\?|%s|\$\d|:\w+)[^\"']*[\"']\s*,"
        ),
        message="Good: parameterized query patterns found",
        file_patterns=CODE_FILES,
    ),
    Signature(
        name="basic-auth",
        severity=Severity.INFO,
        points=0,
        pattern=re.compile(r"Authorization.{0,12}Basic\b"),
        message="Basic authentication pattern detected - ensure HTTPS is used",
        file_patterns=CODE_FILES,
    ),
)


def _is_valid_ip(text: str) -> bool:
    octets = text.split(".")
    if len(octets) != 4:
        return False
    values = [int(o) for o in octets]
    return values[0] != 0 and all(v <= 255 for v in values)


def gitignore_patterns(text: str | None) -> list[str]:
    """Active patterns from a .gitignore file (comments and negations dropped)."""
    if not text:
        return []
    patterns = []
    for raw in text.splitlines():
        line = raw.strip()
        if line and not line.startswith(("#", "!")):
            patterns.append(line)
    return patterns


def is_ignored(relpath: str, patterns: list[str]) -> bool:
    """Approximate git's matching of ``relpath`` against .gitignore entries."""
    parts = relpath.split("/")
    name = parts[-1]
    for pattern in patterns:
        cleaned = pattern.strip("/")
        # Any .env entry is taken to cover every environment file
        if name.startswith(".env") and cleaned.startswith(".env"):
            return True
        if fnmatch.fnmatch(name, cleaned) or fnmatch.fnmatch(relpath, cleaned):
            return True
        if "/" not in cleaned and any(fnmatch.fnmatch(part, cleaned) for part in parts[:-1]):
            return True
    return False


class SecurityScanner:
    """Scans a project for leaked credentials and insecure configuration.

    Every raw signature match is checked against the whitelist before it can
    become a finding. Each line counts towards its most severe signature only,
    and each (signature, file) pair yields one finding.
    """

    def __init__(self, config: HealthConfig, signatures: tuple[Signature, ...] = SIGNATURES):
        self.config = config
        self.signatures = signatures
        self.whitelist = Whitelist(config.whitelist_patterns)

    def scan(self, context: AssessmentContext) -> ScoreCard:
        card = ScoreCard(source=Dimension.SECURITY.value)
        ignored = gitignore_patterns(context.files.read_text(".gitignore"))

        self.scan_signatures(card, context, ignored)
        self.check_env_files(card, context, ignored)
        self.check_sensitive_files(card, context)
        self.check_docker(card, context)
        self.check_web_config(card, context)
        self.check_ci_workflows(card, context)
        self.check_requirements_age(card, context)
        self.audit_dependencies(card, context)

        self._recommend(card)
        card.details.update(
            {
                "critical": card.count(Severity.CRITICAL),
                "high": card.count(Severity.HIGH),
                "medium": card.count(Severity.MEDIUM),
                "low": card.count(Severity.LOW),
                "whitelist_size": len(self.whitelist),
            }
        )
        return card

    # -- signature scanning ----------------------------------------------

    def _should_scan(self, relpath: str, ignored: list[str]) -> bool:
        name = relpath.rsplit("/", 1)[-1]
        if any(fnmatch.fnmatch(name, p) for p in SKIPPED_FILES):
            return False
        # An ignored .env file never reaches the repository
        if any(fnmatch.fnmatch(name, p) for p in ENV_FILES) and is_ignored(relpath, ignored):
            return False
        return True

    def match_line(self, line: str, filename: str) -> tuple[Signature, list[str]] | None:
        """Pick the most severe signature with surviving matches on a line."""
        best: tuple[Signature, list[str]] | None = None
        for signature in self.signatures:
            if not signature.applies_to(filename):
                continue
            if best is not None and not signature.outranks(best[0]):
                continue
            matches = [m.group(0) for m in signature.pattern.finditer(line)]
            if signature.pattern is IP_PATTERN:
                matches = [m for m in matches if _is_valid_ip(m)]
            matches = self.whitelist.filter(matches)
            if matches:
                best = (signature, matches)
        return best

    def scan_signatures(
        self, card: ScoreCard, context: AssessmentContext, ignored: list[str]
    ) -> None:
        hits: dict[tuple[str, str], int] = defaultdict(int)
        info_files: dict[str, set[str]] = defaultdict(set)

        for path, content in context.files.iter_text_files():
            relpath = context.files.relative(path)
            if not self._should_scan(relpath, ignored):
                continue
            for line in content.splitlines():
                matched = self.match_line(line, path.name)
                if matched is None:
                    continue
                signature, _ = matched
                if signature.severity == Severity.INFO:
                    info_files[signature.name].add(relpath)
                else:
                    hits[(signature.name, relpath)] += 1

        by_name = {s.name: s for s in self.signatures}
        for (name, relpath), count in sorted(hits.items()):
            signature = by_name[name]
            card.deduct(
                signature.severity,
                f"secret-scan:{name}",
                f"{signature.message} ({count} occurrence{'s' if count != 1 else ''})",
                signature.points,
                location=relpath,
            )
        for name, files in sorted(info_files.items()):
            card.info(f"secret-scan:{name}", f"{by_name[name].message} in {len(files)} file(s)")

        card.details["signature_hits"] = sum(hits.values())

    # -- file and configuration checks -----------------------------------

    def check_env_files(
        self, card: ScoreCard, context: AssessmentContext, ignored: list[str]
    ) -> None:
        env_files = [
            context.files.relative(p)
            for p in context.files.iter_files(ENV_FILES)
            if p.name not in ENV_TEMPLATES
        ]
        if not env_files:
            return

        if not context.files.file_exists(".gitignore"):
            card.deduct(
                Severity.CRITICAL,
                "env-files",
                f"Found {len(env_files)} .env file(s) but no .gitignore",
                20,
            )
        else:
            for relpath in env_files:
                if not is_ignored(relpath, ignored):
                    card.deduct(
                        Severity.HIGH,
                        "env-files",
                        f"{relpath} is not in .gitignore",
                        15,
                        location=relpath,
                    )

        if not context.files.any_exists(*ENV_TEMPLATES):
            card.deduct(Severity.MEDIUM, "env-files", "No .env.example or .env.template found", 5)

    def check_sensitive_files(self, card: ScoreCard, context: AssessmentContext) -> None:
        for pattern in KEY_MATERIAL_FILES:
            found = [context.files.relative(p) for p in context.files.iter_files([pattern])]
            if found:
                card.deduct(
                    Severity.HIGH,
                    "sensitive-files",
                    f"Found {len(found)} file(s) matching sensitive pattern: {pattern}",
                    15,
                    location=found[0],
                )

        databases = context.files.count_files(DATABASE_FILES)
        if databases:
            card.deduct(
                Severity.MEDIUM,
                "sensitive-files",
                f"Found {databases} database file(s) in the repository",
                5,
            )

        backups = context.files.count_files(BACKUP_FILES)
        if backups:
            card.deduct(
                Severity.MEDIUM,
                "sensitive-files",
                f"Found {backups} backup file(s) that might contain sensitive data",
                5,
            )

    def check_docker(self, card: ScoreCard, context: AssessmentContext) -> None:
        dockerfile = context.files.read_text("Dockerfile")
        if dockerfile is None:
            return
        if not re.search(r"^\s*USER\s+\S+", dockerfile, re.MULTILINE):
            card.deduct(
                Severity.MEDIUM, "docker", "Dockerfile doesn't specify non-root USER", 8, "Dockerfile"
            )
        if re.search(r"^\s*FROM\s+\S+:latest\b", dockerfile, re.MULTILINE | re.IGNORECASE):
            card.deduct(
                Severity.LOW,
                "docker",
                "Dockerfile uses :latest tag (not reproducible)",
                3,
                "Dockerfile",
            )

    def check_web_config(self, card: ScoreCard, context: AssessmentContext) -> None:
        dependencies = declared_js_dependencies(context.files)
        if "express" not in dependencies:
            return
        if "helmet" not in dependencies:
            card.deduct(
                Severity.MEDIUM,
                "web-config",
                "Express app without helmet security middleware",
                8,
                "package.json",
            )
        if "cors" not in dependencies:
            card.deduct(
                Severity.LOW, "web-config", "Express app without CORS configuration", 3, "package.json"
            )

    def check_ci_workflows(self, card: ScoreCard, context: AssessmentContext) -> None:
        if not context.files.dir_exists(".github/workflows"):
            return

        exposed = 0
        unpinned = 0
        for path in context.files.iter_files(["*.yml", "*.yaml"], under=".github/workflows"):
            text = context.files.read_text(context.files.relative(path)) or ""
            for line in text.splitlines():
                if "${{ secrets." in line and re.search(r"\b(?:echo|print|printf)\b", line):
                    exposed += 1
                uses = re.search(r"\buses:\s*([^\s#]+)", line)
                if uses:
                    ref = uses.group(1).strip("'\"")
                    if ref.startswith(("./", "docker://")):
                        continue
                    if not re.search(r"@(?:[a-f0-9]{40}|v\d)", ref):
                        unpinned += 1

        if exposed:
            card.deduct(
                Severity.MEDIUM,
                "ci-security",
                f"Found {exposed} potential secret exposure(s) in GitHub Actions",
                8,
            )
        if unpinned > 5:
            card.deduct(
                Severity.LOW,
                "ci-security",
                f"{unpinned} GitHub Actions not pinned to specific versions",
                3,
            )

    def check_requirements_age(self, card: ScoreCard, context: AssessmentContext) -> None:
        age = context.age_days("requirements.txt")
        if age is not None and age > 365:
            card.deduct(
                Severity.MEDIUM,
                "dependencies",
                "requirements.txt not updated in over a year",
                5,
                "requirements.txt",
            )

    # -- dependency audits -------------------------------------------------

    def audit_dependencies(self, card: ScoreCard, context: AssessmentContext) -> None:
        if context.files.file_exists("package-lock.json"):
            self._audit_npm(card, context)
        if context.files.any_exists("requirements.txt", "pyproject.toml"):
            self._audit_python(card, context)
        if context.files.file_exists("Cargo.lock"):
            self._audit_cargo(card, context)
        if context.files.file_exists("go.mod"):
            card.info("dependency-audit", "Run 'govulncheck ./...' for Go vulnerability scanning")

    def _audit_npm(self, card: ScoreCard, context: AssessmentContext) -> None:
        result = context.tools.run_tool("npm", ["audit", "--json"], cwd=context.files.root)
        if not result.usable:
            card.skipped_tool("dependency-audit", result, "npm vulnerability scan")
            return
        data = result.json()
        counts = _dig(data, "metadata", "vulnerabilities")
        if not isinstance(counts, dict):
            card.info("dependency-audit", "npm audit output could not be parsed")
            return

        critical = int(counts.get("critical") or 0)
        high = int(counts.get("high") or 0)
        total = int(counts.get("total") or 0)
        if critical:
            card.deduct(
                Severity.CRITICAL,
                "dependency-audit",
                f"Found {critical} critical npm vulnerabilities",
                20,
            )
        if high:
            card.deduct(
                Severity.HIGH, "dependency-audit", f"Found {high} high npm vulnerabilities", 10
            )
        if total > 10:
            card.deduct(
                Severity.MEDIUM, "dependency-audit", f"Total {total} npm vulnerabilities found", 5
            )
        card.details["npm_vulnerabilities"] = total

    def _audit_python(self, card: ScoreCard, context: AssessmentContext) -> None:
        if context.files.file_exists("requirements.txt"):
            args = ["-f", "json", "-r", "requirements.txt"]
        else:
            args = ["-f", "json", "."]
        result = context.tools.run_tool("pip-audit", args, cwd=context.files.root)
        if not result.usable:
            card.skipped_tool("dependency-audit", result, "Python vulnerability scan (pip-audit)")
            return
        data = result.json()
        dependencies = data.get("dependencies") if isinstance(data, dict) else data
        if not isinstance(dependencies, list):
            card.info("dependency-audit", "pip-audit output could not be parsed")
            return

        vulnerable = [d for d in dependencies if isinstance(d, dict) and d.get("vulns")]
        count = sum(len(d["vulns"]) for d in vulnerable)
        if count:
            names = ", ".join(sorted(str(d.get("name")) for d in vulnerable)[:5])
            card.deduct(
                Severity.HIGH,
                "dependency-audit",
                f"Found {count} known vulnerabilities in Python dependencies ({names})",
                10,
            )
        card.details["python_vulnerabilities"] = count

    def _audit_cargo(self, card: ScoreCard, context: AssessmentContext) -> None:
        result = context.tools.run_tool("cargo", ["audit", "--json"], cwd=context.files.root)
        if not result.usable:
            card.skipped_tool("dependency-audit", result, "Rust vulnerability scan (cargo audit)")
            return
        count = _dig(result.json(), "vulnerabilities", "count")
        if not isinstance(count, int):
            card.info("dependency-audit", "cargo audit output could not be parsed")
            return
        if count:
            card.deduct(
                Severity.HIGH,
                "dependency-audit",
                f"Found {count} known vulnerabilities in Rust dependencies",
                10,
            )
        card.details["cargo_vulnerabilities"] = count

    # -- recommendations ---------------------------------------------------

    def _recommend(self, card: ScoreCard) -> None:
        if card.count(Severity.CRITICAL):
            card.recommend(*URGENT_ADVICE)
        if card.count(Severity.HIGH):
            card.recommend(*HIGH_ADVICE)
        if card.score < 80:
            card.recommend(*LOW_SCORE_ADVICE)


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data

