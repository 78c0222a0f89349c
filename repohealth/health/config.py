"""Configuration management for health assessments.

Configuration is loaded once per run and is immutable afterwards. Values from
a user-supplied file override the built-in defaults field by field; the
``weights`` and ``thresholds`` maps are merged key by key.
"""

import logging
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from repohealth.health.errors import ConfigError
from repohealth.health.models import Dimension, HealthStatus
from repohealth.health.probes import parse_toml

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS: dict[str, int] = {
    Dimension.CODE_QUALITY.value: 25,
    Dimension.TEST_COVERAGE.value: 20,
    Dimension.SECURITY.value: 25,
    Dimension.PERFORMANCE.value: 15,
    Dimension.MAINTENANCE.value: 10,
    Dimension.DOCUMENTATION.value: 5,
}

DEFAULT_THRESHOLDS: dict[str, int] = {
    HealthStatus.EXCELLENT.value: 90,
    HealthStatus.GOOD.value: 70,
    HealthStatus.FAIR.value: 50,
    HealthStatus.POOR.value: 30,
}

# Older config templates used different labels for the middle tiers
THRESHOLD_ALIASES = {"attention": HealthStatus.FAIR.value, "warning": HealthStatus.POOR.value}

DEFAULT_WHITELIST: tuple[str, ...] = (
    # Loopback, unspecified and private address ranges
    r"^127\.",
    r"^0\.0\.0\.0$",
    r"^10\.",
    r"^192\.168\.",
    r"^172\.(1[6-9]|2[0-9]|3[01])\.",
    r"^169\.254\.",
    r"^255\.255\.",
    r"localhost",
    r"127\.0\.0\.1",
    r"0\.0\.0\.0",
    # Documentation domains and namespaces
    r"example\.(com|org|net)",
    r"test\.com",
    r"no-?reply@",
    r"w3\.org",
    r"xmlns",
    # Placeholder values
    r"YOUR_",
    r"<your",
    r"REPLACE_ME",
    r"CHANGEME",
    r"placeholder",
    r"dummy",
    r"\$\{[A-Za-z_][A-Za-z0-9_]*\}",
)

DEFAULT_EXCLUDES: tuple[str, ...] = (
    ".git",
    "node_modules",
    "venv",
    ".venv",
    "__pycache__",
    ".tox",
    ".nox",
    ".mypy_cache",
    ".pytest_cache",
    ".ruff_cache",
    ".next",
    "dist",
    "build",
    "coverage",
    "htmlcov",
    "external",
    "vendor",
    "target",
    "*.egg-info",
    "*.min.js",
    "*.bundle.js",
)

KNOWN_LANGUAGES = ("python", "javascript", "go", "rust")

CONFIG_FILENAMES = (
    ".health-config.toml",
    "health-config.toml",
    ".health-config.yml",
    "health-config.yml",
    ".health-config.yaml",
    "health-config.yaml",
)

WHITELIST_FILENAME = ".security-whitelist"

MERGED_FIELDS = ("weights", "thresholds")


class HealthConfig(BaseModel):
    """Immutable configuration for one assessment run."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    weights: dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    thresholds: dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_THRESHOLDS))
    whitelist_patterns: tuple[str, ...] = DEFAULT_WHITELIST
    exclude_paths: tuple[str, ...] = DEFAULT_EXCLUDES

    # Execution
    tool_timeout: float = Field(default=30.0, gt=0)
    run_timeout: float | None = Field(default=None, gt=0)
    parallel: bool = True
    run_tools: bool = True
    online: bool = False
    languages: tuple[str, ...] = ()

    # Check tuning
    max_file_lines: int = Field(default=500, gt=0)
    max_todo_markers: int = Field(default=20, ge=0)
    min_coverage: int = Field(default=80, ge=0, le=100)
    max_changelog_age_days: int = Field(default=180, gt=0)
    max_bundle_kb: int = Field(default=500, gt=0)
    max_image_kb: int = Field(default=500, gt=0)
    max_scan_bytes: int = Field(default=1_048_576, gt=0)

    @field_validator("weights")
    @classmethod
    def _check_weights(cls, value: dict[str, int]) -> dict[str, int]:
        for name, weight in value.items():
            if weight <= 0:
                raise ValueError(f"weight for '{name}' must be positive, got {weight}")
        return value

    @field_validator("thresholds", mode="before")
    @classmethod
    def _normalize_thresholds(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        known = {status.value for status in HealthStatus}
        normalized: dict[str, Any] = {}
        for label, minimum in value.items():
            key = THRESHOLD_ALIASES.get(str(label).lower(), str(label).lower())
            if key not in known:
                raise ValueError(f"unknown status label '{label}'")
            if key == HealthStatus.CRITICAL.value:
                # Critical is whatever falls below every other tier
                continue
            normalized[key] = minimum
        return normalized

    @field_validator("thresholds")
    @classmethod
    def _check_thresholds(cls, value: dict[str, int]) -> dict[str, int]:
        for label, minimum in value.items():
            if not 0 <= minimum <= 100:
                raise ValueError(f"threshold for '{label}' must be within 0-100, got {minimum}")
        return value

    @field_validator("whitelist_patterns")
    @classmethod
    def _check_patterns(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"invalid whitelist pattern '{pattern}': {e}") from e
        return value

    @field_validator("languages")
    @classmethod
    def _check_languages(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        normalized = tuple(lang.lower() for lang in value)
        if "all" in normalized:
            return KNOWN_LANGUAGES
        unknown = [lang for lang in normalized if lang not in KNOWN_LANGUAGES]
        if unknown:
            raise ValueError(f"unsupported languages: {', '.join(unknown)}")
        return normalized

    def weight_for(self, dimension: str, default: int = 10) -> int:
        """Get the configured weight for a dimension."""
        return self.weights.get(dimension, default)

    def with_overrides(self, **changes: Any) -> "HealthConfig":
        """Return a validated copy with the given fields replaced.

        Raises:
            ConfigError: If the overrides are invalid
        """
        data = self.model_dump()
        data.update({k: v for k, v in changes.items() if v is not None})
        return _validate(data, source=None)


def load_config(project_path: Path, config_path: Path | None = None) -> HealthConfig:
    """Load the configuration for a project.

    Looks for ``config_path`` if given, else the first existing file from
    ``CONFIG_FILENAMES`` in the project root, else a ``[tool.repohealth]``
    table in ``pyproject.toml``. A ``.security-whitelist`` file in the project
    root extends the whitelist.

    Args:
        project_path: Path to the project root
        config_path: Optional explicit configuration file

    Returns:
        The merged, validated configuration

    Raises:
        ConfigError: If the configuration file is missing or malformed
    """
    user_data: dict[str, Any] = {}
    source: str | None = None

    if config_path is not None:
        if not config_path.is_file():
            raise ConfigError("configuration file not found", str(config_path))
        user_data = _read_config_file(config_path)
        source = str(config_path)
    else:
        for name in CONFIG_FILENAMES:
            candidate = project_path / name
            if candidate.is_file():
                user_data = _read_config_file(candidate)
                source = str(candidate)
                break
        else:
            user_data = _read_pyproject_table(project_path / "pyproject.toml")
            if user_data:
                source = str(project_path / "pyproject.toml")

    if source:
        logger.debug(f"Loaded health configuration from {source}")

    data = _merge(HealthConfig().model_dump(), _normalize_legacy(user_data))

    extra_patterns = load_project_whitelist(project_path)
    if extra_patterns:
        data["whitelist_patterns"] = tuple(data["whitelist_patterns"]) + extra_patterns

    return _validate(data, source)


def load_project_whitelist(project_path: Path) -> tuple[str, ...]:
    """Read per-project whitelist patterns, one regex per line."""
    whitelist_file = project_path / WHITELIST_FILENAME
    if not whitelist_file.is_file():
        return ()

    patterns: list[str] = []
    for raw in whitelist_file.read_text(errors="replace").splitlines():
        line = raw.strip()
        if line and not line.startswith("#"):
            patterns.append(line)
    return tuple(patterns)


def _read_config_file(path: Path) -> dict[str, Any]:
    """Parse a TOML or YAML configuration file into a mapping."""
    try:
        text = path.read_text()
        if path.suffix == ".toml":
            data = parse_toml(text)
        else:
            data = yaml.safe_load(text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"could not parse configuration: {e}", str(path)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("configuration must be a mapping", str(path))
    return data


def _read_pyproject_table(pyproject_path: Path) -> dict[str, Any]:
    """Read the [tool.repohealth] table from pyproject.toml if present."""
    if not pyproject_path.is_file():
        return {}
    try:
        data = parse_toml(pyproject_path.read_text())
    except (OSError, ValueError) as e:
        # pyproject.toml belongs to the project, not to us
        logger.warning(f"Ignoring unreadable {pyproject_path}: {e}")
        return {}
    table = data.get("tool", {}).get("repohealth", {})
    return table if isinstance(table, dict) else {}


def _normalize_legacy(data: dict[str, Any]) -> dict[str, Any]:
    """Map the nested layout of the YAML template onto flat fields."""
    data = dict(data)
    exclude = data.pop("exclude", None)
    if isinstance(exclude, dict) and "exclude_paths" not in data:
        paths = exclude.get("paths")
        if paths is not None:
            data["exclude_paths"] = paths
    elif isinstance(exclude, list) and "exclude_paths" not in data:
        data["exclude_paths"] = exclude
    if "whitelist" in data and "whitelist_patterns" not in data:
        data["whitelist_patterns"] = data.pop("whitelist")
    return data


def _merge(defaults: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = dict(defaults)
    for key, value in overrides.items():
        if key in MERGED_FIELDS and isinstance(value, dict):
            combined = dict(merged.get(key) or {})
            combined.update(value)
            merged[key] = combined
        else:
            merged[key] = value
    return merged


def _validate(data: dict[str, Any], source: str | None) -> HealthConfig:
    try:
        return HealthConfig.model_validate(data)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigError(f"invalid configuration ({errors})", source) from e
