"""Exceptions raised by the health assessment engine."""


class HealthError(Exception):
    """Base class for health assessment errors."""


class ConfigError(HealthError):
    """The configuration file is missing required structure or malformed."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)


class ProjectNotFoundError(HealthError):
    """The target project path does not exist or is not a directory."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Project path not found: {path}")


class AssessmentCancelled(HealthError):
    """Raised inside an assessor when the run was cancelled or timed out."""
