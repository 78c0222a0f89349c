"""CLI commands for repohealth."""

from repohealth.cli.commands.health import health

__all__ = ["health"]
