"""Command-line interface for repohealth."""
