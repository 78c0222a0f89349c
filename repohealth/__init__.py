"""repohealth - multi-dimensional repository health assessment."""

__version__ = "0.1.0"
