"""Nox sessions for linting, type checking, testing and self-assessment."""

import nox

nox.options.sessions = ["lint", "typecheck", "test"]

PACKAGE = "repohealth"
SOURCES = (PACKAGE, "tests", "noxfile.py")


@nox.session
def lint(session: nox.Session) -> None:
    """Run ruff and check black formatting."""
    session.install("-e", ".[dev]")
    session.run("ruff", "check", *SOURCES)
    session.run("black", "--check", *SOURCES)


@nox.session
def typecheck(session: nox.Session) -> None:
    session.install("-e", ".[dev]")
    session.run("mypy", PACKAGE)


@nox.session
def test(session: nox.Session) -> None:
    """Run the test suite; extra arguments go to pytest."""
    session.install("-e", ".[dev]")
    session.run("pytest", *session.posargs)


@nox.session
def test_cov(session: nox.Session) -> None:
    """Run tests with coverage and fail below 80%."""
    session.install("-e", ".[dev]")
    session.run(
        "pytest",
        f"--cov={PACKAGE}",
        "--cov-report=term-missing",
        "--cov-fail-under=80",
        *session.posargs,
    )


@nox.session(name="format")
def format_code(session: nox.Session) -> None:
    """Apply ruff fixes and black formatting."""
    session.install("-e", ".[dev]")
    session.run("ruff", "check", "--fix", *SOURCES)
    session.run("black", *SOURCES)


@nox.session
def health(session: nox.Session) -> None:
    """Assess this repository with its own health command."""
    session.install("-e", ".")
    session.run("health", ".", *(session.posargs or ["--no-tools"]))
