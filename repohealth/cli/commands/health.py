"""CLI command for repository health assessment."""

import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from repohealth.health.aggregator import exit_code
from repohealth.health.calculator import HealthCalculator
from repohealth.health.config import HealthConfig, load_config
from repohealth.health.errors import ConfigError, ProjectNotFoundError
from repohealth.health.report import (
    FORMATS,
    generate_json_report,
    generate_markdown_report,
    render_human,
    save_report,
)

EXIT_CONFIG_ERROR = 3
EXIT_NOT_FOUND = 4
EXIT_INTERRUPTED = 130

console = Console()
err_console = Console(stderr=True)


class HealthCommand(click.Command):
    """Command that reserves exit codes 1 and 2 for the health verdict.

    Click reports usage errors with exit code 2, which would collide with the
    critical-findings code, so they are mapped to the configuration error
    code instead.
    """

    def main(  # type: ignore[override]
        self,
        args: Sequence[str] | None = None,
        prog_name: str | None = None,
        complete_var: str | None = None,
        standalone_mode: bool = True,
        **extra: Any,
    ) -> Any:
        if not standalone_mode:
            return super().main(args, prog_name, complete_var, standalone_mode=False, **extra)
        try:
            rv = super().main(args, prog_name, complete_var, standalone_mode=False, **extra)
        except click.ClickException as e:
            e.show()
            sys.exit(EXIT_CONFIG_ERROR)
        except click.Abort:
            click.echo("Aborted!", err=True)
            sys.exit(EXIT_INTERRUPTED)
        sys.exit(rv if isinstance(rv, int) else 0)


def configure_logging(verbose: bool) -> None:
    """Route the package's log records to stderr through rich."""
    logger = logging.getLogger("repohealth")
    level = logging.DEBUG if verbose else logging.WARNING
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = RichHandler(console=err_console, show_path=verbose, markup=False)
    handler.setLevel(level)
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False


@click.command(cls=HealthCommand)
@click.argument("project_path", default=".", type=click.Path(path_type=Path))
@click.argument("output_format", default="human", type=click.Choice(FORMATS))
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Configuration file (default: .health-config.toml/.yml in the project)",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Overall time limit in seconds; unfinished dimensions are marked incomplete",
)
@click.option(
    "--tool-timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Time limit in seconds for each external tool (default: 30)",
)
@click.option("--sequential", is_flag=True, help="Run the assessors one at a time")
@click.option("--no-tools", is_flag=True, help="Do not run external tools (audits, compilers)")
@click.option("--online", is_flag=True, help="Check dependency freshness against PyPI")
@click.option(
    "--languages",
    help="Comma-separated language checks to enable (python,javascript,go,rust or all)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the report to a file instead of stdout",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    envvar="VERBOSE",
    help="Debug logging on stderr and informational findings in the report",
)
@click.pass_context
def health(
    ctx: click.Context,
    project_path: Path,
    output_format: str,
    config_path: Path | None,
    timeout: float | None,
    tool_timeout: float | None,
    sequential: bool,
    no_tools: bool,
    online: bool,
    languages: str | None,
    output: Path | None,
    verbose: bool,
) -> None:
    """Assess repository health and report a score per dimension.

    Scores code quality, test coverage, security, performance, maintenance
    and documentation from 0 to 100 and combines them into a weighted
    overall score.

    \b
    Exit codes:
        0  acceptable health
        1  poor health (overall score below 50)
        2  critical or high severity findings
        3  configuration or usage error
        4  project path not found

    \b
    Examples:
        health                          # Assess the current directory
        health ./my-project json        # JSON report on stdout
        health . markdown -o HEALTH.md  # Save a Markdown report
        health --languages python,go    # Add language-specific checks
    """
    configure_logging(verbose)

    if not project_path.is_dir():
        err_console.print(f"[red]Error:[/] Project path not found: {escape(str(project_path))}")
        ctx.exit(EXIT_NOT_FOUND)

    try:
        config = _build_config(
            project_path,
            config_path,
            timeout=timeout,
            tool_timeout=tool_timeout,
            sequential=sequential,
            no_tools=no_tools,
            online=online,
            languages=languages,
        )
    except ConfigError as e:
        err_console.print(f"[red]Configuration error:[/] {escape(str(e))}")
        ctx.exit(EXIT_CONFIG_ERROR)

    try:
        with err_console.status("[bold blue]Assessing repository health..."):
            report = HealthCalculator().calculate(project_path, config)
    except ProjectNotFoundError as e:
        err_console.print(f"[red]Error:[/] {escape(str(e))}")
        ctx.exit(EXIT_NOT_FOUND)

    if output is not None:
        save_report(report, output_format, output)
        err_console.print(f"[green]Report saved to:[/] {escape(str(output))}")
    elif output_format == "json":
        click.echo(generate_json_report(report))
    elif output_format == "markdown":
        click.echo(generate_markdown_report(report), nl=False)
    else:
        render_human(report, console, show_info=verbose)

    ctx.exit(exit_code(report))


def _build_config(
    project_path: Path,
    config_path: Path | None,
    *,
    timeout: float | None,
    tool_timeout: float | None,
    sequential: bool,
    no_tools: bool,
    online: bool,
    languages: str | None,
) -> HealthConfig:
    """Load the project configuration and apply command-line overrides."""
    config = load_config(project_path, config_path)
    return config.with_overrides(
        run_timeout=timeout,
        tool_timeout=tool_timeout,
        parallel=False if sequential else None,
        run_tools=False if no_tools else None,
        online=True if online else None,
        languages=(
            tuple(lang.strip() for lang in languages.split(",") if lang.strip())
            if languages
            else None
        ),
    )
