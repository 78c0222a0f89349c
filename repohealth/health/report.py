"""Report rendering for health assessments (terminal, JSON and Markdown)."""

import io
import json
from datetime import datetime
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from repohealth.health.models import DimensionResult, Finding, HealthReport, Severity

FORMATS = ("human", "json", "markdown")


def render_human(report: HealthReport, console: Console, show_info: bool = False) -> None:
    """Print the report to a rich console.

    Args:
        report: Report to render
        console: Destination console
        show_info: Also list INFO findings (skipped tools, good practices)
    """
    console.print(
        Panel(
            f"[bold {report.status.color}]{report.summary}[/]",
            title="[bold]Repository Health Score[/]",
            subtitle=escape(str(report.project_path)),
        )
    )

    table = Table(title="Dimensions", show_header=True)
    table.add_column("Dimension", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Weight", justify="right", style="dim")
    table.add_column("Details")

    for dimension in report.dimensions:
        if dimension.complete:
            score = f"[{_get_score_style(dimension.score)}]{dimension.score}[/]"
        else:
            score = "[dim]n/a[/]"
        table.add_row(
            dimension.label,
            score,
            str(dimension.weight),
            escape(dimension.description),
        )
    console.print(table)

    if report.critical_findings:
        console.print("\n[bold red]Critical Issues:[/]")
        for finding in report.critical_findings:
            console.print(f"  {_format_finding(finding)}")

    if report.warnings:
        console.print("\n[bold yellow]Warnings:[/]")
        for finding in report.warnings:
            console.print(f"  {_format_finding(finding)}")

    if show_info and report.info_findings:
        console.print("\n[bold blue]Info:[/]")
        for finding in report.info_findings:
            console.print(f"  {_format_finding(finding)}")

    if report.top_recommendations:
        console.print("\n[bold]Top Recommendations:[/]")
        for i, rec in enumerate(report.top_recommendations, 1):
            console.print(f"  {i}. {escape(rec)}")


def generate_json_report(report: HealthReport, pretty: bool = True) -> str:
    """Generate a JSON report.

    Args:
        report: HealthReport to serialize
        pretty: Whether to pretty-print the JSON

    Returns:
        JSON string
    """
    data = report.to_dict()
    if pretty:
        return json.dumps(data, indent=2, default=_json_serializer)
    return json.dumps(data, default=_json_serializer)


def generate_markdown_report(report: HealthReport) -> str:
    """Generate a Markdown report with one findings table per dimension."""
    summary = report.to_dict()["summary"]
    lines = [
        "# Repository Health Report",
        "",
        f"**Project:** `{report.project_path}`",
        f"**Generated:** {report.generated_at.isoformat()}",
        f"**Overall Health Score:** {report.overall_score}/100 "
        f"({report.status.value.upper()})",
        "",
        f"Critical: {summary['total_critical']} | High: {summary['total_high']} | "
        f"Medium: {summary['total_medium']} | Low: {summary['total_low']} | "
        f"Info: {summary['total_info']}",
        "",
        "## Dimensions",
        "",
        "| Dimension | Score | Weight | Details |",
        "|---|---:|---:|---|",
    ]
    for dimension in report.dimensions:
        score = str(dimension.score) if dimension.complete else "n/a"
        lines.append(
            f"| {dimension.label} | {score} | {dimension.weight} | "
            f"{_md_cell(dimension.description)} |"
        )

    for title, findings in (
        ("Critical Issues", report.critical_findings),
        ("Warnings", report.warnings),
    ):
        if findings:
            lines.extend(["", f"## {title}", ""])
            for finding in findings:
                location = f" (`{finding.location}`)" if finding.location else ""
                lines.append(
                    f"- **{finding.severity.value.upper()}** [{finding.source_assessor}] "
                    f"{finding.message}{location}"
                )

    lines.extend(["", "## Findings by Dimension"])
    for dimension in report.dimensions:
        lines.extend(["", *_markdown_dimension(dimension)])

    lines.extend(["", "## Recommendations", ""])
    if report.top_recommendations:
        for i, rec in enumerate(report.top_recommendations, 1):
            lines.append(f"{i}. {rec}")
    else:
        lines.append("No recommendations - the project is in great shape!")

    return "\n".join(lines) + "\n"


def render(report: HealthReport, fmt: str) -> str:
    """Render a report to text in one of ``FORMATS``."""
    if fmt == "json":
        return generate_json_report(report)
    if fmt == "markdown":
        return generate_markdown_report(report)
    if fmt == "human":
        buffer = io.StringIO()
        console = Console(file=buffer, width=100, color_system=None, force_terminal=False)
        render_human(report, console, show_info=True)
        return buffer.getvalue()
    raise ValueError(f"Unknown report format: {fmt}")


def save_report(report: HealthReport, fmt: str, output_path: Path) -> None:
    """Save a report in the given format to a file.

    Args:
        report: HealthReport to render
        fmt: One of ``FORMATS``
        output_path: Path to save the report
    """
    output_path.write_text(render(report, fmt))


def _markdown_dimension(dimension: DimensionResult) -> list[str]:
    score = f"{dimension.score}/100" if dimension.complete else "incomplete"
    lines = [f"### {dimension.label} ({score})", ""]
    if not dimension.findings:
        lines.append("No findings.")
        return lines
    lines.extend(["| Severity | Category | Message | Location |", "|---|---|---|---|"])
    for finding in dimension.findings:
        lines.append(
            f"| {finding.severity.value.upper()} | {_md_cell(finding.category)} | "
            f"{_md_cell(finding.message)} | {_md_cell(finding.location or '')} |"
        )
    return lines


def _format_finding(finding: Finding) -> str:
    location = f" [dim]({escape(finding.location)})[/]" if finding.location else ""
    return (
        f"[{finding.severity.color}]{finding.severity.icon}[/] "
        f"[dim]\\[{finding.source_assessor}][/] {escape(finding.message)}{location}"
    )


def _md_cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


def _json_serializer(obj: Any) -> Any:
    """Custom JSON serializer for non-standard types."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, Severity):
        return obj.value
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def _get_score_style(score: int) -> str:
    """Get Rich style for a numeric score."""
    if score >= 90:
        return "green"
    elif score >= 70:
        return "cyan"
    elif score >= 50:
        return "yellow"
    elif score >= 30:
        return "orange1"
    else:
        return "red"
