"""Rich-based terminal display layer for pipeline runs.

Provides formatted output for the run header, the stage table, build and
test summaries, validation findings, error panels, and the final summary.
Uses a module-level :class:`~rich.console.Console` singleton for consistent
output.

Every function accepts either the live objects or their ``to_dict()`` form
so ``status`` can render a persisted outcome without rebuilding it.
"""

from __future__ import annotations

from typing import Any, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from src.pipeline_shared import __version__
from src.pipeline_shared.constants import ALL_STAGES, STAGE_DISPLAY_NAMES
from src.pipeline_shared.utils import format_duration_ms

# ---------------------------------------------------------------------------
# Module-level Console singleton
# ---------------------------------------------------------------------------

_console = Console()

_STATUS_STYLES = {
    "succeeded": "[green]SUCCEEDED[/green]",
    "failed": "[red]FAILED[/red]",
    "running": "[yellow]RUNNING[/yellow]",
    "skipped": "[dim]SKIPPED[/dim]",
    "pending": "[dim]PENDING[/dim]",
}


# ---------------------------------------------------------------------------
# Display functions
# ---------------------------------------------------------------------------


def print_pipeline_header(config: Any, pipeline_id: str | None = None) -> None:
    """Print a Rich panel identifying the run.

    Parameters
    ----------
    config:
        A ``PipelineConfig`` instance (or dict with the same keys).
    pipeline_id:
        Identifier of the run, when already known.
    """
    header = Text()
    header.append("Android Pipeline", style="bold white")
    header.append(f" v{__version__}\n", style="dim")
    if pipeline_id:
        header.append("Pipeline: ", style="bold")
        header.append(f"{pipeline_id}\n", style="cyan")
    header.append("App: ", style="bold")
    header.append(f"{_get_attr(config, 'app_name', 'unknown')}\n", style="green")
    header.append("Variant: ", style="bold")
    header.append(f"{_get_attr(config, 'variant_name', 'unknown')}\n")
    header.append("Version: ", style="bold")
    header.append(
        f"{_get_attr(config, 'version', '?')} (build {_get_attr(config, 'build_number', 0)})\n"
    )
    header.append("Branch: ", style="bold")
    header.append(f"{_get_attr(config, 'git_branch', 'unknown')}")

    _console.print(
        Panel(
            header,
            title="[bold]Pipeline Overview[/bold]",
            border_style="blue",
            expand=False,
        )
    )


def print_stage_table(outcome: Any) -> None:
    """Print a Rich table with the status of every stage."""
    table = Table(title="Stage Status", show_header=True, header_style="bold magenta")
    table.add_column("Stage", style="cyan", min_width=22)
    table.add_column("Status", justify="center", min_width=12)
    table.add_column("Duration", justify="right", min_width=10)
    table.add_column("Message", min_width=30)

    stages = _get_attr(outcome, "stages", {}) or {}
    for name in ALL_STAGES:
        stage = stages.get(name)
        status = _get_attr(stage, "status", "pending") if stage is not None else "pending"
        if hasattr(status, "value"):
            status = status.value
        duration = _get_attr(stage, "duration_ms", 0) if stage is not None else 0
        message = _get_attr(stage, "message", "") if stage is not None else ""
        table.add_row(
            STAGE_DISPLAY_NAMES.get(name, name),
            _STATUS_STYLES.get(status, status),
            format_duration_ms(duration) if duration else "—",
            message or "",
        )

    _console.print(table)


def print_test_summary(test_result: Any) -> None:
    """Print a panel with test counts and coverage."""
    if not test_result:
        _console.print("[dim]No test results available.[/dim]")
        return

    failed = _get_attr(test_result, "failed", 0)
    error_output = _get_attr(test_result, "error_output", None)
    style = "green" if failed == 0 and not error_output else "red"

    content = Text()
    content.append(f"Framework: {_get_attr(test_result, 'framework', 'Unknown')}\n", style="bold")
    content.append(f"Total: {_get_attr(test_result, 'total', 0)}\n")
    content.append(f"Passed: {_get_attr(test_result, 'passed', 0)}\n", style="green")
    content.append(f"Failed: {failed}\n", style="red" if failed else "")
    content.append(f"Skipped: {_get_attr(test_result, 'skipped', 0)}\n")
    coverage = _get_attr(test_result, "coverage_percent", None)
    if coverage is not None:
        content.append(f"Coverage: {coverage:.1f}%\n")
    names = _get_attr(test_result, "failed_test_names", ()) or ()
    if names:
        content.append("\nFailed tests:\n", style="bold")
        for name in list(names)[:10]:
            content.append(f"  - {name}\n")
        if len(names) > 10:
            content.append(f"  ... and {len(names) - 10} more\n", style="dim")
    if error_output:
        content.append(f"\n{error_output}\n", style="yellow")

    _console.print(
        Panel(content, title="[bold]Test Results[/bold]", border_style=style, expand=False)
    )


def print_error_panel(error: str | Exception) -> None:
    """Print an error in a red Rich panel.

    A :class:`PipelineError` is shown through its boxed report.
    """
    if hasattr(error, "formatted_report"):
        error_text = error.formatted_report()
    else:
        error_text = str(error)
    _console.print(
        Panel(
            Text(error_text, style="bold white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            expand=False,
        )
    )


def print_validation_findings(title: str, findings: Sequence[str]) -> None:
    """Print a list of findings, or a green check when there are none."""
    if not findings:
        _console.print(f"[green]✓ {title}: no problems found[/green]")
        return
    table = Table(title=title, show_header=True, header_style="bold red")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Finding", style="red")
    for idx, finding in enumerate(findings, 1):
        table.add_row(str(idx), finding)
    _console.print(table)


def print_config_table(config: Any) -> None:
    """Print the effective configuration as a key/value table."""
    data = config.to_dict() if hasattr(config, "to_dict") else dict(config)
    table = Table(title="Configuration", show_header=True, header_style="bold magenta")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in data.items():
        if value is None or value == "" or value == []:
            continue
        table.add_row(key, str(value))
    _console.print(table)


def print_version_info(version: Any) -> None:
    """Print version name, code, and labels of an ``AppVersion``."""
    content = Text()
    content.append("Version Name: ", style="bold")
    content.append(f"{_get_attr(version, 'version_name', '?')}\n", style="cyan")
    content.append("Version Code: ", style="bold")
    content.append(f"{_get_attr(version, 'version_code', 0)}\n", style="cyan")
    content.append("Build Number: ", style="bold")
    content.append(f"{_get_attr(version, 'build_number', 0)}\n")
    pre_release = _get_attr(version, "pre_release", None)
    if pre_release:
        content.append(f"Pre-release: {pre_release}\n")
    metadata = _get_attr(version, "metadata", None)
    if metadata:
        content.append(f"Metadata: {metadata}\n")
    _console.print(Panel(content, title="[bold]Version[/bold]", border_style="blue", expand=False))


def print_final_summary(outcome: Any) -> None:
    """Print the final pipeline summary."""
    current_state = _get_attr(outcome, "current_state", "unknown")

    if current_state == "done":
        style = "green"
        title = "Pipeline Succeeded"
    elif current_state == "failed":
        style = "red"
        title = "Pipeline Failed"
    else:
        style = "yellow"
        title = "Pipeline Status"

    content = Text()
    content.append("Pipeline ID: ", style="bold")
    content.append(f"{_get_attr(outcome, 'pipeline_id', 'unknown')}\n", style="cyan")
    content.append("Final State: ", style="bold")
    content.append(f"{current_state}\n", style=style)
    content.append("Duration: ", style="bold")
    content.append(f"{format_duration_ms(_get_attr(outcome, 'total_duration_ms', 0) or 0)}\n")

    build = _get_attr(outcome, "build_result", None)
    if build and _get_attr(build, "success", False):
        content.append("Artifact: ", style="bold")
        content.append(f"{_get_attr(build, 'artifact_path', '')}\n", style="green")

    deploy = _get_attr(outcome, "deploy_result", None)
    if deploy:
        content.append("Deployment: ", style="bold")
        content.append(f"{_get_attr(deploy, 'message', '')}\n")

    failed_stage = _get_attr(outcome, "failed_stage", None)
    if failed_stage:
        content.append("Failed Stage: ", style="bold")
        content.append(f"{STAGE_DISPLAY_NAMES.get(failed_stage, failed_stage)}\n", style="red")

    if _get_attr(outcome, "cancelled", False):
        content.append("\nCancelled before completion\n", style="yellow")
    if _get_attr(outcome, "interrupted", False):
        reason = _get_attr(outcome, "interrupt_reason", "")
        content.append(f"Interrupted: {reason}\n", style="yellow")

    _console.print(
        Panel(
            content,
            title=f"[bold]{title}[/bold]",
            border_style=style,
            expand=False,
        )
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_attr(obj: Any, name: str, default: Any = None) -> Any:
    """Get attribute from object or dict, with fallback to default."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)
