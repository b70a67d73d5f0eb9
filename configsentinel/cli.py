"""
Config Sentinel CLI entry point.

Commands:
- csentinel run: Run workflows against this machine
- csentinel validate: Validate a workflow file
- csentinel info: Show workflow information
- csentinel providers: List built-in probe providers
- csentinel version: Show version information
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import click
from rich.text import Text

from configsentinel import __version__
from configsentinel.cli_ui import (
    config_panel,
    console,
    dim,
    error,
    escape,
    key_value,
    make_table,
    risk_markup,
    spinner,
    status_markup,
    success,
    warning,
)


def setup_logging(debug: bool = False, level: str = "WARNING") -> None:
    """Configure logging."""
    logging.basicConfig(
        level=logging.DEBUG if debug else getattr(logging, level, logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


@click.group()
@click.version_option(version=__version__, prog_name="csentinel")
def main() -> None:
    """Config Sentinel - Configuration audit engine.

    Runs declarative workflows of probe-and-condition rules and reports
    a scored result per workflow.
    """
    pass


@main.command()
@click.argument(
    "workflow_paths",
    nargs=-1,
    type=click.Path(exists=True, path_type=Path),
)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to csentinel.yaml config file",
)
@click.option(
    "--max-concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum rules probing at once per workflow",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Default workflow timeout in seconds",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Show passing rules too",
)
@click.option(
    "--debug/--no-debug",
    default=False,
    help="Enable debug logging",
)
def run(
    workflow_paths: Tuple[Path, ...],
    config: Optional[Path],
    max_concurrency: Optional[int],
    timeout: Optional[float],
    verbose: bool,
    debug: bool,
) -> None:
    """Run workflows against this machine.

    Exits with status 1 when any workflow fails.

    Examples:

        csentinel run workflows/baseline.yaml

        csentinel run -c csentinel.yaml --timeout 30
    """
    from configsentinel.config.settings import SentinelSettings
    from configsentinel.core.cancellation import CancellationToken
    from configsentinel.core.errors import AuditCancelledError
    from configsentinel.engine.engine import AuditEngine
    from configsentinel.engine.parser import WorkflowParser

    try:
        settings = SentinelSettings(_config_path=str(config) if config else None)
        setup_logging(debug or settings.debug, settings.log_level)

        if max_concurrency is not None:
            settings.engine.max_concurrency = max_concurrency
        if timeout is not None:
            settings.engine.default_timeout_seconds = timeout

        paths: List[str] = [str(p) for p in workflow_paths] or list(settings.workflows)
        if not paths:
            error(
                "No workflows to run",
                hint="Pass workflow files or list them under 'workflows:' in csentinel.yaml",
            )
            raise SystemExit(1)

        workflows = WorkflowParser.parse_files(paths)
        engine = AuditEngine.from_settings(settings)
    except SystemExit:
        raise
    except Exception as e:
        error(escape(str(e)), hint="Check your workflow files and csentinel.yaml")
        if debug:
            import traceback

            traceback.print_exc()
        raise SystemExit(1)

    token = CancellationToken()
    cancelled = False
    try:
        with spinner(f"Running {len(workflows)} workflow(s)..."):
            results = asyncio.run(_run_audit(engine, workflows, token))
    except AuditCancelledError as e:
        results = e.partial_results
        cancelled = True
    except KeyboardInterrupt:
        console.print()
        warning("Interrupted")
        raise SystemExit(130)

    skipped = len(workflows) - len(results)
    if skipped:
        dim(f"{skipped} workflow(s) not applicable to this platform")

    for result in results:
        _print_result(result, verbose)

    console.print()
    failed = [r for r in results if not r.success]
    if cancelled:
        warning("Run was cancelled; results are partial")
        raise SystemExit(130)
    if failed:
        error(f"{len(failed)} of {len(results)} workflow(s) failed")
        raise SystemExit(1)
    success(f"All {len(results)} workflow(s) passed")


async def _run_audit(engine, workflows, token) -> list:
    """Run the engine with Ctrl-C mapped to cancelling `token`."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
        installed = True
    except (NotImplementedError, RuntimeError):
        # Proactor loops and non-main threads: Ctrl-C raises KeyboardInterrupt
        installed = False

    try:
        return await engine.run(workflows, token)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def _print_result(result, verbose: bool) -> None:
    """Render one WorkflowResultSet."""
    rows: List[List[str]] = []
    for rule in result.results:
        if rule.success and not verbose:
            continue
        rows.append(
            [
                escape(rule.rule_name),
                status_markup(rule.success),
                str(rule.severity_score) if not rule.success else "-",
                escape(rule.message),
            ]
        )

    title = (
        f"{result.workflow_name}  {status_markup(result.success)}  "
        f"severity {result.severity_score} ({risk_markup(result.risk_level.value)})"
    )
    if rows:
        make_table(title, ["Rule", "Status", "Severity", "Message"], rows)
    else:
        console.print()
        console.print(f"[bold]{title}[/]")
        dim(f"{len(result.results)} rule(s) passed")

    if result.is_partial:
        warning(
            f"{len(result.results)}/{result.rule_count} rules ran "
            f"(completion: {result.completion.value})"
        )
        for skipped in result.skipped:
            detail = f" - {escape(skipped.detail)}" if skipped.detail else ""
            dim(f"{skipped.rule_name}: {skipped.reason.value}{detail}")


@main.command()
@click.argument(
    "workflow_path",
    type=click.Path(exists=True, path_type=Path),
)
def validate(workflow_path: Path) -> None:
    """Validate a workflow definition file.

    Checks the schema, condition operators and rule dependencies.

    Example:
        csentinel validate workflow.yaml
    """
    from configsentinel.engine.parser import WorkflowParser

    try:
        workflow = WorkflowParser.parse_file(workflow_path)
    except FileNotFoundError:
        error(f"File not found: {escape(str(workflow_path))}")
        raise SystemExit(1)
    except Exception as e:
        error(f"Validation error: {escape(str(e))}")
        raise SystemExit(1)

    problems = WorkflowParser.lint(workflow)
    if problems:
        for problem in problems:
            error(escape(problem))
        raise SystemExit(1)

    config_panel(
        "✓ Valid Workflow",
        {
            "Name": escape(workflow.name),
            "Schema": workflow.schema_version,
            "Rules": str(len(workflow.rules)),
            "Mode": "sequential" if workflow.constraints.run_sequentially else "concurrent",
            "OS Family": escape(workflow.applicability.os_family or "-"),
        },
    )


@main.command()
@click.argument(
    "workflow_path",
    type=click.Path(exists=True, path_type=Path),
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Show detailed information",
)
def info(workflow_path: Path, verbose: bool) -> None:
    """Show detailed workflow information.

    Displays applicability, constraints and rules.

    Example:
        csentinel info workflow.yaml --verbose
    """
    from configsentinel.engine.parser import WorkflowParser

    try:
        workflow = WorkflowParser.parse_file(workflow_path)

        console.print()
        console.print(
            Text.assemble(
                (workflow.name, "bold"),
                (f"  schema {workflow.schema_version}", "dim"),
            )
        )
        if workflow.description:
            dim(escape(workflow.description))

        applicability = workflow.applicability
        constraints = workflow.constraints
        console.print()
        key_value("OS family", escape(applicability.os_family or "-"))
        key_value(
            "Versions",
            f"{applicability.min_version or '*'} .. {applicability.max_version or '*'}",
        )
        if applicability.product:
            key_value("Product", escape(applicability.product))
        key_value("Mode", "sequential" if constraints.run_sequentially else "concurrent")
        key_value("Stop on failure", str(constraints.stop_on_failure))
        key_value(
            "Timeout",
            f"{constraints.timeout.total_seconds():g}s" if constraints.timeout else "none",
        )

        rows: List[List[str]] = []
        for rule in workflow.rules:
            condition = rule.condition
            cond = condition.operator
            if condition.expected is not None:
                cond = f"{cond} {condition.expected!r}"
            row = [
                escape(rule.name),
                f"[cyan]{escape(rule.provider)}[/]",
                escape(cond),
                str(rule.severity),
                escape(", ".join(rule.depends_on)) or "-",
            ]
            if verbose:
                row.append(escape(rule.failure_message or rule.message))
            rows.append(row)

        columns = ["Name", "Provider", "Condition", "Severity", "Depends on"]
        if verbose:
            columns.append("Message")
        make_table("Rules", columns, rows)
        console.print()

    except Exception as e:
        error(escape(str(e)))
        raise SystemExit(1)


@main.command()
def providers() -> None:
    """List built-in probe providers."""
    from configsentinel.probes import ProbeProviderRegistry

    rows = []
    for name in sorted(ProbeProviderRegistry.list_providers()):
        provider_class = ProbeProviderRegistry.get(name)
        doc = (provider_class.__doc__ or "").strip().splitlines()
        rows.append([name, doc[0] if doc else ""])
    make_table("Probe Providers", ["Name", "Description"], rows)


@main.command()
def version() -> None:
    """Show version information."""
    console.print(
        Text.assemble(
            ("Config Sentinel", "bold"),
            (f" v{__version__}", "dim"),
        )
    )


if __name__ == "__main__":
    main()
