"""Thin CLI wrapper for buildflow.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from buildflow import __version__
from buildflow.config import get_settings, print_settings_json

app = typer.Typer(
    name="buildflow",
    help="buildflow - run sequential build workflows and collect their artifacts",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"buildflow version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Send log records to stderr through Rich, once per process."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )
    logging.getLogger("buildflow").setLevel(level)


def _print_error(json_output: bool, code: str, message: str, **extra: Any) -> None:
    if json_output:
        payload = {"success": False, "code": code, "message": message, **extra}
        typer.echo(json.dumps(payload, indent=2))
    else:
        console.print(f"[red]{escape(message)}[/red]")


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """buildflow - run sequential build workflows and collect their artifacts."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        typer.echo(print_settings_json(settings))
    else:
        logs_dir_display = str(settings.logs_dir) if settings.logs_dir else "(disabled)"
        timeout_display = (
            str(settings.step_timeout) if settings.step_timeout else "(no limit)"
        )
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Work directory:      {settings.work_dir}")
        console.print(f"  Logs directory:      {logs_dir_display}")
        console.print()
        console.print("[bold]Execution:[/bold]")
        console.print(f"  Shell:               {settings.shell}")
        console.print(f"  Inherit environment: {settings.inherit_environ}")
        console.print(f"  Step timeout:        {timeout_display}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Log level:           {settings.log_level}")


@app.command()
def validate(
    path: Annotated[str, typer.Argument(help="Path to workflow file to validate")],
) -> None:
    """Validate a workflow file and expand its functions without running it."""
    import yaml
    from pydantic import ValidationError

    from buildflow.steps.context import WorkflowContext
    from buildflow.steps.errors import ConfigurationError
    from buildflow.steps.io import create_workflow, load_workflow_file

    file_path = Path(path)
    if not file_path.exists():
        console.print(f"[red]File not found: {escape(path)}[/red]")
        raise typer.Exit(code=1)

    try:
        schema = load_workflow_file(file_path)
        workflow = create_workflow(WorkflowContext.create(), schema)
    except ValidationError as e:
        console.print("[red]Validation failed:[/red]")
        console.print(str(e), markup=False)
        raise typer.Exit(code=1) from None
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        console.print(f"[red]Validation failed: Parse error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None
    except (ConfigurationError, ValueError) as e:
        console.print(f"[red]Validation failed: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    console.print(f"[green]✓ Valid workflow: {len(workflow)} step(s)[/green]")
    for index, step in enumerate(workflow.build_steps, start=1):
        label = f" ({step.name})" if step.name else ""
        console.print(f"  {index}. {step.id}{label}", markup=False)


@app.command("run")
def run_workflow(
    path: Annotated[str, typer.Argument(help="Path to workflow file to run")],
    env: Annotated[
        list[str] | None,
        typer.Option("--env", "-e", help="Environment variable KEY=VALUE (can be repeated)"),
    ] = None,
    work_dir: Annotated[
        Path | None,
        typer.Option("--work-dir", "-w", help="Root for the workflow working directory"),
    ] = None,
    manifest: Annotated[
        Path | None,
        typer.Option("--manifest", "-m", help="Write an artifact manifest to this path"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Run a workflow file and report the artifacts it uploaded."""
    import yaml
    from pydantic import ValidationError

    from buildflow.steps.artifacts import generate_manifest, write_manifest
    from buildflow.steps.context import WorkflowContext
    from buildflow.steps.env import merge_env, parse_env_assignments
    from buildflow.steps.errors import ConfigurationError
    from buildflow.steps.io import create_workflow, load_workflow_file
    from buildflow.steps.workflow import WorkflowAbortedError

    settings = get_settings()
    if work_dir is not None:
        settings = settings.model_copy(update={"work_dir": work_dir})
    configure_logging("DEBUG" if verbose else settings.log_level)

    file_path = Path(path)
    if not file_path.exists():
        _print_error(json_output, "not_found", f"File not found: {path}")
        raise typer.Exit(code=1)

    try:
        schema = load_workflow_file(file_path)
        cli_env = parse_env_assignments(env or [])
        ctx = WorkflowContext.create(settings)
        workflow = create_workflow(ctx, schema)
    except ValidationError as e:
        _print_error(json_output, "validation", f"Validation failed: {e}")
        raise typer.Exit(code=1) from None
    except ConfigurationError as e:
        _print_error(json_output, e.code, str(e))
        raise typer.Exit(code=1) from None
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        _print_error(json_output, "validation", f"Parse error: {e}")
        raise typer.Exit(code=1) from None
    except ValueError as e:
        _print_error(json_output, "validation", str(e))
        raise typer.Exit(code=1) from None

    workflow_env = merge_env(schema.env, cli_env)

    try:
        asyncio.run(workflow.execute(workflow_env))
    except WorkflowAbortedError as e:
        _print_error(
            json_output,
            e.code,
            str(e),
            step_id=e.step_id,
            exit_code=e.step_error.exit_code,
            steps={k: v.value for k, v in workflow.step_statuses().items()},
        )
        raise typer.Exit(code=1) from None

    artifacts = workflow.collect_artifacts()
    if manifest is not None:
        write_manifest(
            generate_manifest(artifacts, workflow_id=ctx.base_working_directory.name),
            manifest,
        )

    if json_output:
        output = {
            "success": True,
            "steps": {k: v.value for k, v in workflow.step_statuses().items()},
            "artifacts": artifacts,
        }
        if manifest is not None:
            output["manifest"] = str(manifest)
        typer.echo(json.dumps(output, indent=2))
        return

    console.print(f"[green]✓ Workflow completed: {len(workflow)} step(s)[/green]")
    if not artifacts:
        console.print("[yellow]No artifacts uploaded[/yellow]")
        return
    console.print("[bold]Artifacts:[/bold]")
    for artifact_type, paths in artifacts.items():
        console.print(f"  [green]{artifact_type}[/green]")
        for p in paths:
            console.print(f"    {p}", markup=False)
    if manifest is not None:
        console.print(f"Manifest: {manifest}", markup=False)


if __name__ == "__main__":
    app()
