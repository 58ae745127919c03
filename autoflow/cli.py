"""Command line interface for validating and running autoflow workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from autoflow import WorkflowEngine, load_config
from autoflow.cli_utils.definitions import _format_execution, _load_definitions
from autoflow.config import EngineConfig
from autoflow.contracts import Execution, ExecutionStatus
from autoflow.errors import AutoflowError, ValidationError

app = typer.Typer(help="CLI for autoflow workflows")


@app.callback()
def main() -> None:
    """Autoflow CLI entry point."""
    pass


def _setup(config_path: Optional[Path]) -> EngineConfig:
    config = load_config(str(config_path) if config_path else None)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return config


def _read_definitions(path: Path) -> List[Dict[str, Any]]:
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    try:
        return _load_definitions(path)
    except ValueError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)


@app.command("validate")
def validate(
    path: Path,
    config: Optional[Path] = typer.Option(None, help="Engine config YAML file"),
) -> None:
    """
    Validate the workflow definitions in a YAML file.

    Example:
        autoflow validate ./workflows.yaml
        # Output: OK   Welcome series (welcome)
        #         FAIL ab: Workflow name must be at least 3 characters
    """
    engine = WorkflowEngine(_setup(config))
    failures = 0
    for definition in _read_definitions(path):
        try:
            workflow = engine.store.create(definition)
        except ValidationError as exc:
            failures += 1
            label = definition.get("name") or definition.get("id") or "(unnamed)"
            typer.secho(f"FAIL {label}: {'; '.join(exc.errors)}", fg=typer.colors.RED)
            continue
        typer.echo(f"OK   {workflow.name} ({workflow.id})")
    if failures:
        raise typer.Exit(code=1)


async def _run_workflow(
    engine: WorkflowEngine,
    definitions: List[Dict[str, Any]],
    workflow_ref: Optional[str],
    context: Dict[str, Any],
    timeout: Optional[float],
) -> Execution:
    workflows = [engine.create_workflow(definition) for definition in definitions]
    target = workflows[0]
    if workflow_ref:
        matches = [w for w in workflows if workflow_ref in (w.id, w.name)]
        if not matches:
            raise AutoflowError(f"Workflow not found: {workflow_ref}")
        target = matches[0]

    async with engine:
        execution_id = engine.execute_workflow(target.id, context)
        return await engine.wait_for_execution(execution_id, timeout=timeout)


@app.command("run")
def run(
    path: Path,
    workflow: Optional[str] = typer.Option(
        None, help="Workflow id or name (default: first in file)"
    ),
    context: Optional[str] = typer.Option(None, help="JSON object used as context"),
    config: Optional[Path] = typer.Option(None, help="Engine config YAML file"),
    timeout: Optional[float] = typer.Option(
        None, help="Seconds to wait for the execution to finish"
    ),
) -> None:
    """
    Run one workflow from a definition file with the built-in components.

    Example:
        autoflow run ./workflows.yaml --workflow welcome --context '{"user": {"tier": "gold"}}'
        # Output: Execution 1f0c...: completed
        #         - [0] greet (action): completed
    """
    engine_config = _setup(config)
    definitions = _read_definitions(path)
    try:
        initial_context = json.loads(context) if context else {}
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid context JSON: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    engine = WorkflowEngine(engine_config)
    try:
        execution = asyncio.run(
            _run_workflow(engine, definitions, workflow, initial_context, timeout)
        )
    except AutoflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except asyncio.TimeoutError:
        typer.secho("Timed out waiting for the execution", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    for line in _format_execution(execution):
        typer.echo(line)
    if execution.status is not ExecutionStatus.COMPLETED:
        raise typer.Exit(code=1)


@app.command("components")
def components() -> None:
    """List the built-in trigger, action and condition types."""
    engine = WorkflowEngine()
    typer.echo(f"Triggers: {', '.join(engine.registry.trigger_types())}")
    typer.echo(f"Actions: {', '.join(engine.registry.action_types())}")
    typer.echo(f"Conditions: {', '.join(engine.registry.condition_types())}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
