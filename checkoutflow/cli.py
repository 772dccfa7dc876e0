"""Command line interface for inspecting and driving checkout sessions."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Optional

import typer
from pydantic import BaseModel

from checkoutflow import StepManager, get_repository
from checkoutflow.catalog import CATALOGS
from checkoutflow.config import load_config
from checkoutflow.errors import CheckoutStepError, StepNotFound

app = typer.Typer(help="CLI for checkoutflow sessions")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# Command groups
steps_app = typer.Typer(help="Commands for managing a session's checkout steps")
catalog_app = typer.Typer(help="Commands for inspecting the step catalog")

app.add_typer(steps_app, name="steps")
app.add_typer(catalog_app, name="catalog")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, help="Logging level (defaults to the configured log_level)"
    ),
) -> None:
    """checkoutflow CLI entry point."""
    level = (log_level or load_config().log_level).upper()
    if level not in LOG_LEVELS:
        raise typer.BadParameter(
            f"must be one of {', '.join(LOG_LEVELS)}", param_hint="--log-level"
        )
    logging.basicConfig(level=level)


def _manager() -> StepManager:
    return StepManager(repository=get_repository())


def _run(coro: Awaitable[Any]) -> Any:
    try:
        return asyncio.run(coro)
    except CheckoutStepError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _echo(value: Any) -> None:
    if isinstance(value, BaseModel):
        typer.echo(value.model_dump_json(indent=2))
    elif isinstance(value, dict):
        typer.echo(
            json.dumps(
                {
                    k: v.model_dump(mode="json") if isinstance(v, BaseModel) else v
                    for k, v in value.items()
                },
                indent=2,
            )
        )
    else:
        typer.echo(json.dumps(value, indent=2, default=str))


@steps_app.command("init")
def steps_init(session_id: str) -> None:
    """
    Create the checkout steps for a session.

    Example:
        checkoutflow steps init session-123
    """
    created = _run(_manager().initialize_steps(session_id))
    for step in created:
        marker = "*" if step.is_active else " "
        typer.echo(f"{marker} {step.order}. {step.step_name}\t{step.id}")


@steps_app.command("progress")
def steps_progress(session_id: str) -> None:
    """Show the current progress of a session."""
    _echo(_run(_manager().get_step_progress(session_id)))


@steps_app.command("next")
def steps_next(session_id: str) -> None:
    """Complete the active step and activate the next one."""
    _echo(_run(_manager().move_to_next_step(session_id)))


@steps_app.command("previous")
def steps_previous(session_id: str) -> None:
    """Go back to the previous step."""
    _echo(_run(_manager().move_to_previous_step(session_id)))


@steps_app.command("jump")
def steps_jump(session_id: str, step_name: str) -> None:
    """Activate any step whose dependencies are completed."""
    _echo(_run(_manager().jump_to_step(session_id, step_name)))


@steps_app.command("validate")
def steps_validate(
    session_id: str,
    step_name: str,
    data: str = typer.Option("{}", help="Submitted step data as a JSON object"),
) -> None:
    """
    Validate submitted data for a step.

    Exits with code 2 when the data is invalid.

    Example:
        checkoutflow steps validate session-123 shipping --data '{"address": "1 Main St"}'
    """
    try:
        step_data = json.loads(data)
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"Invalid JSON: {e}", param_hint="--data")
    if not isinstance(step_data, dict):
        raise typer.BadParameter("Step data must be a JSON object", param_hint="--data")

    result = _run(_manager().validate_step(session_id, step_name, step_data))
    _echo(result)
    if not result.is_valid:
        raise typer.Exit(code=2)


@steps_app.command("complete")
def steps_complete(session_id: str, step_name: str) -> None:
    """Mark a step of the session as completed."""
    manager = _manager()

    async def _complete():
        step = await manager.repository.find_first(session_id, step_name)
        if step is None:
            raise StepNotFound()
        return await manager.complete_step(step.id)

    _echo(_run(_complete()))


@steps_app.command("track")
def steps_track(session_id: str, step_name: str, action: str) -> None:
    """Record a navigation action on a step."""
    _run(_manager().track_navigation(session_id, step_name, action))
    typer.echo(f"Tracked {action} on {step_name}")


@steps_app.command("analytics")
def steps_analytics(session_id: str) -> None:
    """Show per-step engagement metrics for a session."""
    analytics = _run(_manager().get_step_analytics(session_id))
    if not analytics:
        typer.echo("No steps found")
        return
    _echo(analytics)


@catalog_app.command("list")
def catalog_list() -> None:
    """List the configured checkout steps in order."""
    for definition in CATALOGS[load_config().catalog]:
        deps = ", ".join(definition.dependencies) or "-"
        flags = []
        if definition.required:
            flags.append("required")
        if definition.can_skip:
            flags.append("skippable")
        typer.echo(
            f"{definition.order}. {definition.name}\t{definition.title}\t"
            f"depends on: {deps}\t{' '.join(flags)}"
        )


if __name__ == "__main__":
    app()
