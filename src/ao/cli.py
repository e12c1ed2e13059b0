"""CLI commands for running agent orchestrations and task planning."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from .config import DEFAULT_CONFIG_NAME, ConfigError, Settings, load_config
from .models import GenerationClient, OfflineGenerationClient, OpenAIChatClient
from .orchestration import resolve_strategy
from .schema import CurrentFile, ModifyFileAction, TaskPlannerState
from .service import AgentService

APP_HELP = "Agent orchestration and task planning CLI."
OFFLINE_MODELS = {"offline", "ao-offline"}

app = typer.Typer(help=APP_HELP)


def _load_settings(config: str, *, strategy: Optional[str] = None) -> Settings:
    config_path = Path(config)
    if config_path.exists():
        try:
            data: Dict[str, Any] = load_config(config_path)
        except ConfigError as error:
            typer.echo(str(error))
            raise typer.Exit(code=1) from error
        settings = Settings.from_mapping(data, base_dir=config_path.resolve().parent)
    elif config == DEFAULT_CONFIG_NAME:
        settings = Settings.from_mapping({})
    else:
        raise typer.BadParameter(f"Config file not found: {config_path}")

    if strategy:
        orchestration = dataclasses.replace(
            settings.orchestration,
            strategy=resolve_strategy(strategy).value,
            multi_agent=strategy.strip().lower() != "single",
        )
        settings = dataclasses.replace(settings, orchestration=orchestration)
    return settings


def _build_client(settings: Settings, *, use_remote: bool) -> GenerationClient:
    """Select either the chat completions client or the offline client."""
    model_name = settings.models.default
    offline_model = model_name.lower() in OFFLINE_MODELS or model_name.lower().endswith("-offline")

    if use_remote and not offline_model:
        typer.echo(f"Using chat completions client ({model_name}).")
        try:
            return OpenAIChatClient(
                api_key=settings.models.api_key,
                base_url=settings.models.base_url,
                timeout=settings.models.timeout,
            )
        except ValueError as error:
            if "api key" in str(error).lower():
                typer.echo(
                    "No API key given. Set AO_API_KEY or OPENAI_API_KEY, "
                    "or re-run with --no-use-remote to use the offline client."
                )
            else:
                typer.echo(f"Failed to initialise chat completions client: {error}")
            raise typer.Exit(code=1)

    if use_remote and offline_model:
        typer.echo(f"Model '{model_name}' is offline-only; using offline client.")
    else:
        typer.echo("Using offline client.")
    return OfflineGenerationClient()


def _build_service(config: str, *, use_remote: bool, strategy: Optional[str] = None) -> AgentService:
    settings = _load_settings(config, strategy=strategy)
    return AgentService(_build_client(settings, use_remote=use_remote), settings)


def _render_planner_state(state: TaskPlannerState) -> None:
    typer.echo(f"Task planner {state.request_id} [{state.status.value}] {state.progress}%")
    if state.message:
        typer.echo(f"  Message: {state.message}")
    for item in state.todo:
        mark = "x" if item.status == "completed" else " "
        typer.echo(f"  [{mark}] {item.id} {item.title} ({item.status}, {item.priority})")
    if state.snapshot_path:
        typer.echo(f"Snapshot: {state.snapshot_path}")
    if state.todo_path:
        typer.echo(f"Todo: {state.todo_path}")


@app.command()
def interact(
    message: str = typer.Argument(..., help="Instruction for the agents."),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the configuration file.",
    ),
    file: Optional[Path] = typer.Option(
        None,
        "--file",
        "-f",
        help="File the agents should read and edit.",
    ),
    apply: bool = typer.Option(
        False,
        "--apply/--no-apply",
        help="Write the final modify_file action back to disk.",
    ),
    strategy: Optional[str] = typer.Option(
        None,
        "--strategy",
        "-s",
        help="Orchestration strategy: linear, graph or single.",
    ),
    project: str = typer.Option("cli", "--project", "-p", help="Project identifier."),
    use_remote: bool = typer.Option(
        True,
        "--use-remote/--no-use-remote",
        help="Call the configured model instead of the offline client.",
    ),
) -> None:
    """Run one orchestration request and print its trace."""
    service = _build_service(config, use_remote=use_remote, strategy=strategy)

    current_file = None
    if file is not None:
        content = file.read_text(encoding="utf-8") if file.exists() else ""
        current_file = CurrentFile(path=file.name, content=content)

    result = service.interact(
        service.settings.models.default,
        None,
        project,
        message,
        current_file=current_file,
    )

    typer.echo(f"Request {result.request_id} ({service.strategy.value})")
    for step in result.trace:
        label = f"{step.role.value} [{step.notes}]" if step.notes else step.role.value
        typer.echo(f"- {label}: {step.action.type}")

    action = result.action
    if isinstance(action, ModifyFileAction):
        typer.echo(f"Final: modify_file {action.file_path or '(unnamed)'}")
        if action.reason:
            typer.echo(f"Reason: {action.reason}")
        if apply:
            if file is not None and action.file_path in ("", file.name):
                target = file
            else:
                target = Path(action.file_path or "untitled")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(action.new_content, encoding="utf-8")
            typer.echo(f"Wrote {target}")
        else:
            typer.echo(action.new_content)
    else:
        typer.echo(f"Final: {action.message}")


@app.command()
def plan(
    repo_url: str = typer.Argument(..., help="Repository URL to plan for."),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the configuration file.",
    ),
    project: str = typer.Option("cli", "--project", "-p", help="Project identifier."),
    use_remote: bool = typer.Option(
        True,
        "--use-remote/--no-use-remote",
        help="Call the configured model instead of the offline client.",
    ),
) -> None:
    """Generate (or resume) a task checklist for a repository."""
    service = _build_service(config, use_remote=use_remote)
    request_id = service.start_task_planner(
        service.settings.models.default,
        None,
        project,
        repo_url,
        autorun=False,
    )
    state = service.get_task_planner_trace(request_id)
    if state is None:
        typer.echo(f"Task planner {request_id} not found.")
        raise typer.Exit(code=1)
    _render_planner_state(state)
    if state.status.value == "error":
        raise typer.Exit(code=1)


@app.command("plan-item")
def plan_item(
    request_id: str = typer.Argument(..., help="Task planner request id."),
    item_id: str = typer.Argument(..., help="Task item id."),
    status: Optional[str] = typer.Option(
        None,
        "--status",
        help="New status: pending, in_progress, completed or paused.",
    ),
    priority: Optional[str] = typer.Option(
        None,
        "--priority",
        help="New priority: high, medium or low.",
    ),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the configuration file.",
    ),
) -> None:
    """Update one checklist item of a stored task planner run."""
    settings = _load_settings(config)
    service = AgentService(OfflineGenerationClient(), settings)
    planner = service.task_planner
    if planner.attach(request_id) is None:
        typer.echo(f"Task planner {request_id} not found.")
        raise typer.Exit(code=1)

    try:
        item = service.update_task_planner_item(request_id, item_id, status=status, priority=priority)
    except ValueError as error:
        raise typer.BadParameter(str(error)) from error
    if item is None:
        typer.echo(f"Task {item_id} not found in {request_id}.")
        raise typer.Exit(code=1)

    planner.tick(request_id)
    state = service.get_task_planner_trace(request_id)
    typer.echo(f"Task {item.id}: {item.status} ({item.priority})")
    if state is not None:
        _render_planner_state(state)


@app.command("plan-status")
def plan_status(
    request_id: str = typer.Argument(..., help="Task planner request id."),
    pause: Optional[bool] = typer.Option(
        None,
        "--pause/--resume",
        help="Pause or resume the run before printing it.",
    ),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the configuration file.",
    ),
) -> None:
    """Print a stored task planner run, optionally pausing or resuming it."""
    settings = _load_settings(config)
    service = AgentService(OfflineGenerationClient(), settings)
    if service.task_planner.attach(request_id) is None:
        typer.echo(f"Task planner {request_id} not found.")
        raise typer.Exit(code=1)
    if pause is not None:
        status = service.set_task_planner_paused(request_id, pause)
        typer.echo(f"Status: {status.value if status else 'unknown'}")
    state = service.get_task_planner_trace(request_id)
    if state is not None:
        _render_planner_state(state)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":  # pragma: no cover
    app()
