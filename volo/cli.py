"""Command line interface for volo runs, cursors and browser sessions."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

import typer

from .agents import AgentRunner
from .browser import BrowserSessionManager
from .config import load_config
from .constants import SYNC_MAX_PAGES_DEFAULT
from .contracts import (
    AgentRunConfig,
    Platform,
    SyncDataType,
    SyncTaskConfig,
    WorkflowType,
    parse_task_config,
)
from .errors import SessionInvalidError, TaskConfigError, VoloError
from .ledger import Ledger
from .persistence import get_repository
from .platforms import X_API_BASE_URL, OAuthToken, PlatformClient, XFollowGraphSource
from .sync import CursorEngine, run_sync_workflow

app = typer.Typer(help="CLI for volo workflow runs")

runs_app = typer.Typer(help="Inspect workflow runs")
cursors_app = typer.Typer(help="Inspect sync cursors")
session_app = typer.Typer(help="Manage browser sessions")

app.add_typer(runs_app, name="runs")
app.add_typer(cursors_app, name="cursors")
app.add_typer(session_app, name="session")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")) -> None:
    """volo CLI entry point."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_runner() -> AgentRunner:
    return AgentRunner.from_config()


def _session_manager() -> BrowserSessionManager:
    return BrowserSessionManager.from_config(load_config().browser)


@app.command("run")
def run(
    workflow_type: WorkflowType,
    template: Optional[str] = typer.Option(None, help="Workflow template id"),
    max_steps: Optional[int] = typer.Option(None, help="Maximum model turns"),
    model: Optional[str] = typer.Option(None, help="Model id"),
    system_prompt: Optional[str] = typer.Option(None, help="Override the system prompt"),
    config: Optional[str] = typer.Option(None, help="Task configuration as JSON"),
) -> None:
    """
    Run one workflow in the foreground and print its outcome.

    Example:
        volo run search --max-steps 10 --config '{"max_results": 5}'
    """
    if workflow_type == WorkflowType.SYNC:
        typer.secho("Sync runs are started with `volo sync`", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    try:
        task = parse_task_config(workflow_type, json.loads(config) if config else None)
    except json.JSONDecodeError as exc:
        typer.secho(f"--config is not valid JSON: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except TaskConfigError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    settings = load_config()
    run_config = AgentRunConfig(
        workflow_type=workflow_type,
        template_id=template,
        system_prompt=system_prompt,
        max_steps=max_steps or settings.agent.max_steps,
        model=model or settings.agent.default_model,
        task=task,
    )

    async def _run():
        runner = _build_runner()
        try:
            return await runner.run(run_config)
        finally:
            await runner.aclose()

    result = asyncio.run(_run())
    typer.echo(f"Run {result.id}: {result.status}")
    typer.echo(
        f"Items: {result.success_items} ok, {result.skipped_items} skipped, "
        f"{result.error_items} failed"
    )
    typer.echo(f"Tokens: {result.input_tokens} in / {result.output_tokens} out (${result.cost_usd:.4f})")
    for error in result.errors:
        typer.echo(f"Error: {error}")
    if result.status == "failed":
        raise typer.Exit(code=1)


def _platform_client(platform_account_id: str, token: str) -> PlatformClient:
    return PlatformClient(platform_account_id, X_API_BASE_URL, OAuthToken(token))


@app.command("sync")
def sync(
    platform_account_id: str,
    data_type: SyncDataType = typer.Option(SyncDataType.FOLLOWING, "--type", help="following or followers"),
    max_pages: int = typer.Option(SYNC_MAX_PAGES_DEFAULT, min=1, help="Pages to fetch this run"),
    token: str = typer.Option(..., envvar="X_ACCESS_TOKEN", help="X API user access token"),
) -> None:
    """
    Import an X account's follow graph as contacts, resuming from its cursor.

    Example:
        X_ACCESS_TOKEN=... volo sync acct-1 --type followers --max-pages 3
    """
    task = SyncTaskConfig(
        platform_account_id=platform_account_id, data_type=data_type, max_pages=max_pages
    )

    async def _sync():
        repo = get_repository()
        async with _platform_client(platform_account_id, token) as client:
            source = XFollowGraphSource(client, repo, data_type)
            return await run_sync_workflow(
                Ledger(repo), CursorEngine(repo), task, source.fetch_page, source.process_item
            )

    try:
        result = asyncio.run(_sync())
    except VoloError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Run {result.id}: {result.status}")
    typer.echo(
        f"Items: {result.success_items} ok, {result.skipped_items} skipped, "
        f"{result.error_items} failed"
    )
    for error in result.errors:
        typer.echo(f"Error: {error}")
    if result.status == "failed":
        raise typer.Exit(code=1)


@runs_app.command("list")
def runs_list(
    status: Optional[str] = typer.Option(None, help="Filter by status"),
    workflow_type: Optional[str] = typer.Option(None, "--type", help="Filter by workflow type"),
) -> None:
    """List runs, newest first."""
    repo = get_repository()
    runs = asyncio.run(repo.list_runs(status=status, workflow_type=workflow_type))
    if not runs:
        typer.echo("No runs found")
        return
    for r in runs:
        typer.echo(f"{r.id}\t{r.workflow_type}\t{r.status}\t{r.created_at:%Y-%m-%d %H:%M}")


@runs_app.command("show")
def runs_show(run_id: str) -> None:
    """Show a run with its step history."""
    repo = get_repository()

    async def _load():
        run_record = await repo.get_run(run_id)
        if run_record is None:
            return None, []
        return run_record, await repo.list_steps(run_id)

    run_record, steps = asyncio.run(_load())
    if run_record is None:
        typer.echo("Run not found")
        raise typer.Exit(code=1)
    typer.echo(f"Run {run_record.id}: {run_record.status} ({run_record.workflow_type})")
    typer.echo(
        f"Items: {run_record.processed_items}/{run_record.total_items} processed, "
        f"{run_record.success_items} ok, {run_record.skipped_items} skipped, "
        f"{run_record.error_items} failed"
    )
    if run_record.result:
        typer.echo(f"Result: {json.dumps(run_record.result, default=str)}")
    for step in steps:
        detail = step.tool or ""
        if step.url:
            detail += f" {step.url}"
        if step.error:
            detail += f" error={step.error}"
        typer.echo(f"{step.step_index:>3} {step.step_type}: {step.status} {detail}".rstrip())


@cursors_app.command("list")
def cursors_list(platform_account_id: str) -> None:
    """List sync cursors for a platform account."""
    repo = get_repository()
    cursors = asyncio.run(repo.list_cursors(platform_account_id))
    if not cursors:
        typer.echo("No cursors found")
        return
    for c in cursors:
        typer.echo(
            f"{c.data_type}\t{c.sync_status}\t{c.total_items_synced} items"
            f"\tcursor={c.cursor or '-'}"
        )


@session_app.command("setup")
def session_setup(platform: Platform) -> None:
    """Open a browser window, wait for you to log in, and save the session."""
    manager = _session_manager()
    typer.echo(f"Log in to {platform.value} in the browser window...")
    try:
        session = asyncio.run(manager.setup(platform))
    except SessionInvalidError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Saved {platform.value} session ({len(session.cookies)} cookies)")


@session_app.command("validate")
def session_validate(platform: Platform) -> None:
    """Check that the saved session is still logged in."""
    manager = _session_manager()
    if not manager.has_session(platform):
        typer.echo(f"No {platform.value} session saved")
        raise typer.Exit(code=1)
    if asyncio.run(manager.validate(platform)):
        typer.echo(f"{platform.value} session is valid")
    else:
        typer.secho(f"{platform.value} session has expired", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@session_app.command("delete")
def session_delete(platform: Platform) -> None:
    """Delete the saved session."""
    if _session_manager().delete(platform):
        typer.echo(f"Deleted {platform.value} session")
    else:
        typer.echo(f"No {platform.value} session saved")


if __name__ == "__main__":
    app()
