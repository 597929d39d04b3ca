"""CLI for ProposalDesk - review received proposals and assign freelancers."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from collections.abc import Coroutine
from datetime import datetime, timezone
from typing import Any, TypeVar

import click

from proposaldesk import __version__
from proposaldesk.aggregator import ProposalAggregator
from proposaldesk.client import ResourceClient
from proposaldesk.committer import AssignmentCommitter
from proposaldesk.config import Settings, get_settings
from proposaldesk.credentials import Credentials, SessionStore
from proposaldesk.errors import MarketplaceError
from proposaldesk.schemas import AggregationResult, Task, TaskCreation, TaskType
from proposaldesk.selection import SelectionTracker

T = TypeVar("T")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _make_client(settings: Settings) -> ResourceClient:
    return ResourceClient(base_url=settings.base_url, timeout=settings.timeout)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, turning marketplace failures into a CLI error."""
    try:
        return asyncio.run(coro)
    except MarketplaceError as e:
        raise click.ClickException(e.message) from e


def _settings(ctx: click.Context) -> Settings:
    return ctx.obj["settings"]


def _credentials(ctx: click.Context) -> Credentials:
    return SessionStore(_settings(ctx).session_path).load()


@click.group()
@click.version_option(version=__version__, prog_name="proposaldesk")
@click.option("--base-url", default=None, help="REST base URL (overrides PROPOSALDESK_BASE_URL)")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, base_url: str | None, verbose: bool) -> None:
    """ProposalDesk - review proposals received on your marketplace tasks.

    Collects the proposals freelancers sent for your open tasks and lets you
    assign one of them per task.
    """
    settings = get_settings()
    if base_url:
        settings = dataclasses.replace(settings, base_url=base_url.rstrip("/"))

    level = logging.DEBUG if verbose else getattr(logging, settings.log_level, logging.WARNING)
    logging.basicConfig(level=level, format=LOG_FORMAT)

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@main.command()
@click.option("--token", prompt=True, hide_input=True, help="Auth token issued by the marketplace")
@click.option("--username", "-u", required=True, help="Your marketplace username")
@click.option("--email", "-e", required=True, help="Your account email")
@click.pass_context
def login(ctx: click.Context, token: str, username: str, email: str) -> None:
    """Store credentials for later commands.

    \b
    Example:
        proposaldesk login --username alice --email alice@example.com
    """
    store = SessionStore(_settings(ctx).session_path)
    store.save(Credentials(auth_token=token.strip(), username=username, email=email))
    click.echo(f"Logged in as {username}")


@main.command()
@click.pass_context
def logout(ctx: click.Context) -> None:
    """Forget stored credentials."""
    if SessionStore(_settings(ctx).session_path).clear():
        click.echo("Logged out")
    else:
        click.echo("No stored session")


@main.command()
@click.pass_context
def tasks(ctx: click.Context) -> None:
    """List the tasks you created."""
    settings = _settings(ctx)
    credentials = _credentials(ctx)

    async def _list() -> list[Task]:
        async with _make_client(settings) as client:
            return await client.list_created_tasks(credentials)

    created = _run(_list())

    if not created:
        click.echo("No tasks found.")
        return

    click.echo("My Created Tasks:\n")
    for task in created:
        status = getattr(task.status, "value", task.status)
        click.echo(f"  [{task.id}] {task.title} ({status})")
        if task.description:
            click.echo(f"      {task.description}")


@main.command("create-task")
@click.option("--title", "-t", required=True, help="Task title")
@click.option("--problem", "-p", required=True, help="Problem description")
@click.option(
    "--deadline", "-d",
    required=True,
    type=click.DateTime(formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M"]),
    help="Deadline (local time)",
)
@click.option("--payment", required=True, type=float, help="Payment amount")
@click.option(
    "--type",
    "task_type",
    required=True,
    type=click.Choice([t.value for t in TaskType]),
    help="Task category",
)
@click.pass_context
def create_task(
    ctx: click.Context,
    title: str,
    problem: str,
    deadline: datetime,
    payment: float,
    task_type: str,
) -> None:
    """Post a new task.

    \b
    Example:
        proposaldesk create-task -t "Logo" -p "Need a logo" -d 2025-01-31 \\
            --payment 150 --type GraphicDesignAndMultimedia
    """
    settings = _settings(ctx)
    credentials = _credentials(ctx)
    if not credentials.username or not credentials.email:
        raise click.ClickException("Username and email are required; run 'proposaldesk login' first")

    try:
        creation = TaskCreation(
            username=credentials.username,
            email=credentials.email,
            title=title,
            problem=problem,
            deadline=deadline.astimezone(timezone.utc),
            payment=payment,
            type=TaskType(task_type),
        )
    except ValueError as e:
        raise click.BadParameter(str(e)) from e

    async def _create() -> Task | None:
        async with _make_client(settings) as client:
            return await client.create_task(creation, credentials)

    created = _run(_create())
    if created is not None:
        click.echo(f"Task created successfully! (Task ID: {created.id})")
    else:
        click.echo("Task created successfully!")


def _render_proposals(result: AggregationResult) -> None:
    click.echo(f"\n{'=' * 60}")
    click.echo(f"Received proposals: {len(result.tasks)} open tasks, {result.total_proposals} proposals")
    click.echo(f"{'=' * 60}\n")

    if not result.tasks:
        click.echo("You have no open tasks.")
        return

    for task in result.tasks:
        click.echo(f"{task.title} (Task ID: {task.id})")
        received = result.proposals_for(task.id)
        if not received:
            click.echo("  No proposals yet.")
        for proposal in received:
            click.echo(f"  [{proposal.id}] Freelancer: {proposal.freelancer_username}")
        click.echo()


@main.command()
@click.option("--raw", is_flag=True, help="Output raw JSON instead of formatted text")
@click.pass_context
def proposals(ctx: click.Context, raw: bool) -> None:
    """Show proposals received on your open tasks."""
    settings = _settings(ctx)
    credentials = _credentials(ctx)

    async def _aggregate() -> AggregationResult:
        async with _make_client(settings) as client:
            aggregator = ProposalAggregator(
                client,
                credentials,
                max_concurrent_fetches=settings.max_concurrent_fetches,
            )
            return await aggregator.refresh()

    result = _run(_aggregate())

    if raw:
        click.echo(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))
        return

    _render_proposals(result)


@main.command()
@click.argument("task_id", type=int)
@click.argument("proposal_id", type=int)
@click.pass_context
def assign(ctx: click.Context, task_id: int, proposal_id: int) -> None:
    """Assign a received proposal to one of your tasks.

    \b
    Example:
        proposaldesk assign 1 10
    """
    settings = _settings(ctx)
    credentials = _credentials(ctx)

    async def _assign():
        async with _make_client(settings) as client:
            aggregator = ProposalAggregator(
                client,
                credentials,
                max_concurrent_fetches=settings.max_concurrent_fetches,
            )
            selections = SelectionTracker.for_aggregator(aggregator)
            committer = AssignmentCommitter(client, credentials, selections)

            await aggregator.refresh()
            selections.select(task_id, proposal_id)
            return await committer.confirm(task_id)

    result = _run(_assign())
    click.echo(
        f"Proposal ID {result.proposal_id} successfully assigned to task ID {result.task_id}."
    )


if __name__ == "__main__":
    main()
