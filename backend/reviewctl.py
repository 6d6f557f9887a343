#!/usr/bin/env python3
"""
reviewctl - review pipeline approvals from the terminal.

Usage:
    reviewctl pending                          # List approvals waiting for review
    reviewctl show APPROVAL_ID                 # Show one approval
    reviewctl decide APPROVAL_ID approve       # Approve, reject or modify
    reviewctl decide APPROVAL_ID modify -c "shorter intro"   # Rerun with comments
    reviewctl keywords APPROVAL_ID --main "ai agents"        # Select SEO keywords
    reviewctl cancel APPROVAL_ID               # Cancel the approval's job
    reviewctl retry APPROVAL_ID                # Retry a rejected step
    reviewctl watch JOB_ID                     # Follow a job until it finishes
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from dashboard.client import ReviewApiClient
from dashboard.config import AppConfig, get_config, reload_config
from dashboard.models import ApprovalRequest, ApprovalStatus, Decision, INTENTS, JobStatus
from review import (
    ApprovalSession,
    ConsoleNotifier,
    JobPoller,
    KeywordCategory,
    PollUpdate,
    StepState,
    TransportError,
)

console = Console()

STATUS_COLORS = {
    ApprovalStatus.PENDING: "yellow",
    ApprovalStatus.APPROVED: "green",
    ApprovalStatus.REJECTED: "red",
    ApprovalStatus.MODIFIED: "cyan",
}


def build_client(config: AppConfig) -> ReviewApiClient:
    """Create the API client (replaced in tests)."""
    return ReviewApiClient(config)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(version="0.1.0", prog_name="reviewctl")
@click.option("--env-file", type=click.Path(), default=None, help="Load settings from this .env file")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx: click.Context, env_file: str | None, verbose: bool):
    """reviewctl - Human review for the content pipeline"""
    config = reload_config(env_file) if env_file else get_config()
    setup_logging(verbose or config.debug)
    ctx.obj = config


# --- Listing and display ---

@cli.command()
@click.option("--job", "job_id", default=None, help="Only approvals of this job")
@click.pass_obj
def pending(config: AppConfig, job_id: str | None):
    """List approvals waiting for review."""

    async def run():
        async with build_client(config) as client:
            return await client.list_pending_approvals(job_id)

    try:
        result = asyncio.run(run())
    except TransportError as e:
        console.print(f"[red]✗[/red] {e}")
        sys.exit(1)

    if not result.approvals:
        console.print("[dim]No approvals waiting for review[/dim]")
        return

    table = Table(title=f"Pending Approvals ({result.pending} of {result.total})")
    table.add_column("ID", style="cyan")
    table.add_column("Step")
    table.add_column("Job")
    table.add_column("Title")
    table.add_column("Created")
    for item in result.approvals:
        table.add_row(
            item.id,
            item.pipeline_step or item.step_name or "-",
            item.job_id,
            item.input_title or "",
            item.created_at.strftime("%Y-%m-%d %H:%M") if item.created_at else "",
        )
    console.print(table)


@cli.command()
@click.argument("approval_id")
@click.option("--input", "show_input", is_flag=True, help="Also show the step input")
@click.pass_obj
def show(config: AppConfig, approval_id: str, show_input: bool):
    """Show one approval."""

    async def run():
        async with build_client(config) as client:
            session = ApprovalSession(client, approval_id, ConsoleNotifier(console), config)
            await session.load()
            return session

    session = asyncio.run(run())
    if session.approval is None:
        sys.exit(1)

    print_approval(session.approval)
    if session.is_keyword_step:
        print_keywords(session)
    else:
        console.print(Panel.fit("[bold]Generated Output[/bold]", border_style="blue"))
        console.print_json(data=session.approval.output_data)
    if show_input:
        console.print(Panel.fit("[bold]Input[/bold]", border_style="blue"))
        console.print_json(data=session.approval.input_data)


# --- Decisions ---

@cli.command()
@click.argument("approval_id")
@click.argument("decision", type=click.Choice([d.value for d in INTENTS]))
@click.option("--comment", "-c", default="", help="Reviewer comment")
@click.option("--output", "output_file", type=click.Path(exists=True),
              help="Modified output as a JSON file")
@click.option("--set", "field_edits", multiple=True, metavar="KEY=VALUE",
              help="Edit one output field (value parsed as JSON when possible)")
@click.option("--yes", "-y", is_flag=True, help="Retry without asking (failed submission, rejected step)")
@click.pass_obj
def decide(
    config: AppConfig,
    approval_id: str,
    decision: str,
    comment: str,
    output_file: str | None,
    field_edits: tuple[str, ...],
    yes: bool,
):
    """Approve, reject or modify an approval.

    A modify with a comment and no output changes reruns the step with the
    comment as guidance. Keyword approvals are decided with `reviewctl keywords`.
    """
    if (field_edits or output_file) and decision != Decision.MODIFY.value:
        raise click.UsageError("--set and --output only apply to a modify decision")
    edits = [parse_field_edit(e) for e in field_edits]
    manual_text = Path(output_file).read_text() if output_file else ""

    async def run():
        async with build_client(config) as client:
            notifier = ConsoleNotifier(console)
            session = ApprovalSession(client, approval_id, notifier, config)
            if await session.load() is None:
                return False
            if session.is_keyword_step:
                console.print(
                    f"[red]✗[/red] Approval {approval_id} is a keyword selection; "
                    f"use [bold]reviewctl keywords {approval_id}[/bold]"
                )
                return False
            session.set_comment(comment)
            for key, value in edits:
                session.edit_field(key, value)
            if decision == Decision.MODIFY.value:
                session.begin_modify()
                if manual_text:
                    session.set_manual_output(manual_text)
            accepted = await session.submit(Decision(decision))
            if accepted is None:
                # A failed submission offers Retry; validation failures offer nothing
                accepted = await offer_action(notifier, yes)
            if accepted is None:
                return False
            if session.retry_available:
                job_id = await offer_action(notifier, yes, "Retry this step now?")
                if job_id:
                    await follow_with_progress(session.poller, session.watch_task)
            await session.teardown()
            return True

    if not asyncio.run(run()):
        sys.exit(1)


@cli.command()
@click.argument("approval_id")
@click.option("--main", "main_keyword", default=None, help="Main keyword")
@click.option("--promote", "promotions", multiple=True, metavar="CATEGORY:KEYWORD",
              help="Promote a keyword from a category to main keyword")
@click.option("--toggle", "toggles", multiple=True, metavar="CATEGORY:KEYWORD",
              help="Add or remove a keyword in a category")
@click.option("--select-all", "select_all", multiple=True,
              type=click.Choice([c.value for c in KeywordCategory]), help="Keep every keyword of a category")
@click.option("--deselect-all", "deselect_all", multiple=True,
              type=click.Choice([c.value for c in KeywordCategory]), help="Drop every keyword of a category")
@click.option("--comment", "-c", default="", help="Reviewer comment")
@click.option("--dry-run", is_flag=True, help="Show the selection without submitting")
@click.pass_obj
def keywords(
    config: AppConfig,
    approval_id: str,
    main_keyword: str | None,
    promotions: tuple[str, ...],
    toggles: tuple[str, ...],
    select_all: tuple[str, ...],
    deselect_all: tuple[str, ...],
    comment: str,
    dry_run: bool,
):
    """Select SEO keywords for the keyword step.

    Operations apply in order: select-all, deselect-all, toggles,
    promotions, main keyword.
    """
    parsed_promotions = [parse_category_keyword(p) for p in promotions]
    parsed_toggles = [parse_category_keyword(t) for t in toggles]

    async def run():
        async with build_client(config) as client:
            session = ApprovalSession(client, approval_id, ConsoleNotifier(console), config)
            if await session.load() is None:
                return False
            if not session.is_keyword_step:
                console.print(
                    f"[red]✗[/red] Approval {approval_id} is a "
                    f"{session.approval.pipeline_step} approval, not keyword selection"
                )
                return False
            for category in select_all:
                session.select_all(KeywordCategory(category))
            for category in deselect_all:
                session.deselect_all(KeywordCategory(category))
            for category, keyword in parsed_toggles:
                session.toggle(category, keyword)
            for category, keyword in parsed_promotions:
                session.promote(keyword, category)
            if main_keyword:
                session.set_main_keyword(main_keyword)
            session.set_comment(comment)

            print_keywords(session)
            if dry_run:
                return True
            return await session.submit_keywords() is not None

    if not asyncio.run(run()):
        sys.exit(1)


# --- Jobs ---

@cli.command()
@click.argument("approval_id")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt")
@click.pass_obj
def cancel(config: AppConfig, approval_id: str, yes: bool):
    """Cancel the job an approval belongs to."""

    def confirm(question: str) -> bool:
        return yes or click.confirm(question, default=False)

    async def run():
        async with build_client(config) as client:
            session = ApprovalSession(client, approval_id, ConsoleNotifier(console), config)
            if await session.load() is None:
                return False
            return await session.cancel_job(confirm)

    if not asyncio.run(run()):
        sys.exit(1)


@cli.command()
@click.argument("approval_id")
@click.option("--watch/--no-watch", default=True, help="Follow the retry job until it finishes")
@click.pass_obj
def retry(config: AppConfig, approval_id: str, watch: bool):
    """Retry a rejected step."""

    async def run():
        async with build_client(config) as client:
            session = ApprovalSession(client, approval_id, ConsoleNotifier(console), config)
            if await session.load() is None:
                return False
            job_id = await session.retry_step()
            if job_id is None:
                return False
            if watch:
                await follow_with_progress(session.poller, session.watch_task)
            await session.teardown()
            return True

    if not asyncio.run(run()):
        sys.exit(1)


@cli.command()
@click.argument("job_id")
@click.option("--interval", type=float, default=None, help="Seconds between polls")
@click.pass_obj
def watch(config: AppConfig, job_id: str, interval: float | None):
    """Follow a job until it completes or fails."""

    async def run():
        async with build_client(config) as client:
            poller = JobPoller(config.pipeline_steps, max_failures=config.max_poll_failures)
            task = asyncio.create_task(
                poller.follow(job_id, client.get_job_status, interval or config.poll_interval)
            )
            return await follow_with_progress(poller, task)

    view = asyncio.run(run())
    if view is None:
        sys.exit(1)
    if view.status == JobStatus.COMPLETED:
        console.print(f"[green]✓[/green] Job {job_id} completed")
    else:
        console.print(f"[red]✗[/red] Job {job_id} {view.status.value}: {view.error or 'no details'}")
        sys.exit(1)


# --- Helpers ---

async def follow_with_progress(poller: JobPoller, task: Optional[asyncio.Task]):
    """Render poll updates as a progress bar until the follow task ends."""
    if task is None:
        return None
    with Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed:>3.0f}%"),
        console=console,
        transient=True,
    ) as progress:
        bar = progress.add_task("queued", total=100)
        previous = poller.on_update

        def render(update: PollUpdate) -> None:
            if previous:
                previous(update)
            label = update.current_step or f"step {min(update.step_index + 1, len(poller.steps))}/{len(poller.steps)}"
            progress.update(bar, completed=update.progress, description=f"{update.status.value}: {label}")

        poller.on_update = render
        try:
            view = await task
        finally:
            poller.on_update = previous
    print_steps(poller)
    return view


async def offer_action(notifier: ConsoleNotifier, assume_yes: bool, question: Optional[str] = None):
    """Run the action the last notification offered, if the user agrees."""
    action = notifier.take_action()
    if action is None:
        return None
    if not (assume_yes or click.confirm(question or f"{action.label} now?", default=False)):
        return None
    return await action.callback()


def parse_field_edit(raw: str) -> tuple[str, Any]:
    if "=" not in raw:
        raise click.BadParameter(f"expected KEY=VALUE, got '{raw}'", param_hint="--set")
    key, value = raw.split("=", 1)
    try:
        return key.strip(), json.loads(value)
    except json.JSONDecodeError:
        return key.strip(), value


def parse_category_keyword(raw: str) -> tuple[KeywordCategory, str]:
    if ":" not in raw:
        raise click.BadParameter(f"expected CATEGORY:KEYWORD, got '{raw}'")
    category, keyword = raw.split(":", 1)
    try:
        return KeywordCategory(category.strip()), keyword.strip()
    except ValueError:
        choices = ", ".join(c.value for c in KeywordCategory)
        raise click.BadParameter(f"unknown category '{category}' (choose from {choices})")


def print_approval(approval: ApprovalRequest) -> None:
    color = STATUS_COLORS.get(approval.status, "white")
    lines = [
        f"[bold]{approval.pipeline_step or approval.step_name or 'approval'}[/bold]  "
        f"[{color}]{approval.status.value}[/{color}]",
        f"Approval: {approval.id}",
        f"Job: {approval.job_id}",
    ]
    if approval.confidence_score is not None:
        lines.append(f"Confidence: {approval.confidence_score * 100:.0f}%")
    if approval.reviewed_by:
        lines.append(f"Reviewed by: {approval.reviewed_by}")
    if approval.user_comment:
        lines.append(f"Comment: {approval.user_comment}")
    console.print(Panel("\n".join(lines), border_style=color))
    if approval.suggestions:
        console.print("[bold]Suggestions[/bold]")
        for suggestion in approval.suggestions:
            console.print(f"  • {suggestion}")


def print_keywords(session: ApprovalSession) -> None:
    selection = session.keywords
    catalog = session.catalog

    table = Table(title="Keyword Selection")
    table.add_column("Category", style="cyan")
    table.add_column("Keyword")
    table.add_column("Kept", justify="center")
    table.add_column("Notes", style="dim")
    for category in KeywordCategory:
        kept = selection.keywords(category)
        # Suggested keywords first, then anything added by promotion
        shown = list(catalog.keywords(category)) + [k for k in kept if k not in catalog.keywords(category)]
        for keyword in shown:
            notes = []
            if keyword == selection.main_keyword and category == KeywordCategory.PRIMARY:
                notes.append("MAIN")
            if catalog.is_ai_suggested(keyword):
                notes.append("AI suggested")
            density = catalog.density_of(keyword)
            if density is not None:
                notes.append(f"{density:.1f}% density")
            table.add_row(category.value, keyword, "✓" if keyword in kept else "", ", ".join(notes))
    console.print(table)

    if selection.is_submittable():
        console.print(f"Main keyword: [bold]{selection.main_keyword}[/bold]  "
                      f"({selection.total_selected()} keyword(s) kept)")
    else:
        console.print("[red]Please select a main keyword to continue.[/red]")


def print_steps(poller: JobPoller) -> None:
    icons = {
        StepState.COMPLETED: "[green]✓[/green]",
        StepState.IN_PROGRESS: "[yellow]…[/yellow]",
        StepState.PENDING: "[dim]·[/dim]",
    }
    for step, state in poller.step_states():
        console.print(f"  {icons[state]} {step}")


def main():
    cli()


if __name__ == "__main__":
    main()
