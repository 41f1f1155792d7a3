"""status command - show how each local commit relates to its pull request."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from prstack_cli.runtime import build_platform, build_repository, stack_errors
from prstack_core.stack import run_status
from prstack_core.tracker import CommitState

console = Console()

_STATE_STYLE = {
    CommitState.UNTRACKED: "dim",
    CommitState.CREATED: "cyan",
    CommitState.NEEDS_UPDATE: "yellow",
    CommitState.READY_TO_LAND: "green",
    CommitState.LANDED: "magenta",
}


@click.command("status")
@click.pass_context
@stack_errors
def status_cmd(ctx):
    """Show the chain from trunk to HEAD, newest first."""
    config = ctx.obj["config"]
    repo = build_repository(config)
    platform = build_platform(config, repo)

    tracked = run_status(repo, platform, config)
    if not tracked:
        console.print("[yellow]No commits on top of trunk.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Commit", style="dim", no_wrap=True)
    table.add_column("Title")
    table.add_column("PR", justify="right")
    table.add_column("State")
    table.add_column("Review")
    table.add_column("Notes")

    for item in reversed(tracked):
        request = item.request
        review = "-"
        if request is not None and request.approval.status is not None:
            review = request.approval.status.value
        style = _STATE_STYLE[item.state]
        table.add_row(
            item.commit.short_id,
            item.commit.title,
            f"#{item.commit.request_number}" if item.commit.request_number else "-",
            f"[{style}]{item.state.value}[/{style}]",
            review,
            "; ".join(d.detail for d in item.drifts),
        )

    console.print(table)
