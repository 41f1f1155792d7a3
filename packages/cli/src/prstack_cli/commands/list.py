"""list command - your open pull requests in this repository."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from prstack_cli.runtime import build_platform, build_repository, stack_errors
from prstack_core.stack import list_requests
from prstack_core.utils.branches import branch_name_from_ref

console = Console()


@click.command("list")
@click.pass_context
@stack_errors
def list_cmd(ctx):
    """List open pull requests authored by you."""
    config = ctx.obj["config"]
    repo = build_repository(config)
    platform = build_platform(config, repo)

    requests = list_requests(platform)
    if not requests:
        console.print("[yellow]No open pull requests.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("PR", justify="right", style="dim")
    table.add_column("Title")
    table.add_column("Branch")
    table.add_column("Review")

    for request in requests:
        status = request.approval.status
        table.add_row(
            f"#{request.number}",
            request.title,
            branch_name_from_ref(request.head_ref),
            status.value if status else "-",
        )

    console.print(table)
