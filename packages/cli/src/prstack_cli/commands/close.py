"""close command - close pull requests and unlink them from their commits."""

from __future__ import annotations

import click

from prstack_cli.runtime import build_platform, build_repository, stack_errors
from prstack_core.stack import run_close


@click.command("close")
@click.option("--all", "-a", "all_commits", is_flag=True, help="Close the pull request of every commit.")
@click.pass_context
@stack_errors
def close_cmd(ctx, all_commits):
    """Close the pull request of HEAD and delete its branches."""
    config = ctx.obj["config"]
    repo = build_repository(config)
    platform = build_platform(config, repo)
    closed = run_close(repo, platform, config, all_commits=all_commits)
    if not closed:
        click.echo("No open pull requests to close.")
