"""amend command - pull titles, descriptions and reviewers from GitHub into commits."""

from __future__ import annotations

import click

from prstack_cli.runtime import build_platform, build_repository, stack_errors
from prstack_core.stack import run_amend


@click.command("amend")
@click.option("--all", "-a", "all_commits", is_flag=True, help="Amend every commit of the chain, not just HEAD.")
@click.pass_context
@stack_errors
def amend_cmd(ctx, all_commits):
    """Replace local commit messages with what their pull requests say."""
    config = ctx.obj["config"]
    repo = build_repository(config)
    platform = build_platform(config, repo)
    run_amend(repo, platform, config, all_commits=all_commits)
