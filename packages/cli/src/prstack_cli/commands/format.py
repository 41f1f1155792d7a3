"""format command - rewrite commit messages into the canonical layout."""

from __future__ import annotations

import click

from prstack_cli.runtime import build_platform, build_repository, stack_errors
from prstack_core.stack import run_format


@click.command("format")
@click.option("--all", "-a", "all_commits", is_flag=True, help="Check every commit of the chain, not just HEAD.")
@click.pass_context
@stack_errors
def format_cmd(ctx, all_commits):
    """Normalise commit messages and check they can be published.

    Works offline; a GitHub token is not needed.
    """
    config = ctx.obj["config"]
    repo = build_repository(config)
    platform = build_platform(config, repo, require_token=False)
    run_format(repo, platform, config, all_commits=all_commits)
