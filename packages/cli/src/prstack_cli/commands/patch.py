"""patch command - check out a pull request as a single local commit."""

from __future__ import annotations

import click

from prstack_cli.runtime import build_platform, build_repository, stack_errors
from prstack_core.stack import run_patch


@click.command("patch")
@click.argument("number", type=int)
@click.option("--branch", "branch_name", default=None, help="Name of the new branch. Default: PR-<number>.")
@click.option("--no-checkout", is_flag=True, help="Create the branch without switching to it.")
@click.pass_context
@stack_errors
def patch_cmd(ctx, number, branch_name, no_checkout):
    """Create a local branch holding pull request NUMBER as one commit.

    \b
    Examples:
      prstack patch 42
      prstack patch 42 --branch review-42 --no-checkout
    """
    config = ctx.obj["config"]
    repo = build_repository(config)
    platform = build_platform(config, repo)
    run_patch(repo, platform, config, number, branch_name=branch_name, checkout=not no_checkout)
