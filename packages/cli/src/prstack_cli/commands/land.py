"""land command - squash-merge a reviewed commit into trunk."""

from __future__ import annotations

import click

from prstack_cli.runtime import build_platform, build_repository, stack_errors
from prstack_core.stack import run_land


@click.command("land")
@click.option(
    "--cherry-pick",
    is_flag=True,
    help="Land HEAD even though the commits below it have not landed.",
)
@click.option("--bottom", is_flag=True, help="Land the oldest commit of the chain instead of HEAD.")
@click.pass_context
@stack_errors
def land_cmd(ctx, cherry_pick, bottom):
    """Land a commit whose pull request matches it exactly.

    The pull request is merged only after its head is shown to hold the same
    tree as the local commit. Dependents are rebased and re-published.
    """
    config = ctx.obj["config"]
    repo = build_repository(config)
    platform = build_platform(config, repo)
    run_land(repo, platform, config, cherry_pick=cherry_pick, bottom=bottom)
