"""diff command - create or update one pull request per local commit."""

from __future__ import annotations

import click

from prstack_cli.runtime import build_platform, build_repository, prompt_update_note, stack_errors
from prstack_core.stack import run_diff


@click.command("diff")
@click.option("--all", "-a", "all_commits", is_flag=True, help="Publish every commit between trunk and HEAD.")
@click.option(
    "--cherry-pick",
    is_flag=True,
    help="Target trunk directly, as if the commit were cherry-picked onto it.",
)
@click.option(
    "--update-message",
    is_flag=True,
    help="Also push local title and description edits to the pull request.",
)
@click.option(
    "--message",
    "-m",
    "update_note",
    default=None,
    help="Message of the update commit. Prompted for when a pull request needs one.",
)
@click.option(
    "--draft/--no-draft",
    default=None,
    help="Open new pull requests as drafts. Defaults to the 'draft' config key.",
)
@click.pass_context
@stack_errors
def diff_cmd(ctx, all_commits, cherry_pick, update_message, update_note, draft):
    """Create or update the pull request of HEAD (or of every commit with --all).

    \b
    Examples:
      prstack diff
      prstack diff --all -m "Address review comments"
      prstack diff --update-message
    """
    config = ctx.obj["config"]
    repo = build_repository(config)
    platform = build_platform(config, repo)

    run_diff(
        repo,
        platform,
        config,
        all_commits=all_commits,
        cherry_pick=cherry_pick,
        update_message=update_message,
        update_note=update_note,
        draft=draft,
        prompt=prompt_update_note,
    )
