"""CLI entry point for prstack.

Commands:
  diff    - create or update one pull request per local commit
  land    - squash-merge a reviewed commit into trunk
  status  - show how each local commit relates to its pull request
  amend   - copy titles, descriptions and reviewers from GitHub into commits
  format  - rewrite commit messages into the canonical layout
  close   - close pull requests and unlink them from their commits
  patch   - check out a pull request as a local branch
  list    - list your open pull requests
  init    - write a .prstack.yml for this repository
"""

from __future__ import annotations

import importlib.metadata
import logging
import os

import click
from rich.console import Console
from rich.logging import RichHandler

from prstack_cli.commands.amend import amend_cmd
from prstack_cli.commands.close import close_cmd
from prstack_cli.commands.diff import diff_cmd
from prstack_cli.commands.format import format_cmd
from prstack_cli.commands.init import init_cmd
from prstack_cli.commands.land import land_cmd
from prstack_cli.commands.list import list_cmd
from prstack_cli.commands.patch import patch_cmd
from prstack_cli.commands.status import status_cmd

console = Console()


def _setup_logging(verbose: bool) -> None:
    handler = RichHandler(console=Console(stderr=True), show_path=False, show_time=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    for name in ("prstack_core", "prstack_cli"):
        package_logger = logging.getLogger(name)
        package_logger.setLevel(logging.DEBUG)
        package_logger.handlers = [handler]


@click.group()
@click.version_option(
    version=importlib.metadata.version("prstack"),
    prog_name="prstack",
)
@click.option(
    "--config",
    "config_path",
    default=".prstack.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRSTACK_CONFIG",
)
@click.option(
    "--cd",
    "directory",
    default=None,
    type=click.Path(exists=True, file_okay=False),
    help="Run as if prstack was started in this directory.",
)
@click.option("--verbose", "-v", is_flag=True, help="Log every git command and GitHub call.")
@click.pass_context
def main(ctx: click.Context, config_path: str, directory: str | None, verbose: bool):
    """Stacked pull requests on GitHub: one commit, one pull request."""
    from prstack_core.config import load_config
    from prstack_cli.auth import resolve_github_token

    if directory:
        os.chdir(directory)
    _setup_logging(verbose)

    ctx.ensure_object(dict)
    config = load_config(config_path)

    token = resolve_github_token()
    if token:
        config["github_token"] = token

    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path


main.add_command(diff_cmd)
main.add_command(land_cmd)
main.add_command(status_cmd)
main.add_command(amend_cmd)
main.add_command(format_cmd)
main.add_command(close_cmd)
main.add_command(patch_cmd)
main.add_command(list_cmd)
main.add_command(init_cmd)
