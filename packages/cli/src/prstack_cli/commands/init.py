"""init command - write a .prstack.yml for this repository.

Runs once per clone. Anything the wizard does not ask about keeps its
default and can be edited in the file afterwards.
"""

from __future__ import annotations

from pathlib import Path

import click
import yaml
from rich.console import Console

from prstack_core.config import DEFAULT_CONFIG, detect_repository
from prstack_core.git.repository import GitRepository

console = Console()


@click.command("init")
@click.option("--repo", default=None, help="GitHub repository (owner/name). Auto-detected from the git remote.")
@click.pass_context
def init_cmd(ctx, repo: str | None):
    """Create or update the prstack configuration file."""
    config_path = ctx.obj.get("config_path", ".prstack.yml")
    console.print("\n[bold cyan]prstack init[/bold cyan] - repository setup\n")

    remote = click.prompt("Git remote", default=DEFAULT_CONFIG["remote"])

    if repo is None:
        repo = _detect_repo_from_git(remote)
        if repo:
            console.print(f"[dim]Detected repository: {repo}[/dim]")
        else:
            repo = click.prompt("GitHub repository (owner/name)")

    trunk = click.prompt("Trunk branch", default=DEFAULT_CONFIG["trunk"])
    branch_prefix = click.prompt("Prefix for pull request branches", default=DEFAULT_CONFIG["branch_prefix"])
    require_approval = click.confirm("Require an approving review before landing?", default=False)

    config: dict = {
        "github_repository": repo,
        "remote": remote,
        "trunk": trunk,
        "branch_prefix": branch_prefix,
        "require_approval": require_approval,
    }
    if require_approval:
        config["required_approvals"] = click.prompt("Approvals required", type=int, default=1)

    _write_config(config, config_path)
    console.print(f"[green]Wrote {config_path}[/green]")
    console.print("\nPublish the commit at HEAD with: [bold]prstack diff[/bold]")


def _detect_repo_from_git(remote: str) -> str | None:
    """Try to detect the GitHub repo slug from the remote URL."""
    url = GitRepository(remote=remote).remote_url()
    return detect_repository(url) if url else None


def _write_config(config: dict, config_path: str) -> None:
    """Write or update the config file, preserving any existing keys."""
    path = Path(config_path)
    existing: dict = {}
    if path.exists():
        existing = yaml.safe_load(path.read_text()) or {}
    existing.update(config)
    path.write_text(yaml.dump(existing, default_flow_style=False, sort_keys=False))
