"""Adapters and error mapping shared by the commands."""

from __future__ import annotations

import functools

import click
from github import GithubException

from prstack_core.config import detect_repository
from prstack_core.errors import StackError
from prstack_core.gh.platform import GitHubPlatform
from prstack_core.git.repository import GitRepository


class StackCommandError(click.ClickException):
    """A StackError reported with its own exit code."""

    def __init__(self, error: StackError):
        super().__init__(str(error))
        self.exit_code = error.exit_code


def stack_errors(func):
    """Turn engine and GitHub failures into clean CLI errors."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except StackError as exc:
            raise StackCommandError(exc) from exc
        except GithubException as exc:
            detail = exc.data.get("message", "") if isinstance(exc.data, dict) else ""
            raise click.ClickException(f"GitHub API error ({exc.status}): {detail or exc}") from exc

    return wrapper


def build_repository(config: dict) -> GitRepository:
    return GitRepository(remote=config["remote"])


def build_platform(config: dict, repo: GitRepository, require_token: bool = True) -> GitHubPlatform:
    slug = config.get("github_repository") or detect_repository(repo.remote_url() or "")
    if not slug:
        raise click.UsageError(
            f"Could not detect the GitHub repository from remote '{config['remote']}'. "
            "Set github_repository in .prstack.yml."
        )
    token = config.get("github_token")
    if require_token and not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )
    return GitHubPlatform(slug, token)


def prompt_update_note(text: str) -> str:
    return click.prompt(text, default="", show_default=False)
