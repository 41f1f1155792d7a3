import os
import re
from pathlib import Path
from typing import Optional

import yaml

from prstack_core.utils.branches import normalise_ref, remote_tracking_ref

DEFAULT_CONFIG: dict = {
    "github_repository": None,  # "owner/name"; None = detect from the remote URL
    "remote": "origin",
    "trunk": "main",
    "branch_prefix": "prstack/",
    "require_approval": False,
    "required_approvals": 1,
    "require_test_plan": True,
    "draft": False,
    "resync_dependents": True,  # re-publish dependents after landing
}

_NUMBER_RE = re.compile(r"^\s*#?\s*(\d+)\s*$")


def load_config(config_path: str = ".prstack.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prstack.yml in the current directory
      3. CLI argument overrides
    """
    config = dict(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")

    return config


def trunk_ref(config: dict) -> str:
    """The trunk branch as a full ref, e.g. ``refs/heads/main``."""
    return normalise_ref(config["trunk"])


def trunk_tracking_ref(config: dict) -> str:
    """Remote-tracking ref of trunk, e.g. ``refs/remotes/origin/main``."""
    return remote_tracking_ref(config["remote"], config["trunk"])


def parse_repository(slug: str) -> tuple[str, str]:
    """Split "owner/name" into its parts."""
    owner, sep, name = slug.strip().partition("/")
    if not sep or not owner or not name or "/" in name:
        raise ValueError(f"Invalid GitHub repository {slug!r}; expected 'owner/name'.")
    return owner, name


def detect_repository(remote_url: str) -> str | None:
    """Extract "owner/name" from a GitHub remote URL.

    https://github.com/owner/repo.git  ->  owner/repo
    git@github.com:owner/repo.git      ->  owner/repo
    """
    if "github.com" not in remote_url:
        return None
    slug = remote_url.split("github.com")[-1].lstrip("/:").removesuffix(".git").rstrip("/")
    return slug if slug.count("/") == 1 else None


def pull_request_url(owner: str, repo: str, number: int) -> str:
    return f"https://github.com/{owner}/{repo}/pull/{number}"


def parse_pull_request_field(text: str, owner: str, repo: str) -> int | None:
    """Parse a ``Pull Request:`` value.

    Accepts a bare number ("123", "#123") or a URL of a pull request in
    *owner*/*repo*, optionally followed by a path, query or anchor
    (".../pull/123/files").
    """
    if not text:
        return None
    match = _NUMBER_RE.match(text)
    if match:
        return int(match.group(1))

    url_re = re.compile(
        r"^\s*https?://github\.com/{}/{}/pull/(\d+)([/?#].*)?\s*$".format(re.escape(owner), re.escape(repo)),
        re.IGNORECASE,
    )
    match = url_re.match(text)
    if match:
        return int(match.group(1))
    return None
