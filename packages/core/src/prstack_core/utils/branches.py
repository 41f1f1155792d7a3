"""Branch and ref name helpers."""

from __future__ import annotations

import re
import unicodedata

_DASHES_RE = re.compile(r"-{2,}")


def slugify(text: str) -> str:
    """Turn a commit title into something usable as a branch name.

    "Fix the Überflow bug (#12)" -> "fix-the-uberflow-bug-12"
    """
    chars = []
    for ch in unicodedata.normalize("NFD", text):
        if ch.isspace():
            chars.append("-")
        elif ch.isascii() and (ch.isalnum() or ch in "-_"):
            chars.append(ch.lower())
    return _DASHES_RE.sub("-", "".join(chars))


def normalise_ref(name: str) -> str:
    """Expand a bare branch name to its ``refs/heads/`` form."""
    if name.startswith("refs/"):
        return name
    return f"refs/heads/{name}"


def branch_name_from_ref(ref: str) -> str:
    """Inverse of :func:`normalise_ref`.

    Raises ValueError for refs that are not local branches (tags, remotes).
    """
    if ref.startswith("refs/heads/"):
        return ref[len("refs/heads/") :]
    if ref.startswith("refs/"):
        raise ValueError(f"ref {ref!r} is not a branch")
    return ref


def remote_tracking_ref(remote: str, branch: str) -> str:
    return f"refs/remotes/{remote}/{branch_name_from_ref(branch)}"


def find_unused_branch_name(existing_refs: set[str], remote: str, prefix: str, slug: str) -> str:
    """Return ``prefix + slug``, appending ``-N`` until no remote branch has that name."""
    slug = slug or "commit"
    name = f"{prefix}{slug}"
    suffix = 1
    while remote_tracking_ref(remote, name) in existing_refs:
        suffix += 1
        name = f"{prefix}{slug}-{suffix}"
    return name


def new_branch_name(config: dict, existing_refs: set[str], title: str) -> str:
    return find_unused_branch_name(existing_refs, config["remote"], config["branch_prefix"], slugify(title))


def new_base_branch_name(config: dict, existing_refs: set[str], title: str) -> str:
    slug = f"{config['trunk']}.{slugify(title) or 'commit'}"
    return find_unused_branch_name(existing_refs, config["remote"], config["branch_prefix"], slug)
