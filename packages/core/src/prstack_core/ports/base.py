"""Abstract capabilities the engine is built on.

The engine never shells out to git or talks to GitHub directly. It depends on
these two interfaces so that the real adapters (``GitRepository`` and
``GitHubPlatform``) can be swapped for in-memory fakes in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prstack_core.ports.models import (
        CommitInfo,
        MergeOutcome,
        MergeResult,
        PushSpec,
        RequestUpdate,
        ReviewRequest,
        Signature,
        TreeDelta,
    )


class RepositoryPort(ABC):
    """Version control primitives on the local clone and its remote."""

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @abstractmethod
    def is_working_tree_clean(self) -> bool:
        """True when no tracked file has uncommitted modifications."""

    @abstractmethod
    def resolve_ref(self, ref: str) -> str:
        """Return the commit id *ref* points to. Raises GitCommandError if unknown."""

    @abstractmethod
    def read_commit(self, oid: str) -> CommitInfo:
        """Return tree, parents, message and signatures of *oid*."""

    @abstractmethod
    def list_commits(self, head: str, exclude: str) -> list[str]:
        """Commits reachable from *head* but not from *exclude*, oldest first."""

    @abstractmethod
    def merge_base(self, a: str, b: str) -> str | None:
        """Best common ancestor of two commits, or None if unrelated."""

    @abstractmethod
    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        ...

    @abstractmethod
    def ref_names(self) -> set[str]:
        """All local refs, including remote-tracking ones."""

    @abstractmethod
    def diff_tree(self, old_tree: str, new_tree: str) -> TreeDelta:
        ...

    # ------------------------------------------------------------------
    # Tree merges (no working tree involved)
    # ------------------------------------------------------------------

    @abstractmethod
    def merge_trees(self, ours: str, theirs: str, base: str | None = None) -> MergeOutcome:
        """Three-way merge of two commits.

        *base* defaults to their merge base.
        """

    def cherry_pick(self, commit: str, onto: str) -> MergeOutcome:
        """Apply the changes *commit* introduces on top of *onto*."""
        parent = self.read_commit(commit).parents[0]
        return self.merge_trees(onto, commit, base=parent)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    @abstractmethod
    def create_commit(
        self,
        tree: str,
        parents: list[str],
        message: str,
        author: Signature | None = None,
        committer: Signature | None = None,
    ) -> str:
        """Create a commit object without touching any ref."""

    @abstractmethod
    def update_ref(self, name: str, target: str, expected_old: str | None = None) -> None:
        ...

    @abstractmethod
    def reset_head(self, oid: str) -> None:
        """Point the current branch at *oid* and update the working tree."""

    @abstractmethod
    def checkout(self, branch: str) -> None:
        ...

    # ------------------------------------------------------------------
    # Remote
    # ------------------------------------------------------------------

    @abstractmethod
    def fetch(self, refspecs: list[str]) -> None:
        """Fetch branches (by ref name) or commits (by id) from the remote."""

    @abstractmethod
    def push(self, specs: list[PushSpec], force: bool = False) -> None:
        """Push all *specs* atomically. Raises PushRejected on non-fast-forward."""


class ReviewPlatformPort(ABC):
    """Operations on the code review host."""

    @abstractmethod
    def request_url(self, number: int) -> str:
        ...

    @abstractmethod
    def parse_request_field(self, text: str) -> int | None:
        """Pull request number from a ``Pull Request:`` value, or None if it is not one of ours."""

    @abstractmethod
    def get_request(self, number: int) -> ReviewRequest | None:
        """Return the live request, or None when it does not exist."""

    @abstractmethod
    def create_request(self, head_ref: str, base_ref: str, title: str, body: str, draft: bool = False) -> int:
        ...

    @abstractmethod
    def update_request(self, number: int, update: RequestUpdate) -> None:
        ...

    @abstractmethod
    def merge_request(self, number: int, title: str, message: str, sha: str) -> MergeResult:
        """Squash-merge the request, provided its head is still *sha*."""

    @abstractmethod
    def add_reviewers(self, number: int, reviewers: set[str]) -> None:
        ...

    @abstractmethod
    def eligible_reviewers(self) -> dict[str, str | None]:
        """Users and ``#teams`` that may be asked for review, with a display name."""

    @abstractmethod
    def list_open_requests(self) -> list[ReviewRequest]:
        """Open requests authored by the authenticated user."""
