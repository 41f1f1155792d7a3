"""Value types exchanged across the repository and review platform ports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class Signature:
    name: str
    email: str
    timestamp: datetime | None = None  # None = let git use the current time


@dataclass(frozen=True)
class CommitInfo:
    """Raw commit data as read from the repository."""

    oid: str
    tree: str
    parents: tuple[str, ...]
    message: str
    author: Signature
    committer: Signature

    @property
    def short_id(self) -> str:
        return self.oid[:8]


@dataclass(frozen=True)
class FileChange:
    status: str  # "A" | "M" | "D" | "T"
    path: str


@dataclass
class TreeDelta:
    """Difference between two trees."""

    old_tree: str
    new_tree: str
    changes: list[FileChange] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.changes

    @property
    def paths(self) -> list[str]:
        return [change.path for change in self.changes]


@dataclass(frozen=True)
class MergeOutcome:
    """Result of a three-way tree merge. ``tree`` is None when it conflicted."""

    tree: str | None
    conflicts: tuple[str, ...] = ()

    @property
    def clean(self) -> bool:
        return self.tree is not None and not self.conflicts


@dataclass(frozen=True)
class PushSpec:
    """One ref update in a push. ``oid=None`` deletes the remote ref."""

    remote_ref: str
    oid: str | None = None

    def refspec(self) -> str:
        return f"{self.oid}:{self.remote_ref}" if self.oid else f":{self.remote_ref}"


class RequestState(Enum):
    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"


class ReviewStatus(Enum):
    REQUESTED = "review required"
    APPROVED = "approved"
    REJECTED = "changes requested"


@dataclass
class ApprovalState:
    approvers: set[str] = field(default_factory=set)
    rejecters: set[str] = field(default_factory=set)
    pending: set[str] = field(default_factory=set)

    @property
    def status(self) -> ReviewStatus | None:
        if self.rejecters:
            return ReviewStatus.REJECTED
        if self.approvers:
            return ReviewStatus.APPROVED
        if self.pending:
            return ReviewStatus.REQUESTED
        return None

    def satisfies(self, required: int) -> bool:
        return not self.rejecters and len(self.approvers) >= required


@dataclass
class ReviewRequest:
    """A pull request as last fetched from the platform."""

    number: int
    state: RequestState
    title: str
    body: str
    base_ref: str
    head_ref: str
    base_oid: str
    head_oid: str
    url: str = ""
    approval: ApprovalState = field(default_factory=ApprovalState)
    merge_commit: str | None = None

    @property
    def is_open(self) -> bool:
        return self.state is RequestState.OPEN

    @property
    def reviewers(self) -> set[str]:
        """Everyone asked for a review or who has already given one."""
        return self.approval.pending | self.approval.approvers | self.approval.rejecters


@dataclass
class RequestUpdate:
    title: str | None = None
    body: str | None = None
    base_ref: str | None = None
    state: RequestState | None = None

    @property
    def is_empty(self) -> bool:
        return self.title is None and self.body is None and self.base_ref is None and self.state is None


@dataclass
class MergeResult:
    merged: bool
    sha: str | None = None
    message: str = ""
