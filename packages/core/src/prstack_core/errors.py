"""Typed failures raised by the stack engine.

Three categories mirror when a failure can happen:

- precondition: detected from local state before anything is mutated
- consistency: detected after read-only queries, before any irreversible step
- policy: a gate on remote review state, nothing is attempted

Every error carries a distinct ``exit_code`` so the CLI can report the
category to scripts without parsing messages.
"""

from __future__ import annotations


class StackError(Exception):
    """Base class for all engine failures."""

    category = "error"
    exit_code = 1


class GitCommandError(StackError):
    """A git invocation exited with an unexpected status."""

    def __init__(self, command: list[str], returncode: int, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        detail = f": {stderr}" if stderr else ""
        super().__init__(f"'{' '.join(command)}' failed with exit code {returncode}{detail}")


class Aborted(StackError):
    """The user declined to continue."""


# ---------------------------------------------------------------------------
# Precondition errors
# ---------------------------------------------------------------------------


class PreconditionError(StackError):
    category = "precondition"


class DirtyWorkingTree(PreconditionError):
    exit_code = 10

    def __init__(self, message: str = "working tree has uncommitted changes; commit or stash them first"):
        super().__init__(message)


class NotLinearHistory(PreconditionError):
    exit_code = 11

    def __init__(self, oid: str, parent_count: int):
        self.oid = oid
        self.parent_count = parent_count
        super().__init__(
            f"commit {oid[:8]} has {parent_count} parents; only a linear chain of commits on top of trunk is supported"
        )


class TestPlanMissing(PreconditionError):
    __test__ = False
    exit_code = 12

    def __init__(self, title: str):
        self.title = title
        super().__init__(f"commit '{title}' has no 'Test Plan:' section")


class MissingTitle(PreconditionError):
    exit_code = 13

    def __init__(self, oid: str = ""):
        self.oid = oid
        super().__init__(f"commit {oid[:8]} has an empty title" if oid else "commit has an empty title")


class ParentNotOnTrunk(PreconditionError):
    exit_code = 14


class NoReviewRequest(PreconditionError):
    exit_code = 15

    def __init__(self, title: str):
        self.title = title
        super().__init__(f"commit '{title}' has no pull request; run 'prstack diff' first")


# ---------------------------------------------------------------------------
# Consistency errors
# ---------------------------------------------------------------------------


class ConsistencyError(StackError):
    category = "consistency"


class TreeMismatch(ConsistencyError):
    """Merging the pull request would not produce the local commit's tree."""

    exit_code = 20

    def __init__(self, expected_tree: str | None, actual_tree: str | None, message: str | None = None):
        self.expected_tree = expected_tree
        self.actual_tree = actual_tree
        super().__init__(
            message
            or (
                f"merging the pull request yields tree {actual_tree} but the local commit yields {expected_tree}; "
                "rebase onto trunk and run 'prstack diff' before landing"
            )
        )


class PushRejected(ConsistencyError):
    exit_code = 21

    def __init__(self, refs: list[str], detail: str = ""):
        self.refs = refs
        self.detail = detail
        suffix = f": {detail}" if detail else ""
        super().__init__(f"push of {', '.join(refs)} was rejected (moved on the remote?){suffix}")


class CherryPickConflict(ConsistencyError):
    exit_code = 22

    def __init__(self, oid: str, onto: str, paths: list[str] | None = None):
        self.oid = oid
        self.onto = onto
        self.paths = paths or []
        files = f" (conflicts in {', '.join(self.paths)})" if self.paths else ""
        super().__init__(f"commit {oid[:8]} does not apply cleanly onto {onto[:8]}{files}")


class RequestClosed(ConsistencyError):
    exit_code = 23


class MergeFailed(ConsistencyError):
    exit_code = 24


class RebaseFailed(ConsistencyError):
    exit_code = 25


# ---------------------------------------------------------------------------
# Policy errors
# ---------------------------------------------------------------------------


class PolicyError(StackError):
    category = "policy"


class NotApproved(PolicyError):
    exit_code = 30

    def __init__(self, number: int, approvals: int, required: int):
        self.number = number
        self.approvals = approvals
        self.required = required
        super().__init__(f"pull request #{number} has {approvals} of {required} required approvals")


class UnknownReviewer(PolicyError):
    exit_code = 31

    def __init__(self, names: list[str]):
        self.names = names
        super().__init__(f"unknown reviewer(s): {', '.join(names)}")
