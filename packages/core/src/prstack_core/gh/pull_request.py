from __future__ import annotations

from prstack_core.ports.models import ApprovalState

_DECISIVE_STATES = {"APPROVED", "CHANGES_REQUESTED", "DISMISSED"}


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def get_pull_requests(repo, state: str = "open"):
    return repo.get_pulls(state=state)


def get_requested_reviewers(pr) -> set[str]:
    """Logins and ``#team`` slugs with an outstanding review request."""
    users, teams = pr.get_review_requests()
    return {u.login for u in users} | {f"#{t.slug}" for t in teams}


def get_approval_state(pr) -> ApprovalState:
    """Reduce a PR's review history to each reviewer's latest decision.

    Comment-only reviews do not change a reviewer's decision; a dismissed
    review clears it.
    """
    latest: dict[str, str] = {}
    for review in pr.get_reviews():
        if review.user is None or review.state not in _DECISIVE_STATES:
            continue
        latest[review.user.login] = review.state

    return ApprovalState(
        approvers={login for login, state in latest.items() if state == "APPROVED"},
        rejecters={login for login, state in latest.items() if state == "CHANGES_REQUESTED"},
        pending=get_requested_reviewers(pr),
    )
