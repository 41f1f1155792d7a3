"""Tests for GitHub pull request helper functions."""

from unittest.mock import MagicMock

from prstack_core.gh.pull_request import get_approval_state, get_pull_requests, get_requested_reviewers


def _user(login):
    u = MagicMock()
    u.login = login
    return u


def _team(slug):
    t = MagicMock()
    t.slug = slug
    return t


def _review(login, state):
    r = MagicMock()
    r.user = _user(login) if login else None
    r.state = state
    return r


def _pr(reviews=(), users=(), teams=()):
    pr = MagicMock()
    pr.get_reviews.return_value = list(reviews)
    pr.get_review_requests.return_value = ([_user(u) for u in users], [_team(t) for t in teams])
    return pr


class TestGetRequestedReviewers:
    def test_users_and_teams(self):
        assert get_requested_reviewers(_pr(users=["alice"], teams=["core"])) == {"alice", "#core"}

    def test_none_requested(self):
        assert get_requested_reviewers(_pr()) == set()


class TestGetApprovalState:
    def test_no_reviews(self):
        state = get_approval_state(_pr(users=["alice"]))
        assert state.approvers == set()
        assert state.pending == {"alice"}

    def test_latest_decision_wins(self):
        pr = _pr(reviews=[_review("alice", "CHANGES_REQUESTED"), _review("alice", "APPROVED")])
        state = get_approval_state(pr)
        assert state.approvers == {"alice"}
        assert state.rejecters == set()

    def test_comment_does_not_override_decision(self):
        pr = _pr(reviews=[_review("alice", "APPROVED"), _review("alice", "COMMENTED")])
        assert get_approval_state(pr).approvers == {"alice"}

    def test_dismissed_review_clears_decision(self):
        pr = _pr(reviews=[_review("alice", "APPROVED"), _review("alice", "DISMISSED")])
        assert get_approval_state(pr).approvers == set()

    def test_rejection_blocks(self):
        pr = _pr(reviews=[_review("alice", "APPROVED"), _review("bob", "CHANGES_REQUESTED")])
        state = get_approval_state(pr)
        assert state.rejecters == {"bob"}
        assert not state.satisfies(1)

    def test_deleted_user_ignored(self):
        pr = _pr(reviews=[_review(None, "APPROVED")])
        assert get_approval_state(pr).approvers == set()


class TestGetPullRequests:
    def test_defaults_to_open(self):
        repo = MagicMock()
        get_pull_requests(repo)
        repo.get_pulls.assert_called_once_with(state="open")
