"""Tests for the stack operations behind status, amend, format, close, patch and list."""

import pytest

from fakes import message
from prstack_core.errors import DirtyWorkingTree, RequestClosed, StackError, TestPlanMissing
from prstack_core.ports.models import RequestState
from prstack_core.stack import (
    list_requests,
    remote_metadata,
    run_amend,
    run_close,
    run_diff,
    run_format,
    run_patch,
    run_status,
)
from prstack_core.tracker import CommitState

URL1 = "https://github.com/acme/widgets/pull/1"


@pytest.fixture
def diff(repo, platform, config, clock):
    def _diff(**kwargs):
        return run_diff(repo, platform, config, now=clock, **kwargs)

    return _diff


def _head_message(repo):
    return repo.read_commit(repo.resolve_ref("HEAD")).message


class TestDiff:
    def test_nothing_to_do(self, repo, platform, diff):
        assert diff() == []
        assert platform.calls == []

    def test_dirty_working_tree(self, repo, diff):
        repo.commit_on_head({"a.txt": "a\n"}, message("Add a"))
        repo.dirty = True
        with pytest.raises(DirtyWorkingTree):
            diff()


class TestStatus:
    def test_states(self, repo, platform, config, diff):
        repo.commit_on_head({"a.txt": "a\n"}, message("Add a"))
        repo.commit_on_head({"b.txt": "b\n"}, message("Add b"))
        diff(all_commits=True)
        repo.commit_on_head({"c.txt": "c\n"}, message("Add c"))

        tracked = run_status(repo, platform, config)

        assert [t.state for t in tracked] == [
            CommitState.READY_TO_LAND,
            CommitState.CREATED,
            CommitState.UNTRACKED,
        ]

    def test_dirty_tree_allowed(self, repo, platform, config):
        repo.commit_on_head({"a.txt": "a\n"}, message("Add a"))
        repo.dirty = True
        (tracked,) = run_status(repo, platform, config)
        assert tracked.state is CommitState.UNTRACKED

    def test_empty(self, repo, platform, config):
        assert run_status(repo, platform, config) == []


class TestAmend:
    def test_pulls_remote_message(self, repo, platform, config, diff):
        repo.commit_on_head({"a.txt": "a\n"}, message("Add a"))
        diff()
        platform.requests[1].title = "Add the a file"
        platform.requests[1].body = "Because.\n\nTest Plan: clicked around"
        tree = repo.read_commit(repo.resolve_ref("HEAD")).tree

        run_amend(repo, platform, config)

        assert _head_message(repo) == f"Add the a file\n\nBecause.\n\nTest Plan: clicked around\n\nPull Request: {URL1}\n"
        assert repo.read_commit(repo.resolve_ref("HEAD")).tree == tree

    def test_reviewers_and_approvals(self, repo, platform, config, diff):
        repo.commit_on_head({"a.txt": "a\n"}, message("Add a", reviewers="alice"))
        diff()
        platform.approve(1, "alice")
        platform.add_reviewers(1, {"bob"})

        run_amend(repo, platform, config)

        assert _head_message(repo) == message(
            "Add a", reviewers="alice, bob", reviewed_by="alice", pull_request=URL1
        )

    def test_remote_without_test_plan(self, repo, platform, config, diff):
        repo.commit_on_head({"a.txt": "a\n"}, message("Add a"))
        diff()
        platform.requests[1].body = "Nothing here"
        with pytest.raises(TestPlanMissing):
            run_amend(repo, platform, config)
        # The message is still taken over so it can be fixed locally.
        assert _head_message(repo) == f"Add a\n\nNothing here\n\nPull Request: {URL1}\n"

    def test_untracked_commits_are_kept(self, repo, platform, config):
        head = repo.commit_on_head({"a.txt": "a\n"}, message("Add a"))
        run_amend(repo, platform, config)
        assert repo.resolve_ref("HEAD") == head


class TestFormat:
    def test_canonicalises(self, repo, platform, config):
        repo.commit_on_head({"a.txt": "a\n"}, "Add a\n\n\ntest plan:   ran it  \nreviewers: bob,alice\n")
        run_format(repo, platform, config)
        assert _head_message(repo) == message("Add a", test_plan="ran it", reviewers="alice, bob")

    def test_reports_invalid_messages(self, repo, platform, config):
        repo.commit_on_head({"a.txt": "a\n"}, "Add a\n")
        with pytest.raises(TestPlanMissing):
            run_format(repo, platform, config)


class TestClose:
    def test_closes_and_unlinks(self, repo, platform, config, diff):
        repo.commit_on_head({"a.txt": "a\n"}, message("Add a"))
        diff()
        head_ref = platform.requests[1].head_ref

        assert run_close(repo, platform, config) == [1]

        assert platform.requests[1].state is RequestState.CLOSED
        assert head_ref not in repo.remote_refs
        assert _head_message(repo) == message("Add a")

    def test_stacked_request_deletes_synthetic_base(self, repo, platform, config, diff):
        repo.commit_on_head({"a.txt": "a\n"}, message("Add a"))
        repo.commit_on_head({"b.txt": "b\n"}, message("Add b"))
        diff(all_commits=True)

        assert run_close(repo, platform, config) == [2]

        assert "refs/heads/prstack/main.add-b" not in repo.remote_refs
        assert platform.requests[1].state is RequestState.OPEN

    def test_already_closed(self, repo, platform, config, diff):
        repo.commit_on_head({"a.txt": "a\n"}, message("Add a"))
        diff()
        platform.close_out_of_band(1)
        with pytest.raises(RequestClosed):
            run_close(repo, platform, config)


class TestPatch:
    def test_creates_branch(self, repo, platform, config, diff):
        repo.commit_on_head({"a.txt": "a\n"}, message("Add a"))
        diff()

        name = run_patch(repo, platform, config, 1, checkout=False)

        assert name == "PR-1"
        commit = repo.read_commit(repo.refs["refs/heads/PR-1"])
        assert repo.files(commit.oid) == {"README": "hello\n", "a.txt": "a\n"}
        assert commit.message == message("Add a", pull_request=URL1)

    def test_name_collision(self, repo, platform, config, diff):
        repo.commit_on_head({"a.txt": "a\n"}, message("Add a"))
        diff()
        run_patch(repo, platform, config, 1, checkout=False)
        assert run_patch(repo, platform, config, 1, checkout=False) == "PR-1-2"

    def test_explicit_name_taken(self, repo, platform, config, diff):
        repo.commit_on_head({"a.txt": "a\n"}, message("Add a"))
        diff()
        with pytest.raises(StackError):
            run_patch(repo, platform, config, 1, branch_name="main", checkout=False)

    def test_stacked_request_gets_base_commit(self, repo, platform, config, diff):
        repo.commit_on_head({"a.txt": "a\n"}, message("Add a"))
        repo.commit_on_head({"b.txt": "b\n"}, message("Add b"))
        diff(all_commits=True)

        run_patch(repo, platform, config, 2, checkout=False)

        commit = repo.read_commit(repo.refs["refs/heads/PR-2"])
        base = repo.read_commit(commit.parents[0])
        assert repo.files(base.oid) == {"README": "hello\n", "a.txt": "a\n"}
        assert repo.files(commit.oid) == {"README": "hello\n", "a.txt": "a\n", "b.txt": "b\n"}

    def test_checkout(self, repo, platform, config, diff):
        repo.commit_on_head({"a.txt": "a\n"}, message("Add a"))
        diff()
        run_patch(repo, platform, config, 1)
        assert repo.head_ref == "refs/heads/PR-1"

    def test_missing_request(self, repo, platform, config):
        with pytest.raises(RequestClosed):
            run_patch(repo, platform, config, 42)


class TestList:
    def test_open_requests_sorted(self, repo, platform, diff):
        repo.commit_on_head({"a.txt": "a\n"}, message("Add a"))
        repo.commit_on_head({"b.txt": "b\n"}, message("Add b"))
        diff(all_commits=True)
        platform.close_out_of_band(1)
        assert [r.number for r in list_requests(platform)] == [2]

    def test_remote_metadata(self, repo, platform, diff):
        repo.commit_on_head({"a.txt": "a\n"}, message("Add a"))
        diff()
        metadata = remote_metadata(platform.get_request(1))
        assert metadata.title == "Add a"
        assert metadata.test_plan == "ran the unit tests"
        assert metadata.review_request_ref == URL1
