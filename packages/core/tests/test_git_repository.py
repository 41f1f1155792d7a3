"""Tests for the git command adapter (subprocess is mocked)."""

import subprocess
from datetime import datetime, timezone

import pytest

from prstack_core.errors import GitCommandError, PushRejected
from prstack_core.git.repository import GitRepository
from prstack_core.ports.models import FileChange, PushSpec, Signature

OID = "a" * 40
TREE = "b" * 40
PARENT = "c" * 40


def _completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def run(mocker):
    return mocker.patch("prstack_core.git.repository.subprocess.run", return_value=_completed())


def _args(run, call=-1):
    return run.call_args_list[call].args[0]


class TestRun:
    def test_prefixes_git_and_uses_path(self, run):
        GitRepository(path="/work").resolve_ref("HEAD")
        assert _args(run)[:2] == ["git", "--no-pager"]
        assert run.call_args.kwargs["cwd"] == "/work"

    def test_failure_raises(self, run):
        run.return_value = _completed(returncode=128, stderr="fatal: bad revision\n")
        with pytest.raises(GitCommandError) as exc_info:
            GitRepository().resolve_ref("nope")
        assert exc_info.value.returncode == 128
        assert exc_info.value.stderr == "fatal: bad revision"

    def test_remote_url_missing(self, run):
        run.return_value = _completed(returncode=2)
        assert GitRepository().remote_url() is None


class TestReading:
    def test_clean_working_tree(self, run):
        assert GitRepository().is_working_tree_clean() is True
        assert "--untracked-files=no" in _args(run)

    def test_dirty_working_tree(self, run):
        run.return_value = _completed(" M setup.py\n")
        assert GitRepository().is_working_tree_clean() is False

    def test_read_commit(self, run):
        run.return_value = _completed(
            "\x00".join(
                [
                    OID,
                    TREE,
                    PARENT,
                    "Ada",
                    "ada@example.com",
                    "2024-05-01T12:00:00+00:00",
                    "Bob",
                    "bob@example.com",
                    "2024-05-02T12:00:00+00:00",
                    "Add a\n\nTest Plan: x\n\n",
                ]
            )
        )
        info = GitRepository().read_commit(OID)
        assert info.oid == OID
        assert info.tree == TREE
        assert info.parents == (PARENT,)
        assert info.message == "Add a\n\nTest Plan: x\n"
        assert info.author == Signature("Ada", "ada@example.com", datetime(2024, 5, 1, 12, tzinfo=timezone.utc))
        assert info.committer.name == "Bob"

    def test_read_root_commit(self, run):
        run.return_value = _completed("\x00".join([OID, TREE, "", "A", "a@x", "", "A", "a@x", "", "Init\n"]))
        info = GitRepository().read_commit(OID)
        assert info.parents == ()
        assert info.author.timestamp is None

    def test_list_commits_excludes_trunk(self, run):
        run.return_value = _completed(f"{PARENT}\n{OID}\n")
        assert GitRepository().list_commits("HEAD", exclude="refs/remotes/origin/main") == [PARENT, OID]
        assert _args(run)[-2:] == ["HEAD", "^refs/remotes/origin/main"]

    def test_merge_base_unrelated(self, run):
        run.return_value = _completed(returncode=1)
        assert GitRepository().merge_base(OID, PARENT) is None

    def test_is_ancestor(self, run):
        assert GitRepository().is_ancestor(PARENT, OID) is True
        run.return_value = _completed(returncode=1)
        assert GitRepository().is_ancestor(OID, PARENT) is False

    def test_is_ancestor_error(self, run):
        run.return_value = _completed(returncode=128, stderr="fatal")
        with pytest.raises(GitCommandError):
            GitRepository().is_ancestor(OID, PARENT)

    def test_diff_tree(self, run):
        run.return_value = _completed("M\x00README\x00A\x00src/new.py\x00")
        delta = GitRepository().diff_tree(TREE, "d" * 40)
        assert delta.changes == [FileChange("M", "README"), FileChange("A", "src/new.py")]
        assert delta.paths == ["README", "src/new.py"]


class TestMergeTrees:
    def test_clean_merge(self, run):
        run.side_effect = [_completed("git version 2.43.0\n"), _completed(f"{TREE}\x00")]
        outcome = GitRepository().merge_trees(OID, PARENT, base="e" * 40)
        assert outcome.clean
        assert outcome.tree == TREE
        assert f"--merge-base={'e' * 40}" in _args(run)

    def test_conflicted_merge(self, run):
        run.side_effect = [
            _completed("git version 2.43.0\n"),
            _completed(f"{TREE}\x00README\x00src/a.py\x00README\x00", returncode=1),
        ]
        outcome = GitRepository().merge_trees(OID, PARENT)
        assert not outcome.clean
        assert outcome.conflicts == ("README", "src/a.py")

    def test_merge_error(self, run):
        run.side_effect = [_completed("git version 2.43.0\n"), _completed(returncode=128, stderr="fatal: bad object")]
        with pytest.raises(GitCommandError):
            GitRepository().merge_trees(OID, PARENT)

    def test_version_read_once(self, run):
        run.side_effect = [
            _completed("git version 2.40.1\n"),
            _completed(f"{TREE}\x00"),
            _completed(f"{TREE}\x00"),
        ]
        repo = GitRepository()
        repo.merge_trees(OID, PARENT)
        repo.merge_trees(OID, PARENT)
        assert [_args(run, i)[2] for i in range(3)] == ["version", "merge-tree", "merge-tree"]
        assert repo.git_version() == (2, 40)

    @pytest.mark.parametrize("banner", ["git version 2.39.5\n", "git version 2.38.1 (Apple Git-140)\n"])
    def test_old_git_rejected_before_merging(self, run, banner):
        run.return_value = _completed(banner)
        with pytest.raises(GitCommandError, match="need git 2.40 or newer"):
            GitRepository().merge_trees(OID, PARENT, base="e" * 40)
        assert run.call_count == 1

    def test_windows_version_string(self, run):
        run.return_value = _completed("git version 2.45.2.windows.1\n")
        assert GitRepository().git_version() == (2, 45)

    def test_unrecognised_version_string(self, run):
        run.return_value = _completed("not git\n")
        with pytest.raises(GitCommandError, match="unrecognised"):
            GitRepository().git_version()


class TestWriting:
    def test_create_commit(self, run):
        run.return_value = _completed(f"{OID}\n")
        author = Signature("Ada", "ada@example.com", datetime(2024, 5, 1, 12, tzinfo=timezone.utc))
        oid = GitRepository().create_commit(TREE, [PARENT], "Add a", author=author, committer=author)

        assert oid == OID
        assert _args(run)[2:] == ["commit-tree", TREE, "-p", PARENT, "-F", "-"]
        assert run.call_args.kwargs["input"] == "Add a\n"
        env = run.call_args.kwargs["env"]
        assert env["GIT_AUTHOR_NAME"] == "Ada"
        assert env["GIT_COMMITTER_DATE"] == "2024-05-01T12:00:00+00:00"

    def test_create_commit_without_signatures_inherits_environment(self, run):
        run.return_value = _completed(f"{OID}\n")
        GitRepository().create_commit(TREE, [], "Root\n")
        assert run.call_args.kwargs["env"] is None

    def test_update_ref_with_expected_old(self, run):
        GitRepository().update_ref("HEAD", OID, expected_old=PARENT)
        assert _args(run)[2:] == ["update-ref", "-m", "prstack", "HEAD", OID, PARENT]


class TestRemote:
    def test_fetch_skips_known_commits(self, run):
        GitRepository().fetch([OID])
        # Only ``cat-file -e`` ran.
        assert run.call_count == 1
        assert _args(run)[2] == "cat-file"

    def test_fetch_refs_and_missing_commits(self, run):
        run.side_effect = [_completed(returncode=1), _completed()]
        GitRepository(remote="upstream").fetch(["refs/heads/main", OID])
        assert _args(run)[2:] == ["fetch", "--no-write-fetch-head", "--", "upstream", "refs/heads/main", OID]

    def test_push_is_atomic(self, run):
        GitRepository().push([PushSpec("refs/heads/a", OID), PushSpec("refs/heads/b", None)])
        assert _args(run)[2:] == ["push", "--atomic", "--no-verify", "--", "origin", f"{OID}:refs/heads/a", ":refs/heads/b"]

    def test_force_push(self, run):
        GitRepository().push([PushSpec("refs/heads/a", OID)], force=True)
        assert "--force" in _args(run)

    def test_push_nothing(self, run):
        GitRepository().push([])
        run.assert_not_called()

    def test_rejected_push(self, run):
        run.return_value = _completed(returncode=1, stderr=" ! [rejected]        a -> a (non-fast-forward)")
        with pytest.raises(PushRejected) as exc_info:
            GitRepository().push([PushSpec("refs/heads/a", OID)])
        assert exc_info.value.refs == ["refs/heads/a"]

    def test_other_push_failure(self, run):
        run.return_value = _completed(returncode=128, stderr="fatal: could not read from remote repository")
        with pytest.raises(GitCommandError) as exc_info:
            GitRepository().push([PushSpec("refs/heads/a", OID)])
        assert not isinstance(exc_info.value, PushRejected)
