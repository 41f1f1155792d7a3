"""RepositoryPort implementation over the ``git`` executable.

Every operation maps to a plumbing command, so nothing here touches the
working tree except ``reset_head`` and ``checkout``. Tree merges go through
``git merge-tree --write-tree --merge-base`` (git >= 2.40).
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from datetime import datetime

from prstack_core.errors import GitCommandError, PushRejected
from prstack_core.ports.base import RepositoryPort
from prstack_core.ports.models import CommitInfo, FileChange, MergeOutcome, PushSpec, Signature, TreeDelta

logger = logging.getLogger(__name__)

_COMMIT_FORMAT = "%H%x00%T%x00%P%x00%an%x00%ae%x00%aI%x00%cn%x00%ce%x00%cI%x00%B"
_REJECTION_MARKERS = ("[rejected]", "[remote rejected]", "non-fast-forward", "stale info", "fetch first")
_VERSION_RE = re.compile(r"(\d+)\.(\d+)")
MIN_GIT_VERSION = (2, 40)


def _parse_timestamp(value: str) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _signature_env(prefix: str, signature: Signature | None) -> dict[str, str]:
    if signature is None:
        return {}
    env = {f"GIT_{prefix}_NAME": signature.name, f"GIT_{prefix}_EMAIL": signature.email}
    if signature.timestamp is not None:
        env[f"GIT_{prefix}_DATE"] = signature.timestamp.isoformat()
    return env


class GitRepository(RepositoryPort):
    def __init__(self, path: str | None = None, remote: str = "origin"):
        self.path = path
        self.remote = remote
        self._version: tuple[int, int] | None = None

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _run(
        self,
        args: list[str],
        *,
        stdin: str | None = None,
        env: dict[str, str] | None = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        cmd = ["git", "--no-pager", *args]
        logger.debug("Running %s", " ".join(cmd))
        result = subprocess.run(
            cmd,
            cwd=self.path,
            input=stdin,
            capture_output=True,
            text=True,
            errors="replace",
            env={**os.environ, **env} if env else None,
        )
        if check and result.returncode != 0:
            raise GitCommandError(cmd, result.returncode, result.stderr.strip())
        return result

    def _output(self, args: list[str]) -> str:
        return self._run(args).stdout.strip()

    def remote_url(self) -> str | None:
        result = self._run(["remote", "get-url", self.remote], check=False)
        return result.stdout.strip() if result.returncode == 0 else None

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def is_working_tree_clean(self) -> bool:
        return not self._output(["status", "--porcelain=v1", "--untracked-files=no"])

    def resolve_ref(self, ref: str) -> str:
        return self._output(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"])

    def read_commit(self, oid: str) -> CommitInfo:
        out = self._run(["show", "-s", f"--format={_COMMIT_FORMAT}", oid]).stdout
        fields = out.split("\x00", 9)
        if len(fields) != 10:
            raise GitCommandError(["show", oid], 0, "unexpected output")
        commit, tree, parents, an, ae, ad, cn, ce, cd, message = fields
        if message.endswith("\n"):
            message = message[:-1]
        return CommitInfo(
            oid=commit,
            tree=tree,
            parents=tuple(parents.split()),
            message=message,
            author=Signature(an, ae, _parse_timestamp(ad)),
            committer=Signature(cn, ce, _parse_timestamp(cd)),
        )

    def list_commits(self, head: str, exclude: str) -> list[str]:
        out = self._output(["rev-list", "--reverse", "--topo-order", head, f"^{exclude}"])
        return out.splitlines()

    def merge_base(self, a: str, b: str) -> str | None:
        result = self._run(["merge-base", a, b], check=False)
        if result.returncode == 1:
            return None
        if result.returncode != 0:
            raise GitCommandError(["merge-base", a, b], result.returncode, result.stderr.strip())
        return result.stdout.strip()

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        args = ["merge-base", "--is-ancestor", ancestor, descendant]
        result = self._run(args, check=False)
        if result.returncode not in (0, 1):
            raise GitCommandError(args, result.returncode, result.stderr.strip())
        return result.returncode == 0

    def ref_names(self) -> set[str]:
        return set(self._output(["for-each-ref", "--format=%(refname)"]).splitlines())

    def diff_tree(self, old_tree: str, new_tree: str) -> TreeDelta:
        out = self._run(["diff-tree", "-r", "-z", "--no-renames", "--name-status", old_tree, new_tree]).stdout
        fields = [f for f in out.split("\x00") if f]
        changes = [FileChange(status=fields[i], path=fields[i + 1]) for i in range(0, len(fields) - 1, 2)]
        return TreeDelta(old_tree=old_tree, new_tree=new_tree, changes=changes)

    def has_object(self, oid: str) -> bool:
        return self._run(["cat-file", "-e", f"{oid}^{{commit}}"], check=False).returncode == 0

    # ------------------------------------------------------------------
    # Tree merges
    # ------------------------------------------------------------------

    def git_version(self) -> tuple[int, int]:
        """(major, minor) of the git executable, read once per instance."""
        if self._version is None:
            out = self._output(["version"])
            match = _VERSION_RE.search(out)
            if match is None:
                raise GitCommandError(["git", "version"], 0, f"unrecognised version string {out!r}")
            self._version = (int(match.group(1)), int(match.group(2)))
            logger.debug("Using git %d.%d", *self._version)
        return self._version

    def _require_merge_base_option(self) -> None:
        version = self.git_version()
        if version < MIN_GIT_VERSION:
            needed = ".".join(map(str, MIN_GIT_VERSION))
            found = ".".join(map(str, version))
            raise GitCommandError(
                ["git", "merge-tree", "--merge-base"], 1, f"tree merges need git {needed} or newer; found {found}"
            )

    def merge_trees(self, ours: str, theirs: str, base: str | None = None) -> MergeOutcome:
        self._require_merge_base_option()
        args = ["merge-tree", "--write-tree", "--name-only", "-z", "--no-messages"]
        if base is not None:
            args.append(f"--merge-base={base}")
        args += [ours, theirs]
        result = self._run(args, check=False)
        if result.returncode not in (0, 1):
            raise GitCommandError(args, result.returncode, result.stderr.strip())

        fields = result.stdout.split("\x00")
        tree = fields[0].strip()
        if result.returncode == 0:
            return MergeOutcome(tree=tree)
        conflicts = tuple(sorted({path for path in fields[1:] if path.strip()}))
        logger.debug("merge of %s into %s conflicts in %s", theirs, ours, conflicts)
        return MergeOutcome(tree=None, conflicts=conflicts)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def create_commit(
        self,
        tree: str,
        parents: list[str],
        message: str,
        author: Signature | None = None,
        committer: Signature | None = None,
    ) -> str:
        args = ["commit-tree", tree]
        for parent in parents:
            args += ["-p", parent]
        args += ["-F", "-"]
        env = {**_signature_env("AUTHOR", author), **_signature_env("COMMITTER", committer)}
        if not message.endswith("\n"):
            message += "\n"
        return self._run(args, stdin=message, env=env or None).stdout.strip()

    def update_ref(self, name: str, target: str, expected_old: str | None = None) -> None:
        args = ["update-ref", "-m", "prstack", name, target]
        if expected_old is not None:
            args.append(expected_old)
        self._run(args)

    def reset_head(self, oid: str) -> None:
        self._run(["reset", "--keep", oid])

    def checkout(self, branch: str) -> None:
        self._run(["checkout", branch])

    # ------------------------------------------------------------------
    # Remote
    # ------------------------------------------------------------------

    def fetch(self, refspecs: list[str]) -> None:
        # Commit ids we already have need no round trip.
        wanted = [spec for spec in refspecs if spec.startswith("refs/") or not self.has_object(spec)]
        if not wanted:
            return
        self._run(["fetch", "--no-write-fetch-head", "--", self.remote, *wanted])

    def push(self, specs: list[PushSpec], force: bool = False) -> None:
        if not specs:
            return
        args = ["push", "--atomic", "--no-verify"]
        if force:
            args.append("--force")
        args += ["--", self.remote, *(spec.refspec() for spec in specs)]
        try:
            self._run(args)
        except GitCommandError as exc:
            if any(marker in exc.stderr for marker in _REJECTION_MARKERS):
                raise PushRejected([spec.remote_ref for spec in specs], exc.stderr) from exc
            raise
