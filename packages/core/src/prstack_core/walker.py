"""The local chain of commits between trunk and HEAD."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from prstack_core.errors import DirtyWorkingTree, NotLinearHistory, RebaseFailed
from prstack_core.message import CommitMetadata, format_message, parse_message
from prstack_core.ports.base import RepositoryPort, ReviewPlatformPort
from prstack_core.ports.models import CommitInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalCommit:
    """One position in the chain.

    Never mutated: rewriting a commit produces a new LocalCommit that takes
    the old one's place in the list.
    """

    info: CommitInfo
    metadata: CommitMetadata
    request_number: int | None = None

    @property
    def oid(self) -> str:
        return self.info.oid

    @property
    def parent_oid(self) -> str:
        return self.info.parents[0]

    @property
    def tree(self) -> str:
        return self.info.tree

    @property
    def short_id(self) -> str:
        return self.info.short_id

    @property
    def title(self) -> str:
        return self.metadata.title


class HistoryWalker:
    def __init__(self, repo: RepositoryPort, platform: ReviewPlatformPort, trunk_tracking_ref: str):
        self.repo = repo
        self.platform = platform
        self.trunk_tracking_ref = trunk_tracking_ref

    def walk(self, require_clean: bool = True) -> list[LocalCommit]:
        """Commits on top of trunk, oldest first.

        Raises DirtyWorkingTree (when *require_clean*) or NotLinearHistory.
        """
        if require_clean and not self.repo.is_working_tree_clean():
            raise DirtyWorkingTree()
        head = self.repo.resolve_ref("HEAD")
        oids = self.repo.list_commits(head, exclude=self.trunk_tracking_ref)
        logger.debug("%d commit(s) between %s and HEAD", len(oids), self.trunk_tracking_ref)
        return [self.prepare(oid) for oid in oids]

    def prepare(self, oid: str) -> LocalCommit:
        info = self.repo.read_commit(oid)
        if len(info.parents) != 1:
            raise NotLinearHistory(oid, len(info.parents))
        return self._local_commit(info, parse_message(info.message))

    def _local_commit(self, info: CommitInfo, metadata: CommitMetadata) -> LocalCommit:
        number = None
        if metadata.review_request_ref:
            number = self.platform.parse_request_field(metadata.review_request_ref)
            if number is not None:
                metadata = replace(metadata, review_request_ref=self.platform.request_url(number))
            else:
                logger.warning(
                    "Ignoring unrecognised Pull Request field %r on %s", metadata.review_request_ref, info.short_id
                )
        return LocalCommit(info=info, metadata=metadata, request_number=number)

    def with_metadata(self, commit: LocalCommit, metadata: CommitMetadata) -> LocalCommit:
        """A copy of *commit* carrying new metadata, still pointing at the old commit object."""
        return self._local_commit(commit.info, metadata)

    # ------------------------------------------------------------------
    # History rewriting
    # ------------------------------------------------------------------

    def rewrite_messages(self, chain: list[LocalCommit]) -> list[LocalCommit]:
        """Give every commit in *chain* its canonical message and move HEAD.

        *chain* must end at HEAD. Commits before the first changed message are
        kept as they are.
        """
        result: list[LocalCommit] = []
        parent: str | None = None
        for commit in chain:
            message = format_message(commit.metadata)
            if parent is None and message == commit.info.message:
                result.append(commit)
                continue
            if parent is None:
                parent = commit.parent_oid
            oid = self.repo.create_commit(
                commit.tree, [parent], message, author=commit.info.author, committer=commit.info.committer
            )
            result.append(self._rewritten(commit, oid, parent, message))
            parent = oid

        if parent is not None:
            self.repo.update_ref("HEAD", result[-1].oid, expected_old=chain[-1].oid)
            logger.debug("Rewrote commit messages; HEAD is now %s", result[-1].short_id)
        return result

    def rebase(self, chain: list[LocalCommit], onto: str) -> list[LocalCommit]:
        """Replay *chain* on top of *onto*, dropping commits that become empty.

        HEAD is reset to the new tip. Raises RebaseFailed on conflicts, leaving
        HEAD untouched.
        """
        result: list[LocalCommit] = []
        parent = onto
        parent_tree = self.repo.read_commit(onto).tree
        for commit in chain:
            outcome = self.repo.cherry_pick(commit.oid, parent)
            if not outcome.clean:
                raise RebaseFailed(
                    f"commit {commit.short_id} ('{commit.title}') conflicts with {onto[:8]} "
                    f"in {', '.join(outcome.conflicts)}; rebase manually"
                )
            if outcome.tree == parent_tree:
                logger.debug("Dropping %s: no changes left after rebase", commit.short_id)
                continue
            oid = self.repo.create_commit(
                outcome.tree, [parent], commit.info.message, author=commit.info.author, committer=commit.info.committer
            )
            result.append(self._rewritten(commit, oid, parent, commit.info.message, tree=outcome.tree))
            parent, parent_tree = oid, outcome.tree

        self.repo.reset_head(parent)
        return result

    @staticmethod
    def _rewritten(commit: LocalCommit, oid: str, parent: str, message: str, tree: str | None = None) -> LocalCommit:
        info = replace(commit.info, oid=oid, parents=(parent,), message=message, tree=tree or commit.tree)
        return replace(commit, info=info)
