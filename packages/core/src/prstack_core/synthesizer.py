"""Base context of each pull request.

A pull request for a commit whose parent is already on trunk is opened
against trunk. For a commit stacked on unlanded ancestors that would show the
ancestors' changes too, so it is opened against a synthetic base branch
instead: a branch owned by prstack whose tip has exactly the tree of the
commit's parent and whose history descends from trunk.

Synthetic branches only ever move forward. When the ancestors change, a new
commit with the new parent tree is appended on top of the previous tip, so the
head branch of the pull request can merge it and keep a readable diff.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from prstack_core.config import trunk_ref
from prstack_core.errors import CherryPickConflict
from prstack_core.ports.base import RepositoryPort
from prstack_core.ports.models import PushSpec, ReviewRequest, Signature
from prstack_core.utils.branches import new_base_branch_name, normalise_ref
from prstack_core.walker import LocalCommit

logger = logging.getLogger(__name__)

TRUNK_BASE_MESSAGE = "[prstack] changes to {trunk} this commit is based on\n\n[skip ci]"
REBASE_BASE_MESSAGE = "[prstack] changes introduced through rebase\n\n[skip ci]"


@dataclass(frozen=True)
class RequiredBase:
    """The trees a pull request must show for a commit."""

    head_tree: str
    base_tree: str
    on_trunk: bool  # False: needs a synthetic base branch


@dataclass(frozen=True)
class PublishedState:
    """Where a pull request currently stands on the remote."""

    head_oid: str
    head_tree: str
    base_oid: str  # merge base of the head and the request's base branch
    base_tree: str
    trunk_base: str  # merge base of the head and trunk

    @classmethod
    def unpublished(cls, trunk_base: str, trunk_tree: str) -> PublishedState:
        return cls(trunk_base, trunk_tree, trunk_base, trunk_tree, trunk_base)


@dataclass(frozen=True)
class BasePlan:
    base_ref: str  # what the request should be opened against
    base_parent: str | None = None  # commit the next head commit must merge in
    push: PushSpec | None = None  # synthetic base branch update
    retarget: bool = False  # existing request must change its base
    delete_ref: str | None = None  # synthetic branch to delete after retargeting


class BaseBranchSynthesizer:
    def __init__(self, repo: RepositoryPort, config: dict, now: Callable[[], datetime] | None = None):
        self.repo = repo
        self.config = config
        self.now = now or (lambda: datetime.now(timezone.utc))

    @property
    def trunk_ref(self) -> str:
        return trunk_ref(self.config)

    def is_trunk(self, ref: str | None) -> bool:
        return ref is not None and normalise_ref(ref) == self.trunk_ref

    def required_base(self, commit: LocalCommit, trunk_base: str, cherry_pick: bool = False) -> RequiredBase:
        """Trees a pull request for *commit* has to show.

        Raises CherryPickConflict in cherry-pick mode when the commit does not
        apply onto *trunk_base*.
        """
        trunk_tree = self.repo.read_commit(trunk_base).tree
        if commit.parent_oid == trunk_base:
            return RequiredBase(head_tree=commit.tree, base_tree=trunk_tree, on_trunk=True)

        if cherry_pick:
            outcome = self.repo.cherry_pick(commit.oid, trunk_base)
            if not outcome.clean:
                raise CherryPickConflict(commit.oid, trunk_base, list(outcome.conflicts))
            return RequiredBase(head_tree=outcome.tree, base_tree=trunk_tree, on_trunk=True)

        parent_tree = self.repo.read_commit(commit.parent_oid).tree
        return RequiredBase(head_tree=commit.tree, base_tree=parent_tree, on_trunk=False)

    def published_state(self, request: ReviewRequest, trunk_tip: str) -> PublishedState:
        head = self.repo.read_commit(request.head_oid)
        base_oid = self.repo.merge_base(request.head_oid, request.base_oid) or request.base_oid
        trunk_base = self.repo.merge_base(request.head_oid, trunk_tip) or trunk_tip
        return PublishedState(
            head_oid=head.oid,
            head_tree=head.tree,
            base_oid=base_oid,
            base_tree=self.repo.read_commit(base_oid).tree,
            trunk_base=trunk_base,
        )

    def plan(
        self,
        commit: LocalCommit,
        trunk_base: str,
        required: RequiredBase,
        published: PublishedState,
        request: ReviewRequest | None,
    ) -> BasePlan:
        """Work out the base branch changes needed before pushing a new head commit.

        Creates (but does not push) the synthetic base commit when one is needed.
        """
        needs_trunk_merge = published.trunk_base != trunk_base
        on_synthetic = request is not None and not self.is_trunk(request.base_ref)

        if required.on_trunk:
            return BasePlan(
                base_ref=self.trunk_ref,
                base_parent=trunk_base if needs_trunk_merge else None,
                retarget=on_synthetic,
                delete_ref=request.base_ref if on_synthetic else None,
            )

        if published.base_tree == required.base_tree and not needs_trunk_merge:
            # Already showing the right base. This includes ancestors that add
            # nothing on top of trunk, which need no synthetic branch at all.
            return BasePlan(base_ref=request.base_ref if request is not None else self.trunk_ref)

        if on_synthetic:
            base_ref = request.base_ref
        else:
            base_ref = normalise_ref(new_base_branch_name(self.config, self.repo.ref_names(), commit.title))

        parents = [published.base_oid]
        if needs_trunk_merge and trunk_base not in parents:
            parents.append(trunk_base)
        template = REBASE_BASE_MESSAGE if on_synthetic else TRUNK_BASE_MESSAGE
        author = commit.info.author
        oid = self.repo.create_commit(
            required.base_tree,
            parents,
            template.format(trunk=self.config["trunk"]),
            author=Signature(author.name, author.email, self.now()),
            committer=Signature(author.name, author.email, self.now()),
        )
        logger.debug("Synthesized base commit %s for %s on %s", oid[:8], commit.short_id, base_ref)
        return BasePlan(
            base_ref=base_ref,
            base_parent=oid,
            push=PushSpec(base_ref, oid),
            retarget=request is not None and request.base_ref != base_ref,
        )
