"""Reconcile local commits with their pull requests.

Remote state is never cached between runs: every call re-fetches the pull
request, so edits made through the GitHub UI (or a run that was interrupted
after amending a commit but before pushing) are picked up the next time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from prstack_core.equivalence import compute_equivalence
from prstack_core.errors import CherryPickConflict, TreeMismatch
from prstack_core.message import CommitMetadata, build_request_body
from prstack_core.ports.base import RepositoryPort, ReviewPlatformPort
from prstack_core.ports.models import RequestState, RequestUpdate, ReviewRequest
from prstack_core.synthesizer import BaseBranchSynthesizer
from prstack_core.walker import LocalCommit

logger = logging.getLogger(__name__)


class CommitState(Enum):
    UNTRACKED = "untracked"
    CREATED = "created"
    NEEDS_UPDATE = "needs update"
    READY_TO_LAND = "ready to land"
    LANDED = "landed"


class DriftKind(Enum):
    MESSAGE = "message"  # title/description edited on one side only
    CLOSED = "closed"  # request closed or deleted out-of-band
    BASE = "base"  # request base no longer matches the commit's ancestors


@dataclass(frozen=True)
class Drift:
    kind: DriftKind
    detail: str
    local: str = ""
    remote: str = ""


@dataclass
class TrackedCommit:
    commit: LocalCommit
    state: CommitState
    request: ReviewRequest | None = None
    drifts: list[Drift] = field(default_factory=list)
    published_head_tree: str | None = None
    published_base_tree: str | None = None

    def drift(self, kind: DriftKind) -> Drift | None:
        return next((d for d in self.drifts if d.kind is kind), None)


def request_message_update(request: ReviewRequest, metadata: CommitMetadata) -> RequestUpdate:
    """Title/body changes needed to make *request* match *metadata*."""
    update = RequestUpdate()
    if request.title != metadata.title:
        update.title = metadata.title
    body = build_request_body(metadata)
    if request.body.strip() != body.strip():
        update.body = body
    return update


class CorrespondenceTracker:
    def __init__(
        self,
        repo: RepositoryPort,
        platform: ReviewPlatformPort,
        synthesizer: BaseBranchSynthesizer,
        config: dict,
    ):
        self.repo = repo
        self.platform = platform
        self.synthesizer = synthesizer
        self.config = config

    def track(
        self,
        chain: list[LocalCommit],
        trunk_base: str,
        cherry_pick: bool = False,
        trunk_tip: str | None = None,
    ) -> list[TrackedCommit]:
        """Track every commit of *chain*. Readiness to land is checked against *trunk_tip* when given."""
        return [self.track_commit(commit, trunk_base, cherry_pick, trunk_tip) for commit in chain]

    def track_commit(
        self,
        commit: LocalCommit,
        trunk_base: str,
        cherry_pick: bool = False,
        trunk_tip: str | None = None,
    ) -> TrackedCommit:
        if commit.request_number is None:
            return TrackedCommit(commit=commit, state=CommitState.UNTRACKED)

        request = self.platform.get_request(commit.request_number)
        if request is None or request.state is RequestState.CLOSED:
            why = "was deleted" if request is None else "was closed"
            logger.debug("Pull request #%d %s", commit.request_number, why)
            return TrackedCommit(
                commit=commit,
                state=CommitState.UNTRACKED,
                request=request,
                drifts=[Drift(DriftKind.CLOSED, f"pull request #{commit.request_number} {why}; it will be re-created")],
            )
        if request.state is RequestState.MERGED:
            return TrackedCommit(commit=commit, state=CommitState.LANDED, request=request)

        self.repo.fetch([request.head_oid, request.base_oid])
        tracked = TrackedCommit(commit=commit, state=CommitState.CREATED, request=request)
        self._check_message(tracked)

        head_tree = self.repo.read_commit(request.head_oid).tree
        base_point = self.repo.merge_base(request.head_oid, request.base_oid) or request.base_oid
        tracked.published_head_tree = head_tree
        tracked.published_base_tree = self.repo.read_commit(base_point).tree

        try:
            required = self.synthesizer.required_base(commit, trunk_base, cherry_pick)
        except CherryPickConflict as exc:
            tracked.state = CommitState.NEEDS_UPDATE
            tracked.drifts.append(Drift(DriftKind.BASE, str(exc)))
            return tracked

        stale_synthetic = required.on_trunk and not self.synthesizer.is_trunk(request.base_ref)
        if stale_synthetic or tracked.published_base_tree != required.base_tree:
            tracked.drifts.append(
                Drift(
                    DriftKind.BASE,
                    "pull request base no longer matches the commit's ancestors",
                    local=required.base_tree,
                    remote=tracked.published_base_tree,
                )
            )

        if head_tree != required.head_tree or tracked.drift(DriftKind.BASE):
            tracked.state = CommitState.NEEDS_UPDATE
        elif trunk_tip is not None and self._ready_to_land(commit, request, trunk_tip):
            tracked.state = CommitState.READY_TO_LAND
        return tracked

    def _check_message(self, tracked: TrackedCommit) -> None:
        request, metadata = tracked.request, tracked.commit.metadata
        update = request_message_update(request, metadata)
        if update.title is not None:
            tracked.drifts.append(
                Drift(DriftKind.MESSAGE, "title differs from the pull request", metadata.title, request.title)
            )
        if update.body is not None:
            tracked.drifts.append(
                Drift(DriftKind.MESSAGE, "description differs from the pull request", update.body, request.body)
            )

    def _ready_to_land(self, commit: LocalCommit, request: ReviewRequest, trunk_tip: str) -> bool:
        if self.config.get("require_approval") and not request.approval.satisfies(
            self.config.get("required_approvals", 1)
        ):
            return False
        try:
            return compute_equivalence(self.repo, commit.oid, request.head_oid, trunk_tip).holds
        except (CherryPickConflict, TreeMismatch):
            return False
