"""Squash-merge a pull request once it provably matches its local commit."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from prstack_core.config import trunk_ref, trunk_tracking_ref
from prstack_core.equivalence import verify_equivalence
from prstack_core.errors import (
    GitCommandError,
    MergeFailed,
    NoReviewRequest,
    NotApproved,
    ParentNotOnTrunk,
    PushRejected,
    RequestClosed,
    StackError,
)
from prstack_core.message import build_merge_message, parse_request_body, validate_message
from prstack_core.ports.base import RepositoryPort, ReviewPlatformPort
from prstack_core.ports.models import PushSpec, RequestUpdate, ReviewRequest, Signature
from prstack_core.publisher import DiffPublisher, PublishResult
from prstack_core.tracker import CorrespondenceTracker
from prstack_core.utils.branches import normalise_ref
from prstack_core.walker import HistoryWalker, LocalCommit

logger = logging.getLogger(__name__)

LANDED_VERSION_MESSAGE = "[prstack] landed version\n\n[skip ci]"


class LandStage(Enum):
    APPROVAL_CHECK = "approval check"
    EQUIVALENCE_CHECK = "equivalence check"
    MERGE = "merge"
    TRUNK_UPDATE = "trunk update"
    CLEANUP = "cleanup"


@dataclass
class LandResult:
    request_number: int
    merge_sha: str
    remaining: list[LocalCommit] = field(default_factory=list)
    resynced: list[PublishResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class LandEngine:
    def __init__(
        self,
        repo: RepositoryPort,
        platform: ReviewPlatformPort,
        config: dict,
        walker: HistoryWalker,
        tracker: CorrespondenceTracker | None = None,
        publisher: DiffPublisher | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        self.repo = repo
        self.platform = platform
        self.config = config
        self.walker = walker
        self.tracker = tracker
        self.publisher = publisher
        self.now = now or (lambda: datetime.now(timezone.utc))

    def land(self, chain: list[LocalCommit], position: int, *, cherry_pick: bool = False) -> LandResult:
        """Land ``chain[position]``.

        Nothing on the remote changes until every check has passed, and the
        local chain is only rebased after GitHub reports the merge.
        """
        commit = chain[position]

        # Local preconditions, before any network call.
        validate_message(commit.metadata, self.config.get("require_test_plan", True), commit.oid)
        if commit.request_number is None:
            raise NoReviewRequest(commit.title)
        if position > 0 and not cherry_pick:
            raise ParentNotOnTrunk(
                f"the parent of '{commit.title}' has not landed yet; land the commits below it first "
                "or use --cherry-pick"
            )

        request = self.platform.get_request(commit.request_number)
        if request is None or not request.is_open:
            state = "not found" if request is None else request.state.value
            raise RequestClosed(f"pull request #{commit.request_number} is {state}")

        self._stage(LandStage.APPROVAL_CHECK, request)
        self._check_approval(request)

        self._stage(LandStage.EQUIVALENCE_CHECK, request)
        self.repo.fetch([trunk_ref(self.config)])
        self.repo.fetch([request.head_oid, request.base_oid])
        trunk_tip = self.repo.resolve_ref(trunk_tracking_ref(self.config))
        equivalence = verify_equivalence(self.repo, commit.oid, request.head_oid, trunk_tip)

        self._stage(LandStage.MERGE, request)
        merge_sha = self._merge(commit, request, trunk_tip, equivalence.picked_tree)

        self._stage(LandStage.TRUNK_UPDATE, request)
        self.repo.fetch([trunk_ref(self.config), merge_sha])
        self._fast_forward_trunk(merge_sha)

        self._stage(LandStage.CLEANUP, request)
        self._delete_branch(request.head_ref)
        if not self._is_trunk(request.base_ref):
            self._delete_branch(request.base_ref)

        remaining = self.walker.rebase(chain, merge_sha)
        result = LandResult(request_number=request.number, merge_sha=merge_sha, remaining=remaining)
        if self.config.get("resync_dependents", True):
            self._resync(result, merge_sha)
        return result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _stage(self, stage: LandStage, request: ReviewRequest) -> None:
        logger.info("#%d: %s", request.number, stage.value)

    def _check_approval(self, request: ReviewRequest) -> None:
        if not self.config.get("require_approval"):
            return
        required = self.config.get("required_approvals", 1)
        if not request.approval.satisfies(required):
            raise NotApproved(request.number, len(request.approval.approvers), required)

    def _merge(self, commit: LocalCommit, request: ReviewRequest, trunk_tip: str, tree: str) -> str:
        """Retarget to trunk and squash-merge. Returns the new trunk commit."""
        head_oid = request.head_oid
        final_pushed = False
        retargeted = False

        if not self._is_trunk(request.base_ref) and self._base_has_content(request, trunk_tip):
            # Without this the pull request diff against trunk would include
            # the synthetic base's content.
            author = commit.info.author
            stamp = Signature(author.name, author.email, self.now())
            head_oid = self.repo.create_commit(
                tree, [request.head_oid, trunk_tip], LANDED_VERSION_MESSAGE, author=stamp, committer=stamp
            )
            self.repo.push([PushSpec(request.head_ref, head_oid)])
            final_pushed = True

        try:
            if not self._is_trunk(request.base_ref):
                self.platform.update_request(request.number, RequestUpdate(base_ref=trunk_ref(self.config)))
                retargeted = True

            merged = self.platform.merge_request(
                request.number, request.title, self._merge_message(request), sha=head_oid
            )
            if not merged.merged or not merged.sha:
                raise MergeFailed(f"GitHub did not merge pull request #{request.number}: {merged.message}")
        except Exception:
            self._revert(request, retargeted, final_pushed)
            raise

        logger.info("Merged #%d as %s", request.number, merged.sha[:8])
        return merged.sha

    def _merge_message(self, request: ReviewRequest) -> str:
        metadata = parse_request_body(request.title, request.body)
        metadata.reviewers = request.reviewers
        metadata.approved_by = set(request.approval.approvers)
        metadata.review_request_ref = request.url or self.platform.request_url(request.number)
        return build_merge_message(metadata)

    def _revert(self, request: ReviewRequest, retargeted: bool, final_pushed: bool) -> None:
        if retargeted:
            self.platform.update_request(request.number, RequestUpdate(base_ref=request.base_ref))
        if final_pushed:
            self.repo.push([PushSpec(request.head_ref, request.head_oid)], force=True)

    def _fast_forward_trunk(self, merge_sha: str) -> None:
        local_trunk = trunk_ref(self.config)
        if local_trunk not in self.repo.ref_names():
            return
        current = self.repo.resolve_ref(local_trunk)
        if self.repo.is_ancestor(current, merge_sha):
            self.repo.update_ref(local_trunk, merge_sha, expected_old=current)
        else:
            logger.warning("Local %s has diverged from the remote; not fast-forwarding it", local_trunk)

    def _resync(self, result: LandResult, trunk_base: str) -> None:
        """Re-publish dependents so their requests move off the landed commit's branches.

        The land itself has already succeeded at this point, so a dependent
        that cannot be published is reported and skipped.
        """
        if self.tracker is None or self.publisher is None:
            return
        chain = list(result.remaining)
        for index, commit in enumerate(chain):
            if commit.request_number is None:
                continue
            try:
                tracked = self.tracker.track_commit(commit, trunk_base)
                if tracked.request is None or not tracked.request.is_open:
                    continue
                published = self.publisher.publish(
                    tracked, trunk_base, update_note=f"Rebase after landing #{result.request_number}"
                )
            except StackError as exc:
                logger.warning("Could not update #%d: %s", commit.request_number, exc)
                result.warnings.append(f"#{commit.request_number}: {exc}")
                continue
            chain[index] = published.commit
            result.resynced.append(published)
        result.remaining = chain

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_trunk(self, ref: str) -> bool:
        return normalise_ref(ref) == trunk_ref(self.config)

    def _base_has_content(self, request: ReviewRequest, trunk_tip: str) -> bool:
        base_point = self.repo.merge_base(request.head_oid, request.base_oid) or request.base_oid
        trunk_point = self.repo.merge_base(base_point, trunk_tip) or trunk_tip
        return self.repo.read_commit(base_point).tree != self.repo.read_commit(trunk_point).tree

    def _delete_branch(self, ref: str) -> None:
        try:
            self.repo.push([PushSpec(ref, None)])
        except (PushRejected, GitCommandError) as exc:
            # GitHub may already have deleted the head branch on merge.
            logger.warning("Could not delete %s: %s", ref, exc)
