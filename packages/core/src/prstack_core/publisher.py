"""Create and incrementally update pull requests.

Head branches are append-only: an update never rewrites what reviewers have
already seen, it adds one commit carrying the difference between the
previously published tree and the current local tree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from prstack_core.config import trunk_tracking_ref
from prstack_core.errors import Aborted, GitCommandError, PushRejected, RequestClosed, UnknownReviewer
from prstack_core.message import build_request_body, validate_message
from prstack_core.ports.base import RepositoryPort, ReviewPlatformPort
from prstack_core.ports.models import PushSpec, RequestUpdate, ReviewRequest, Signature, TreeDelta
from prstack_core.synthesizer import BaseBranchSynthesizer, PublishedState, RequiredBase
from prstack_core.tracker import CommitState, DriftKind, TrackedCommit, request_message_update
from prstack_core.utils.branches import new_branch_name, normalise_ref
from prstack_core.walker import LocalCommit

logger = logging.getLogger(__name__)

INITIAL_MESSAGE = "[prstack] initial version"


class PublishStatus(Enum):
    CREATED = "created"
    UPDATED = "updated"
    METADATA_UPDATED = "metadata updated"
    UP_TO_DATE = "up to date"


@dataclass
class PublishResult:
    commit: LocalCommit  # carries the pull request link after a create
    status: PublishStatus
    request_number: int | None = None
    url: str | None = None
    delta: TreeDelta | None = None
    warnings: list[str] = field(default_factory=list)


class DiffPublisher:
    """Publish one tracked commit.

    ``prompt`` is called to obtain the message of an update commit when the
    caller did not supply one.
    """

    def __init__(
        self,
        repo: RepositoryPort,
        platform: ReviewPlatformPort,
        config: dict,
        synthesizer: BaseBranchSynthesizer | None = None,
        prompt: Callable[[str], str] | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        self.repo = repo
        self.platform = platform
        self.config = config
        self.now = now or (lambda: datetime.now(timezone.utc))
        self.synthesizer = synthesizer or BaseBranchSynthesizer(repo, config, now=self.now)
        self.prompt = prompt

    def publish(
        self,
        tracked: TrackedCommit,
        trunk_base: str,
        *,
        cherry_pick: bool = False,
        update_message: bool = False,
        update_note: str | None = None,
        draft: bool | None = None,
    ) -> PublishResult:
        commit = tracked.commit
        metadata = commit.metadata
        validate_message(metadata, self.config.get("require_test_plan", True), commit.oid)

        if tracked.state is CommitState.LANDED:
            raise RequestClosed(
                f"pull request #{commit.request_number} has already been merged; "
                "fetch trunk and rebase to drop the commit"
            )

        warnings: list[str] = []
        request = tracked.request if tracked.state is not CommitState.UNTRACKED else None
        closed = tracked.drift(DriftKind.CLOSED)
        if closed is not None:
            warnings.append(closed.detail)
            metadata = replace(metadata, review_request_ref=None, approved_by=set())

        # Everything up to the first push only reads.
        required = self.synthesizer.required_base(commit, trunk_base, cherry_pick)
        if request is None:
            self._check_reviewers(metadata.reviewers)
            published = PublishedState.unpublished(trunk_base, self.repo.read_commit(trunk_base).tree)
        else:
            trunk_tip = self.repo.resolve_ref(trunk_tracking_ref(self.config))
            published = self.synthesizer.published_state(request, trunk_tip)
            if not update_message:
                warnings.extend(
                    f"{d.detail}; run with --update-message to push the local version"
                    for d in tracked.drifts
                    if d.kind is DriftKind.MESSAGE
                )

        if request is not None and self._up_to_date(request, required, published, trunk_base):
            return self._update_metadata(commit, request, update_message, warnings)

        plan = self.synthesizer.plan(commit, trunk_base, required, published, request)
        note = self._update_note(update_note) if request is not None else INITIAL_MESSAGE
        delta = self.repo.diff_tree(published.head_tree, required.head_tree)

        parents = [published.head_oid]
        if plan.base_parent is not None and plan.base_parent not in parents:
            parents.append(plan.base_parent)
        author = commit.info.author
        stamp = Signature(author.name, author.email, self.now())
        head_commit = self.repo.create_commit(required.head_tree, parents, note, author=stamp, committer=stamp)

        if request is not None:
            head_ref = request.head_ref
        else:
            head_ref = normalise_ref(new_branch_name(self.config, self.repo.ref_names(), metadata.title))
        specs = [PushSpec(head_ref, head_commit)]
        if plan.push is not None:
            specs.append(plan.push)
        self.repo.push(specs)
        logger.debug("Pushed %s", ", ".join(spec.refspec() for spec in specs))

        if request is None:
            return self._create(commit, metadata, head_ref, plan.base_ref, delta, warnings, draft)

        update = request_message_update(request, metadata) if update_message else RequestUpdate()
        if plan.retarget:
            update.base_ref = plan.base_ref
        if not update.is_empty:
            self.platform.update_request(request.number, update)
        if plan.delete_ref is not None:
            self._delete_branch(plan.delete_ref)

        return PublishResult(
            commit=commit,
            status=PublishStatus.UPDATED,
            request_number=request.number,
            url=request.url or self.platform.request_url(request.number),
            delta=delta,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _up_to_date(
        self, request: ReviewRequest, required: RequiredBase, published: PublishedState, trunk_base: str
    ) -> bool:
        stale_synthetic = required.on_trunk and not self.synthesizer.is_trunk(request.base_ref)
        return (
            not stale_synthetic
            and published.trunk_base == trunk_base
            and published.head_tree == required.head_tree
            and published.base_tree == required.base_tree
        )

    def _update_metadata(
        self, commit: LocalCommit, request: ReviewRequest, update_message: bool, warnings: list[str]
    ) -> PublishResult:
        status = PublishStatus.UP_TO_DATE
        if update_message:
            update = request_message_update(request, commit.metadata)
            if not update.is_empty:
                self.platform.update_request(request.number, update)
                status = PublishStatus.METADATA_UPDATED
        return PublishResult(
            commit=commit,
            status=status,
            request_number=request.number,
            url=request.url or self.platform.request_url(request.number),
            warnings=warnings,
        )

    def _create(self, commit, metadata, head_ref, base_ref, delta, warnings, draft) -> PublishResult:
        number = self.platform.create_request(
            head_ref,
            base_ref,
            metadata.title,
            build_request_body(metadata),
            draft=self.config.get("draft", False) if draft is None else draft,
        )
        url = self.platform.request_url(number)
        if metadata.reviewers:
            self.platform.add_reviewers(number, metadata.reviewers)
        metadata = replace(metadata, review_request_ref=url)
        return PublishResult(
            commit=replace(commit, metadata=metadata, request_number=number),
            status=PublishStatus.CREATED,
            request_number=number,
            url=url,
            delta=delta,
            warnings=warnings,
        )

    def _check_reviewers(self, reviewers: set[str]) -> None:
        if not reviewers:
            return
        eligible = self.platform.eligible_reviewers()
        unknown = sorted(r for r in reviewers if r not in eligible)
        if unknown:
            raise UnknownReviewer(unknown)

    def _update_note(self, update_note: str | None) -> str:
        note = update_note
        if note is None and self.prompt is not None:
            note = self.prompt("Message describing this update (leave empty to abort)")
        if not note or not note.strip():
            raise Aborted("no update message given")
        return note.strip()

    def _delete_branch(self, ref: str) -> None:
        try:
            self.repo.push([PushSpec(ref, None)])
        except (PushRejected, GitCommandError) as exc:
            logger.warning("Could not delete %s: %s", ref, exc)
