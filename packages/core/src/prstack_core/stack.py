"""Stack operations: the entry points behind each CLI command.

Every operation starts from scratch: walk the local chain, re-fetch the
matching pull requests, then act. Nothing is remembered between runs except
what is written into commit messages.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable

from rich.console import Console

from prstack_core.config import trunk_ref, trunk_tracking_ref
from prstack_core.errors import DirtyWorkingTree, RequestClosed, StackError
from prstack_core.lander import LandEngine, LandResult
from prstack_core.message import CommitMetadata, format_message, parse_request_body, validate_message
from prstack_core.ports.base import RepositoryPort, ReviewPlatformPort
from prstack_core.ports.models import PushSpec, RequestState, RequestUpdate, ReviewRequest, ReviewStatus
from prstack_core.publisher import DiffPublisher, PublishResult, PublishStatus
from prstack_core.synthesizer import BaseBranchSynthesizer
from prstack_core.tracker import CorrespondenceTracker, TrackedCommit
from prstack_core.utils.branches import branch_name_from_ref, normalise_ref
from prstack_core.walker import HistoryWalker, LocalCommit

console = Console()
logger = logging.getLogger(__name__)

_STATUS_STYLE = {
    PublishStatus.CREATED: "green",
    PublishStatus.UPDATED: "green",
    PublishStatus.METADATA_UPDATED: "cyan",
    PublishStatus.UP_TO_DATE: "dim",
}


class Stack:
    """The collaborators of one run, wired together."""

    def __init__(
        self,
        repo: RepositoryPort,
        platform: ReviewPlatformPort,
        config: dict,
        prompt: Callable[[str], str] | None = None,
        now=None,
    ):
        self.repo = repo
        self.platform = platform
        self.config = config
        self.walker = HistoryWalker(repo, platform, trunk_tracking_ref(config))
        self.synthesizer = BaseBranchSynthesizer(repo, config, now=now)
        self.tracker = CorrespondenceTracker(repo, platform, self.synthesizer, config)
        self.publisher = DiffPublisher(repo, platform, config, self.synthesizer, prompt=prompt, now=now)
        self.lander = LandEngine(repo, platform, config, self.walker, self.tracker, self.publisher, now=now)

    def walk(self, require_clean: bool = True) -> list[LocalCommit]:
        return self.walker.walk(require_clean=require_clean)

    def validate(self, commits: list[LocalCommit]) -> None:
        for commit in commits:
            validate_message(commit.metadata, self.config.get("require_test_plan", True), commit.oid)


def _selected(chain: list[LocalCommit], all_commits: bool) -> list[int]:
    if not chain:
        return []
    return list(range(len(chain))) if all_commits else [len(chain) - 1]


def _check_landed_ancestors(platform: ReviewPlatformPort, ancestors: list[LocalCommit]) -> None:
    """Refuse to publish on top of a commit whose pull request was merged elsewhere."""
    for commit in ancestors:
        if commit.request_number is None:
            continue
        request = platform.get_request(commit.request_number)
        if request is not None and request.state is RequestState.MERGED:
            raise RequestClosed(
                f"pull request #{request.number} ('{commit.title}') has already been merged; "
                "fetch trunk and rebase the chain before publishing the commits above it"
            )


def _print_commit(commit: LocalCommit) -> None:
    console.print(f"[bold]{commit.short_id}[/bold] {commit.title}")


def _print_empty() -> None:
    console.print("[yellow]No commits on top of trunk - nothing to do.[/yellow]")


# ---------------------------------------------------------------------------
# diff
# ---------------------------------------------------------------------------


def run_diff(
    repo: RepositoryPort,
    platform: ReviewPlatformPort,
    config: dict,
    *,
    all_commits: bool = False,
    cherry_pick: bool = False,
    update_message: bool = False,
    update_note: str | None = None,
    draft: bool | None = None,
    prompt: Callable[[str], str] | None = None,
    now=None,
) -> list[PublishResult]:
    """Create or update the pull request of HEAD (or of every commit in the chain)."""
    stack = Stack(repo, platform, config, prompt=prompt, now=now)
    chain = stack.walk()
    if not chain:
        _print_empty()
        return []

    selected = _selected(chain, all_commits)
    stack.validate([chain[i] for i in selected])
    if not cherry_pick:
        _check_landed_ancestors(platform, chain[: selected[0]])

    repo.fetch([trunk_ref(config)])
    trunk_base = chain[0].parent_oid
    results: list[PublishResult] = []
    try:
        for index in selected:
            _print_commit(chain[index])
            tracked = stack.tracker.track_commit(chain[index], trunk_base, cherry_pick)
            result = stack.publisher.publish(
                tracked,
                trunk_base,
                cherry_pick=cherry_pick,
                update_message=update_message,
                update_note=update_note,
                draft=draft,
            )
            chain[index] = result.commit
            results.append(result)
            for warning in result.warnings:
                console.print(f"  [yellow]warning:[/yellow] {warning}")
            style = _STATUS_STYLE[result.status]
            console.print(f"  [{style}]{result.status.value}[/{style}] {result.url}")
    finally:
        # Pull request links must reach the local messages even if a later
        # commit failed, or the next run would open duplicates.
        stack.walker.rewrite_messages(chain)
    return results


# ---------------------------------------------------------------------------
# land
# ---------------------------------------------------------------------------


def run_land(
    repo: RepositoryPort,
    platform: ReviewPlatformPort,
    config: dict,
    *,
    cherry_pick: bool = False,
    bottom: bool = False,
    now=None,
) -> LandResult | None:
    """Land HEAD (or, with *bottom*, the oldest commit of the chain)."""
    stack = Stack(repo, platform, config, now=now)
    chain = stack.walk()
    if not chain:
        _print_empty()
        return None

    position = 0 if bottom else len(chain) - 1
    _print_commit(chain[position])
    result = stack.lander.land(chain, position, cherry_pick=cherry_pick)

    console.print(f"[green]Landed #{result.request_number} as {result.merge_sha[:8]}[/green]")
    for published in result.resynced:
        console.print(f"  updated #{published.request_number} ({published.status.value})")
    for warning in result.warnings:
        console.print(f"  [yellow]warning:[/yellow] {warning}")
    return result


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


def run_status(repo: RepositoryPort, platform: ReviewPlatformPort, config: dict) -> list[TrackedCommit]:
    """Track every commit of the chain, including whether it is ready to land."""
    stack = Stack(repo, platform, config)
    chain = stack.walk(require_clean=False)
    if not chain:
        return []
    repo.fetch([trunk_ref(config)])
    trunk_tip = repo.resolve_ref(trunk_tracking_ref(config))
    return stack.tracker.track(chain, chain[0].parent_oid, trunk_tip=trunk_tip)


# ---------------------------------------------------------------------------
# amend / format
# ---------------------------------------------------------------------------


def remote_metadata(request: ReviewRequest) -> CommitMetadata:
    """Commit metadata as described by the pull request."""
    metadata = parse_request_body(request.title, request.body)
    metadata.reviewers = request.reviewers
    metadata.review_request_ref = request.url
    if request.approval.status is ReviewStatus.APPROVED:
        metadata.approved_by = set(request.approval.approvers)
    return metadata


def run_amend(
    repo: RepositoryPort, platform: ReviewPlatformPort, config: dict, *, all_commits: bool = False
) -> list[LocalCommit]:
    """Replace local commit messages with what their pull requests say."""
    stack = Stack(repo, platform, config)
    chain = stack.walk()
    failures: list[StackError] = []
    for index in _selected(chain, all_commits):
        commit = chain[index]
        if commit.request_number is None:
            continue
        request = platform.get_request(commit.request_number)
        if request is None:
            console.print(f"[yellow]#{commit.request_number} not found; keeping the local message[/yellow]")
            continue
        metadata = remote_metadata(request)
        metadata.review_request_ref = platform.request_url(request.number)
        chain[index] = stack.walker.with_metadata(commit, metadata)
        try:
            validate_message(metadata, config.get("require_test_plan", True), commit.oid)
        except StackError as exc:
            failures.append(exc)
            console.print(f"[red]{commit.short_id}: {exc}[/red]")

    chain = stack.walker.rewrite_messages(chain)
    if failures:
        raise failures[0]
    return chain


def run_format(
    repo: RepositoryPort, platform: ReviewPlatformPort, config: dict, *, all_commits: bool = False
) -> list[LocalCommit]:
    """Rewrite commit messages into the canonical layout and validate them."""
    stack = Stack(repo, platform, config)
    chain = stack.walk()
    failures: list[StackError] = []
    for index in _selected(chain, all_commits):
        try:
            stack.validate([chain[index]])
        except StackError as exc:
            failures.append(exc)
            console.print(f"[red]{chain[index].short_id}: {exc}[/red]")
    chain = stack.walker.rewrite_messages(chain)
    if failures:
        raise failures[0]
    return chain


# ---------------------------------------------------------------------------
# close
# ---------------------------------------------------------------------------


def run_close(
    repo: RepositoryPort, platform: ReviewPlatformPort, config: dict, *, all_commits: bool = False
) -> list[int]:
    """Close pull requests and unlink them from their commits."""
    stack = Stack(repo, platform, config)
    chain = stack.walk()
    closed: list[int] = []
    try:
        for index in _selected(chain, all_commits):
            commit = chain[index]
            if commit.request_number is None:
                continue
            request = platform.get_request(commit.request_number)
            if request is None or not request.is_open:
                raise RequestClosed(f"pull request #{commit.request_number} is not open")

            platform.update_request(request.number, RequestUpdate(state=RequestState.CLOSED))
            refs = [request.head_ref]
            if normalise_ref(request.base_ref) != trunk_ref(config):
                refs.append(request.base_ref)
            repo.push([PushSpec(ref, None) for ref in refs])

            metadata = replace(commit.metadata, review_request_ref=None, approved_by=set())
            chain[index] = replace(commit, metadata=metadata, request_number=None)
            closed.append(request.number)
            console.print(f"[green]Closed #{request.number}[/green]")
    finally:
        stack.walker.rewrite_messages(chain)
    return closed


# ---------------------------------------------------------------------------
# patch
# ---------------------------------------------------------------------------


def run_patch(
    repo: RepositoryPort,
    platform: ReviewPlatformPort,
    config: dict,
    number: int,
    *,
    branch_name: str | None = None,
    checkout: bool = True,
) -> str:
    """Create a local branch holding the pull request as a single commit."""
    if checkout and not repo.is_working_tree_clean():
        raise DirtyWorkingTree()
    request = platform.get_request(number)
    if request is None:
        raise RequestClosed(f"pull request #{number} not found")

    existing = repo.ref_names()
    if branch_name is None:
        branch_name = f"PR-{number}"
        suffix = 1
        while normalise_ref(branch_name) in existing:
            suffix += 1
            branch_name = f"PR-{number}-{suffix}"
    elif normalise_ref(branch_name) in existing:
        raise StackError(f"branch {branch_name!r} already exists")

    metadata = remote_metadata(request)
    if request.merge_commit:
        repo.fetch([request.merge_commit])
        oid = request.merge_commit
    else:
        repo.fetch([trunk_ref(config)])
        repo.fetch([request.head_oid, request.base_oid])
        trunk_tip = repo.resolve_ref(trunk_tracking_ref(config))
        head = repo.read_commit(request.head_oid)
        parent = repo.merge_base(request.head_oid, trunk_tip) or trunk_tip
        base_point = repo.merge_base(request.head_oid, request.base_oid) or request.base_oid
        base_tree = repo.read_commit(base_point).tree
        if base_tree != repo.read_commit(parent).tree:
            parent = repo.create_commit(base_tree, [parent], f"[prstack] Base of Pull Request #{number}")
        oid = repo.create_commit(head.tree, [parent], format_message(metadata))

    ref = normalise_ref(branch_name)
    repo.update_ref(ref, oid)
    console.print(f"[green]Created branch {branch_name_from_ref(ref)} from #{number}[/green]")
    if checkout:
        repo.checkout(branch_name)
    return branch_name


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------


def list_requests(platform: ReviewPlatformPort) -> list[ReviewRequest]:
    """Open pull requests authored by the authenticated user."""
    return sorted(platform.list_open_requests(), key=lambda r: r.number)
