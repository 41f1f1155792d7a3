"""ReviewPlatformPort implementation on top of PyGithub."""

from __future__ import annotations

import logging

from github import Github, GithubException

from prstack_core.config import parse_pull_request_field, parse_repository, pull_request_url
from prstack_core.gh.pull_request import get_approval_state, get_pull, get_pull_requests
from prstack_core.ports.base import ReviewPlatformPort
from prstack_core.ports.models import MergeResult, RequestState, RequestUpdate, ReviewRequest
from prstack_core.utils.branches import branch_name_from_ref, normalise_ref

logger = logging.getLogger(__name__)


def _request_state(pr) -> RequestState:
    if pr.merged:
        return RequestState.MERGED
    if pr.state == "closed":
        return RequestState.CLOSED
    return RequestState.OPEN


class GitHubPlatform(ReviewPlatformPort):
    """Pull requests of one GitHub repository.

    ``repo_obj`` lets callers (and tests) inject an already-built PyGithub
    ``Repository``.
    """

    def __init__(self, repository: str, token: str | None, repo_obj=None, github: Github | None = None):
        self.owner, self.name = parse_repository(repository)
        self._github = github or Github(token)
        self._repo_obj = repo_obj

    @property
    def repo(self):
        if self._repo_obj is None:
            self._repo_obj = self._github.get_repo(f"{self.owner}/{self.name}")
        return self._repo_obj

    def request_url(self, number: int) -> str:
        return pull_request_url(self.owner, self.name, number)

    def parse_request_field(self, text: str) -> int | None:
        return parse_pull_request_field(text, self.owner, self.name)

    def to_request(self, pr) -> ReviewRequest:
        return ReviewRequest(
            number=pr.number,
            state=_request_state(pr),
            title=pr.title or "",
            body=pr.body or "",
            base_ref=normalise_ref(pr.base.ref),
            head_ref=normalise_ref(pr.head.ref),
            base_oid=pr.base.sha,
            head_oid=pr.head.sha,
            url=pr.html_url or self.request_url(pr.number),
            approval=get_approval_state(pr),
            merge_commit=pr.merge_commit_sha if pr.merged else None,
        )

    def get_request(self, number: int) -> ReviewRequest | None:
        try:
            pr = get_pull(self.repo, number)
        except GithubException as exc:
            if exc.status == 404:
                logger.debug("Pull request #%d not found", number)
                return None
            raise
        return self.to_request(pr)

    def create_request(self, head_ref: str, base_ref: str, title: str, body: str, draft: bool = False) -> int:
        pr = self.repo.create_pull(
            base=branch_name_from_ref(base_ref),
            head=branch_name_from_ref(head_ref),
            title=title,
            body=body,
            draft=draft,
        )
        logger.debug("Created pull request #%d", pr.number)
        return pr.number

    def update_request(self, number: int, update: RequestUpdate) -> None:
        kwargs = {}
        if update.title is not None:
            kwargs["title"] = update.title
        if update.body is not None:
            kwargs["body"] = update.body
        if update.base_ref is not None:
            kwargs["base"] = branch_name_from_ref(update.base_ref)
        if update.state is not None:
            kwargs["state"] = "closed" if update.state is RequestState.CLOSED else "open"
        if not kwargs:
            return
        get_pull(self.repo, number).edit(**kwargs)

    def merge_request(self, number: int, title: str, message: str, sha: str) -> MergeResult:
        pr = get_pull(self.repo, number)
        try:
            status = pr.merge(commit_title=title, commit_message=message, merge_method="squash", sha=sha)
        except GithubException as exc:
            detail = exc.data.get("message", "") if isinstance(exc.data, dict) else str(exc.data)
            return MergeResult(merged=False, message=detail or str(exc))
        return MergeResult(merged=bool(status.merged), sha=status.sha, message=status.message or "")

    def add_reviewers(self, number: int, reviewers: set[str]) -> None:
        if not reviewers:
            return
        users = sorted(r for r in reviewers if not r.startswith("#"))
        teams = sorted(r[1:] for r in reviewers if r.startswith("#"))
        get_pull(self.repo, number).create_review_request(reviewers=users, team_reviewers=teams)

    def eligible_reviewers(self) -> dict[str, str | None]:
        eligible: dict[str, str | None] = {u.login: u.name for u in self.repo.get_collaborators()}
        try:
            for team in self._github.get_organization(self.owner).get_teams():
                eligible[f"#{team.slug}"] = team.name
        except GithubException as exc:
            # User-owned repositories have no organization teams.
            logger.debug("Could not list teams of %s: %s", self.owner, exc)
        return eligible

    def list_open_requests(self) -> list[ReviewRequest]:
        me = self._github.get_user().login
        return [self.to_request(pr) for pr in get_pull_requests(self.repo) if pr.user.login == me]
