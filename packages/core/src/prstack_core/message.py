"""Structured commit messages.

A commit message doubles as the durable record linking a local commit to its
pull request. The layout is::

    Title line

    Free-form summary.

    Test Plan: how it was tested
    Reviewers: alice, bob
    Reviewed By: alice
    Pull Request: https://github.com/owner/repo/pull/123

Labels are matched case-insensitively and may be followed by text on the same
line or on the lines below. Anything before the first label is the title (first
line) and the summary (the rest).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from prstack_core.errors import MissingTitle, TestPlanMissing

_LABEL_RE = re.compile(r"^\s*([\w\s]+?)\s*:\s*(.*)$")
_PARENS_RE = re.compile(r"\(.*?\)")
_NAME_SEP_RE = re.compile(r"[,\s]+")
_WRAP_AT = 76


class Section(Enum):
    TITLE = "Title"
    SUMMARY = "Summary"
    TEST_PLAN = "Test Plan"
    REVIEWERS = "Reviewers"
    REVIEWED_BY = "Reviewed By"
    PULL_REQUEST = "Pull Request"


_SECTION_BY_LABEL = {
    "title": Section.TITLE,
    "summary": Section.SUMMARY,
    "test plan": Section.TEST_PLAN,
    "reviewer": Section.REVIEWERS,
    "reviewers": Section.REVIEWERS,
    "reviewed by": Section.REVIEWED_BY,
    "pull request": Section.PULL_REQUEST,
}

COMMIT_MESSAGE_SECTIONS = (
    Section.TITLE,
    Section.SUMMARY,
    Section.TEST_PLAN,
    Section.REVIEWERS,
    Section.REVIEWED_BY,
    Section.PULL_REQUEST,
)
REQUEST_BODY_SECTIONS = (Section.SUMMARY, Section.TEST_PLAN)
MERGE_MESSAGE_SECTIONS = (
    Section.SUMMARY,
    Section.TEST_PLAN,
    Section.REVIEWERS,
    Section.REVIEWED_BY,
    Section.PULL_REQUEST,
)


@dataclass
class CommitMetadata:
    """Parsed view of a commit message."""

    title: str = ""
    description: str = ""
    test_plan: str | None = None
    reviewers: set[str] = field(default_factory=set)
    review_request_ref: str | None = None
    approved_by: set[str] = field(default_factory=set)


# ---------------------------------------------------------------------------
# Section level parsing
# ---------------------------------------------------------------------------


def _append(sections: dict[Section, str], section: Section, text: str) -> None:
    existing = sections.get(section)
    if text and existing:
        sections[section] = f"{existing}\n\n{text}"
    elif text:
        sections[section] = text
    else:
        sections.setdefault(section, "")


def parse_sections(text: str, top: Section = Section.TITLE) -> dict[Section, str]:
    """Split *text* into labelled sections.

    Unlabelled leading text belongs to *top*; when that is the title, only the
    first line is the title and the remainder is the summary.
    """
    sections: dict[Section, str] = {}
    section = top
    lines: list[str] = []

    for lineno, line in enumerate(text.strip().split("\n")):
        line = line.rstrip()
        match = _LABEL_RE.match(line)
        if match:
            labelled = _SECTION_BY_LABEL.get(match.group(1).lower())
            if labelled is not None:
                _append(sections, section, "\n".join(lines).strip())
                section = labelled
                lines = [match.group(2)]
                continue

        if lineno == 0 and top is Section.TITLE:
            sections[Section.TITLE] = line
            section = Section.SUMMARY
        else:
            lines.append(line)

    if lines:
        _append(sections, section, "\n".join(lines).strip())
    return sections


def build_sections(sections: dict[Section, str], order: tuple[Section, ...], all_labels: bool = False) -> str:
    """Render *sections* in *order*, separated by blank lines."""
    parts = []
    show_label = all_labels
    for section in order:
        text = sections.get(section)
        if text is None:
            continue
        if section not in (Section.TITLE, Section.SUMMARY):
            show_label = True
        if show_label:
            label = section.value
            separator = ":\n" if "\n" in text or len(label) + len(text) > _WRAP_AT else ": "
            parts.append(f"{label}{separator}{text}\n")
        else:
            parts.append(f"{text}\n")
    return "\n".join(parts)


# ---------------------------------------------------------------------------
# Metadata codec
# ---------------------------------------------------------------------------


def parse_name_list(text: str) -> list[str]:
    """Parse "alice, bob (Bob B.), #team" into ["alice", "bob", "#team"]."""
    return [name for name in _NAME_SEP_RE.split(_PARENS_RE.sub(",", text)) if name]


def _format_names(names: set[str]) -> str:
    return ", ".join(sorted(names, key=str.casefold))


def _metadata_from_sections(sections: dict[Section, str]) -> CommitMetadata:
    request_ref = sections.get(Section.PULL_REQUEST, "").strip()
    return CommitMetadata(
        title=sections.get(Section.TITLE, ""),
        description=sections.get(Section.SUMMARY, ""),
        test_plan=sections.get(Section.TEST_PLAN),
        reviewers=set(parse_name_list(sections.get(Section.REVIEWERS, ""))),
        review_request_ref=request_ref or None,
        approved_by=set(parse_name_list(sections.get(Section.REVIEWED_BY, ""))),
    )


def _sections_from_metadata(metadata: CommitMetadata) -> dict[Section, str]:
    sections = {Section.TITLE: metadata.title}
    if metadata.description:
        sections[Section.SUMMARY] = metadata.description
    if metadata.test_plan is not None:
        sections[Section.TEST_PLAN] = metadata.test_plan
    if metadata.reviewers:
        sections[Section.REVIEWERS] = _format_names(metadata.reviewers)
    if metadata.approved_by:
        sections[Section.REVIEWED_BY] = _format_names(metadata.approved_by)
    if metadata.review_request_ref:
        sections[Section.PULL_REQUEST] = metadata.review_request_ref
    return sections


def parse_message(text: str) -> CommitMetadata:
    """Parse a commit message. Never fails; missing sections come back empty."""
    return _metadata_from_sections(parse_sections(text))


def format_message(metadata: CommitMetadata) -> str:
    """Render the canonical commit message for *metadata*."""
    sections = _sections_from_metadata(metadata)
    if not metadata.title:
        # An empty first line would be stripped away, so label everything.
        del sections[Section.TITLE]
        return build_sections(sections, COMMIT_MESSAGE_SECTIONS, all_labels=True)
    if "\n" in metadata.title:
        # Only the first unlabelled line is read back as the title.
        return build_sections(sections, COMMIT_MESSAGE_SECTIONS, all_labels=True)
    return build_sections(sections, COMMIT_MESSAGE_SECTIONS)


def parse_request_body(title: str, body: str | None) -> CommitMetadata:
    """Parse a pull request description, where unlabelled text is the summary."""
    sections = parse_sections(body or "", top=Section.SUMMARY)
    sections[Section.TITLE] = title.strip()
    return _metadata_from_sections(sections)


def build_request_body(metadata: CommitMetadata) -> str:
    return build_sections(_sections_from_metadata(metadata), REQUEST_BODY_SECTIONS).rstrip("\n")


def build_merge_message(metadata: CommitMetadata) -> str:
    return build_sections(_sections_from_metadata(metadata), MERGE_MESSAGE_SECTIONS).rstrip("\n")


def validate_message(metadata: CommitMetadata, require_test_plan: bool = True, oid: str = "") -> None:
    """Raise if *metadata* cannot be published."""
    if not metadata.title.strip():
        raise MissingTitle(oid)
    if require_test_plan and metadata.test_plan is None:
        raise TestPlanMissing(metadata.title)
