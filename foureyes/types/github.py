"""GitHub data models as stored in snapshots.

Timestamps are timezone-aware ``datetime`` objects in memory and ISO 8601
strings (``Z`` suffix) in snapshot payloads.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an ISO 8601 timestamp into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def require_timestamp(value: str | datetime | None) -> datetime:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError("timestamp is required")
    return parsed


def format_timestamp(value: datetime | None) -> str | None:
    """Format a datetime as ISO 8601 with a ``Z`` suffix."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ").replace(
        ".000000Z", "Z"
    )


class ReviewState(str, Enum):
    """State of a pull request review."""

    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    COMMENTED = "COMMENTED"
    PENDING = "PENDING"
    DISMISSED = "DISMISSED"


@dataclass(frozen=True)
class PrReview:
    """A single submitted review on a pull request."""

    username: str
    state: ReviewState
    submitted_at: datetime | None
    review_id: int = 0
    body: str | None = None

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "id": self.review_id,
            "username": self.username,
            "state": self.state.value,
            "submittedAt": format_timestamp(self.submitted_at),
            "body": self.body,
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> "PrReview":
        return cls(
            username=data["username"],
            state=ReviewState(data["state"]),
            submitted_at=parse_timestamp(data.get("submittedAt")),
            review_id=data.get("id", 0),
            body=data.get("body"),
        )


@dataclass(frozen=True)
class Commit:
    """A commit, either from a PR's commit list or from a compare result."""

    sha: str
    message: str
    author: str
    author_date: datetime
    parent_shas: tuple[str, ...] = ()
    committer_date: datetime | None = None
    html_url: str = ""

    @property
    def is_merge_commit(self) -> bool:
        """A commit with two or more parents."""
        return len(self.parent_shas) >= 2

    @property
    def first_line(self) -> str:
        return self.message.split("\n", 1)[0].strip()

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "sha": self.sha,
            "message": self.message,
            "authorUsername": self.author,
            "authorDate": format_timestamp(self.author_date),
            "committerDate": format_timestamp(self.committer_date),
            "parentShas": list(self.parent_shas),
            "htmlUrl": self.html_url,
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> "Commit":
        return cls(
            sha=data["sha"],
            message=data.get("message", ""),
            author=data.get("authorUsername", "unknown"),
            author_date=require_timestamp(data["authorDate"]),
            parent_shas=tuple(data.get("parentShas", [])),
            committer_date=parse_timestamp(data.get("committerDate")),
            html_url=data.get("htmlUrl", ""),
        )


@dataclass(frozen=True)
class PrMetadata:
    """Pull request metadata."""

    number: int
    title: str
    author: str
    base_branch: str
    head_branch: str
    head_sha: str
    state: str  # "open", "closed"
    merged: bool
    created_at: datetime
    merged_at: datetime | None = None
    merged_by: str | None = None
    merge_commit_sha: str | None = None
    html_url: str = ""
    draft: bool = False
    labels: tuple[str, ...] = ()

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "title": self.title,
            "author": self.author,
            "baseBranch": self.base_branch,
            "headBranch": self.head_branch,
            "headSha": self.head_sha,
            "state": self.state,
            "merged": self.merged,
            "createdAt": format_timestamp(self.created_at),
            "mergedAt": format_timestamp(self.merged_at),
            "mergedBy": self.merged_by,
            "mergeCommitSha": self.merge_commit_sha,
            "htmlUrl": self.html_url,
            "draft": self.draft,
            "labels": list(self.labels),
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> "PrMetadata":
        return cls(
            number=data["number"],
            title=data.get("title", ""),
            author=data.get("author", "unknown"),
            base_branch=data.get("baseBranch", "main"),
            head_branch=data.get("headBranch", ""),
            head_sha=data.get("headSha", ""),
            state=data.get("state", "closed"),
            merged=data.get("merged", False),
            created_at=require_timestamp(data["createdAt"]),
            merged_at=parse_timestamp(data.get("mergedAt")),
            merged_by=data.get("mergedBy"),
            merge_commit_sha=data.get("mergeCommitSha"),
            html_url=data.get("htmlUrl", ""),
            draft=data.get("draft", False),
            labels=tuple(data.get("labels", [])),
        )


@dataclass(frozen=True)
class AssociatedPr:
    """Summary of a PR that GitHub associates with a commit."""

    number: int
    base_branch: str
    merged: bool
    merged_at: datetime | None = None
    merge_commit_sha: str | None = None

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "baseBranch": self.base_branch,
            "merged": self.merged,
            "mergedAt": format_timestamp(self.merged_at),
            "mergeCommitSha": self.merge_commit_sha,
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> "AssociatedPr":
        return cls(
            number=data["number"],
            base_branch=data.get("baseBranch", "unknown"),
            merged=data.get("merged", False),
            merged_at=parse_timestamp(data.get("mergedAt")),
            merge_commit_sha=data.get("mergeCommitSha"),
        )


@dataclass(frozen=True)
class CompareResult:
    """Commits reachable from ``head_sha`` but not from ``base_sha``."""

    base_sha: str
    head_sha: str
    commits: tuple[Commit, ...] = field(default_factory=tuple)

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "baseSha": self.base_sha,
            "headSha": self.head_sha,
            "commits": [c.to_snapshot() for c in self.commits],
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> "CompareResult":
        return cls(
            base_sha=data["baseSha"],
            head_sha=data["headSha"],
            commits=tuple(Commit.from_snapshot(c) for c in data.get("commits", [])),
        )
