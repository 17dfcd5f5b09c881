# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Shared Gerrit data models for gerritview.

This module defines the transport-independent Pydantic models that both
the REST client and the SSH query backend produce. Neither backend
exposes its native wire shape; each maps into these types.

These models provide:
- Type-safe representations of changes, revisions, accounts and comments
- Helpers for status checks and identity comparison
- The derived comment thread structure used by the thread builder
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, model_validator


class ChangeStatus(str, Enum):
    """Gerrit change status values."""

    NEW = "NEW"
    MERGED = "MERGED"
    ABANDONED = "ABANDONED"


class Account(BaseModel):
    """
    A Gerrit account (owner, reviewer, comment author).

    The numeric account id is only reported by the REST API; accounts
    decoded from SSH query output never carry it.
    """

    account_id: int | None = Field(None, description="Internal account id")
    name: str | None = None
    email: str | None = None
    username: str | None = None
    display_name: str | None = None

    def display(self) -> str:
        """Return the best available human-readable label."""
        return (
            self.display_name
            or self.name
            or self.username
            or self.email
            or "Unknown"
        )

    def same_identity(self, other: Account) -> bool:
        """
        Check whether two accounts refer to the same person.

        Fields are compared in order of reliability (account id, username,
        email). A field missing on either side is skipped rather than
        treated as a mismatch.

        Returns:
            True if the first comparable field matches, False if it
            differs or no field is comparable.
        """
        for field in ("account_id", "username", "email"):
            mine = getattr(self, field)
            theirs = getattr(other, field)
            if mine is None or theirs is None:
                continue
            if field == "email":
                return str(mine).lower() == str(theirs).lower()
            return bool(mine == theirs)
        return False


class GitPerson(BaseModel):
    """Author or committer of a commit."""

    name: str | None = None
    email: str | None = None
    date: str | None = None


class CommitInfo(BaseModel):
    """Commit metadata embedded in a revision."""

    subject: str | None = None
    message: str | None = None
    author: GitPerson | None = None
    committer: GitPerson | None = None


class Revision(BaseModel):
    """
    One patchset of a change.

    Revisions are keyed by commit hash in Change.revisions and are never
    modified after decoding.
    """

    model_config = {"frozen": True}

    number: int = Field(..., description="Patchset number (starts at 1)")
    ref: str = Field(..., description="Fetch ref, refs/changes/AA/CHANGE/PS")
    commit: CommitInfo | None = None


class ChangeMessage(BaseModel):
    """A review message posted on a change."""

    id: str | None = None
    author: Account | None = None
    date: str | None = None
    message: str | None = None
    revision_number: int | None = None


class Change(BaseModel):
    """
    A Gerrit change under review.

    Timestamps are opaque strings: REST reports formatted dates while SSH
    reports epoch seconds, and neither is parsed here.
    """

    id: str | None = None
    project: str | None = None
    branch: str | None = None
    change_id: str | None = Field(None, description="Change-Id trailer value")
    subject: str | None = None
    status: str | None = Field(None, description="NEW, MERGED, ABANDONED, ...")
    topic: str | None = None
    number: int | None = Field(None, description="Gerrit change number")
    owner: Account | None = None
    created: str | None = None
    updated: str | None = None
    current_revision: str | None = None
    revisions: dict[str, Revision] | None = None
    messages: list[ChangeMessage] | None = None
    insertions: int | None = None
    deletions: int | None = None

    @model_validator(mode="after")
    def _check_current_revision(self) -> Change:
        if (
            self.revisions
            and self.current_revision is not None
            and self.current_revision not in self.revisions
        ):
            raise ValueError(
                f"current_revision {self.current_revision!r} is not a key "
                "of revisions"
            )
        return self

    @property
    def is_open(self) -> bool:
        """Check if the change is open (NEW status)."""
        return self.status == ChangeStatus.NEW.value

    @property
    def is_merged(self) -> bool:
        """Check if the change has been merged."""
        return self.status == ChangeStatus.MERGED.value

    @property
    def is_abandoned(self) -> bool:
        """Check if the change has been abandoned."""
        return self.status == ChangeStatus.ABANDONED.value

    def web_url(self, base_url: str) -> str:
        """Build the web UI URL for this change on the given server."""
        return f"{base_url.rstrip('/')}/c/{self.project or ''}/+/{self.number or 0}"


class CommentRange(BaseModel):
    """Character range a comment is anchored to."""

    start_line: int
    start_character: int
    end_line: int
    end_character: int


class Comment(BaseModel):
    """
    An inline or file-level review comment.

    A missing line means the comment applies to the whole file. A missing
    unresolved flag is treated as unresolved.
    """

    id: str | None = None
    path: str | None = None
    line: int | None = None
    range: CommentRange | None = None
    in_reply_to: str | None = None
    message: str | None = None
    updated: str | None = None
    author: Account | None = None
    patch_set: int | None = None
    unresolved: bool | None = None

    @property
    def is_unresolved(self) -> bool:
        """Whether the comment counts as unresolved."""
        return self.unresolved is not False


class CommentThread(BaseModel):
    """A root comment and its replies, flattened depth-first."""

    file: str
    line: int | None = None
    resolved: bool = False
    comments: list[Comment] = Field(default_factory=list)


class ThreadSummary(BaseModel):
    """Resolved/unresolved counts over a set of threads."""

    total_threads: int = 0
    resolved: int = 0
    unresolved: int = 0


__all__ = [
    "Account",
    "Change",
    "ChangeMessage",
    "ChangeStatus",
    "Comment",
    "CommentRange",
    "CommentThread",
    "CommitInfo",
    "GitPerson",
    "Revision",
    "ThreadSummary",
]
