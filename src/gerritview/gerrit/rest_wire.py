# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Gerrit REST wire types and their mapping into the shared model.

The REST API prefixes internal fields with an underscore (``_number``,
``_account_id``, ``_revision_number``) and returns comments as a map of
file path to comment list. These private models accept exactly that shape
and convert it into the types in ``gerritview.gerrit.models``.

Validation errors propagate as ``pydantic.ValidationError``; the REST
client wraps them with the operation that was being decoded.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from gerritview.gerrit.models import (
    Account,
    Change,
    ChangeMessage,
    Comment,
    CommentRange,
    CommitInfo,
    Revision,
)


class _RestAccount(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    account_id: int | None = Field(None, alias="_account_id")
    name: str | None = None
    email: str | None = None
    username: str | None = None
    display_name: str | None = None

    def to_model(self) -> Account:
        return Account(
            account_id=self.account_id,
            name=self.name,
            email=self.email,
            username=self.username,
            display_name=self.display_name,
        )


class _RestRevision(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    number: int = Field(..., alias="_number")
    ref: str
    commit: CommitInfo | None = None

    def to_model(self) -> Revision:
        return Revision(number=self.number, ref=self.ref, commit=self.commit)


class _RestChangeMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    author: _RestAccount | None = None
    date: str | None = None
    message: str | None = None
    revision_number: int | None = Field(None, alias="_revision_number")

    def to_model(self) -> ChangeMessage:
        return ChangeMessage(
            id=self.id,
            author=self.author.to_model() if self.author else None,
            date=self.date,
            message=self.message,
            revision_number=self.revision_number,
        )


class _RestChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    project: str | None = None
    branch: str | None = None
    change_id: str | None = None
    subject: str | None = None
    status: str | None = None
    topic: str | None = None
    created: str | None = None
    updated: str | None = None
    number: int | None = Field(None, alias="_number")
    owner: _RestAccount | None = None
    current_revision: str | None = None
    revisions: dict[str, _RestRevision] | None = None
    messages: list[_RestChangeMessage] | None = None
    insertions: int | None = None
    deletions: int | None = None

    def to_model(self) -> Change:
        revisions = None
        if self.revisions is not None:
            revisions = {
                sha: rev.to_model() for sha, rev in self.revisions.items()
            }
        messages = None
        if self.messages is not None:
            messages = [m.to_model() for m in self.messages]
        return Change(
            id=self.id,
            project=self.project,
            branch=self.branch,
            change_id=self.change_id,
            subject=self.subject,
            status=self.status,
            topic=self.topic,
            number=self.number,
            owner=self.owner.to_model() if self.owner else None,
            created=self.created,
            updated=self.updated,
            current_revision=self.current_revision,
            revisions=revisions,
            messages=messages,
            insertions=self.insertions,
            deletions=self.deletions,
        )


class _RestComment(BaseModel):
    id: str | None = None
    path: str | None = None
    line: int | None = None
    range: CommentRange | None = None
    in_reply_to: str | None = None
    message: str | None = None
    updated: str | None = None
    author: _RestAccount | None = None
    patch_set: int | None = None
    unresolved: bool | None = None

    def to_model(self, path: str) -> Comment:
        return Comment(
            id=self.id,
            # The map key is authoritative; the body usually omits path.
            path=self.path or path,
            line=self.line,
            range=self.range,
            in_reply_to=self.in_reply_to,
            message=self.message,
            updated=self.updated,
            author=self.author.to_model() if self.author else None,
            patch_set=self.patch_set,
            unresolved=self.unresolved,
        )


_CHANGE_LIST = TypeAdapter(list[_RestChange])
_COMMENT_MAP = TypeAdapter(dict[str, list[_RestComment]])
_VERSION = TypeAdapter(str)


def decode_version(data: Any) -> str:
    """Decode the server version string."""
    return _VERSION.validate_python(data)


def decode_account(data: Any) -> Account:
    """Decode an AccountInfo object."""
    return _RestAccount.model_validate(data).to_model()


def decode_change(data: Any) -> Change:
    """Decode a single ChangeInfo object."""
    return _RestChange.model_validate(data).to_model()


def decode_changes(data: Any) -> list[Change]:
    """Decode a list of ChangeInfo objects."""
    return [raw.to_model() for raw in _CHANGE_LIST.validate_python(data)]


def decode_comment_map(data: Any) -> dict[str, list[Comment]]:
    """Decode a map of file path to CommentInfo list."""
    raw_map = _COMMENT_MAP.validate_python(data)
    return {
        path: [c.to_model(path) for c in comments]
        for path, comments in raw_map.items()
    }


__all__ = [
    "decode_account",
    "decode_change",
    "decode_changes",
    "decode_comment_map",
    "decode_version",
]
