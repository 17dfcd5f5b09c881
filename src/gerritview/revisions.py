# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Patchset and revision resolution for Gerrit changes.

Usage:
    from gerritview.revisions import find_target_revision

    sha, revision = find_target_revision(change, patchset=2)
    print(revision.ref)  # refs/changes/45/12345/2
"""

from __future__ import annotations

import logging
from urllib.parse import urlsplit

from gerritview.gerrit.models import Change, Revision

log = logging.getLogger("gerritview.revisions")


class RevisionResolveError(LookupError):
    """Raised when a revision cannot be resolved from change data."""


class NoRevisionDataError(RevisionResolveError):
    """The change carries no revision map at all."""

    def __init__(self) -> None:
        super().__init__("change has no revision data")


class RevisionNotFoundError(RevisionResolveError):
    """No revision has the requested patchset number."""

    def __init__(self, patchset: int) -> None:
        super().__init__(f"patchset {patchset} not found in change")
        self.patchset = patchset


class NoCurrentRevisionError(RevisionResolveError):
    """The current revision is missing or absent from the revision map."""


def find_target_revision(
    change: Change, patchset: int | None = None
) -> tuple[str, Revision]:
    """
    Find the revision to act on.

    Args:
        change: A change decoded with revision data.
        patchset: A patchset number, or None for the current revision.

    Returns:
        The (commit hash, Revision) pair.

    Raises:
        NoRevisionDataError: If the change has no revisions.
        RevisionNotFoundError: If no revision has the given patchset.
        NoCurrentRevisionError: If patchset is None and the current
            revision is unset or not in the revision map.
    """
    if change.revisions is None:
        raise NoRevisionDataError()

    if patchset is not None:
        for sha, revision in change.revisions.items():
            if revision.number == patchset:
                return sha, revision
        raise RevisionNotFoundError(patchset)

    current = change.current_revision
    if current is None:
        raise NoCurrentRevisionError("change has no current revision")
    revision = change.revisions.get(current)
    if revision is None:
        raise NoCurrentRevisionError(
            f"current revision {current} not found in revision map"
        )
    return current, revision


def parse_change_patchset(value: str) -> tuple[str, int | None]:
    """
    Split a ``CHANGE[,PATCHSET]`` argument.

    ``"12345"`` gives ``("12345", None)`` and ``"12345,2"`` gives
    ``("12345", 2)``. A non-numeric patchset leaves the input whole.
    """
    change, sep, ps = value.partition(",")
    if sep:
        try:
            return change, int(ps)
        except ValueError:
            log.debug("ignoring non-numeric patchset in %r", value)
    return value, None


def _is_number(segment: str) -> bool:
    return segment.isascii() and segment.isdigit()


def _numeric_segments(path: str) -> str | None:
    """``CHANGE[,PS]`` from the leading numeric segments of a path."""
    segments = [s for s in path.split("/") if s]
    if len(segments) >= 2 and _is_number(segments[0]) and _is_number(segments[1]):
        return f"{segments[0]},{segments[1]}"
    if segments and _is_number(segments[0]):
        return segments[0]
    return None


def parse_change_url(value: str) -> str | None:
    """
    Extract ``CHANGE[,PATCHSET]`` from a Gerrit web URL.

    Recognized forms:
        https://review.example.com/12345            -> "12345"
        https://review.example.com/12345/2          -> "12345,2"
        https://review.example.com/#/c/12345        -> "12345"
        https://review.example.com/c/project/+/12345/1 -> "12345,1"

    Returns:
        The change argument, or None if ``value`` is not such a URL.
    """
    parts = urlsplit(value)
    if not parts.scheme or not parts.netloc:
        return None

    fragment = parts.fragment.lstrip("/")
    if fragment.startswith("c/"):
        return _numeric_segments(fragment[len("c/") :])

    path = parts.path.rstrip("/")
    if path.startswith("/c/"):
        rest = path[len("/c/") :]
        plus = rest.find("/+/")
        if plus >= 0:
            return _numeric_segments(rest[plus + len("/+/") :])

    segments = [s for s in path.split("/") if s]
    if len(segments) >= 2 and _is_number(segments[-2]) and _is_number(segments[-1]):
        return f"{segments[-2]},{segments[-1]}"
    if segments and _is_number(segments[-1]):
        return segments[-1]
    return None


def normalize_change_arg(value: str) -> str:
    """Turn a change URL into ``CHANGE[,PATCHSET]``; other input is unchanged."""
    parsed = parse_change_url(value)
    if parsed is None:
        return value
    log.debug("change URL %s normalized to %s", value, parsed)
    return parsed


__all__ = [
    "NoCurrentRevisionError",
    "NoRevisionDataError",
    "RevisionNotFoundError",
    "RevisionResolveError",
    "find_target_revision",
    "normalize_change_arg",
    "parse_change_patchset",
    "parse_change_url",
]

