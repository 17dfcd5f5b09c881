# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Comment thread reconstruction.

Gerrit returns comments as a flat map of file path to comment list, with
replies linked through ``in_reply_to``. This module rebuilds the reply
trees into ordered threads and reports which are still unresolved.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from gerritview.gerrit.models import Comment, CommentThread, ThreadSummary

log = logging.getLogger("gerritview.comments")


def build_threads(
    comments_by_file: Mapping[str, Iterable[Comment]],
) -> list[CommentThread]:
    """
    Build comment threads from a map of file path to comments.

    A comment is a root when it has no ``in_reply_to`` or its parent is not
    among the given comments. Each root's replies are visited depth-first,
    siblings ordered by ``updated`` ascending (stable for ties).

    A thread is resolved only if its last comment has ``unresolved`` set
    explicitly to False.

    Returns:
        Threads sorted by file path, then line (file-level comments first).
    """
    all_comments: list[tuple[str, Comment]] = [
        (path, comment)
        for path, comments in comments_by_file.items()
        for comment in comments
    ]

    known_ids = {c.id for _, c in all_comments if c.id is not None}

    roots: list[tuple[str, Comment]] = []
    children: dict[str, list[Comment]] = {}
    for path, comment in all_comments:
        parent = comment.in_reply_to
        if parent is not None and parent in known_ids:
            children.setdefault(parent, []).append(comment)
        else:
            if parent is not None:
                log.debug(
                    "comment %s replies to unknown comment %s; treating as root",
                    comment.id,
                    parent,
                )
            roots.append((path, comment))

    threads: list[CommentThread] = []
    for path, root in roots:
        flattened: list[Comment] = []
        _collect_thread(root, children, flattened, set())
        resolved = bool(flattened) and flattened[-1].unresolved is False
        threads.append(
            CommentThread(
                file=path, line=root.line, resolved=resolved, comments=flattened
            )
        )

    threads.sort(key=lambda t: (t.file, t.line or 0))
    return threads


def _collect_thread(
    comment: Comment,
    children: dict[str, list[Comment]],
    result: list[Comment],
    seen: set[int],
) -> None:
    # Guard against reply cycles in malformed data.
    if id(comment) in seen:
        return
    seen.add(id(comment))
    result.append(comment)

    if comment.id is None:
        return
    replies = sorted(children.get(comment.id, []), key=lambda c: c.updated or "")
    for reply in replies:
        _collect_thread(reply, children, result, seen)


def merge_comment_maps(
    *maps: Mapping[str, Iterable[Comment]],
) -> dict[str, list[Comment]]:
    """Concatenate several file-to-comments maps, file by file."""
    merged: dict[str, list[Comment]] = {}
    for comment_map in maps:
        for path, comments in comment_map.items():
            merged.setdefault(path, []).extend(comments)
    return merged


def unresolved_threads(threads: Iterable[CommentThread]) -> list[CommentThread]:
    """Keep only threads that are not resolved."""
    return [t for t in threads if not t.resolved]


def summarize_threads(threads: Iterable[CommentThread]) -> ThreadSummary:
    """Count resolved and unresolved threads."""
    total = resolved = 0
    for thread in threads:
        total += 1
        if thread.resolved:
            resolved += 1
    return ThreadSummary(
        total_threads=total, resolved=resolved, unresolved=total - resolved
    )


__all__ = [
    "build_threads",
    "merge_comment_maps",
    "summarize_threads",
    "unresolved_threads",
]
