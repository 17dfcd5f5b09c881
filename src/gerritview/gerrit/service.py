# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Gerrit query service for gerritview.

This module is the single entry point the rest of the tool uses to read
from Gerrit. It routes each call to the REST client or the SSH backend
based on the transport of the resolved remote, and returns the shared
model regardless of which one served it:

- Listing open changes for a project/branch
- Fetching a change with all of its revisions
- Fetching comments (REST only)
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from gerritview.comments import merge_comment_maps
from gerritview.gerrit.client import GerritRestClient, GerritRestError
from gerritview.gerrit.models import Change, Comment
from gerritview.gerrit.ssh import GerritSshClient, GerritSshError
from gerritview.remote import ResolvedRemote, Transport

log = logging.getLogger("gerritview.gerrit.service")

SshClientFactory = Callable[[str], GerritSshClient]


class GerritQueryError(Exception):
    """Raised when a query fails on either transport."""

    def __init__(self, message: str, transport: Transport) -> None:
        super().__init__(message)
        self.transport = transport


def build_list_query(project: str, branch: str | None = None) -> str:
    """
    Build the Gerrit query for listing open changes.

    Always includes ``status:open``; adds ``project:`` when the project is
    non-empty and ``branch:`` when a branch is given.
    """
    query = "status:open"
    if project:
        query += f" project:{project}"
    if branch:
        query += f" branch:{branch}"
    return query


def _transport_label(transport: Transport) -> str:
    return "REST" if transport is Transport.HTTP else "SSH"


class GerritQueryService:
    """
    Transport-independent read access to a Gerrit server.

    The REST client and the SSH client factory are supplied by the caller;
    this class holds no credentials of its own.
    """

    def __init__(
        self,
        rest_client: GerritRestClient,
        ssh_client_factory: SshClientFactory = GerritSshClient.from_url,
    ) -> None:
        """
        Initialize the query service.

        Args:
            rest_client: Client used for HTTP(S) remotes.
            ssh_client_factory: Builds an SSH client from a remote URL.
        """
        self._rest = rest_client
        self._ssh_factory = ssh_client_factory

    @property
    def rest_client(self) -> GerritRestClient:
        """Get the REST client used for HTTP remotes."""
        return self._rest

    def _wrap(
        self, exc: Exception, action: str, transport: Transport
    ) -> GerritQueryError:
        msg = f"{action} via {_transport_label(transport)}: {exc}"
        log.debug(msg)
        return GerritQueryError(msg, transport)

    async def query_changes(
        self,
        remote: ResolvedRemote,
        project: str,
        branch: str | None = None,
    ) -> list[Change]:
        """
        List open changes for a project.

        Args:
            remote: The resolved remote to query.
            project: Project name (a ".git" suffix is ignored on SSH).
            branch: Optional branch filter.

        Returns:
            Open changes with their current revision.

        Raises:
            GerritQueryError: If the backend fails.
        """
        action = f"querying open changes for {project or '(all projects)'}"
        try:
            if remote.transport is Transport.HTTP:
                return await self._rest.query_changes(
                    build_list_query(project, branch)
                )
            ssh = self._ssh_factory(remote.url)
            return await ssh.query_changes(project, branch)
        except (GerritRestError, GerritSshError) as exc:
            raise self._wrap(exc, action, remote.transport) from exc

    async def get_change_all_revisions(
        self, remote: ResolvedRemote, change_id: str
    ) -> Change:
        """
        Fetch a change with every revision.

        Raises:
            GerritQueryError: If the backend fails.
        """
        action = f"fetching change {change_id}"
        try:
            if remote.transport is Transport.HTTP:
                return await self._rest.get_change_all_revisions(change_id)
            ssh = self._ssh_factory(remote.url)
            return await ssh.get_change_all_revisions(change_id)
        except (GerritRestError, GerritSshError) as exc:
            raise self._wrap(exc, action, remote.transport) from exc

    async def get_change_comments(
        self,
        remote: ResolvedRemote,
        change_id: str,
        revision: str | None = None,
        include_robot_comments: bool = False,
    ) -> dict[str, list[Comment]]:
        """
        Fetch comments on a change, keyed by file path.

        Args:
            remote: The resolved remote; must use the HTTP transport.
            change_id: Change number or Change-Id.
            revision: Limit to one revision; None means all revisions.
            include_robot_comments: Also merge in robot comments. A failure
                to fetch them is logged and ignored.

        Raises:
            GerritQueryError: On SSH remotes, or if the request fails.
        """
        action = f"fetching comments for change {change_id}"
        if remote.transport is not Transport.HTTP:
            raise GerritQueryError(
                f"{action}: comments are only available over REST, "
                f"not SSH ({remote.url})",
                remote.transport,
            )

        try:
            if revision is None:
                comments = await self._rest.get_change_comments(change_id)
            else:
                comments = await self._rest.get_revision_comments(
                    change_id, revision
                )
        except GerritRestError as exc:
            raise self._wrap(exc, action, remote.transport) from exc

        if include_robot_comments:
            try:
                robot = await self._rest.get_robot_comments(change_id)
            except GerritRestError as exc:
                log.warning(
                    "Failed to fetch robot comments for %s: %s", change_id, exc
                )
            else:
                comments = merge_comment_maps(comments, robot)

        return comments


__all__ = [
    "GerritQueryError",
    "GerritQueryService",
    "build_list_query",
]
