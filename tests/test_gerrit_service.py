# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Tests for the Gerrit query service.

This module tests routing between the REST and SSH backends, error
wrapping, and comment fetching.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from gerritview.gerrit.client import GerritNotFoundError, GerritServerError
from gerritview.gerrit.models import Change, Comment
from gerritview.gerrit.service import (
    GerritQueryError,
    GerritQueryService,
    build_list_query,
)
from gerritview.gerrit.ssh import SshSubprocessError
from gerritview.remote import ResolvedRemote, Transport

HTTP_REMOTE = ResolvedRemote("https://gerrit.example.org/project", Transport.HTTP)
SSH_REMOTE = ResolvedRemote(
    "ssh://alice@gerrit.example.org:29418/project", Transport.SSH
)


@pytest.fixture
def rest_client():
    """Create a mock REST client."""
    client = MagicMock()
    client.query_changes = AsyncMock(return_value=[Change(number=1)])
    client.get_change_all_revisions = AsyncMock(return_value=Change(number=2))
    client.get_change_comments = AsyncMock(
        return_value={"a.py": [Comment(id="c1")]}
    )
    client.get_revision_comments = AsyncMock(
        return_value={"a.py": [Comment(id="c2")]}
    )
    client.get_robot_comments = AsyncMock(
        return_value={"b.py": [Comment(id="robot")]}
    )
    return client


@pytest.fixture
def ssh_client():
    """Create a mock SSH client."""
    client = MagicMock()
    client.query_changes = AsyncMock(return_value=[Change(number=3)])
    client.get_change_all_revisions = AsyncMock(return_value=Change(number=4))
    return client


@pytest.fixture
def ssh_factory(ssh_client):
    return MagicMock(return_value=ssh_client)


@pytest.fixture
def service(rest_client, ssh_factory):
    return GerritQueryService(rest_client, ssh_client_factory=ssh_factory)


class TestBuildListQuery:
    """Tests for the REST list query."""

    def test_project_and_branch(self):
        assert build_list_query("proj", "main") == (
            "status:open project:proj branch:main"
        )

    def test_empty_project(self):
        assert build_list_query("") == "status:open"


class TestRouting:
    """Tests for transport routing."""

    @pytest.mark.asyncio
    async def test_query_changes_http(self, service, rest_client, ssh_factory):
        """Test that HTTP remotes go to the REST client."""
        changes = await service.query_changes(HTTP_REMOTE, "proj", "main")

        assert [c.number for c in changes] == [1]
        rest_client.query_changes.assert_awaited_once_with(
            "status:open project:proj branch:main"
        )
        ssh_factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_query_changes_ssh(self, service, rest_client, ssh_factory, ssh_client):
        """Test that SSH remotes go to a client built from the remote URL."""
        changes = await service.query_changes(SSH_REMOTE, "proj")

        assert [c.number for c in changes] == [3]
        ssh_factory.assert_called_once_with(SSH_REMOTE.url)
        ssh_client.query_changes.assert_awaited_once_with("proj", None)
        rest_client.query_changes.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_change_all_revisions_http(self, service, rest_client):
        change = await service.get_change_all_revisions(HTTP_REMOTE, "12345")
        assert change.number == 2
        rest_client.get_change_all_revisions.assert_awaited_once_with("12345")

    @pytest.mark.asyncio
    async def test_change_all_revisions_ssh(self, service, ssh_client):
        change = await service.get_change_all_revisions(SSH_REMOTE, "12345")
        assert change.number == 4
        ssh_client.get_change_all_revisions.assert_awaited_once_with("12345")


class TestErrorWrapping:
    """Tests for contextual error wrapping."""

    @pytest.mark.asyncio
    async def test_ssh_failure_context(self, service, ssh_client):
        """Test the message chain for an SSH subprocess failure."""
        ssh_client.get_change_all_revisions.side_effect = SshSubprocessError(
            "ssh gerrit query failed: Connection refused"
        )
        with pytest.raises(GerritQueryError) as exc_info:
            await service.get_change_all_revisions(SSH_REMOTE, "12345")

        assert str(exc_info.value) == (
            "fetching change 12345 via SSH: "
            "ssh gerrit query failed: Connection refused"
        )
        assert exc_info.value.transport is Transport.SSH
        assert isinstance(exc_info.value.__cause__, SshSubprocessError)

    @pytest.mark.asyncio
    async def test_rest_failure_context(self, service, rest_client):
        rest_client.get_change_all_revisions.side_effect = GerritNotFoundError(
            "not found (HTTP 404): /changes/1/detail", status_code=404
        )
        with pytest.raises(GerritQueryError, match="fetching change 1 via REST"):
            await service.get_change_all_revisions(HTTP_REMOTE, "1")

    @pytest.mark.asyncio
    async def test_ssh_url_error_wrapped(self, rest_client):
        """Test that an unparseable SSH remote is reported as a query error."""
        service = GerritQueryService(rest_client)
        bad = ResolvedRemote("ssh://host:bad/p", Transport.SSH)
        with pytest.raises(GerritQueryError, match="via SSH"):
            await service.query_changes(bad, "p")


class TestComments:
    """Tests for comment fetching."""

    @pytest.mark.asyncio
    async def test_all_revisions(self, service, rest_client):
        comments = await service.get_change_comments(HTTP_REMOTE, "123")
        assert [c.id for c in comments["a.py"]] == ["c1"]
        rest_client.get_robot_comments.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_single_revision(self, service, rest_client):
        comments = await service.get_change_comments(
            HTTP_REMOTE, "123", revision="abc"
        )
        assert [c.id for c in comments["a.py"]] == ["c2"]
        rest_client.get_revision_comments.assert_awaited_once_with("123", "abc")

    @pytest.mark.asyncio
    async def test_robot_comments_merged(self, service):
        comments = await service.get_change_comments(
            HTTP_REMOTE, "123", include_robot_comments=True
        )
        assert set(comments) == {"a.py", "b.py"}

    @pytest.mark.asyncio
    async def test_robot_comment_failure_is_warning(self, service, rest_client, caplog):
        """Test that robot comment failures do not fail the call."""
        rest_client.get_robot_comments.side_effect = GerritServerError(
            "server error (HTTP 500)", status_code=500
        )
        comments = await service.get_change_comments(
            HTTP_REMOTE, "123", include_robot_comments=True
        )

        assert set(comments) == {"a.py"}
        assert "Failed to fetch robot comments" in caplog.text

    @pytest.mark.asyncio
    async def test_ssh_remote_rejected(self, service, ssh_factory):
        """Test that comments are refused for SSH remotes."""
        with pytest.raises(GerritQueryError, match="only available over REST") as exc_info:
            await service.get_change_comments(SSH_REMOTE, "123")

        assert exc_info.value.transport is Transport.SSH
        ssh_factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_rest_failure_wrapped(self, service, rest_client):
        rest_client.get_change_comments.side_effect = GerritNotFoundError("gone")
        with pytest.raises(GerritQueryError, match="fetching comments for change 123"):
            await service.get_change_comments(HTTP_REMOTE, "123")
