# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Gerrit integration package for gerritview.

Modules:
    client: async REST client with retry and typed errors
    rest_wire: REST wire types and mapping into the shared model
    ssh: SSH ``gerrit query`` backend
    models: Pydantic models shared by both transports
    service: transport dispatch for change and comment queries
             (not re-exported here)

Usage:
    from gerritview.gerrit import build_rest_client
    from gerritview.gerrit.service import GerritQueryService

    async with build_rest_client("https://gerrit.example.org/") as rest:
        service = GerritQueryService(rest)
        changes = await service.query_changes(remote, "my/project")
"""

from gerritview.gerrit.client import (
    AuthType,
    Credentials,
    GerritAuthError,
    GerritDecodeError,
    GerritNetworkError,
    GerritNotFoundError,
    GerritRestClient,
    GerritRestError,
    GerritRetriesExhaustedError,
    GerritServerError,
    build_rest_client,
    strip_xssi,
)
from gerritview.gerrit.models import (
    Account,
    Change,
    ChangeMessage,
    ChangeStatus,
    Comment,
    CommentRange,
    CommentThread,
    CommitInfo,
    GitPerson,
    Revision,
    ThreadSummary,
)
from gerritview.gerrit.ssh import (
    GerritSshClient,
    GerritSshError,
    SshMalformedOutputError,
    SshSubprocessError,
    SshTarget,
    SshUrlError,
    parse_query_output,
    parse_ssh_url,
)

__all__ = [
    # Client
    "AuthType",
    "Credentials",
    "GerritAuthError",
    "GerritDecodeError",
    "GerritNetworkError",
    "GerritNotFoundError",
    "GerritRestClient",
    "GerritRestError",
    "GerritRetriesExhaustedError",
    "GerritServerError",
    "build_rest_client",
    "strip_xssi",
    # Models
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
    # SSH
    "GerritSshClient",
    "GerritSshError",
    "SshMalformedOutputError",
    "SshSubprocessError",
    "SshTarget",
    "SshUrlError",
    "parse_query_output",
    "parse_ssh_url",
]
