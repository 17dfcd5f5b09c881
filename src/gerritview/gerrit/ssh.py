# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Gerrit SSH query backend.

Runs ``gerrit query --format=JSON`` through an external ssh client and
normalizes the legacy JSON-lines output into the shared change model.

The SSH protocol differs from REST in several ways that are absorbed here:
- patch sets arrive as ``currentPatchSet``/``patchSets`` instead of a
  ``revisions`` map keyed by commit hash
- ``createdOn``/``lastUpdated`` may be epoch seconds or strings
- a patch set ``number`` may be an integer or a numeric string
- owner accounts carry no ``_account_id``
- the stream ends with a ``{"type": "stats", ...}`` summary row
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, Final

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from gerritview.gerrit.models import Account, Change, Revision

log = logging.getLogger("gerritview.gerrit.ssh")

DEFAULT_SSH_PORT: Final[int] = 29418
DEFAULT_SSH_TIMEOUT: Final[float] = 60.0

_FORCED_LOCALE: Final[dict[str, str]] = {"LANG": "C", "LANGUAGE": "C"}


class GerritSshError(RuntimeError):
    """Base class for SSH backend failures."""


class SshUrlError(GerritSshError, ValueError):
    """Raised when a remote URL is not a usable SSH/SCP URL."""


class SshSubprocessError(GerritSshError):
    """Raised when the ssh process fails or cannot be run."""

    def __init__(
        self,
        message: str,
        stderr: str = "",
        returncode: int | None = None,
    ) -> None:
        super().__init__(message)
        self.stderr = stderr
        self.returncode = returncode


class SshMalformedOutputError(GerritSshError):
    """Raised when query output cannot be decoded into changes."""


@dataclass(frozen=True)
class SshTarget:
    """
    Connection parameters parsed from an SSH remote URL.

    Attributes:
        host: Server hostname.
        username: Login name, if given in the URL.
        port: Port from the URL; None means the Gerrit default.
        project: Project path with any ".git" suffix removed.
    """

    host: str
    username: str | None
    port: int | None
    project: str

    @property
    def userhost(self) -> str:
        """The ``[user@]host`` argument for ssh."""
        if self.username:
            return f"{self.username}@{self.host}"
        return self.host

    @property
    def effective_port(self) -> int:
        """The port to connect to."""
        return self.port if self.port is not None else DEFAULT_SSH_PORT


def _strip_git_suffix(path: str) -> str:
    return path[: -len(".git")] if path.endswith(".git") else path


def _split_userhost(userhost: str) -> tuple[str, str | None]:
    user, sep, host = userhost.rpartition("@")
    if sep:
        return host, user
    return userhost, None


def parse_ssh_url(url: str) -> SshTarget:
    """
    Parse an SSH remote URL.

    Accepts ``ssh://[user@]host[:port]/path`` and SCP-style
    ``[user@]host:path``.

    Raises:
        SshUrlError: If the URL cannot be parsed.
    """
    url = url.strip()
    if "://" in url:
        return _parse_ssh_scheme(url)
    return _parse_scp(url)


def _parse_ssh_scheme(url: str) -> SshTarget:
    if not url.startswith("ssh://"):
        raise SshUrlError(f"expected ssh:// URL: {url}")
    rest = url[len("ssh://") :]
    userhost, sep, path = rest.partition("/")
    if not sep:
        raise SshUrlError(f"SSH URL has no path component: {url}")

    port: int | None = None
    hostpart, colon, port_str = userhost.rpartition(":")
    if colon:
        try:
            port = int(port_str)
        except ValueError as exc:
            raise SshUrlError(f"invalid port in SSH URL: {url}") from exc
        if not 0 < port < 65536:
            raise SshUrlError(f"invalid port in SSH URL: {url}")
        userhost = hostpart

    host, username = _split_userhost(userhost)
    if not host:
        raise SshUrlError(f"SSH URL has no host: {url}")
    project = _strip_git_suffix(path.lstrip("/"))
    return SshTarget(host=host, username=username, port=port, project=project)


def _parse_scp(url: str) -> SshTarget:
    host_part, sep, path = url.partition(":")
    if not sep:
        raise SshUrlError(f"SCP URL must have host:path form: {url}")
    if path.startswith("//"):
        raise SshUrlError(f"ambiguous SCP URL (path starts with //): {url}")
    host, username = _split_userhost(host_part)
    if not host:
        raise SshUrlError(f"SCP URL has no host: {url}")
    return SshTarget(
        host=host, username=username, port=None, project=_strip_git_suffix(path)
    )


def _int_or_numeric_string(value: Any) -> Any:
    """Accept a patch set number as an integer or a numeric string."""
    if isinstance(value, bool):
        raise ValueError("patch set number must be an integer")
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as exc:
            raise ValueError(
                f"patch set number not a valid integer: {value!r}"
            ) from exc
    return value


def _string_or_epoch(value: Any) -> Any:
    """Accept a timestamp as a string or epoch seconds."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        raise ValueError("timestamp must be a string or epoch seconds")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value))
    raise ValueError(f"timestamp must be a string or epoch seconds: {value!r}")


_FlexibleInt = Annotated[int | None, BeforeValidator(_int_or_numeric_string)]
_FlexibleTimestamp = Annotated[str | None, BeforeValidator(_string_or_epoch)]


class _SshAccount(BaseModel):
    name: str | None = None
    email: str | None = None
    username: str | None = None

    def to_model(self) -> Account:
        return Account(name=self.name, email=self.email, username=self.username)


class _SshPatchSet(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    number: _FlexibleInt = None
    ref: str | None = None
    revision: str | None = None

    def to_revision(self) -> Revision | None:
        if self.number is None or self.ref is None or self.revision is None:
            return None
        return Revision(number=self.number, ref=self.ref)


class _SshChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    number: _FlexibleInt = None
    id: str | None = None
    project: str | None = None
    branch: str | None = None
    change_id: str | None = None
    subject: str | None = None
    status: str | None = None
    topic: str | None = None
    created: _FlexibleTimestamp = Field(None, alias="createdOn")
    updated: _FlexibleTimestamp = Field(None, alias="lastUpdated")
    owner: _SshAccount | None = None
    current_patch_set: _SshPatchSet | None = Field(None, alias="currentPatchSet")
    patch_sets: list[_SshPatchSet] | None = Field(None, alias="patchSets")

    def to_model(self) -> Change:
        revisions, current = self._revisions()
        return Change(
            id=self.id,
            project=self.project,
            branch=self.branch,
            change_id=self.change_id or self.id,
            subject=self.subject,
            status=self.status,
            topic=self.topic,
            number=self.number,
            owner=self.owner.to_model() if self.owner else None,
            created=self.created,
            updated=self.updated,
            current_revision=current,
            revisions=revisions,
        )

    def _revisions(self) -> tuple[dict[str, Revision] | None, str | None]:
        cps = self.current_patch_set

        if self.patch_sets is not None:
            revisions: dict[str, Revision] = {}
            current: str | None = None
            highest: tuple[int, str] | None = None
            for ps in self.patch_sets:
                rev = ps.to_revision()
                if rev is None or ps.revision is None:
                    continue
                revisions[ps.revision] = rev
                if cps is not None and cps.number == rev.number:
                    current = ps.revision
                if highest is None or rev.number > highest[0]:
                    highest = (rev.number, ps.revision)
            if (
                current is None
                and cps is not None
                and cps.revision in revisions
            ):
                current = cps.revision
            if current is None and highest is not None:
                # Not a documented Gerrit guarantee; kept for servers that
                # omit currentPatchSet or report one missing from patchSets.
                log.debug(
                    "no currentPatchSet match for change %s; using highest "
                    "patch set %d",
                    self.number,
                    highest[0],
                )
                current = highest[1]
            return revisions, current

        if cps is not None:
            rev = cps.to_revision()
            if rev is not None and cps.revision is not None:
                return {cps.revision: rev}, cps.revision

        return None, None


def parse_query_output(output: str) -> list[Change]:
    """
    Parse ``gerrit query --format=JSON`` output into changes.

    Lines that are not JSON objects, and objects carrying a ``type`` field
    (statistics rows), are skipped.

    Raises:
        SshMalformedOutputError: If a change row does not fit the model.
    """
    changes: list[Change] = []
    for lineno, line in enumerate(output.splitlines(), start=1):
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            log.debug("skipping non-JSON SSH output line %d", lineno)
            continue
        if not isinstance(data, dict) or "type" in data:
            continue
        try:
            changes.append(_SshChange.model_validate(data).to_model())
        except ValidationError as exc:
            raise SshMalformedOutputError(
                f"parsing SSH query JSON line {lineno}: {exc}"
            ) from exc
    return changes


def build_list_query(project: str, branch: str | None = None) -> str:
    """Build the SSH query for open changes of a project."""
    query = f"project:{_strip_git_suffix(project)} status:open"
    if branch:
        query += f" branch:{branch}"
    return query


class GerritSshClient:
    """
    Gerrit query client over an external ssh executable.

    The subprocess call blocks, so the async methods run it in a worker
    thread. No retries are attempted; a failed invocation is terminal.
    """

    def __init__(
        self,
        target: SshTarget,
        *,
        ssh_command: str | None = None,
        timeout: float = DEFAULT_SSH_TIMEOUT,
        cwd: str | Path | None = None,
    ) -> None:
        self._target = target
        self._ssh_command = ssh_command or os.environ.get("GIT_SSH") or "ssh"
        self._timeout = float(timeout)
        self._cwd = cwd

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> GerritSshClient:
        """Create a client from an SSH or SCP-style remote URL."""
        return cls(parse_ssh_url(url), **kwargs)

    @property
    def target(self) -> SshTarget:
        """The parsed connection target."""
        return self._target

    def command(self, query: str) -> list[str]:
        """Build the ssh argument vector for a query."""
        return [
            self._ssh_command,
            "-x",
            f"-p{self._target.effective_port}",
            self._target.userhost,
            "gerrit",
            "query",
            f"--format=JSON {query}",
        ]

    def run_query(self, query: str) -> str:
        """
        Run a query and return its raw stdout.

        This call blocks until the process exits.

        Raises:
            SshSubprocessError: On spawn failure, timeout or non-zero exit.
            SshMalformedOutputError: If stdout is not valid UTF-8.
        """
        args = self.command(query)
        env = {**os.environ, **_FORCED_LOCALE}
        log.debug("running %s", " ".join(args))
        try:
            proc = subprocess.run(
                args,
                capture_output=True,
                cwd=self._cwd,
                env=env,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            stderr = (exc.stderr or b"").decode("utf-8", errors="replace")
            raise SshSubprocessError(
                f"ssh gerrit query timed out after {self._timeout:.0f}s",
                stderr=stderr.strip(),
            ) from exc
        except OSError as exc:
            raise SshSubprocessError(
                f"running ssh gerrit query: {exc}"
            ) from exc

        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", errors="replace").strip()
            raise SshSubprocessError(
                f"ssh gerrit query failed: {stderr}",
                stderr=stderr,
                returncode=proc.returncode,
            )

        try:
            return proc.stdout.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SshMalformedOutputError(
                "ssh output is not valid UTF-8"
            ) from exc

    async def _query(self, query: str) -> list[Change]:
        output = await asyncio.to_thread(self.run_query, query)
        return parse_query_output(output)

    async def query_changes(
        self, project: str, branch: str | None = None
    ) -> list[Change]:
        """Query open changes for a project over SSH."""
        return await self._query(build_list_query(project, branch))

    async def get_change_all_revisions(self, change_id: str) -> Change:
        """Get one change with every patch set over SSH."""
        changes = await self._query(
            f"--current-patch-set --patch-sets change:{change_id}"
        )
        if not changes:
            raise SshMalformedOutputError(
                "change not found in SSH query output"
            )
        return changes[0]

    def __repr__(self) -> str:
        t = self._target
        return (
            f"GerritSshClient(target='{t.userhost}:{t.effective_port}', "
            f"ssh='{self._ssh_command}')"
        )


__all__ = [
    "DEFAULT_SSH_PORT",
    "GerritSshClient",
    "GerritSshError",
    "SshMalformedOutputError",
    "SshSubprocessError",
    "SshTarget",
    "SshUrlError",
    "build_list_query",
    "parse_query_output",
    "parse_ssh_url",
]
