# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

import asyncio
import logging
from typing import Optional
from urllib.parse import urlsplit

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .comments import build_threads, summarize_threads, unresolved_threads
from .config import ConfigError, GerritSettings
from .gerrit.client import GerritRestClient, GerritRestError, build_rest_client
from .gerrit.service import GerritQueryError, GerritQueryService
from .gerrit.ssh import GerritSshClient, GerritSshError
from .remote import (
    GitCommandConfig,
    RemoteResolutionError,
    ResolvedRemote,
    resolve_remote,
)
from .revisions import (
    RevisionResolveError,
    find_target_revision,
    normalize_change_arg,
    parse_change_patchset,
)

app = typer.Typer(
    help="Read Gerrit changes and review comments over REST or SSH"
)
console = Console(markup=False)

_FAILURES = (
    ConfigError,
    GerritQueryError,
    GerritRestError,
    GerritSshError,
    RemoteResolutionError,
    RevisionResolveError,
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _default_base_url(remote_url: str, project: Optional[str] = None) -> str:
    """
    REST base URL of an HTTP remote, without credentials.

    Gerrit serves git at ``<base>/[a/]<project>``, and the base may carry a
    sub-path such as ``/r/``. When the project is known it is stripped from
    the end of the path; otherwise only an ``/a/`` segment marks where the
    base ends, and the server root is used when there is none.
    """
    parts = urlsplit(remote_url)
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"

    path = parts.path.rstrip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    segments = [s for s in path.split("/") if s]

    name = (project or "").strip("/")
    if name.endswith(".git"):
        name = name[: -len(".git")]
    name_parts = [s for s in name.split("/") if s]

    if name_parts and segments[-len(name_parts) :] == name_parts:
        segments = segments[: -len(name_parts)]
        if segments and segments[-1] == "a":
            segments.pop()
    elif "a" in segments:
        segments = segments[: segments.index("a")]
    else:
        segments = []

    base_path = "".join(f"{s}/" for s in segments)
    return f"{parts.scheme}://{host}/{base_path}"


def _resolve(remote_name: str, url: Optional[str]) -> ResolvedRemote:
    resolved = resolve_remote(remote_name, GitCommandConfig(), fallback_url=url)
    if resolved is None:
        console.print(f"❌ Remote '{remote_name}' has no URL configured")
        raise typer.Exit(1)
    return resolved


def _build_service(
    settings: GerritSettings,
    resolved: ResolvedRemote,
    gerrit_url: Optional[str],
    project: Optional[str] = None,
) -> GerritQueryService:
    if gerrit_url:
        base_url = gerrit_url
    elif resolved.is_http:
        base_url = _default_base_url(resolved.url, project)
    else:
        base_url = f"https://{GerritSshClient.from_url(resolved.url).target.host}/"

    rest: GerritRestClient = build_rest_client(
        base_url,
        settings.credentials(),
        allow_insecure=settings.allow_insecure,
        timeout=settings.timeout,
        verify=settings.ssl_verify,
    )

    def ssh_factory(url: str) -> GerritSshClient:
        return GerritSshClient.from_url(
            url, ssh_command=settings.ssh_command, timeout=settings.ssh_timeout
        )

    return GerritQueryService(rest, ssh_client_factory=ssh_factory)


def _run(coro):
    try:
        return asyncio.run(coro)
    except _FAILURES as exc:
        console.print(f"❌ Error: {exc}")
        raise typer.Exit(1) from exc


RemoteOption = typer.Option("origin", "--remote", "-r", help="Git remote name")
UrlOption = typer.Option(
    None, "--url", help="Remote URL to use when the remote is not configured"
)
GerritUrlOption = typer.Option(
    None, "--gerrit-url", envvar="GERRIT_URL", help="Gerrit REST base URL"
)
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
ProjectOption = typer.Option(
    None,
    "--project",
    "-p",
    help="Project name, used to find the REST base path of an HTTP remote",
)


@app.command()
def changes(
    project: str = typer.Argument(..., help="Gerrit project name"),
    branch: Optional[str] = typer.Option(None, "--branch", "-b", help="Branch filter"),
    remote: str = RemoteOption,
    url: Optional[str] = UrlOption,
    gerrit_url: Optional[str] = GerritUrlOption,
    verbose: bool = VerboseOption,
) -> None:
    """List open changes for a project."""
    _configure_logging(verbose)

    async def _main():
        settings = GerritSettings.from_env()
        resolved = _resolve(remote, url)
        service = _build_service(settings, resolved, gerrit_url, project)
        async with service.rest_client:
            return await service.query_changes(resolved, project, branch)

    results = _run(_main())
    if not results:
        console.print("No open changes found")
        return

    table = Table(title=f"Open changes in {project}")
    table.add_column("Number", justify="right")
    table.add_column("Branch")
    table.add_column("Topic")
    table.add_column("Subject")
    for change in results:
        table.add_row(
            str(change.number or ""),
            change.branch or "",
            change.topic or "",
            change.subject or "",
        )
    console.print(table)


@app.command()
def show(
    change: str = typer.Argument(
        ..., help="CHANGE, CHANGE,PATCHSET or a change URL"
    ),
    project: Optional[str] = ProjectOption,
    remote: str = RemoteOption,
    url: Optional[str] = UrlOption,
    gerrit_url: Optional[str] = GerritUrlOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show the fetch ref of a change's current or given patchset."""
    _configure_logging(verbose)
    change_id, patchset = parse_change_patchset(normalize_change_arg(change))

    async def _main():
        settings = GerritSettings.from_env()
        resolved = _resolve(remote, url)
        service = _build_service(settings, resolved, gerrit_url, project)
        async with service.rest_client:
            info = await service.get_change_all_revisions(resolved, change_id)
        return info, find_target_revision(info, patchset)

    info, (sha, revision) = _run(_main())
    console.print(f"Change {info.number}: {info.subject or '(no subject)'}")
    console.print(f"Status:   {info.status or 'UNKNOWN'}")
    console.print(f"Owner:    {info.owner.display() if info.owner else 'Unknown'}")
    console.print(f"Patchset: {revision.number}")
    console.print(f"Revision: {sha}")
    console.print(f"Ref:      {revision.ref}")


@app.command()
def comments(
    change: str = typer.Argument(
        ..., help="Change number, Change-Id or change URL"
    ),
    revision: Optional[str] = typer.Option(
        None, "--revision", help="Only comments on this revision"
    ),
    project: Optional[str] = ProjectOption,
    unresolved: bool = typer.Option(
        False, "--unresolved", help="Show only unresolved threads"
    ),
    robot: bool = typer.Option(False, "--robot", help="Include robot comments"),
    remote: str = RemoteOption,
    url: Optional[str] = UrlOption,
    gerrit_url: Optional[str] = GerritUrlOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show review comment threads for a change (REST remotes only)."""
    _configure_logging(verbose)
    change_id, patchset = parse_change_patchset(normalize_change_arg(change))
    if revision is None and patchset is not None:
        revision = str(patchset)

    async def _main():
        settings = GerritSettings.from_env()
        resolved = _resolve(remote, url)
        service = _build_service(settings, resolved, gerrit_url, project)
        async with service.rest_client:
            return await service.get_change_comments(
                resolved, change_id, revision=revision, include_robot_comments=robot
            )

    threads = build_threads(_run(_main()))
    summary = summarize_threads(threads)
    if unresolved:
        threads = unresolved_threads(threads)

    current_file = None
    for thread in threads:
        if thread.file != current_file:
            current_file = thread.file
            console.print(f"\n=== {current_file}")
        where = f"Line {thread.line}" if thread.line else "File-level"
        state = "RESOLVED" if thread.resolved else "UNRESOLVED"
        console.print(f"\n  {where} [{state}]")
        for comment in thread.comments:
            author = comment.author.display() if comment.author else "Unknown"
            ps = f"PS{comment.patch_set}" if comment.patch_set else ""
            console.print(f"    {author} {ps} {comment.updated or ''}".rstrip())
            for line in (comment.message or "").splitlines():
                console.print(f"      {line}")

    console.print(
        f"\n{summary.total_threads} threads: "
        f"{summary.unresolved} unresolved, {summary.resolved} resolved"
    )


@app.command()
def version(
    gerrit_url: Optional[str] = typer.Option(
        None, "--gerrit-url", envvar="GERRIT_URL", help="Query this server's version"
    ),
    verbose: bool = VerboseOption,
) -> None:
    """Show the gerritview version and, optionally, the server version."""
    _configure_logging(verbose)
    console.print(f"gerritview {__version__}")
    if not gerrit_url:
        return

    async def _main():
        async with build_rest_client(gerrit_url) as rest:
            return await rest.get_version()

    console.print(f"Gerrit {_run(_main())}")


if __name__ == "__main__":
    app()
