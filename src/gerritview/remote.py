# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Remote URL resolution and transport classification.

This module computes the effective URL of a git remote the way git itself
does, by applying ``url.<base>.insteadOf`` and ``url.<base>.pushInsteadOf``
rewrite rules, and decides whether the result is served over HTTP(S) or SSH.

Supported remote forms:

HTTP:
    https://gerrit.example.org/project
    http://gerrit.example.org/r/project

SSH:
    ssh://alice@gerrit.example.org:29418/project
    alice@gerrit.example.org:project.git
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

log = logging.getLogger("gerritview.remote")

_INSTEAD_OF = ".insteadof="
_PUSH_INSTEAD_OF = ".pushinsteadof="


class Transport(Enum):
    """Wire protocol used to reach a Gerrit server."""

    HTTP = "http"
    SSH = "ssh"


class RemoteResolutionError(RuntimeError):
    """Raised when git configuration cannot be read."""


@dataclass(frozen=True)
class RewriteRule:
    """A single URL prefix rewrite: ``old_prefix`` becomes ``new_prefix``."""

    old_prefix: str
    new_prefix: str


@dataclass(frozen=True)
class RewriteRules:
    """Rewrite rules collected from git configuration."""

    instead_of: tuple[RewriteRule, ...] = field(default_factory=tuple)
    push_instead_of: tuple[RewriteRule, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ResolvedRemote:
    """
    A remote URL after rewriting, with its transport.

    Attributes:
        url: The effective URL.
        transport: HTTP for http/https URLs, SSH for everything else.
    """

    url: str
    transport: Transport

    @property
    def is_http(self) -> bool:
        """Check if the remote is reached over HTTP(S)."""
        return self.transport is Transport.HTTP

    @property
    def is_ssh(self) -> bool:
        """Check if the remote is reached over SSH."""
        return self.transport is Transport.SSH


class GitConfigReader(Protocol):
    """Read access to git configuration."""

    def string_value(self, key: str) -> str | None:
        """Return the value for ``key``, or None if unset."""
        ...

    def config_list(self) -> str:
        """Return ``git config --list`` style ``key=value`` lines."""
        ...


class GitCommandConfig:
    """GitConfigReader backed by the ``git`` executable."""

    def __init__(self, work_dir: str | Path | None = None) -> None:
        self._work_dir = work_dir

    def _run(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        env = {**os.environ, "LANG": "C", "LANGUAGE": "C"}
        try:
            return subprocess.run(
                ["git", *args],
                capture_output=True,
                text=True,
                cwd=self._work_dir,
                env=env,
                check=False,
            )
        except OSError as exc:
            raise RemoteResolutionError(
                f"running git {' '.join(args)}: {exc}"
            ) from exc

    def string_value(self, key: str) -> str | None:
        proc = self._run(["config", "--get", key])
        # git config --get exits 1 when the key is not set
        if proc.returncode == 1:
            return None
        if proc.returncode != 0:
            raise RemoteResolutionError(
                f"git config --get {key} failed (exit {proc.returncode}): "
                f"{proc.stderr.strip()}"
            )
        return proc.stdout.rstrip("\n")

    def config_list(self) -> str:
        proc = self._run(["config", "--list"])
        if proc.returncode != 0:
            raise RemoteResolutionError(
                f"git config --list failed (exit {proc.returncode}): "
                f"{proc.stderr.strip()}"
            )
        return proc.stdout


def parse_rewrite_rules(config_list: str) -> RewriteRules:
    """
    Extract rewrite rules from ``git config --list`` output.

    Lines look like ``url.<new_prefix>.insteadof=<old_prefix>``. Key names
    are matched case-insensitively; the URL inside the key is kept verbatim.
    """
    instead_of: list[RewriteRule] = []
    push_instead_of: list[RewriteRule] = []

    for line in config_list.splitlines():
        if not line[:4].lower() == "url.":
            continue
        lowered = line.lower()
        for marker, bucket in (
            (_PUSH_INSTEAD_OF, push_instead_of),
            (_INSTEAD_OF, instead_of),
        ):
            idx = lowered.find(marker)
            if idx < 0:
                continue
            new_prefix = line[4:idx]
            old_prefix = line[idx + len(marker) :]
            if old_prefix:
                bucket.append(RewriteRule(old_prefix, new_prefix))
            break

    return RewriteRules(tuple(instead_of), tuple(push_instead_of))


def _longest_match(
    url: str, rules: tuple[RewriteRule, ...]
) -> RewriteRule | None:
    best: RewriteRule | None = None
    for rule in rules:
        if not url.startswith(rule.old_prefix):
            continue
        # Strictly longer wins, so the first-seen rule keeps ties.
        if best is None or len(rule.old_prefix) > len(best.old_prefix):
            best = rule
    return best


def alias_url(url: str, rules: RewriteRules, for_push: bool) -> str:
    """
    Apply the longest matching rewrite rule to a URL.

    When ``for_push`` is set, pushInsteadOf rules are tried first and
    insteadOf rules are only consulted if none of them match. Otherwise
    only insteadOf rules apply.
    """
    match: RewriteRule | None = None
    if for_push:
        match = _longest_match(url, rules.push_instead_of)
    if match is None:
        match = _longest_match(url, rules.instead_of)
    if match is None:
        return url
    return match.new_prefix + url[len(match.old_prefix) :]


def classify_transport(url: str) -> Transport:
    """
    Classify a URL as HTTP or SSH.

    Only a literal lowercase ``http://`` or ``https://`` prefix is HTTP;
    every other form, SCP-style included, is SSH.
    """
    if url.startswith(("http://", "https://")):
        return Transport.HTTP
    return Transport.SSH


def resolve_remote_url(
    remote_name: str,
    config: GitConfigReader,
    fallback_url: str | None = None,
) -> str | None:
    """
    Compute the effective URL of a remote.

    A configured ``pushurl`` gets insteadOf rewriting only. Otherwise the
    fetch ``url`` gets pushInsteadOf-then-insteadOf rewriting. Without
    either, the fallback is returned unchanged.

    Returns:
        The URL, or None when nothing is configured and no fallback given.
    """
    rules = parse_rewrite_rules(config.config_list())
    push_url = config.string_value(f"remote.{remote_name}.pushurl")
    fetch_url = config.string_value(f"remote.{remote_name}.url")

    if push_url:
        url = alias_url(push_url, rules, for_push=False)
    elif fetch_url:
        url = alias_url(fetch_url, rules, for_push=True)
    else:
        url = fallback_url or ""

    if not url:
        log.debug("remote %s has no URL configured", remote_name)
        return None
    log.debug("remote %s resolved to %s", remote_name, url)
    return url


def resolve_remote(
    remote_name: str,
    config: GitConfigReader,
    fallback_url: str | None = None,
) -> ResolvedRemote | None:
    """Resolve a remote to its effective URL and transport."""
    url = resolve_remote_url(remote_name, config, fallback_url)
    if url is None:
        return None
    return ResolvedRemote(url=url, transport=classify_transport(url))


__all__ = [
    "GitCommandConfig",
    "GitConfigReader",
    "RemoteResolutionError",
    "ResolvedRemote",
    "RewriteRule",
    "RewriteRules",
    "Transport",
    "alias_url",
    "classify_transport",
    "parse_rewrite_rules",
    "resolve_remote",
    "resolve_remote_url",
]
