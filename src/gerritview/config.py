# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Environment-driven settings for gerritview.

Environment variables:
    GERRIT_USERNAME / GERRIT_HTTP_USER       HTTP username
    GERRIT_PASSWORD / GERRIT_HTTP_PASSWORD   HTTP password or bearer token
    GERRIT_AUTH_TYPE                         "basic" (default) or "bearer"
    GERRIT_TIMEOUT                           REST timeout in seconds
    GERRIT_SSL_VERIFY                        verify TLS certificates
    GERRIT_ALLOW_INSECURE                    allow credentials over http://
    GERRIT_SSH_TIMEOUT                       SSH query timeout in seconds
    GIT_SSH                                  ssh executable for SSH remotes
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from gerritview.gerrit.client import REQUEST_TIMEOUT, AuthType, Credentials
from gerritview.gerrit.ssh import DEFAULT_SSH_TIMEOUT

log = logging.getLogger("gerritview.config")

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


class ConfigError(ValueError):
    """Raised when an environment setting has an invalid value."""


def _first(env: Mapping[str, str], *names: str) -> str:
    for name in names:
        value = env.get(name, "").strip()
        if value:
            return value
    return ""


def _parse_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _parse_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class GerritSettings:
    """Settings for one gerritview invocation."""

    username: str = ""
    password: str = ""
    auth_type: AuthType = AuthType.BASIC
    timeout: float = REQUEST_TIMEOUT
    ssl_verify: bool = True
    allow_insecure: bool = False
    ssh_timeout: float = DEFAULT_SSH_TIMEOUT
    ssh_command: str = "ssh"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> GerritSettings:
        """
        Read settings from the environment.

        Args:
            env: Mapping to read instead of os.environ.

        Raises:
            ConfigError: If a value cannot be parsed.
        """
        if env is None:
            env = os.environ

        auth_raw = env.get("GERRIT_AUTH_TYPE", "").strip().lower() or "basic"
        try:
            auth_type = AuthType(auth_raw)
        except ValueError as exc:
            raise ConfigError(
                f"GERRIT_AUTH_TYPE must be 'basic' or 'bearer', got {auth_raw!r}"
            ) from exc

        settings = cls(
            username=_first(env, "GERRIT_USERNAME", "GERRIT_HTTP_USER"),
            password=_first(env, "GERRIT_PASSWORD", "GERRIT_HTTP_PASSWORD"),
            auth_type=auth_type,
            timeout=_parse_float(env, "GERRIT_TIMEOUT", REQUEST_TIMEOUT),
            ssl_verify=_parse_bool(env, "GERRIT_SSL_VERIFY", True),
            allow_insecure=_parse_bool(env, "GERRIT_ALLOW_INSECURE", False),
            ssh_timeout=_parse_float(
                env, "GERRIT_SSH_TIMEOUT", DEFAULT_SSH_TIMEOUT
            ),
            ssh_command=env.get("GIT_SSH", "").strip() or "ssh",
        )
        log.debug(
            "settings loaded: auth_user=%s, auth_type=%s, timeout=%.1fs",
            settings.username or "(none)",
            settings.auth_type.value,
            settings.timeout,
        )
        return settings

    def credentials(self) -> Credentials | None:
        """
        Return credentials when both username and password are set.

        Bearer tokens need no username.
        """
        if self.auth_type is AuthType.BEARER and self.password:
            return Credentials(self.username, self.password, self.auth_type)
        if self.username and self.password:
            return Credentials(self.username, self.password, self.auth_type)
        return None

    def __repr__(self) -> str:
        return (
            f"GerritSettings(username={self.username!r}, password="
            f"{'[REDACTED]' if self.password else ''!r}, "
            f"auth_type={self.auth_type.value!r}, timeout={self.timeout})"
        )


__all__ = ["ConfigError", "GerritSettings"]
