# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Tests for the Gerrit SSH query backend.

Covers SSH/SCP URL parsing, normalization of the legacy JSON-lines query
output into the shared change model, and the ssh subprocess invocation.
"""

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from gerritview.gerrit import rest_wire
from gerritview.gerrit.ssh import (
    DEFAULT_SSH_PORT,
    GerritSshClient,
    SshMalformedOutputError,
    SshSubprocessError,
    SshTarget,
    SshUrlError,
    build_list_query,
    parse_query_output,
    parse_ssh_url,
)

STATS_LINE = '{"type":"stats","rowCount":1,"runTimeMilliseconds":5}'


def change_line(**overrides):
    """One change row as emitted by gerrit query --format=JSON."""
    row = {
        "project": "myproject",
        "branch": "main",
        "id": "I0123456789abcdef",
        "number": 12345,
        "subject": "Fix the widget",
        "owner": {"name": "Alice", "email": "alice@example.com", "username": "alice"},
        "url": "https://gerrit.example.org/c/myproject/+/12345",
        "createdOn": 1700000000,
        "lastUpdated": 1700000500,
        "status": "NEW",
    }
    row.update(overrides)
    return json.dumps(row)


def patch_set(number, sha):
    return {
        "number": number,
        "revision": sha,
        "ref": f"refs/changes/45/12345/{number}",
    }


class TestParseSshUrl:
    """Tests for SSH remote URL parsing."""

    def test_ssh_scheme_with_user_and_port(self):
        """Test the full ssh:// form."""
        target = parse_ssh_url("ssh://alice@gerrit.example.org:29418/my/project.git")
        assert target == SshTarget(
            host="gerrit.example.org",
            username="alice",
            port=29418,
            project="my/project",
        )

    def test_ssh_scheme_without_port(self):
        """Test that a missing port falls back to the Gerrit default."""
        target = parse_ssh_url("ssh://gerrit.example.org/project")
        assert target.port is None
        assert target.username is None
        assert target.effective_port == DEFAULT_SSH_PORT == 29418

    def test_scp_form(self):
        """Test the SCP-style form."""
        target = parse_ssh_url("bob@gerrit.example.org:tools/repo.git")
        assert target.host == "gerrit.example.org"
        assert target.username == "bob"
        assert target.port is None
        assert target.project == "tools/repo"

    def test_userhost(self):
        """Test the [user@]host argument."""
        assert parse_ssh_url("ssh://u@h/p").userhost == "u@h"
        assert parse_ssh_url("h:p").userhost == "h"

    @pytest.mark.parametrize(
        "url",
        [
            "ssh://host:notaport/project",
            "ssh://host:70000/project",
            "ssh://host",
            "https://host/project",
            "no-colon-here",
            "host://project",
            ":project",
        ],
    )
    def test_invalid_urls(self, url):
        """Test that malformed URLs raise SshUrlError."""
        with pytest.raises(SshUrlError):
            parse_ssh_url(url)

    def test_url_error_is_value_error(self):
        """Test that SshUrlError can be caught as ValueError."""
        with pytest.raises(ValueError):
            parse_ssh_url("ssh://host:bad/p")


class TestBuildListQuery:
    """Tests for the SSH list query."""

    def test_project_only(self):
        assert build_list_query("proj") == "project:proj status:open"

    def test_strips_git_suffix_and_adds_branch(self):
        assert (
            build_list_query("proj.git", "stable")
            == "project:proj status:open branch:stable"
        )


class TestParseQueryOutput:
    """Tests for JSON-lines output normalization."""

    def test_basic_change_and_stats_row(self):
        """Test that the stats row is dropped and fields are mapped."""
        output = "\n".join([change_line(), STATS_LINE])
        changes = parse_query_output(output)

        assert len(changes) == 1
        change = changes[0]
        assert change.number == 12345
        assert change.project == "myproject"
        assert change.change_id == "I0123456789abcdef"
        assert change.status == "NEW"
        assert change.created == "1700000000"
        assert change.updated == "1700000500"

    def test_owner_has_no_account_id(self):
        """Test that SSH owners never carry an account id."""
        change = parse_query_output(change_line())[0]
        assert change.owner.account_id is None
        assert change.owner.username == "alice"

    def test_string_timestamps_kept(self):
        """Test that string timestamps pass through unchanged."""
        output = change_line(createdOn="2024-01-01 10:00:00 UTC")
        assert parse_query_output(output)[0].created == "2024-01-01 10:00:00 UTC"

    def test_non_json_lines_skipped(self):
        """Test that banners and blank lines are ignored."""
        output = "\n".join(["Welcome to Gerrit", "", change_line(), "{broken", STATS_LINE])
        assert len(parse_query_output(output)) == 1

    def test_empty_output(self):
        assert parse_query_output("") == []
        assert parse_query_output(STATS_LINE) == []

    def test_patch_sets_become_revisions(self):
        """Test mapping of patchSets into a revisions map."""
        output = change_line(
            patchSets=[patch_set(1, "aaa"), patch_set("2", "bbb")],
            currentPatchSet=patch_set(2, "bbb"),
        )
        change = parse_query_output(output)[0]

        assert set(change.revisions) == {"aaa", "bbb"}
        assert change.revisions["bbb"].number == 2
        assert change.revisions["aaa"].ref == "refs/changes/45/12345/1"
        assert change.current_revision == "bbb"

    def test_current_patch_set_matched_by_number(self):
        """Test that a string currentPatchSet number still matches."""
        output = change_line(
            patchSets=[patch_set(1, "aaa"), patch_set(2, "bbb")],
            currentPatchSet={**patch_set(1, "aaa"), "number": "1"},
        )
        assert parse_query_output(output)[0].current_revision == "aaa"

    def test_highest_patch_set_fallback(self):
        """Test that the highest patch set is used when current is absent."""
        output = change_line(
            patchSets=[patch_set(3, "ccc"), patch_set(1, "aaa"), patch_set(2, "bbb")]
        )
        assert parse_query_output(output)[0].current_revision == "ccc"

    def test_only_current_patch_set(self):
        """Test a single-revision map built from currentPatchSet alone."""
        output = change_line(currentPatchSet=patch_set(4, "ddd"))
        change = parse_query_output(output)[0]

        assert change.current_revision == "ddd"
        assert list(change.revisions) == ["ddd"]
        assert change.revisions["ddd"].number == 4

    def test_no_patch_sets(self):
        """Test a change row without any patch set data."""
        change = parse_query_output(change_line())[0]
        assert change.revisions is None
        assert change.current_revision is None

    def test_invalid_patch_set_number(self):
        """Test that a non-numeric patch set number is malformed output."""
        output = change_line(currentPatchSet=patch_set("three", "ddd"))
        with pytest.raises(SshMalformedOutputError, match="line 1"):
            parse_query_output(output)

    def test_invalid_timestamp_type(self):
        """Test that an unusable timestamp type is rejected."""
        with pytest.raises(SshMalformedOutputError):
            parse_query_output(change_line(createdOn=["not", "a", "time"]))

    def test_current_revision_missing_from_patch_sets(self):
        """Test that a currentPatchSet hash absent from patchSets is not kept."""
        output = change_line(
            patchSets=[patch_set(1, "aaa"), patch_set(2, "bbb")],
            currentPatchSet=patch_set(3, "ccc"),
        )
        change = parse_query_output(output)[0]

        assert change.current_revision == "bbb"
        assert set(change.revisions) == {"aaa", "bbb"}

    def test_inconsistent_row_does_not_fail_listing(self):
        """Test that one inconsistent row leaves the other rows intact."""
        output = "\n".join(
            [
                change_line(currentPatchSet=patch_set(1, "aaa")),
                change_line(
                    number=12346,
                    patchSets=[patch_set(1, "ddd")],
                    currentPatchSet=patch_set(2, "eee"),
                ),
                STATS_LINE,
            ]
        )
        changes = parse_query_output(output)

        assert [c.number for c in changes] == [12345, 12346]
        assert changes[1].current_revision == "ddd"


class TestRestSshParity:
    """The same change decoded from REST and SSH yields the same model."""

    def test_shared_fields_match(self):
        rest = rest_wire.decode_change(
            {
                "id": "myproject~main~I0123456789abcdef",
                "project": "myproject",
                "branch": "main",
                "change_id": "I0123456789abcdef",
                "subject": "Fix the widget",
                "status": "NEW",
                "_number": 12345,
                "current_revision": "bbb",
                "revisions": {
                    "aaa": {"_number": 1, "ref": "refs/changes/45/12345/1"},
                    "bbb": {"_number": 2, "ref": "refs/changes/45/12345/2"},
                },
            }
        )
        output = "\n".join(
            [
                change_line(
                    number="12345",
                    change_id="I0123456789abcdef",
                    patchSets=[
                        {**patch_set(1, "aaa"), "number": "1"},
                        {**patch_set(2, "bbb"), "number": "2"},
                    ],
                    currentPatchSet={**patch_set(2, "bbb"), "number": "2"},
                ),
                STATS_LINE,
            ]
        )
        ssh_changes = parse_query_output(output)

        assert len(ssh_changes) == 1
        ssh = ssh_changes[0]
        for field in (
            "project",
            "branch",
            "change_id",
            "subject",
            "status",
            "number",
            "current_revision",
        ):
            assert getattr(ssh, field) == getattr(rest, field), field
        assert ssh.revisions == rest.revisions


def completed(stdout=b"", stderr=b"", returncode=0):
    return subprocess.CompletedProcess(
        args=[], returncode=returncode, stdout=stdout, stderr=stderr
    )


class TestGerritSshClient:
    """Tests for the ssh subprocess invocation."""

    def test_command_vector(self):
        """Test the argument vector passed to ssh."""
        client = GerritSshClient.from_url(
            "ssh://alice@gerrit.example.org:2222/proj", ssh_command="ssh"
        )
        assert client.command("status:open") == [
            "ssh",
            "-x",
            "-p2222",
            "alice@gerrit.example.org",
            "gerrit",
            "query",
            "--format=JSON status:open",
        ]

    def test_command_default_port(self):
        client = GerritSshClient.from_url("gerrit.example.org:proj", ssh_command="ssh")
        assert "-p29418" in client.command("q")

    def test_git_ssh_environment(self, monkeypatch):
        """Test that GIT_SSH selects the ssh executable."""
        monkeypatch.setenv("GIT_SSH", "/usr/local/bin/myssh")
        client = GerritSshClient.from_url("host:proj")
        assert client.command("q")[0] == "/usr/local/bin/myssh"

    def test_run_query_forces_locale(self):
        """Test that ssh runs with a C locale and a timeout."""
        client = GerritSshClient.from_url("host:proj", ssh_command="ssh", timeout=5)
        with patch(
            "gerritview.gerrit.ssh.subprocess.run", return_value=completed(b"out")
        ) as mock_run:
            assert client.run_query("q") == "out"

        kwargs = mock_run.call_args.kwargs
        assert kwargs["env"]["LANG"] == "C"
        assert kwargs["env"]["LANGUAGE"] == "C"
        assert kwargs["timeout"] == 5.0
        assert kwargs["check"] is False

    def test_nonzero_exit_reports_stderr(self):
        """Test that the trimmed stderr is included in the failure."""
        client = GerritSshClient.from_url("host:proj", ssh_command="ssh")
        proc = completed(stderr=b"  Permission denied (publickey).\n", returncode=255)
        with patch("gerritview.gerrit.ssh.subprocess.run", return_value=proc):
            with pytest.raises(SshSubprocessError) as exc_info:
                client.run_query("q")

        assert str(exc_info.value) == (
            "ssh gerrit query failed: Permission denied (publickey)."
        )
        assert exc_info.value.returncode == 255

    def test_timeout(self):
        """Test that a hung ssh is reported as a subprocess error."""
        client = GerritSshClient.from_url("host:proj", ssh_command="ssh", timeout=1)
        with patch(
            "gerritview.gerrit.ssh.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="ssh", timeout=1),
        ):
            with pytest.raises(SshSubprocessError, match="timed out"):
                client.run_query("q")

    def test_spawn_failure(self):
        """Test that a missing ssh binary is reported."""
        client = GerritSshClient.from_url("host:proj", ssh_command="nossh")
        with patch(
            "gerritview.gerrit.ssh.subprocess.run",
            side_effect=FileNotFoundError("nossh"),
        ):
            with pytest.raises(SshSubprocessError, match="running ssh"):
                client.run_query("q")

    def test_invalid_utf8(self):
        """Test that undecodable stdout is malformed output."""
        client = GerritSshClient.from_url("host:proj", ssh_command="ssh")
        with patch(
            "gerritview.gerrit.ssh.subprocess.run", return_value=completed(b"\xff\xfe")
        ):
            with pytest.raises(SshMalformedOutputError, match="UTF-8"):
                client.run_query("q")

    @pytest.mark.asyncio
    async def test_query_changes(self):
        """Test the async open-change query."""
        client = GerritSshClient.from_url("host:proj.git", ssh_command="ssh")
        output = (change_line() + "\n" + STATS_LINE).encode()
        with patch(
            "gerritview.gerrit.ssh.subprocess.run", return_value=completed(output)
        ) as mock_run:
            changes = await client.query_changes("proj.git", "main")

        assert [c.number for c in changes] == [12345]
        args = mock_run.call_args.args[0]
        assert args[-1] == "--format=JSON project:proj status:open branch:main"

    @pytest.mark.asyncio
    async def test_get_change_all_revisions(self):
        """Test fetching one change with its patch sets."""
        client = GerritSshClient.from_url("host:proj", ssh_command="ssh")
        output = change_line(
            patchSets=[patch_set(1, "aaa")], currentPatchSet=patch_set(1, "aaa")
        ).encode()
        with patch(
            "gerritview.gerrit.ssh.subprocess.run", return_value=completed(output)
        ) as mock_run:
            change = await client.get_change_all_revisions("12345")

        assert change.current_revision == "aaa"
        assert mock_run.call_args.args[0][-1] == (
            "--format=JSON --current-patch-set --patch-sets change:12345"
        )

    @pytest.mark.asyncio
    async def test_get_change_not_found(self):
        """Test that an empty result is reported as not found."""
        client = GerritSshClient.from_url("host:proj", ssh_command="ssh")
        with patch(
            "gerritview.gerrit.ssh.subprocess.run",
            return_value=completed(STATS_LINE.encode()),
        ):
            with pytest.raises(SshMalformedOutputError, match="change not found"):
                await client.get_change_all_revisions("99999")

    def test_repr(self):
        client = GerritSshClient(MagicMock(userhost="u@h", effective_port=22))
        assert "u@h:22" in repr(client)
