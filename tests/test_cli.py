"""Tests for the linkboard-sync command line.

Covers:
- Argument parsing for every subcommand
- _run_command dispatch, report output and exit codes
- run() mapping of failures to exit codes
- main() end to end for ``status``
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest

from linkboard_sync.cli import _run_command, build_parser, main, run
from linkboard_sync.errors import ConfigError, IdentityError, RemoteStoreError
from linkboard_sync.sync.migration import MIGRATION_FLAG
from linkboard_sync.sync.models import Post

USER_ID = "user-1"


def _args(*argv: str):
    return build_parser().parse_args(list(argv))


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class TestParser:
    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_force_push_only(self):
        args = _args("force", "--push-only")
        assert args.command == "force"
        assert args.push_only is True

    def test_global_options(self):
        args = _args("--json", "--log-format", "json", "--cache-dir", "/tmp/c", "sync")
        assert args.json is True
        assert args.log_format == "json"
        assert args.cache_dir == "/tmp/c"

    def test_invalid_log_format(self):
        with pytest.raises(SystemExit):
            _args("--log-format", "xml", "sync")


# ---------------------------------------------------------------------------
# _run_command
# ---------------------------------------------------------------------------


class TestRunCommand:
    async def test_status_json(self, engine, capsys):
        assert await _run_command(engine, _args("--json", "status")) == 0

        status = json.loads(capsys.readouterr().out)
        assert status["is_syncing"] is False
        assert status["queue"]["queue_length"] == 0

    async def test_sync_prints_report(self, engine, local, remote, capsys):
        local.save_posts(USER_ID, [Post(url="https://x.com/1")])

        assert await _run_command(engine, _args("sync")) == 0

        out = capsys.readouterr().out
        assert "Sync report for 'sync_data' (local-to-cloud)" in out
        assert "https://x.com/1" in out

    async def test_report_errors_exit_1(self, engine, local, remote, capsys):
        remote.fail_posts.add("https://x.com/bad")
        local.save_posts(USER_ID, [Post(url="https://x.com/bad")])

        assert await _run_command(engine, _args("--json", "force")) == 1

        data = json.loads(capsys.readouterr().out)
        assert data["counts"]["errors"] == 1

    async def test_sync_skipped_when_gate_held(self, engine, capsys):
        engine.state.start_sync()

        assert await _run_command(engine, _args("sync")) == 0
        assert "already in progress" in capsys.readouterr().out

    async def test_smart(self, engine, remote, capsys):
        remote.seed_post("https://x.com/1")

        assert await _run_command(engine, _args("--json", "smart")) == 0
        assert json.loads(capsys.readouterr().out)["direction"] == "cloud-to-local"

    async def test_migrate_not_needed(self, engine, capsys):
        assert await _run_command(engine, _args("migrate")) == 0
        assert "not needed" in capsys.readouterr().out

    async def test_migrate_runs(self, engine, local, remote, capsys):
        remote.seed_post("https://x.com/1")
        local.save_posts(USER_ID, [Post(url="https://x.com/1")])

        assert await _run_command(engine, _args("migrate")) == 0

        assert "Migration completed." in capsys.readouterr().out
        assert local.get_flag(USER_ID, MIGRATION_FLAG) is True

    async def test_migrate_without_identity(self, engine, sessions):
        sessions.identity = None
        with pytest.raises(IdentityError):
            await _run_command(engine, _args("migrate", "--always"))


# ---------------------------------------------------------------------------
# run() exit codes
# ---------------------------------------------------------------------------


class TestRunExitCodes:
    @pytest.mark.parametrize(
        "error, code",
        [
            (ConfigError("missing url"), 2),
            (IdentityError("No user logged in"), 3),
            (RemoteStoreError("down"), 1),
            (KeyboardInterrupt(), 130),
        ],
    )
    def test_failure_codes(self, monkeypatch, capsys, error, code):
        monkeypatch.setattr("sys.argv", ["linkboard-sync", "sync"])
        with patch("linkboard_sync.cli.main", new=AsyncMock(side_effect=error)):
            with pytest.raises(SystemExit) as exc_info:
                run()

        assert exc_info.value.code == code

    def test_success_code(self, monkeypatch):
        monkeypatch.setattr("sys.argv", ["linkboard-sync", "status"])
        with patch("linkboard_sync.cli.main", new=AsyncMock(return_value=0)):
            with pytest.raises(SystemExit) as exc_info:
                run()

        assert exc_info.value.code == 0


# ---------------------------------------------------------------------------
# main()
# ---------------------------------------------------------------------------


class TestMain:
    async def test_status_end_to_end(
        self, tmp_path, monkeypatch, capsys, restore_semaphore
    ):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        for name in ("LINKBOARD_CONFIG", "LINKBOARD_ACCESS_TOKEN", "LINKBOARD_DEBUG"):
            monkeypatch.delenv(name, raising=False)

        args = _args(
            "--url",
            "https://project.supabase.co",
            "--key",
            "anon-key",
            "--cache-dir",
            str(tmp_path / "cache"),
            "--json",
            "status",
        )
        with patch("linkboard_sync.logger.logging.basicConfig") as mock_basic:
            code = await main(args)

        assert code == 0
        assert json.loads(capsys.readouterr().out)["is_syncing"] is False
        mock_basic.assert_called_once()
