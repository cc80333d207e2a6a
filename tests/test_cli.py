"""Tests for the zrm.cli subcommands (called directly, without argparse)."""
from __future__ import annotations

import argparse
import textwrap

import pytest

from zrm import cli
from tests.conftest import MockExecutor, StubChecker, exists_cmd, source_responses

DS = "cache/appdata"
DST = "vault/replication/cache_appdata"


@pytest.fixture
def job_file(tmp_path):
    path = tmp_path / "job.yaml"
    path.write_text(textwrap.dedent(f"""\
        datasets:
          - {DS}
        snapshots:
          config_dir: {tmp_path / "sanoid"}
        replication:
          enabled: yes
          topology: local
          local_base: vault/replication
    """))
    return str(path)


def _args(config, **kwargs):
    defaults = dict(config=config, dry_run=False, verbose=False,
                    dataset=None, snapshot=None, yes=False)
    defaults.update(kwargs)
    return argparse.Namespace(**defaults)


def test_check_ok(job_file, monkeypatch, capsys):
    monkeypatch.setattr(cli, "ConnectivityChecker", StubChecker)
    assert cli.cmd_check(_args(job_file)) == 0
    assert "Configuration OK" in capsys.readouterr().out


def test_check_reports_missing_tool(job_file, monkeypatch):
    from zrm.errors import ConnectivityError

    monkeypatch.setattr(
        cli, "ConnectivityChecker",
        lambda: StubChecker(error=ConnectivityError("sanoid not found", reason="tool-missing")),
    )
    assert cli.cmd_check(_args(job_file)) == 1


def test_missing_config_file(tmp_path):
    assert cli.cmd_run(_args(str(tmp_path / "nope.yaml"))) == 1
    assert cli.cmd_check(_args(str(tmp_path / "nope.yaml"))) == 1


def test_dry_run_flag_reaches_runner(job_file, monkeypatch, tmp_path):
    responses = source_responses(DS)
    responses[exists_cmd(DST)] = DST + "\n"
    mock = MockExecutor(responses)
    monkeypatch.setattr(cli, "LocalExecutor", lambda: mock)
    monkeypatch.setattr("zrm.run.ConnectivityChecker", StubChecker)

    assert cli.cmd_run(_args(job_file, dry_run=True)) == 0

    # only read-only zfs queries were issued
    assert all(c[0] == "zfs" and c[1] in ("list", "get") for c in mock.calls)
    assert not (tmp_path / "sanoid").exists()


def test_unexpected_error_is_reported(job_file, monkeypatch):
    mock = MockExecutor({})  # every command raises KeyError
    monkeypatch.setattr(cli, "LocalExecutor", lambda: mock)
    monkeypatch.setattr("zrm.run.ConnectivityChecker", StubChecker)

    assert cli.cmd_run(_args(job_file)) == 1


class AcceptAll(MockExecutor):
    """Executor on which every command succeeds with no output."""

    def run(self, cmd):
        self.calls.append(cmd)
        return ""


NOTIFY = "/usr/local/bin/notify"


def test_invalid_job_is_notified_once(tmp_path, monkeypatch):
    path = tmp_path / "job.yaml"
    path.write_text(textwrap.dedent(f"""\
        datasets:
          - {DS}
        replication:
          enabled: yes
          topology: sometimes
        notifications:
          command: {NOTIFY}
    """))
    mock = AcceptAll()
    monkeypatch.setattr(cli, "LocalExecutor", lambda: mock)

    assert cli.cmd_run(_args(str(path))) == 1

    (sent,) = mock.ran(NOTIFY)
    message = sent[sent.index("-d") + 1]
    assert "replication.topology" in message
    assert sent[-2:] == ["-i", "warning"]


def test_unreadable_job_uses_default_sink(tmp_path, monkeypatch, caplog):
    path = tmp_path / "job.yaml"
    path.write_text("datasets: [unclosed\n")
    mock = AcceptAll()
    monkeypatch.setattr(cli, "LocalExecutor", lambda: mock)

    assert cli.cmd_restore(_args(str(path))) == 1
    assert mock.calls == []
    assert "Invalid YAML" in caplog.text


def test_check_reports_config_error_before_tools(tmp_path, monkeypatch):
    path = tmp_path / "job.yaml"
    path.write_text("datasets: []\n")
    checker = StubChecker()
    monkeypatch.setattr(cli, "ConnectivityChecker", lambda: checker)

    assert cli.cmd_check(_args(str(path))) == 1
    assert checker.local == []
