"""Tests for zrm.executor: SSH command lines and the dry-run gate."""
from __future__ import annotations

import logging

from zrm.executor import CommandRunner, LocalExecutor, SSHExecutor
from tests.conftest import MockExecutor


def test_ssh_describe_matches_executed_command():
    ex = SSHExecutor(host="10.0.0.5", user="root", connect_timeout=5)
    assert ex.describe(["zfs", "create", "-p", "vault/replication/cache_appdata"]) == (
        "ssh -o BatchMode=yes -o ConnectTimeout=5 -p 22 root@10.0.0.5 "
        "'zfs create -p vault/replication/cache_appdata'"
    )
    assert ex.label == "ssh://root@10.0.0.5:22"


def test_local_describe():
    assert LocalExecutor().describe(["zfs", "list", "a b"]) == "zfs list 'a b'"


def test_dry_run_never_executes(caplog):
    calls = []
    runner = CommandRunner(dry_run=True)
    with caplog.at_level(logging.INFO, logger="zrm"):
        result = runner.perform("rm -rf /tmp/x", lambda: calls.append("ran"))
    assert calls == []
    assert result is None
    assert "[dry-run] rm -rf /tmp/x" in caplog.text


def test_dry_run_description_equals_real_description():
    cmd = ["zfs", "create", "-p", "vault/replication/cache_appdata"]
    dry_exec = MockExecutor({})
    real_exec = MockExecutor({tuple(cmd): ""})

    dry = CommandRunner(dry_run=True)
    real = CommandRunner(dry_run=False)
    assert dry.run(dry_exec, cmd) == ""
    real.run(real_exec, cmd)

    assert dry_exec.calls == []
    assert real_exec.calls == [cmd]
    assert dry.history == real.history == [
        "zfs create -p vault/replication/cache_appdata"
    ]


def test_pipe_dry_run_skips_popen():
    src, dst = MockExecutor({}), MockExecutor({})
    runner = CommandRunner(dry_run=True)
    runner.pipe(src, ["zfs", "send", "a@s"], dst, ["zfs", "receive", "-F", "b"])
    assert src.popen_calls == [] and dst.popen_calls == []
    assert runner.history == ["zfs send a@s | zfs receive -F b"]


def test_pipe_runs_both_sides():
    src, dst = MockExecutor({}), MockExecutor({})
    CommandRunner().pipe(src, ["zfs", "send", "a@s"], dst, ["zfs", "receive", "-F", "b"])
    assert src.popen_calls == [["zfs", "send", "a@s"]]
    assert dst.popen_calls == [["zfs", "receive", "-F", "b"]]
