"""MockExecutor and shared fixtures for testing."""
from __future__ import annotations

import io
import shlex
import subprocess
from unittest.mock import MagicMock

from zrm.executor import ExecutorError
from zrm.models import (
    DestinationTopology,
    JobConfig,
    MirrorMode,
    RemoteEndpoint,
    ReplicationSettings,
    SnapshotSettings,
)


class MockExecutor:
    """
    Executor that returns pre-scripted responses for commands.

    responses: dict mapping tuple(cmd) -> stdout string, or an Exception to raise.
    If the command isn't found, raises KeyError (to catch unexpected calls in tests).
    """

    def __init__(self, responses: dict | None = None, label: str = "mock"):
        self.responses: dict = responses or {}
        self._label = label
        self.calls: list[list[str]] = []  # record of all commands run
        self.popen_calls: list[list[str]] = []

    @property
    def label(self) -> str:
        return self._label

    def describe(self, cmd: list[str]) -> str:
        return shlex.join(cmd)

    def run(self, cmd: list[str]) -> str:
        self.calls.append(cmd)
        key = tuple(cmd)
        if key not in self.responses:
            raise KeyError(f"MockExecutor: unexpected command: {cmd}")
        result = self.responses[key]
        if isinstance(result, Exception):
            raise result
        return result

    def popen(self, cmd: list[str], **_kwargs) -> subprocess.Popen:
        """Record the call and return a mock Popen that succeeds immediately."""
        self.popen_calls.append(cmd)
        mock_proc = MagicMock(spec=subprocess.Popen)
        mock_proc.stdout = io.BytesIO(b"")
        mock_proc.stdin = io.BytesIO(b"")
        mock_proc.returncode = 0
        mock_proc.wait.return_value = 0
        return mock_proc

    def ran(self, *prefix: str) -> list[list[str]]:
        """Return recorded commands starting with prefix."""
        return [c for c in self.calls if tuple(c[:len(prefix)]) == prefix]


class StubChecker:
    """ConnectivityChecker stand-in that records what it was asked to probe."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.local: list[list[str]] = []
        self.remote: list[tuple[str, str]] = []

    def check_local(self, tools):
        self.local.append(list(tools))
        if self.error is not None:
            raise self.error

    def check_remote(self, executor, tool):
        self.remote.append((executor.label, tool))


def missing(cmd="zfs") -> ExecutorError:
    return ExecutorError([cmd], 1, "dataset does not exist")


# ---------------------------------------------------------------------------
# Command builders matching what zrm.zfs issues
# ---------------------------------------------------------------------------

def exists_cmd(dataset: str) -> tuple:
    return ("zfs", "list", "-H", "-o", "name", dataset)


def used_cmd(dataset: str) -> tuple:
    return ("zfs", "get", "-Hp", "-o", "value", "used", dataset)


def snapshots_cmd(dataset: str) -> tuple:
    return ("zfs", "list", "-H", "-o", "name", "-t", "snapshot",
            "-s", "creation", "-d", "1", dataset)


def tree_cmd(root: str) -> tuple:
    return ("zfs", "list", "-H", "-o", "name", "-r", root)


def create_cmd(dataset: str) -> tuple:
    return ("zfs", "create", "-p", dataset)


def snap_list_output(dataset: str, names: list[str]) -> str:
    return "".join(f"{dataset}@{n}\n" for n in names)


def source_responses(
    dataset: str,
    snaps: list[str] | None = None,
    used: int = 4096,
) -> dict:
    """Responses for a healthy source dataset."""
    if snaps is None:
        snaps = [
            "autosnap_2026-10-16_00:00:01_daily",
            "autosnap_2026-10-17_00:00:01_daily",
            "autosnap_2026-10-18_00:00:01_daily",
        ]
    return {
        exists_cmd(dataset): dataset + "\n",
        used_cmd(dataset): f"{used}\n",
        snapshots_cmd(dataset): snap_list_output(dataset, snaps),
    }


def make_config(tmp_path, datasets=None, **replication) -> JobConfig:
    rep = dict(
        enabled=True,
        topology=DestinationTopology.LOCAL,
        mode=MirrorMode.STRICT_MIRROR,
        local_base="vault/replication",
        remote_base="vault/replication",
        remote=RemoteEndpoint(user="root", host="10.0.0.5"),
    )
    rep.update(replication)
    return JobConfig(
        datasets=datasets or ["cache/appdata"],
        snapshots=SnapshotSettings(config_dir=str(tmp_path / "sanoid")),
        replication=ReplicationSettings(**rep),
    )
