"""Executor protocol and implementations (local, SSH), plus the dry-run gate."""
from __future__ import annotations

import logging
import shlex
import subprocess
from typing import Callable, Protocol, TypeVar, runtime_checkable

log = logging.getLogger(__name__)

T = TypeVar("T")


class ExecutorError(Exception):
    """Raised when a command exits with a non-zero status."""
    def __init__(self, cmd: list[str], returncode: int, stderr: str):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Command {shlex.join(cmd)!r} exited {returncode}: {stderr.strip()}"
        )


@runtime_checkable
class Executor(Protocol):
    @property
    def label(self) -> str:
        """Short label for display (e.g. 'local', 'ssh://host')."""
        raise NotImplementedError

    def describe(self, cmd: list[str]) -> str:
        """Return the exact command line that run(cmd) would execute."""
        raise NotImplementedError

    def run(self, cmd: list[str]) -> str:
        """Run a command, return stdout. Raise ExecutorError on failure."""
        raise NotImplementedError

    def popen(self, cmd: list[str], **kwargs) -> subprocess.Popen:
        """Launch a command as a Popen object for piping."""
        raise NotImplementedError


class LocalExecutor:
    """Run commands on the local machine."""

    @property
    def label(self) -> str:
        return "local"

    def describe(self, cmd: list[str]) -> str:
        return shlex.join(cmd)

    def run(self, cmd: list[str]) -> str:
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise ExecutorError(cmd, 127, str(e)) from e
        if result.returncode != 0:
            raise ExecutorError(cmd, result.returncode, result.stderr)
        return result.stdout

    def popen(self, cmd: list[str], **kwargs) -> subprocess.Popen:
        return subprocess.Popen(cmd, text=False, **kwargs)


class SSHExecutor:
    """Run commands on a remote host via SSH."""

    def __init__(
        self,
        host: str,
        user: str | None = None,
        port: int = 22,
        connect_timeout: int | None = None,
    ):
        self.host = host
        self.user = user
        self.port = port
        self.connect_timeout = connect_timeout

    @classmethod
    def for_endpoint(cls, endpoint) -> "SSHExecutor":
        return cls(
            host=endpoint.host,
            user=endpoint.user,
            port=endpoint.port,
            connect_timeout=endpoint.connect_timeout,
        )

    @property
    def label(self) -> str:
        dest = f"{self.user}@{self.host}" if self.user else self.host
        return f"ssh://{dest}:{self.port}"

    def _ssh_prefix(self) -> list[str]:
        dest = f"{self.user}@{self.host}" if self.user else self.host
        prefix = ["ssh", "-o", "BatchMode=yes"]
        if self.connect_timeout:
            prefix += ["-o", f"ConnectTimeout={self.connect_timeout}"]
        return prefix + ["-p", str(self.port), dest]

    def _full_cmd(self, cmd: list[str]) -> list[str]:
        return self._ssh_prefix() + [shlex.join(cmd)]

    def describe(self, cmd: list[str]) -> str:
        return shlex.join(self._full_cmd(cmd))

    def run(self, cmd: list[str]) -> str:
        full_cmd = self._full_cmd(cmd)
        try:
            result = subprocess.run(
                full_cmd,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise ExecutorError(full_cmd, 127, str(e)) from e
        if result.returncode != 0:
            raise ExecutorError(full_cmd, result.returncode, result.stderr)
        return result.stdout

    def popen(self, cmd: list[str], **kwargs) -> subprocess.Popen:
        return subprocess.Popen(self._full_cmd(cmd), text=False, **kwargs)


class CommandRunner:
    """
    Single gate for every mutating operation.

    In dry-run mode no action is executed: its description is logged and
    recorded, and a synthetic success is returned. The description is built
    the same way in both modes, so the dry-run log is an exact preview.
    """

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run
        self.history: list[str] = []

    def perform(self, description: str, action: Callable[[], T], default: T = None) -> T:
        """Execute action(), or in dry-run mode only record description."""
        self.history.append(description)
        if self.dry_run:
            log.info("[dry-run] %s", description)
            return default
        log.debug("[run] %s", description)
        return action()

    def run(self, executor: Executor, cmd: list[str]) -> str:
        return self.perform(executor.describe(cmd), lambda: executor.run(cmd), default="")

    def pipe(
        self,
        src_executor: Executor,
        send_cmd: list[str],
        dst_executor: Executor,
        recv_cmd: list[str],
    ) -> None:
        """Stream send_cmd's stdout into recv_cmd's stdin."""
        description = f"{src_executor.describe(send_cmd)} | {dst_executor.describe(recv_cmd)}"
        self.perform(
            description,
            lambda: _pipe(src_executor, send_cmd, dst_executor, recv_cmd),
        )


def _pipe(
    src_executor: Executor,
    send_cmd: list[str],
    dst_executor: Executor,
    recv_cmd: list[str],
) -> None:
    try:
        send_proc = src_executor.popen(send_cmd, stdout=subprocess.PIPE)
    except OSError as e:
        raise ExecutorError(send_cmd, 1, str(e)) from e
    try:
        recv_proc = dst_executor.popen(recv_cmd, stdin=send_proc.stdout)
    except OSError as e:
        send_proc.kill()
        send_proc.wait()
        raise ExecutorError(recv_cmd, 1, str(e)) from e
    # Allow send_proc to receive SIGPIPE if recv_proc dies
    send_proc.stdout.close()

    recv_rc = recv_proc.wait()
    send_rc = send_proc.wait()

    if send_rc != 0 or recv_rc != 0:
        raise ExecutorError(
            send_cmd + ["|"] + recv_cmd,
            max(send_rc, recv_rc),
            f"send exited {send_rc}, recv exited {recv_rc}",
        )
