"""Preflight checks: required tools locally, reachability and tools remotely."""
from __future__ import annotations

import logging
import shutil
from typing import TYPE_CHECKING

from zrm.errors import ConnectivityError
from zrm.executor import ExecutorError

if TYPE_CHECKING:
    from zrm.executor import Executor

log = logging.getLogger(__name__)


class ConnectivityChecker:
    """Probes run before any dataset is touched. All failures are fatal."""

    def check_local(self, tools: list[str]) -> None:
        """Raise ConnectivityError unless every tool is found and executable."""
        for tool in tools:
            if shutil.which(tool) is None:
                raise ConnectivityError(
                    f"{tool} is not found or not executable. Install it and try again.",
                    reason=ConnectivityError.TOOL_MISSING,
                )
            log.debug("Found %s", tool)

    def check_remote(self, executor: "Executor", tool: str) -> None:
        """Verify the remote answers over SSH and has `tool` installed."""
        log.info("Checking remote server availability (%s)...", executor.label)
        try:
            executor.run(["echo", "SSH connection successful"])
        except ExecutorError as e:
            raise ConnectivityError(
                f"SSH connection to {executor.label} failed. "
                f"Verify remote details and SSH keys. ({e.stderr.strip()})",
                reason=ConnectivityError.UNREACHABLE,
            ) from e

        log.info("Verifying %s on remote...", tool)
        try:
            executor.run(["command", "-v", tool])
        except ExecutorError as e:
            raise ConnectivityError(
                f"{tool} not found on {executor.label}. Install it first.",
                reason=ConnectivityError.TOOL_MISSING,
            ) from e
