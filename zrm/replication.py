"""Transfer primitives: syncoid for replication, zfs send | recv for restore."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from zrm import zfs
from zrm.errors import NoSnapshotError, TransferError
from zrm.executor import ExecutorError
from zrm.models import MirrorMode

if TYPE_CHECKING:
    from zrm.executor import CommandRunner, Executor
    from zrm.models import DestinationTarget, Snapshot

log = logging.getLogger(__name__)

# Never treat syncoid's own sync snapshot as the source of a transfer.
BASE_FLAGS = ("-r", "--no-sync-snap")
STRICT_MIRROR_FLAGS = ("--delete-target-snapshots", "--force-delete")


def syncoid_flags(mode: MirrorMode, target: "DestinationTarget | None" = None) -> list[str]:
    """Return the syncoid flags for a mirror mode (and target transport)."""
    flags = list(BASE_FLAGS)
    if mode is MirrorMode.STRICT_MIRROR:
        flags += STRICT_MIRROR_FLAGS
    if target is not None and target.endpoint is not None and target.endpoint.port != 22:
        flags += ["--sshport", str(target.endpoint.port)]
    return flags


def syncoid_command(
    syncoid: str,
    source: str,
    target: "DestinationTarget",
    mode: MirrorMode,
) -> list[str]:
    return [syncoid, *syncoid_flags(mode, target), source, target.spec]


def replicate(
    source: str,
    target: "DestinationTarget",
    mode: MirrorMode,
    executor: "Executor",
    runner: "CommandRunner",
    syncoid: str = "syncoid",
    assume_snapshot: bool = False,
) -> None:
    """
    Replicate `source` and its children to one target.

    syncoid always runs on the source side; remote targets are addressed as
    user@host:dataset. Raises NoSnapshotError without transferring anything
    if the source has no snapshot yet, TransferError if syncoid fails.

    `assume_snapshot` is for dry-runs in which a snapshot would have been
    taken earlier in the same run: the transfer is previewed instead.
    """
    try:
        latest = zfs.latest_snapshot(source, executor)
    except ExecutorError as e:
        raise TransferError(f"Cannot list snapshots of {source}: {e.stderr.strip()}") from e
    if latest is None and not assume_snapshot:
        raise NoSnapshotError(f"No snapshot found for {source}. Skipping replication.")

    cmd = syncoid_command(syncoid, source, target, mode)
    if latest is None:
        log.info("[dry-run] %s has no snapshot yet, take-snapshots would create one", source)
        log.info("Replicating %s -> %s (%s)", source, target.spec, mode.value)
    else:
        log.info("Replicating %s -> %s (%s, latest @%s)",
                 source, target.spec, mode.value, latest.name)
    try:
        runner.run(executor, cmd)
    except ExecutorError as e:
        raise TransferError(
            f"Replication FAILED: {source} -> {target.spec}: {e.stderr.strip()}"
        ) from e


def send_snapshot(
    snapshot: "Snapshot",
    src_executor: "Executor",
    dst_executor: "Executor",
    dst_dataset: str,
    runner: "CommandRunner",
    force: bool = True,
) -> None:
    """
    Send one full snapshot into dst_dataset.

    Uses: zfs send pool/dataset@snap | [ssh] zfs receive [-F] dst_dataset

    With force, the receiving side rolls back and overwrites whatever
    dst_dataset currently holds. Raises TransferError.
    """
    send_cmd = ["zfs", "send", snapshot.full_name]
    recv_cmd = ["zfs", "receive"]
    if force:
        recv_cmd.append("-F")
    recv_cmd.append(dst_dataset)

    try:
        runner.pipe(src_executor, send_cmd, dst_executor, recv_cmd)
    except ExecutorError as e:
        raise TransferError(
            f"Transfer of {snapshot.full_name} into {dst_dataset} failed: {e}"
        ) from e
