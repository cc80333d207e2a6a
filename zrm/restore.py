"""
Restore datasets from their replicated backups.

For every dataset, and then for each child found under its backup:

    verify backup exists -> select snapshot -> check for an existing
    dataset (ask before overwriting) -> zfs send | zfs receive -F

A failed or declined dataset ends its own branch; its descendants are
skipped, siblings and other datasets still run.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from zrm import zfs
from zrm.config import validate_restore
from zrm.connectivity import ConnectivityChecker
from zrm.destinations import dataset_for, ensure_path, source_for
from zrm.errors import (
    ConfigError,
    ConnectivityError,
    DatasetNotFoundError,
    RestoreAbortedError,
    TransferError,
    ZrmError,
)
from zrm.executor import ExecutorError, SSHExecutor
from zrm.models import DestinationTarget, RunResult
from zrm.replication import send_snapshot

if TYPE_CHECKING:
    from zrm.executor import CommandRunner, Executor
    from zrm.models import JobConfig, Snapshot
    from zrm.notify import Notifier

log = logging.getLogger(__name__)

# (dataset, available snapshots) -> chosen snapshot name, or None for latest
SnapshotChooser = Callable[[str, "list[Snapshot]"], "str | None"]
# dataset -> True to overwrite it
Confirm = Callable[[str], bool]


def _decline(_dataset: str) -> bool:
    return False


class _Restorer:
    def __init__(self, base, executor, backup_executor, runner, notifier,
                 result, confirm, choose_snapshot):
        self.base = base
        self.executor = executor
        self.backup_executor = backup_executor
        self.runner = runner
        self.notifier = notifier
        self.result = result
        self.confirm = confirm
        self.choose_snapshot = choose_snapshot

    def fail(self, dataset: str, error: ZrmError) -> None:
        self.result.record_failure(dataset, error)
        self.notifier.failure(str(error))

    def restore_tree(self, dataset: str, explicit: str | None) -> None:
        backup = dataset_for(self.base, dataset)
        self.result.outcome(dataset)
        log.info("Restoring dataset %s from %s", dataset, backup)
        if not self.restore_one(dataset, backup, explicit, interactive=True):
            return

        try:
            children = zfs.list_children(backup, self.backup_executor)
        except ExecutorError as e:
            self.fail(dataset, TransferError(
                f"Cannot list children of {backup}: {e.stderr.strip()}"
            ))
            return

        broken: list[str] = []
        for child in children:
            if any(child.startswith(b + "/") for b in broken):
                log.info("Skipping %s, its parent was not restored", child)
                continue
            child_dataset = source_for(self.base, child)
            self.result.outcome(child_dataset)
            log.info("Restoring child dataset: %s", child_dataset)
            if not self.restore_one(child_dataset, child, None, interactive=False):
                broken.append(child)

    def restore_one(self, dataset: str, backup: str,
                    explicit: str | None, interactive: bool) -> bool:
        try:
            snapshot = self._select(dataset, backup, explicit, interactive)
            self._check_conflict(dataset)
            log.info("Restoring %s from snapshot %s", dataset, snapshot.full_name)
            send_snapshot(snapshot, self.backup_executor, self.executor,
                          dataset, self.runner, force=True)
        except ZrmError as e:
            self.fail(dataset, e)
            return False
        self.notifier.success(
            f"Restoration successful for {dataset} from snapshot {snapshot.full_name}."
        )
        return True

    def _select(self, dataset, backup, explicit, interactive) -> "Snapshot":
        if not zfs.dataset_exists(backup, self.backup_executor):
            raise DatasetNotFoundError(
                f"Backup {backup} does not exist. Cannot restore {dataset}."
            )
        try:
            if explicit is None and interactive and self.choose_snapshot is not None:
                snaps = zfs.list_snapshots(backup, self.backup_executor)
                explicit = self.choose_snapshot(dataset, snaps)
            snapshot = zfs.select_snapshot(backup, self.backup_executor, explicit)
        except ExecutorError as e:
            raise TransferError(
                f"Cannot list snapshots of {backup}: {e.stderr.strip()}"
            ) from e
        log.info("Selected snapshot: %s", snapshot.full_name)
        return snapshot

    def _check_conflict(self, dataset: str) -> None:
        if zfs.dataset_exists(dataset, self.executor):
            log.warning("The destination dataset %s already exists.", dataset)
            if not self.confirm(dataset):
                raise RestoreAbortedError(
                    f"Restoration aborted by user. {dataset} already exists."
                )
            return
        parent = dataset.rpartition("/")[0]
        if "/" in parent:
            ensure_path(DestinationTarget(parent), self.executor, self.runner)


def run_restore(
    config: "JobConfig",
    executor: "Executor",
    runner: "CommandRunner",
    notifier: "Notifier",
    datasets: list[str] | None = None,
    snapshot: str | None = None,
    confirm: Confirm | None = None,
    choose_snapshot: SnapshotChooser | None = None,
    backup_executor: "Executor | None" = None,
    checker: ConnectivityChecker | None = None,
) -> RunResult:
    """
    Restore each dataset (default: config.restore.datasets) and its children
    from the backup base. `snapshot` pins the snapshot of the top-level
    datasets; children always use their latest snapshot. Without `confirm`,
    existing datasets are never overwritten.

    With restore.from_remote the backup host is probed first; an
    unreachable host raises ConnectivityError (after notifying) before any
    dataset is touched.
    """
    settings = config.restore
    datasets = datasets or settings.datasets
    try:
        validate_restore(config, datasets)
    except ConfigError as e:
        notifier.failure(str(e))
        raise

    if backup_executor is None:
        if settings.from_remote:
            backup_executor = SSHExecutor.for_endpoint(config.replication.remote)
        else:
            backup_executor = executor
    if settings.from_remote:
        try:
            (checker or ConnectivityChecker()).check_remote(backup_executor, "zfs")
        except ConnectivityError as e:
            notifier.failure(str(e))
            raise

    result = RunResult()
    restorer = _Restorer(
        settings.backup_base, executor, backup_executor, runner, notifier, result,
        confirm or _decline, choose_snapshot,
    )
    log.info("Starting the restoration process for defined datasets.")
    for dataset in datasets:
        restorer.restore_tree(dataset, snapshot)

    if result.failed:
        notifier.failure("One or more datasets failed to restore.")
    else:
        notifier.success("All datasets were restored successfully.")
    return result
