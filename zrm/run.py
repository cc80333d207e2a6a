"""
Run orchestration: validate, snapshot every dataset, reconcile state,
then replicate every dataset.

    Validating -> snapshot phase (per dataset) -> Reconciling
               -> replication phase (per dataset) -> Summarizing

Only validation failures abort the run. Everything after that is caught at
the dataset (or destination) boundary, recorded in the RunResult and
notified once, and the loop moves on.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from zrm import config as config_mod
from zrm import sanoid, state, zfs
from zrm.connectivity import ConnectivityChecker
from zrm.destinations import ensure_path, resolve
from zrm.errors import (
    ConfigError,
    ConnectivityError,
    DatasetNotFoundError,
    EmptyDatasetError,
    NoSnapshotError,
    SnapshotError,
    ZrmError,
)
from zrm.executor import ExecutorError, SSHExecutor
from zrm.models import RunResult
from zrm.replication import replicate

if TYPE_CHECKING:
    from zrm.executor import CommandRunner, Executor
    from zrm.models import DestinationTarget, JobConfig
    from zrm.notify import Notifier

log = logging.getLogger(__name__)


@dataclass
class DatasetContext:
    """Everything one dataset's processing needs; one per dataset, shared by both phases."""
    dataset: str
    config: "JobConfig"
    executor: "Executor"
    remote: "Executor | None"
    runner: "CommandRunner"
    notifier: "Notifier"
    result: RunResult
    # set when take-snapshots was only previewed (dry-run)
    snapshot_previewed: bool = False

    def fail(self, error: ZrmError) -> None:
        self.result.record_failure(self.dataset, error)
        self.notifier.failure(str(error))

    def executor_for(self, target: "DestinationTarget") -> "Executor":
        return self.remote if target.is_remote else self.executor


def required_tools(config: "JobConfig") -> list[str]:
    tools = ["zfs"]
    if config.snapshots.auto:
        tools.append(config.tools.sanoid)
    if config.replication.enabled:
        tools.append(config.tools.syncoid)
    return tools


def needs_remote(config: "JobConfig") -> bool:
    rep = config.replication
    return rep.enabled and rep.topology.includes_remote


def check_dataset(dataset: str, executor: "Executor") -> None:
    """Raise unless the dataset exists and holds data."""
    if not zfs.dataset_exists(dataset, executor):
        raise DatasetNotFoundError(f"The source dataset '{dataset}' does not exist.")
    try:
        used = zfs.used_bytes(dataset, executor)
    except ExecutorError as e:
        raise DatasetNotFoundError(
            f"Cannot read used space of '{dataset}': {e.stderr.strip()}"
        ) from e
    if used == 0:
        raise EmptyDatasetError(
            f"The source dataset '{dataset}' is empty. Nothing to replicate."
        )


def _snapshot_phase(ctx: DatasetContext) -> bool:
    """Preflight, sanoid config, take, prune. Returns False if preflight failed."""
    log.info("Processing dataset: %s", ctx.dataset)
    try:
        check_dataset(ctx.dataset, ctx.executor)
    except ZrmError as e:
        ctx.fail(e)
        return False

    snaps = ctx.config.snapshots
    if not snaps.auto:
        return True

    try:
        try:
            sanoid.write_config(ctx.dataset, ctx.config, ctx.runner)
        except OSError as e:
            raise SnapshotError(f"Cannot write sanoid config for {ctx.dataset}: {e}") from e
        sanoid.take_snapshots(ctx.dataset, ctx.config, ctx.executor, ctx.runner)
        ctx.snapshot_previewed = ctx.runner.dry_run
        ctx.notifier.success(f"Snapshot creation successful for {ctx.dataset}.")
        if snaps.autoprune:
            sanoid.prune_snapshots(ctx.dataset, ctx.config, ctx.executor, ctx.runner)
            ctx.notifier.success(
                f"Snapshot removal successful for {ctx.dataset} and its children."
            )
    except ZrmError as e:
        ctx.fail(e)
    return True


def _replication_phase(ctx: DatasetContext) -> None:
    rep = ctx.config.replication
    for target in resolve(ctx.dataset, rep):
        try:
            ensure_path(target, ctx.executor_for(target), ctx.runner)
            replicate(
                ctx.dataset, target, rep.mode, ctx.executor, ctx.runner,
                syncoid=ctx.config.tools.syncoid,
                assume_snapshot=ctx.snapshot_previewed,
            )
        except NoSnapshotError as e:
            # same source for every target
            ctx.fail(e)
            return
        except ZrmError as e:
            ctx.fail(e)
            continue
        ctx.notifier.success(f"Replication succeeded: {ctx.dataset} -> {target.spec}")


def _reconcile(config: "JobConfig", runner: "CommandRunner",
               notifier: "Notifier", result: RunResult) -> None:
    log.info("Cleaning up stale sanoid configs...")
    try:
        state.reconcile(config.datasets, config.snapshots.config_dir, runner)
    except OSError as e:
        error = ZrmError(f"Could not save run state: {e}")
        result.errors.append(error)
        notifier.failure(str(error))


def _summarize(result: RunResult, notifier: "Notifier", dry_run: bool) -> None:
    prefix = "[dry-run] " if dry_run else ""
    for outcome in result.outcomes.values():
        status = "ok" if outcome.succeeded else f"FAILED ({outcome.reason})"
        log.info("  %s: %s", outcome.dataset, status)
    if result.failed or result.errors:
        names = ", ".join(o.dataset for o in result.failed) or "run state"
        notifier.failure(f"{prefix}One or more datasets failed: {names}")
    else:
        notifier.success(f"{prefix}All datasets were processed successfully.")


def run_job(
    config: "JobConfig",
    executor: "Executor",
    runner: "CommandRunner",
    notifier: "Notifier",
    remote: "Executor | None" = None,
    checker: ConnectivityChecker | None = None,
) -> RunResult:
    """
    Run one snapshot/replication pass over all configured datasets.

    Raises ConfigError or ConnectivityError (after notifying) if validation
    fails; otherwise always returns a RunResult covering every dataset.
    """
    checker = checker or ConnectivityChecker()
    if remote is None and needs_remote(config) and config.replication.remote is not None:
        remote = SSHExecutor.for_endpoint(config.replication.remote)

    # --- Validating ---
    log.info("Performing global pre-run checks")
    try:
        config_mod.validate(config, remote=remote if needs_remote(config) else None,
                            checker=checker)
        checker.check_local(required_tools(config))
    except (ConfigError, ConnectivityError) as e:
        notifier.failure(str(e))
        raise

    result = RunResult()

    def context(dataset: str) -> DatasetContext:
        return DatasetContext(
            dataset=dataset, config=config, executor=executor, remote=remote,
            runner=runner, notifier=notifier, result=result,
        )

    # --- Snapshots ---
    ready = []
    for dataset in config.datasets:
        result.outcome(dataset)
        ctx = context(dataset)
        if _snapshot_phase(ctx):
            ready.append(ctx)

    # --- Reconciling ---
    _reconcile(config, runner, notifier, result)

    # --- Replication ---
    if config.replication.enabled:
        log.info("Performing ZFS replication")
        for ctx in ready:
            _replication_phase(ctx)

    # --- Summarizing ---
    _summarize(result, notifier, runner.dry_run)
    return result
