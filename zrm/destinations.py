"""Map source datasets to destination targets and create them on demand."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from zrm import codec, zfs
from zrm.errors import PathCreationError
from zrm.executor import ExecutorError
from zrm.models import DestinationTarget

if TYPE_CHECKING:
    from zrm.executor import CommandRunner, Executor
    from zrm.models import ReplicationSettings

log = logging.getLogger(__name__)


def dataset_for(base: str, dataset: str) -> str:
    """Return the destination dataset path under a base.

    Example: vault/replication + cache/appdata -> vault/replication/cache_appdata
    """
    return f"{base.rstrip('/')}/{codec.encode(dataset)}"


def source_for(base: str, backup_dataset: str) -> str:
    """Inverse of dataset_for, also for children of a flattened dataset.

    Example: vault/replication/cache_appdata/db -> cache/appdata/db
    """
    prefix = base.rstrip("/") + "/"
    if not backup_dataset.startswith(prefix):
        raise ValueError(f"{backup_dataset!r} is not under {base!r}")
    flat, sep, rest = backup_dataset[len(prefix):].partition("/")
    return codec.decode(flat) + sep + rest


def resolve(dataset: str, settings: "ReplicationSettings") -> list[DestinationTarget]:
    """
    Return the destinations for one source dataset, local first.

    Local and remote bases are resolved independently; they do not have to
    live in the same pool.
    """
    targets = []
    if settings.topology.includes_local:
        targets.append(DestinationTarget(dataset_for(settings.local_base, dataset)))
    if settings.topology.includes_remote:
        targets.append(DestinationTarget(
            dataset_for(settings.remote_base, dataset),
            endpoint=settings.remote,
        ))
    return targets


def ensure_path(
    target: DestinationTarget,
    executor: "Executor",
    runner: "CommandRunner",
) -> bool:
    """
    Create the target dataset (and missing parents) unless it exists.

    `executor` must address the machine the target lives on.
    Returns True if a create was issued. Raises PathCreationError.
    """
    if zfs.dataset_exists(target.dataset, executor):
        log.debug("Destination %s already exists", target.spec)
        return False

    log.info("Creating destination dataset %s", target.spec)
    try:
        runner.run(executor, ["zfs", "create", "-p", target.dataset])
    except ExecutorError as e:
        raise PathCreationError(
            f"Failed to create {'remote' if target.is_remote else 'local'} "
            f"dataset {target.spec}: {e.stderr.strip()}"
        ) from e
    return True
