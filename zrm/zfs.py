"""Read-only ZFS queries using an Executor for dependency injection."""
from __future__ import annotations

from typing import TYPE_CHECKING

from zrm.errors import NoSnapshotError
from zrm.executor import ExecutorError
from zrm.models import Snapshot

if TYPE_CHECKING:
    from zrm.executor import Executor


def list_datasets(root: str, executor: "Executor") -> list[str]:
    """Return root followed by all of its descendants in lexical order."""
    output = executor.run(["zfs", "list", "-H", "-o", "name", "-r", root])
    descendants = set()
    for line in output.splitlines():
        name = line.strip()
        if name.startswith(root + "/"):
            descendants.add(name)
    return [root] + sorted(descendants)


def list_children(root: str, executor: "Executor") -> list[str]:
    """Return all descendants of root (root itself excluded)."""
    return list_datasets(root, executor)[1:]


def dataset_exists(dataset: str, executor: "Executor") -> bool:
    """Return True if the dataset exists."""
    try:
        executor.run(["zfs", "list", "-H", "-o", "name", dataset])
        return True
    except ExecutorError:
        return False


def used_bytes(dataset: str, executor: "Executor") -> int:
    """Return the space used by a dataset in bytes (exact, not humanized)."""
    output = executor.run(["zfs", "get", "-Hp", "-o", "value", "used", dataset])
    value = output.strip()
    try:
        return int(value)
    except ValueError:
        raise ExecutorError(
            ["zfs", "get", "used", dataset], 1, f"unexpected size value {value!r}"
        )


def list_snapshots(dataset: str, executor: "Executor") -> list[Snapshot]:
    """Return snapshots taken directly on a dataset, oldest first."""
    output = executor.run([
        "zfs", "list", "-H", "-o", "name", "-t", "snapshot",
        "-s", "creation", "-d", "1", dataset,
    ])
    results = []
    for line in output.splitlines():
        name = line.strip()
        if not name:
            continue
        # Only include snapshots directly on this dataset (not children)
        if "@" in name and name.split("@")[0] == dataset:
            results.append(Snapshot.parse(name, order=len(results)))
    return results


def latest_snapshot(dataset: str, executor: "Executor") -> Snapshot | None:
    snaps = list_snapshots(dataset, executor)
    return snaps[-1] if snaps else None


def select_snapshot(
    dataset: str,
    executor: "Executor",
    explicit: str | None = None,
) -> Snapshot:
    """
    Return the snapshot named `explicit`, or the newest one when no choice
    is given. `explicit` may be the short name or dataset@name.
    Raises NoSnapshotError if the dataset has no snapshots or the choice
    does not exist.
    """
    snaps = list_snapshots(dataset, executor)
    if not snaps:
        raise NoSnapshotError(f"No snapshot found for {dataset}")
    if not explicit:
        return snaps[-1]

    wanted = explicit if "@" in explicit else f"{dataset}@{explicit}"
    for snap in snaps:
        if snap.full_name == wanted:
            return snap
    raise NoSnapshotError(f"Snapshot {explicit!r} does not exist on {dataset}")
