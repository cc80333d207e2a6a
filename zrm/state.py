"""Remember which datasets a run handled and clean up after removed ones."""
from __future__ import annotations

import logging
import os
import shutil
from typing import TYPE_CHECKING

from zrm import sanoid

if TYPE_CHECKING:
    from zrm.executor import CommandRunner

log = logging.getLogger(__name__)

STATE_NAME = "sanoid_state.txt"
_PREFIX = "datasets:"


def state_path(config_dir: str) -> str:
    return os.path.join(config_dir, STATE_NAME)


def format_state(datasets: list[str]) -> str:
    return f"{_PREFIX} {' '.join(datasets)}\n"


def read_state(path: str) -> list[str]:
    """Return the datasets recorded by the previous run ([] if none)."""
    if not os.path.isfile(path):
        return []
    with open(path) as f:
        for line in f:
            if line.startswith(_PREFIX):
                return line[len(_PREFIX):].split()
    return []


def _replace_file(path: str, content: str) -> None:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    tmp = path + ".tmp"
    with open(tmp, "w") as f:
        f.write(content)
    os.replace(tmp, path)


def write_state(path: str, datasets: list[str], runner: "CommandRunner") -> None:
    content = format_state(datasets)
    runner.perform(f"write {path}: {content.strip()}", lambda: _replace_file(path, content))


def reconcile(
    current: list[str],
    config_dir: str,
    runner: "CommandRunner",
) -> list[str]:
    """
    Remove the config directories of datasets that were recorded last run
    but are no longer configured, then record `current` as the new state.

    Returns the datasets whose artifacts were removed. A missing directory
    is logged and skipped; a failed removal is logged and does not stop the
    state from being written.
    """
    path = state_path(config_dir)
    previous = read_state(path)
    wanted = set(current)

    removed = []
    for dataset in dict.fromkeys(previous):
        if dataset in wanted:
            continue
        directory = sanoid.config_dir_for(config_dir, dataset)
        if not os.path.isdir(directory):
            log.info("No config left for removed dataset %s", dataset)
            continue
        log.info("Removing config for %s", dataset)
        try:
            runner.perform(f"rm -rf {directory}", lambda d=directory: shutil.rmtree(d))
        except OSError as e:
            log.warning("Failed to delete %s: %s", directory, e)
            continue
        removed.append(dataset)

    if not removed:
        log.info("No stale configs found.")

    log.info("Saving new state.")
    write_state(path, current, runner)
    return removed
