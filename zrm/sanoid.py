"""Per-dataset sanoid configuration and the take/prune calls that use it.

sanoid decides which snapshots to take and which have expired; zrm only
writes its config and invokes it.
"""
from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from zrm import codec
from zrm.errors import SnapshotError
from zrm.executor import ExecutorError

if TYPE_CHECKING:
    from zrm.executor import CommandRunner, Executor
    from zrm.models import JobConfig

log = logging.getLogger(__name__)

CONFIG_NAME = "sanoid.conf"
DEFAULTS_NAME = "sanoid.defaults.conf"


def config_dir_for(config_dir: str, dataset: str) -> str:
    """Directory holding one dataset's sanoid.conf, e.g. <dir>/cache_appdata/."""
    return os.path.join(config_dir, codec.encode(dataset))


def _yes_no(value: bool) -> str:
    return "yes" if value else "no"


def render_config(dataset: str, config: "JobConfig") -> str:
    snaps = config.snapshots
    ret = snaps.retention
    return (
        f"[{dataset}]\n"
        f"use_template = production\n"
        f"recursive = yes\n"
        f"\n"
        f"[template_production]\n"
        f"hourly = {ret.hourly}\n"
        f"daily = {ret.daily}\n"
        f"weekly = {ret.weekly}\n"
        f"monthly = {ret.monthly}\n"
        f"yearly = {ret.yearly}\n"
        f"autosnap = {_yes_no(snaps.auto)}\n"
        f"autoprune = {_yes_no(snaps.autoprune)}\n"
    )


def _write_text(path: str, content: str) -> None:
    with open(path, "w") as f:
        f.write(content)


def write_config(dataset: str, config: "JobConfig", runner: "CommandRunner") -> bool:
    """
    Bring <config_dir>/<encoded dataset>/ up to date.

    sanoid.conf is only rewritten when its content changed. Returns True
    if it was (or, in dry-run mode, would have been) written.
    """
    directory = config_dir_for(config.snapshots.config_dir, dataset)
    conf_path = os.path.join(directory, CONFIG_NAME)
    defaults_path = os.path.join(directory, DEFAULTS_NAME)

    if not os.path.isdir(directory):
        runner.perform(f"mkdir -p {directory}", lambda: os.makedirs(directory, exist_ok=True))

    if not os.path.lexists(defaults_path):
        defaults = config.tools.sanoid_defaults
        runner.perform(
            f"ln -s {defaults} {defaults_path}",
            lambda: os.symlink(defaults, defaults_path),
        )

    new_content = render_config(dataset, config)
    if os.path.isfile(conf_path):
        with open(conf_path) as f:
            existing = f.read()
        if existing == new_content:
            log.debug("No differences found in sanoid config for %s", dataset)
            return False
        log.info("Differences found in sanoid config for %s, updating", dataset)
    else:
        log.info("sanoid config for %s not found, creating", dataset)

    runner.perform(f"write {conf_path}", lambda: _write_text(conf_path, new_content))
    return True


def _sanoid(
    action: str,
    dataset: str,
    config: "JobConfig",
    executor: "Executor",
    runner: "CommandRunner",
) -> None:
    directory = config_dir_for(config.snapshots.config_dir, dataset)
    cmd = [config.tools.sanoid, f"--configdir={directory}", f"--{action}"]
    try:
        runner.run(executor, cmd)
    except ExecutorError as e:
        verb = "creation" if action == "take-snapshots" else "removal"
        raise SnapshotError(
            f"Snapshot {verb} failed for {dataset}: {e.stderr.strip()}"
        ) from e


def take_snapshots(dataset, config, executor, runner) -> None:
    log.info("Creating automatic snapshots for %s and its children", dataset)
    _sanoid("take-snapshots", dataset, config, executor, runner)


def prune_snapshots(dataset, config, executor, runner) -> None:
    log.info("Pruning snapshots for %s and its children", dataset)
    _sanoid("prune-snapshots", dataset, config, executor, runner)
