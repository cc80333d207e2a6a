"""CLI entry point for zfs-replication-manager."""
from __future__ import annotations

import argparse
import logging
import sys

from zrm.config import ConfigError, notification_settings, parse_job, read_job, validate
from zrm.connectivity import ConnectivityChecker
from zrm.errors import ConnectivityError
from zrm.executor import CommandRunner, ExecutorError, LocalExecutor, SSHExecutor
from zrm.log import GREEN, RESET, setup_logging
from zrm.notify import Notifier

log = logging.getLogger(__name__)


def _confirm(prompt: str) -> bool:
    """Ask the user yes/no. Return True if yes."""
    try:
        answer = input(f"{prompt} [y/N] ").strip().lower()
    except (EOFError, KeyboardInterrupt):
        print()
        return False
    return answer in ("y", "yes")


def _confirm_overwrite(dataset: str) -> bool:
    return _confirm(f"The destination dataset {dataset} already exists. Overwrite it?")


def _choose_snapshot(dataset, snapshots) -> str | None:
    """Print the available snapshots and let the user pick one (Enter = latest)."""
    print(f"Available snapshots for {dataset}:")
    for snap in snapshots:
        print(f"  {snap.full_name}")
    try:
        answer = input(
            "Enter the snapshot to restore (or press Enter to restore the latest): "
        ).strip()
    except (EOFError, KeyboardInterrupt):
        print()
        return None
    return answer or None


def _load(args, notify: bool = False):
    """
    Load the job file, applying --dry-run. Returns None on failure.

    With notify, a broken job file is reported through the notification
    command the file names, or the default sink if even that is unreadable.
    """
    raw = None
    try:
        raw = read_job(args.config)
        config = parse_job(raw)
    except (ConfigError, FileNotFoundError) as e:
        if notify:
            settings = notification_settings(raw)
            Notifier.from_settings(settings, LocalExecutor()).failure(f"Config error: {e}")
        else:
            log.error("Config error: %s", e)
        return None
    if args.dry_run:
        config.dry_run = True
    return config


def _guarded(notifier: Notifier, func, *args, **kwargs):
    """Run func; fatal errors were already notified, anything else is notified here."""
    try:
        return func(*args, **kwargs)
    except (ConfigError, ConnectivityError):
        return None
    except Exception:
        log.exception("Unexpected error")
        notifier.failure("Script terminated unexpectedly.")
        return None


def cmd_run(args) -> int:
    from zrm.run import run_job
    config = _load(args, notify=True)
    if config is None:
        return 1

    local = LocalExecutor()
    notifier = Notifier.from_settings(config.notifications, local)
    runner = CommandRunner(dry_run=config.dry_run)
    result = _guarded(notifier, run_job, config, local, runner, notifier)
    return 1 if result is None else result.exit_code


def cmd_restore(args) -> int:
    from zrm.restore import run_restore
    config = _load(args, notify=True)
    if config is None:
        return 1

    local = LocalExecutor()
    notifier = Notifier.from_settings(config.notifications, local)
    runner = CommandRunner(dry_run=config.dry_run)
    result = _guarded(
        notifier, run_restore, config, local, runner, notifier,
        datasets=args.dataset or None,
        snapshot=args.snapshot,
        confirm=(lambda _ds: True) if args.yes else _confirm_overwrite,
        choose_snapshot=None if (args.snapshot or args.yes) else _choose_snapshot,
    )
    return 1 if result is None else result.exit_code


def cmd_check(args) -> int:
    """Validate config and probe local tools and the remote endpoint."""
    from zrm.run import needs_remote, required_tools
    config = _load(args)
    if config is None:
        return 1
    try:
        checker = ConnectivityChecker()
        remote = None
        if needs_remote(config) and config.replication.remote is not None:
            remote = SSHExecutor.for_endpoint(config.replication.remote)
        validate(config, remote=remote, checker=checker)
        checker.check_local(required_tools(config))
    except (ConfigError, ConnectivityError) as e:
        log.error("%s", e)
        return 1
    print(f"{GREEN}Configuration OK{RESET}")
    return 0


def cmd_list(args) -> int:
    """List datasets with snapshot counts at the source and every destination."""
    from zrm import zfs
    from zrm.destinations import resolve
    config = _load(args)
    if config is None:
        return 1

    local = LocalExecutor()
    remote = None
    if config.replication.remote is not None and config.replication.remote.host:
        remote = SSHExecutor.for_endpoint(config.replication.remote)

    print(f"{'Dataset / destination':<60} {'Snaps':>8}")
    print("-" * 69)
    for dataset in config.datasets:
        try:
            count = str(len(zfs.list_snapshots(dataset, local)))
        except ExecutorError:
            count = "missing"
        print(f"{dataset:<60} {count:>8}")
        if not config.replication.enabled:
            continue
        for target in resolve(dataset, config.replication):
            executor = remote if target.is_remote else local
            try:
                dst_count = str(len(zfs.list_snapshots(target.dataset, executor)))
            except ExecutorError:
                dst_count = "missing"
            print(f"  -> {target.spec:<56} {dst_count:>8}")

    return 0


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(
        prog="zrm",
        description="ZFS Replication Manager: snapshot, prune and mirror datasets",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # Shared options
    def add_common(p):
        p.add_argument("config", help="Path to job YAML config file")
        p.add_argument("--dry-run", "-n", action="store_true",
                       help="Show what would happen without making changes")
        p.add_argument("--verbose", "-v", action="store_true",
                       help="Show every command that is run")

    p_run = sub.add_parser("run", help="Take and prune snapshots, then replicate")
    add_common(p_run)
    p_run.set_defaults(func=cmd_run)

    p_restore = sub.add_parser("restore", help="Restore datasets from their backups")
    add_common(p_restore)
    p_restore.add_argument("--dataset", "-d", action="append",
                           help="Dataset to restore (repeatable; default: from config)")
    p_restore.add_argument("--snapshot", "-s",
                           help="Snapshot to restore the top-level datasets from "
                                "(default: latest)")
    p_restore.add_argument("--yes", "-y", action="store_true",
                           help="Overwrite existing datasets without asking")
    p_restore.set_defaults(func=cmd_restore)

    p_check = sub.add_parser("check", help="Validate config and connectivity only")
    add_common(p_check)
    p_check.set_defaults(func=cmd_check)

    p_list = sub.add_parser("list", help="List datasets and snapshot counts")
    add_common(p_list)
    p_list.set_defaults(func=cmd_list)

    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
