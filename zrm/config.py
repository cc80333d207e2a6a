"""Load and validate YAML job configuration files."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import yaml

from zrm import codec
from zrm.errors import ConfigError
from zrm.models import (
    DestinationTopology,
    JobConfig,
    MirrorMode,
    NotificationLevel,
    NotificationSettings,
    RemoteEndpoint,
    ReplicationSettings,
    RestoreSettings,
    RetentionPolicy,
    SnapshotSettings,
    ToolSettings,
)

if TYPE_CHECKING:
    from zrm.connectivity import ConnectivityChecker
    from zrm.executor import Executor

log = logging.getLogger(__name__)

__all__ = [
    "ConfigError", "load_job", "notification_settings", "parse_job", "read_job",
    "validate", "validate_restore",
]

_TRUE = ("yes", "true", "on")
_FALSE = ("no", "false", "off")


def _section(raw: dict, key: str) -> dict:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping", field=key)
    return value


def _bool(section: dict, key: str, default: bool, path: str) -> bool:
    value = section.get(key, default)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE:
        return True
    if isinstance(value, str) and value.strip().lower() in _FALSE:
        return False
    raise ConfigError(
        f"Invalid setting for {path}: {value!r}. Must be 'yes' or 'no'.", field=path
    )


def _enum(section: dict, key: str, enum_cls, default, path: str):
    value = section.get(key, default.value)
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(repr(m.value) for m in enum_cls)
        raise ConfigError(
            f"Invalid setting for {path}: {value!r}. Must be one of {allowed}.",
            field=path,
        )


def _count(section: dict, key: str, default: int, path: str) -> int:
    value = section.get(key, default)
    if isinstance(value, bool):
        raise ConfigError(f"{path} must be an integer, got {value!r}", field=path)
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{path} must be an integer, got {value!r}", field=path)
    if count < 0:
        raise ConfigError(f"{path} must be >= 0, got {count}", field=path)
    return count


def _optional_str(section: dict, key: str) -> str | None:
    value = section.get(key)
    if value is None:
        return None
    value = str(value).strip().strip("/")
    return value or None


def _datasets(values, path: str) -> list[str]:
    if not isinstance(values, list):
        raise ConfigError(f"'{path}' must be a list", field=path)
    datasets = []
    for d in values:
        name = str(d).strip("/") if d is not None else ""
        if not name or name == "None":
            raise ConfigError(f"Invalid dataset entry: {d!r}", field=path)
        datasets.append(name)
    return datasets


def _notifications(raw: dict) -> NotificationSettings:
    section = _section(raw, "notifications")
    return NotificationSettings(
        level=_enum(section, "level", NotificationLevel,
                    NotificationLevel.ERROR, "notifications.level"),
        command=section.get("command") or None,
        subject=str(section.get("subject") or NotificationSettings.subject),
    )


def parse_job(raw) -> JobConfig:
    """Turn a loaded YAML mapping into a JobConfig. Raises ConfigError."""
    if not isinstance(raw, dict):
        raise ConfigError("Config must be a YAML mapping")

    # --- datasets ---
    datasets = _datasets(raw.get("datasets") or [], "datasets")

    # --- snapshots ---
    snap_raw = _section(raw, "snapshots")
    ret_raw = _section(snap_raw, "retention")
    defaults = RetentionPolicy()
    retention = RetentionPolicy(**{
        tier: _count(ret_raw, tier, getattr(defaults, tier), f"snapshots.retention.{tier}")
        for tier in ("hourly", "daily", "weekly", "monthly", "yearly")
    })
    snapshots = SnapshotSettings(
        auto=_bool(snap_raw, "auto", True, "snapshots.auto"),
        autoprune=_bool(snap_raw, "autoprune", True, "snapshots.autoprune"),
        config_dir=str(snap_raw.get("config_dir") or SnapshotSettings.config_dir),
        retention=retention,
    )

    # --- replication ---
    rep_raw = _section(raw, "replication")
    remote = None
    remote_raw = _section(rep_raw, "remote")
    if remote_raw:
        remote = RemoteEndpoint(
            user=str(remote_raw.get("user") or "").strip(),
            host=str(remote_raw.get("host") or "").strip(),
            port=_count(remote_raw, "port", 22, "replication.remote.port"),
            connect_timeout=_count(
                remote_raw, "connect_timeout", 5, "replication.remote.connect_timeout"
            ),
        )
    local_base = _optional_str(rep_raw, "local_base")
    replication = ReplicationSettings(
        enabled=_bool(rep_raw, "enabled", False, "replication.enabled"),
        topology=_enum(rep_raw, "topology", DestinationTopology,
                       DestinationTopology.LOCAL, "replication.topology"),
        mode=_enum(rep_raw, "mode", MirrorMode, MirrorMode.STRICT_MIRROR, "replication.mode"),
        local_base=local_base,
        remote_base=_optional_str(rep_raw, "remote_base") or local_base,
        remote=remote,
    )

    notifications = _notifications(raw)

    # --- tools ---
    tools_raw = _section(raw, "tools")
    tools = ToolSettings(**{
        key: str(tools_raw[key]) for key in ("sanoid", "syncoid", "sanoid_defaults")
        if tools_raw.get(key)
    })

    # --- restore ---
    restore_raw = _section(raw, "restore")
    restore = RestoreSettings(
        datasets=_datasets(restore_raw.get("datasets") or datasets, "restore.datasets"),
        backup_base=_optional_str(restore_raw, "backup_base") or local_base,
        from_remote=_bool(restore_raw, "from_remote", False, "restore.from_remote"),
    )

    return JobConfig(
        datasets=datasets,
        snapshots=snapshots,
        replication=replication,
        notifications=notifications,
        tools=tools,
        restore=restore,
        dry_run=_bool(raw, "dry_run", False, "dry_run"),
    )


def read_job(path: str) -> dict:
    """Read a job file into its raw mapping, without interpreting it."""
    with open(path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")
    if not isinstance(raw, dict):
        raise ConfigError(f"Config must be a YAML mapping: {path}")
    return raw


def load_job(path: str) -> JobConfig:
    return parse_job(read_job(path))


def notification_settings(raw) -> NotificationSettings:
    """
    Notification settings from a raw job mapping that may be invalid
    elsewhere. Falls back to the defaults when the section itself is bad,
    so a broken job file can still be reported.
    """
    if isinstance(raw, dict):
        try:
            return _notifications(raw)
        except ConfigError as e:
            log.warning("Ignoring notification settings: %s", e)
    return NotificationSettings()


def _check_dataset_name(name: str, path: str) -> None:
    if any(c.isspace() for c in name):
        raise ConfigError(
            f"Dataset name {name!r} contains whitespace. Rename the dataset and try again.",
            field=path,
        )
    if not codec.is_encodable(name):
        raise ConfigError(
            f"Dataset name {name!r} contains {codec.SUBSTITUTE!r}, which is reserved "
            f"for flattened destination names",
            field=path,
        )


def _check_base_path(base: str, path: str) -> None:
    if any(c.isspace() or c in "@:" for c in base) or "//" in base:
        raise ConfigError(f"Malformed dataset path for {path}: {base!r}", field=path)


def _check_remote(remote: RemoteEndpoint | None) -> None:
    if remote is None or not remote.user or not remote.host:
        raise ConfigError(
            "replication.remote.user and replication.remote.host must be set "
            "when the topology includes a remote destination",
            field="replication.remote",
        )
    if any(c.isspace() or c in "@:" for c in remote.user + remote.host):
        raise ConfigError(
            f"Malformed remote endpoint {remote.address!r}", field="replication.remote"
        )
    if not 1 <= remote.port <= 65535:
        raise ConfigError(
            f"replication.remote.port out of range: {remote.port}",
            field="replication.remote.port",
        )


def validate(
    config: JobConfig,
    remote: "Executor | None" = None,
    checker: "ConnectivityChecker | None" = None,
) -> None:
    """
    Check a parsed job for consistency. Raises ConfigError on the first
    violation. When replication targets a remote host and both `remote`
    and `checker` are given, also verifies connectivity (ConnectivityError).
    """
    codec.check_codec()

    if not config.datasets:
        raise ConfigError("'datasets' list is required", field="datasets")

    seen = set()
    for name in config.datasets:
        _check_dataset_name(name, "datasets")
        if name in seen:
            raise ConfigError(f"Duplicate dataset entry: {name}", field="datasets")
        seen.add(name)
    for name in config.restore.datasets:
        _check_dataset_name(name, "restore.datasets")

    rep = config.replication
    if not rep.enabled and not config.snapshots.auto:
        raise ConfigError(
            "Both replication and auto snapshots are disabled. Nothing to do.",
            field="replication.enabled",
        )

    if rep.enabled:
        if rep.topology.includes_local:
            if not rep.local_base:
                raise ConfigError(
                    "replication.local_base is required for a local destination",
                    field="replication.local_base",
                )
            _check_base_path(rep.local_base, "replication.local_base")
        if rep.topology.includes_remote:
            _check_remote(rep.remote)
            if not rep.remote_base:
                raise ConfigError(
                    "replication.remote_base is required for a remote destination",
                    field="replication.remote_base",
                )
            _check_base_path(rep.remote_base, "replication.remote_base")
            if remote is not None and checker is not None:
                checker.check_remote(remote, "syncoid")


def validate_restore(config: JobConfig, datasets: list[str]) -> None:
    """Check the settings a restore run needs. Raises ConfigError."""
    codec.check_codec()
    if not datasets:
        raise ConfigError("No datasets to restore", field="restore.datasets")
    for name in datasets:
        _check_dataset_name(name, "restore.datasets")
    if not config.restore.backup_base:
        raise ConfigError(
            "restore.backup_base (or replication.local_base) is required",
            field="restore.backup_base",
        )
    _check_base_path(config.restore.backup_base, "restore.backup_base")
    if config.restore.from_remote:
        _check_remote(config.replication.remote)
