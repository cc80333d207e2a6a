"""Data models for zfs-replication-manager."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from zrm.errors import ZrmError


@dataclass(frozen=True, order=True)
class Snapshot:
    """A ZFS snapshot: pool/dataset@name.

    `order` is the position in creation order (0 = oldest) as reported by
    `zfs list -s creation`; it is the only ordering signal zrm relies on.
    """
    dataset: str
    name: str  # just the snapshot name after '@'
    order: int = field(default=0, compare=False)

    @property
    def full_name(self) -> str:
        return f"{self.dataset}@{self.name}"

    @classmethod
    def parse(cls, full_name: str, order: int = 0) -> "Snapshot":
        dataset, _, name = full_name.partition("@")
        if not name:
            raise ValueError(f"Not a snapshot: {full_name!r}")
        return cls(dataset=dataset, name=name, order=order)


class DestinationTopology(Enum):
    LOCAL = "local"
    REMOTE = "remote"
    BOTH = "both"

    @property
    def includes_local(self) -> bool:
        return self in (DestinationTopology.LOCAL, DestinationTopology.BOTH)

    @property
    def includes_remote(self) -> bool:
        return self in (DestinationTopology.REMOTE, DestinationTopology.BOTH)


class MirrorMode(Enum):
    STRICT_MIRROR = "strict-mirror"
    BASIC = "basic"


class NotificationLevel(Enum):
    ALL = "all"
    ERROR = "error"
    NONE = "none"


@dataclass(frozen=True)
class RemoteEndpoint:
    user: str
    host: str
    port: int = 22
    connect_timeout: int = 5

    @property
    def address(self) -> str:
        return f"{self.user}@{self.host}"


@dataclass(frozen=True)
class RetentionPolicy:
    """Snapshot counts per tier. Only the snapshot scheduler interprets these."""
    hourly: int = 0
    daily: int = 7
    weekly: int = 4
    monthly: int = 3
    yearly: int = 0


@dataclass
class SnapshotSettings:
    auto: bool = True
    autoprune: bool = True
    config_dir: str = "/mnt/user/system/sanoid/"
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)


@dataclass
class ReplicationSettings:
    enabled: bool = False
    topology: DestinationTopology = DestinationTopology.LOCAL
    mode: MirrorMode = MirrorMode.STRICT_MIRROR
    local_base: str | None = None
    remote_base: str | None = None
    remote: RemoteEndpoint | None = None


@dataclass
class NotificationSettings:
    level: NotificationLevel = NotificationLevel.ERROR
    command: str | None = None
    subject: str = "Backup Notification"


@dataclass
class ToolSettings:
    sanoid: str = "/usr/local/sbin/sanoid"
    syncoid: str = "/usr/local/sbin/syncoid"
    sanoid_defaults: str = "/etc/sanoid/sanoid.defaults.conf"


@dataclass
class RestoreSettings:
    datasets: list[str] = field(default_factory=list)
    backup_base: str | None = None
    from_remote: bool = False


@dataclass
class JobConfig:
    datasets: list[str]          # explicit dataset names, in processing order
    snapshots: SnapshotSettings = field(default_factory=SnapshotSettings)
    replication: ReplicationSettings = field(default_factory=ReplicationSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    tools: ToolSettings = field(default_factory=ToolSettings)
    restore: RestoreSettings = field(default_factory=RestoreSettings)
    dry_run: bool = False


@dataclass(frozen=True)
class DestinationTarget:
    """A concrete place to replicate a dataset to.

    `endpoint` is None for a dataset on the local machine.
    """
    dataset: str
    endpoint: RemoteEndpoint | None = None

    @property
    def is_remote(self) -> bool:
        return self.endpoint is not None

    @property
    def spec(self) -> str:
        """Destination string as the transfer tool expects it."""
        if self.endpoint is None:
            return self.dataset
        return f"{self.endpoint.address}:{self.dataset}"


@dataclass
class DatasetOutcome:
    dataset: str
    errors: list[ZrmError] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors

    @property
    def reason(self) -> str:
        return "; ".join(str(e) for e in self.errors)


class RunStatus(Enum):
    ALL_SUCCEEDED = "all-succeeded"
    SOME_FAILED = "some-failed"


@dataclass
class RunResult:
    """Per-dataset outcomes plus failures that belong to no single dataset."""
    outcomes: dict[str, DatasetOutcome] = field(default_factory=dict)
    errors: list[ZrmError] = field(default_factory=list)

    def outcome(self, dataset: str) -> DatasetOutcome:
        if dataset not in self.outcomes:
            self.outcomes[dataset] = DatasetOutcome(dataset=dataset)
        return self.outcomes[dataset]

    def record_failure(self, dataset: str, error: ZrmError) -> None:
        self.outcome(dataset).errors.append(error)

    @property
    def failed(self) -> list[DatasetOutcome]:
        return [o for o in self.outcomes.values() if not o.succeeded]

    @property
    def status(self) -> RunStatus:
        if self.errors or self.failed:
            return RunStatus.SOME_FAILED
        return RunStatus.ALL_SUCCEEDED

    @property
    def exit_code(self) -> int:
        return 0 if self.status is RunStatus.ALL_SUCCEEDED else 1
