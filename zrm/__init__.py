"""ZFS Replication Manager: scheduled snapshots and mirroring of ZFS datasets."""

__version__ = "0.3.0"
