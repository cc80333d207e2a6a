"""Error taxonomy shared by all zrm modules."""
from __future__ import annotations


class ZrmError(Exception):
    """Base class for every failure zrm reports."""


class ConfigError(ZrmError):
    """Malformed or incomplete configuration. Always fatal."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class ConnectivityError(ZrmError):
    """Remote endpoint unreachable or a required tool is missing."""

    UNREACHABLE = "unreachable"
    TOOL_MISSING = "tool-missing"

    def __init__(self, message: str, reason: str):
        self.reason = reason
        super().__init__(message)


class DatasetNotFoundError(ZrmError):
    pass


class EmptyDatasetError(ZrmError):
    pass


class NoSnapshotError(ZrmError):
    pass


class SnapshotError(ZrmError):
    """The snapshot scheduler failed to take or prune snapshots."""


class PathCreationError(ZrmError):
    pass


class TransferError(ZrmError):
    pass


class RestoreAbortedError(ZrmError):
    """The user declined to overwrite an existing dataset."""
