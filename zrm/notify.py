"""Notification delivery, filtered by the configured level."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from zrm.executor import ExecutorError
from zrm.models import NotificationLevel

if TYPE_CHECKING:
    from zrm.executor import Executor
    from zrm.models import NotificationSettings

log = logging.getLogger(__name__)

SUCCESS = "success"
FAILURE = "failure"


class Sink(Protocol):
    def send(self, message: str, severity: str) -> None:
        ...


class LogSink:
    """Sink used when no notify command is configured."""

    def send(self, message: str, severity: str) -> None:
        log.debug("notification (%s): %s", severity, message)


class CommandSink:
    """Run an Unraid-style notify script: <cmd> -s <subject> -d <msg> -i <severity>."""

    def __init__(self, command: str, subject: str, executor: "Executor"):
        self.command = command
        self.subject = subject
        self.executor = executor

    def send(self, message: str, severity: str) -> None:
        self.executor.run([
            self.command, "-s", self.subject, "-d", message, "-i", severity,
        ])


class Notifier:
    def __init__(self, level: NotificationLevel, sink: Sink | None = None):
        self.level = level
        self.sink = sink or LogSink()
        self.sent: list[tuple[str, str]] = []

    @classmethod
    def from_settings(cls, settings: "NotificationSettings", executor: "Executor") -> "Notifier":
        sink = None
        if settings.command:
            sink = CommandSink(settings.command, settings.subject, executor)
        return cls(settings.level, sink)

    def wants(self, flag: str) -> bool:
        if self.level is NotificationLevel.NONE:
            return False
        if self.level is NotificationLevel.ERROR and flag == SUCCESS:
            return False
        return True

    def notify(self, message: str, flag: str = FAILURE) -> None:
        if flag == FAILURE:
            log.error(message)
        else:
            log.info(message)
        if not self.wants(flag):
            return
        severity = "normal" if flag == SUCCESS else "warning"
        self.sent.append((message, severity))
        try:
            self.sink.send(message, severity)
        except ExecutorError as e:
            log.warning("Could not deliver notification: %s", e)

    def success(self, message: str) -> None:
        self.notify(message, SUCCESS)

    def failure(self, message: str) -> None:
        self.notify(message, FAILURE)
