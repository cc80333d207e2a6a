"""Tests for zrm.notify."""
from __future__ import annotations

import pytest

from zrm.executor import ExecutorError
from zrm.models import NotificationLevel, NotificationSettings
from zrm.notify import Notifier
from tests.conftest import MockExecutor

NOTIFY = "/usr/local/emhttp/webGui/scripts/notify"


class RecordingSink:
    def __init__(self):
        self.messages = []

    def send(self, message, severity):
        self.messages.append((message, severity))


@pytest.mark.parametrize("level, expected", [
    (NotificationLevel.ALL, [("ok", "normal"), ("bad", "warning")]),
    (NotificationLevel.ERROR, [("bad", "warning")]),
    (NotificationLevel.NONE, []),
])
def test_level_filtering(level, expected):
    sink = RecordingSink()
    notifier = Notifier(level, sink)
    notifier.success("ok")
    notifier.failure("bad")
    assert sink.messages == expected


def test_command_sink():
    settings = NotificationSettings(level=NotificationLevel.ALL, command=NOTIFY)
    cmd = (NOTIFY, "-s", "Backup Notification", "-d", "done", "-i", "normal")
    exec_ = MockExecutor({cmd: ""})
    Notifier.from_settings(settings, exec_).success("done")
    assert exec_.calls == [list(cmd)]


def test_delivery_failure_is_not_fatal(caplog):
    settings = NotificationSettings(level=NotificationLevel.ERROR, command=NOTIFY)
    cmd = (NOTIFY, "-s", "Backup Notification", "-d", "oops", "-i", "warning")
    exec_ = MockExecutor({cmd: ExecutorError(list(cmd), 1, "no gui")})
    Notifier.from_settings(settings, exec_).failure("oops")
    assert "Could not deliver notification" in caplog.text
