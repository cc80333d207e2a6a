"""Tests for zrm.sanoid: per-dataset config files and take/prune calls."""
from __future__ import annotations

import os

import pytest

from zrm import sanoid
from zrm.errors import SnapshotError
from zrm.executor import CommandRunner, ExecutorError
from zrm.models import RetentionPolicy
from tests.conftest import MockExecutor, make_config

DS = "cache/appdata"


def test_render_config(tmp_path):
    config = make_config(tmp_path)
    config.snapshots.retention = RetentionPolicy(hourly=24, daily=7, weekly=4, monthly=3, yearly=1)
    config.snapshots.autoprune = False
    assert sanoid.render_config(DS, config) == (
        "[cache/appdata]\n"
        "use_template = production\n"
        "recursive = yes\n"
        "\n"
        "[template_production]\n"
        "hourly = 24\n"
        "daily = 7\n"
        "weekly = 4\n"
        "monthly = 3\n"
        "yearly = 1\n"
        "autosnap = yes\n"
        "autoprune = no\n"
    )


def test_write_config_creates_dir_link_and_file(tmp_path):
    config = make_config(tmp_path)
    assert sanoid.write_config(DS, config, CommandRunner()) is True

    directory = tmp_path / "sanoid" / "cache_appdata"
    assert (directory / "sanoid.conf").read_text() == sanoid.render_config(DS, config)
    assert os.readlink(directory / "sanoid.defaults.conf") == config.tools.sanoid_defaults


def test_write_config_skips_unchanged(tmp_path):
    config = make_config(tmp_path)
    sanoid.write_config(DS, config, CommandRunner())
    runner = CommandRunner()
    assert sanoid.write_config(DS, config, runner) is False
    assert runner.history == []


def test_write_config_rewrites_on_change(tmp_path):
    config = make_config(tmp_path)
    sanoid.write_config(DS, config, CommandRunner())
    config.snapshots.retention = RetentionPolicy(daily=30)
    assert sanoid.write_config(DS, config, CommandRunner()) is True
    conf = tmp_path / "sanoid" / "cache_appdata" / "sanoid.conf"
    assert "daily = 30" in conf.read_text()


def test_write_config_dry_run_touches_nothing(tmp_path):
    config = make_config(tmp_path)
    runner = CommandRunner(dry_run=True)
    assert sanoid.write_config(DS, config, runner) is True
    assert not (tmp_path / "sanoid").exists()
    assert len(runner.history) == 3


def _sanoid_cmd(tmp_path, action):
    directory = os.path.join(str(tmp_path / "sanoid"), "cache_appdata")
    return ("/usr/local/sbin/sanoid", f"--configdir={directory}", f"--{action}")


def test_take_and_prune(tmp_path):
    config = make_config(tmp_path)
    exec_ = MockExecutor({
        _sanoid_cmd(tmp_path, "take-snapshots"): "",
        _sanoid_cmd(tmp_path, "prune-snapshots"): "",
    })
    sanoid.take_snapshots(DS, config, exec_, CommandRunner())
    sanoid.prune_snapshots(DS, config, exec_, CommandRunner())
    assert exec_.calls == [
        list(_sanoid_cmd(tmp_path, "take-snapshots")),
        list(_sanoid_cmd(tmp_path, "prune-snapshots")),
    ]


def test_take_failure(tmp_path):
    config = make_config(tmp_path)
    exec_ = MockExecutor({
        _sanoid_cmd(tmp_path, "take-snapshots"): ExecutorError(["sanoid"], 1, "boom"),
    })
    with pytest.raises(SnapshotError, match="Snapshot creation failed for cache/appdata"):
        sanoid.take_snapshots(DS, config, exec_, CommandRunner())
