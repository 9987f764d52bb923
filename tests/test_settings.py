from __future__ import annotations

import sys

import pytest
from pydantic import ValidationError

from taskrunner.core.settings import Settings, load_settings


def test_defaults(tmp_path):
    s = load_settings(tmp_path / "missing.yaml")
    assert s.concurrency is None
    assert s.poll_interval_s == 0.005
    assert s.python_bin == sys.executable
    assert s.resolved_concurrency() >= 1


def test_yaml_values_are_applied(tmp_path):
    conf = tmp_path / "taskrunner.yaml"
    conf.write_text("concurrency: 3\npoll_interval_s: 0.01\ntmp_dir: /tmp/tr\nunknown: 1\n")
    s = load_settings(conf)
    assert s.concurrency == 3
    assert s.resolved_concurrency() == 3
    assert s.poll_interval_s == 0.01
    assert str(s.tmp_dir) == "/tmp/tr"


def test_non_mapping_yaml_is_ignored(tmp_path):
    conf = tmp_path / "taskrunner.yaml"
    conf.write_text("- just\n- a list\n")
    assert load_settings(conf).concurrency is None


def test_env_overrides_defaults_and_yaml_overrides_env(tmp_path, monkeypatch):
    monkeypatch.setenv("TASKRUNNER_CONCURRENCY", "6")
    monkeypatch.setenv("TASKRUNNER_LOG_LEVEL", "DEBUG")
    conf = tmp_path / "taskrunner.yaml"
    conf.write_text("log_level: WARNING\n")

    s = load_settings(conf)
    assert s.concurrency == 6
    assert s.log_level == "WARNING"


def test_conf_path_from_env(tmp_path, monkeypatch):
    conf = tmp_path / "other.yaml"
    conf.write_text("concurrency: 2\n")
    monkeypatch.setenv("TASKRUNNER_CONF", str(conf))
    assert load_settings().concurrency == 2


def test_rejects_non_positive_values():
    with pytest.raises(ValidationError):
        Settings(concurrency=0)
    with pytest.raises(ValidationError):
        Settings(poll_interval_s=0)


def test_empty_conf_env_skips_config_file(tmp_path, monkeypatch):
    (tmp_path / "conf").mkdir()
    (tmp_path / "conf" / "taskrunner.yaml").write_text("concurrency: 4\n")
    monkeypatch.chdir(tmp_path)

    assert load_settings().concurrency == 4
    monkeypatch.setenv("TASKRUNNER_CONF", "")
    assert load_settings().concurrency is None
