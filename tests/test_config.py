"""
单元测试：配置加载
"""

from pathlib import Path

import pytest

from health_monitor.config import AppConfig, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("HEALTH_MONITOR_CONFIG", "HEALTH_MONITOR_PROBE__INTERVAL", "HEALTH_MONITOR_API__PORT"):
        monkeypatch.delenv(key, raising=False)


class TestLoadConfig:

    def test_defaults_when_missing(self, tmp_path):
        config = load_config(str(tmp_path / "missing.yaml"))

        assert config.probe.interval == 5
        assert config.resources.interval == 300
        assert config.retention.days == 7
        assert config.retention.every_ticks == 100
        assert config.probe.deadline is None
        assert config.resources.network_interface is None

    def test_yaml_and_relative_paths(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "database:\n"
            "  path: data/monitor.db\n"
            "registry:\n"
            "  path: /etc/health-monitor/targets.yaml\n"
            "probe:\n"
            "  interval: 10\n"
            "  count: 3\n",
            encoding="utf-8",
        )

        config = load_config(str(path))

        assert config.probe.interval == 10
        assert config.probe.count == 3
        assert Path(config.database.path) == (tmp_path / "data" / "monitor.db").resolve()
        assert config.registry.path == "/etc/health-monitor/targets.yaml"

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("probe:\n  interval: 10\napi:\n  port: 8080\n", encoding="utf-8")
        monkeypatch.setenv("HEALTH_MONITOR_PROBE__INTERVAL", "30")

        config = load_config(str(path))

        assert config.probe.interval == 30
        assert config.api.port == 8080

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("retention:\n  days: 3\n", encoding="utf-8")
        monkeypatch.setenv("HEALTH_MONITOR_CONFIG", str(path))

        assert load_config().retention.days == 3

    def test_invalid_value(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("probe:\n  interval: 0\n", encoding="utf-8")

        with pytest.raises(ValueError):
            load_config(str(path))

    def test_env_only(self, monkeypatch):
        monkeypatch.setenv("HEALTH_MONITOR_API__PORT", "9000")
        assert AppConfig().api.port == 9000
