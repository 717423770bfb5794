"""
测试公共 fixture
"""

import pytest

from health_monitor.database import TimeSeriesStore

from .samples import NOW


@pytest.fixture
def store(tmp_path):
    """临时数据库"""
    store = TimeSeriesStore(str(tmp_path / "test_monitor.db"))
    store.init_schema()
    return store


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def targets_file(tmp_path):
    """两个目标，一个启用一个停用"""
    path = tmp_path / "targets.yaml"
    path.write_text(
        "- address: 172.16.5.196\n"
        "  name: DHCP-CH-HQ2\n"
        "  location: HQ\n"
        "  enabled: true\n"
        "- address: 10.0.0.2\n"
        "  name: DHCP-OFF\n"
        "  enabled: false\n",
        encoding="utf-8",
    )
    return path
