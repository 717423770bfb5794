"""
单元测试：资源采集

psutil 用 monkeypatch 替换，结果可预期。
"""

from collections import namedtuple

import pytest

from health_monitor import sampler
from health_monitor.sampler import (
    ResourceSampler,
    get_cpu_usage,
    get_disk_usage,
    get_memory_usage,
    get_network_stats,
)

from .samples import NOW

GB = 1024 ** 3
MB = 1024 ** 2

VirtualMemory = namedtuple("VirtualMemory", ["total", "available"])
DiskUsage = namedtuple("DiskUsage", ["total", "used", "free"])


@pytest.fixture
def fake_psutil(monkeypatch):
    monkeypatch.setattr(sampler.psutil, "getloadavg", lambda: (2.0, 1.5, 1.0))
    monkeypatch.setattr(sampler.psutil, "cpu_count", lambda logical=True: 4)
    monkeypatch.setattr(sampler.psutil, "virtual_memory", lambda: VirtualMemory(total=8192 * MB, available=2048 * MB))
    # used 不含保留块，使用率按 total - free 计算
    monkeypatch.setattr(sampler.psutil, "disk_usage", lambda path: DiskUsage(total=100 * GB, used=55 * GB, free=40 * GB))


class TestResourceCollectors:
    """资源采集函数测试"""

    def test_cpu_usage(self, fake_psutil):
        cpu = get_cpu_usage()
        assert cpu["usage_pct"] == 50.0
        assert cpu["cores"] == 4
        assert cpu["load"] == (2.0, 1.5, 1.0)

    def test_cpu_usage_can_exceed_100(self, monkeypatch, fake_psutil):
        """测试：负载超过核数时使用率大于 100，不截断"""
        monkeypatch.setattr(sampler.psutil, "getloadavg", lambda: (8.0, 4.0, 2.0))
        assert get_cpu_usage()["usage_pct"] == 200.0

    def test_memory_uses_available(self, fake_psutil):
        mem = get_memory_usage()
        assert mem["usage_pct"] == 75.0
        assert mem["used_mb"] == 6144
        assert mem["total_mb"] == 8192

    def test_disk_usage(self, fake_psutil):
        disk = get_disk_usage("/")
        assert disk["usage_pct"] == 60.0
        assert disk["used_gb"] == 60.0
        assert disk["total_gb"] == 100.0


class TestResourceSampler:

    def test_sample(self, fake_psutil):
        sample = ResourceSampler("/").sample(NOW)

        assert sample.ts == NOW
        assert sample.cpu_usage_pct == 50.0
        assert sample.cpu_load_1 == 2.0
        assert sample.mem_usage_pct == 75.0
        assert sample.disk_usage_pct == 60.0

    def test_host_info(self, monkeypatch):
        monkeypatch.setattr(sampler.time, "time", lambda: 100000.0)
        monkeypatch.setattr(sampler.psutil, "boot_time", lambda: 100000.0 - 3660)

        info = ResourceSampler().host_info()

        assert info["uptime_seconds"] == 3660
        assert info["uptime_formatted"] == "0 days 1 hours 1 minutes"
        assert info["cores"] >= 1
        assert info["hostname"]


NetIO = namedtuple("NetIO", ["bytes_sent", "bytes_recv", "packets_sent", "packets_recv"])


@pytest.fixture
def fake_nics(monkeypatch):
    counters = {
        "lo": NetIO(bytes_sent=100, bytes_recv=100, packets_sent=1, packets_recv=1),
        "eth0": NetIO(bytes_sent=2 * MB, bytes_recv=10 * MB, packets_sent=300, packets_recv=900),
        "eth1": NetIO(bytes_sent=MB, bytes_recv=MB, packets_sent=10, packets_recv=10),
    }
    monkeypatch.setattr(sampler.psutil, "net_io_counters", lambda pernic=False: counters)
    return counters


class TestNetworkStats:
    """网络流量采集测试"""

    def test_default_route_interface(self, monkeypatch, fake_nics):
        monkeypatch.setattr(sampler, "_default_route_interface", lambda: "eth1")

        stats = get_network_stats()

        assert stats["interface"] == "eth1"
        assert stats["rx_mb"] == 1.0

    def test_fallback_first_non_loopback(self, monkeypatch, fake_nics):
        """测试：没有默认路由时取第一个非 lo 接口"""
        monkeypatch.setattr(sampler, "_default_route_interface", lambda: None)

        stats = get_network_stats()

        assert stats["interface"] == "eth0"
        assert stats["rx_bytes"] == 10 * MB
        assert stats["rx_packets"] == 900
        assert stats["tx_bytes"] == 2 * MB
        assert stats["tx_packets"] == 300
        assert stats["rx_mb"] == 10.0
        assert stats["tx_mb"] == 2.0

    def test_configured_interface(self, fake_nics):
        assert ResourceSampler(network_interface="lo").network_stats()["rx_bytes"] == 100

    def test_unknown_interface_reports_zero(self, fake_nics):
        stats = get_network_stats("wlan9")

        assert stats["interface"] == "wlan9"
        assert stats["rx_bytes"] == 0
        assert stats["tx_mb"] == 0.0
