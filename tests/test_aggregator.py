"""
单元测试：窗口统计
"""

import pytest

from health_monitor.aggregator import Aggregator, metric_stats_from_row
from health_monitor.database import TimeSeriesStore
from health_monitor.models import NO_DATA_NOTE, ProbeStats, ProbeStatsReport

from .samples import NOW, make_probe_sample, make_resource_sample, minutes_ago


class TestMetricStatsFromRow:

    def test_values(self):
        row = {"samples": 3, "cpu_avg": 20.1666, "cpu_min": 10.0, "cpu_max": 30.5}
        stats = metric_stats_from_row(row, "cpu")
        assert stats.avg == 20.17
        assert stats.min == 10.0
        assert stats.max == 30.5
        assert stats.samples == 3

    def test_empty(self):
        stats = metric_stats_from_row({"samples": 0, "cpu_avg": None, "cpu_min": None, "cpu_max": None}, "cpu")
        assert stats.avg is None
        assert stats.samples == 0


class TestAggregator:
    """统计计算测试"""

    def test_probe_stats_mixed(self, store, clock):
        """测试：两次可达（10ms、20ms）一次不可达"""
        store.append(make_probe_sample(minutes_ago(3), latency=10.0, name="DHCP-CH-HQ2"))
        store.append(make_probe_sample(minutes_ago(2), latency=None, name="DHCP-CH-HQ2"))
        store.append(make_probe_sample(minutes_ago(1), latency=20.0, name="DHCP-CH-HQ2"))

        stats = Aggregator(store, clock=clock).compute_probe_stats(24, address="172.16.5.196")

        assert isinstance(stats, ProbeStats)
        assert stats.has_data
        assert stats.availability_pct == 66.67
        assert stats.avg_latency_ms == 15.0
        assert stats.min_latency_ms == 10.0
        assert stats.max_latency_ms == 20.0
        assert stats.avg_packet_loss == 33.33
        assert stats.samples == 3
        assert stats.name == "DHCP-CH-HQ2"

    def test_probe_stats_all_unreachable(self, store, clock):
        store.append(make_probe_sample(minutes_ago(2)))
        store.append(make_probe_sample(minutes_ago(1)))

        stats = Aggregator(store, clock=clock).compute_probe_stats(24, address="172.16.5.196")

        assert stats.availability_pct == 0.0
        assert stats.avg_latency_ms is None

    def test_empty_store(self, store, clock):
        """测试：没有数据时返回 has_data=false，不是错误"""
        aggregator = Aggregator(store, clock=clock)

        resources = aggregator.compute_resource_stats(24)
        probes = aggregator.compute_probe_stats(24)
        summary = aggregator.compute_summary(24)

        assert resources.has_data is False
        assert resources.note == NO_DATA_NOTE
        assert resources.error is None
        assert isinstance(probes, ProbeStatsReport)
        assert probes.targets == {}
        assert summary.has_data is False
        assert summary.probes.overall_availability is None

    def test_window_excludes_old_samples(self, store, clock):
        store.append(make_resource_sample(minutes_ago(60 * 25), cpu=90.0))
        store.append(make_resource_sample(minutes_ago(30), cpu=10.0))

        stats = Aggregator(store, clock=clock).compute_resource_stats(24)

        assert stats.cpu.samples == 1
        assert stats.cpu.avg == 10.0

    def test_resource_stats_ordering(self, store, clock):
        """测试：min <= avg <= max"""
        for i, cpu in enumerate([5.0, 80.0, 42.0, 17.3]):
            store.append(make_resource_sample(minutes_ago(i * 5), cpu=cpu, memory=cpu / 2, disk=30.0 + i))

        stats = Aggregator(store, clock=clock).compute_resource_stats(24)

        for metric in (stats.cpu, stats.memory, stats.disk):
            assert metric.min <= metric.avg <= metric.max
            assert metric.samples == 4

    def test_summary_availability_ignores_targets_without_samples(self, store, clock):
        store.append(make_probe_sample(minutes_ago(1), address="10.0.0.1", latency=1.0))
        store.append(make_probe_sample(minutes_ago(1), address="10.0.0.2"))
        store.append(make_resource_sample(minutes_ago(1), cpu=20.0))

        summary = Aggregator(store, clock=clock).compute_summary(24)

        assert summary.has_data
        assert summary.probes.targets_monitored == 2
        assert summary.probes.overall_availability == 50.0
        assert summary.resources.cpu_avg == 20.0
        assert summary.generated_at == NOW

    def test_probe_report_keyed_by_address(self, store, clock):
        store.append(make_probe_sample(minutes_ago(1), address="10.0.0.2", latency=2.0))
        store.append(make_probe_sample(minutes_ago(1), address="10.0.0.1", latency=1.0))

        report = Aggregator(store, clock=clock).compute_probe_stats(24)

        assert list(report.targets) == ["10.0.0.1", "10.0.0.2"]
        assert report.targets["10.0.0.2"].avg_latency_ms == 2.0

    def test_read_failure_sets_error(self, tmp_path, clock):
        """测试：查询失败与没有数据可区分"""
        aggregator = Aggregator(TimeSeriesStore(str(tmp_path / "broken.db")), clock=clock)

        resources = aggregator.compute_resource_stats(24)
        summary = aggregator.compute_summary(24)

        assert resources.has_data is False
        assert resources.error
        assert summary.error

    def test_invalid_window(self, store, clock):
        with pytest.raises(ValueError):
            Aggregator(store, clock=clock).compute_resource_stats(0)

    def test_history_and_latest(self, store, clock):
        store.append(make_probe_sample(minutes_ago(2), latency=3.0))
        store.append(make_probe_sample(minutes_ago(1)))
        store.append(make_resource_sample(minutes_ago(1), cpu=7.0))
        aggregator = Aggregator(store, clock=clock)

        points = aggregator.probe_history(1)
        latest = aggregator.latest_status()

        assert [p.latency_ms for p in points] == [3.0, None]
        assert aggregator.resource_history(1)[0].cpu == 7.0
        assert latest.resources.cpu_usage_pct == 7.0
        assert latest.probes[0].reachable is False

    def test_many_targets_aggregated_per_address(self, store, clock):
        """测试：多目标、多样本时每个目标单独聚合"""
        addresses = [f"10.0.1.{i}" for i in range(1, 21)]
        for minute in range(1, 31):
            for index, address in enumerate(addresses):
                # 每个目标每 3 分钟有一次不可达
                latency = None if minute % 3 == 0 else float(index + minute)
                store.append(make_probe_sample(minutes_ago(minute), address=address, latency=latency))

        report = Aggregator(store, clock=clock).compute_probe_stats(24)

        assert list(report.targets) == sorted(addresses)
        first = report.targets["10.0.1.1"]
        assert first.samples == 30
        assert first.availability_pct == 66.67
        assert first.min_latency_ms == 1.0
        assert first.max_latency_ms == 29.0
        assert all(s.samples == 30 for s in report.targets.values())

    def test_name_is_latest_non_null(self, store, clock):
        store.append(make_probe_sample(minutes_ago(3), latency=1.0, name="OLD"))
        store.append(make_probe_sample(minutes_ago(2), latency=1.0, name="NEW"))
        store.append(make_probe_sample(minutes_ago(1), latency=1.0))

        stats = Aggregator(store, clock=clock).compute_probe_stats(24, address="172.16.5.196")

        assert stats.name == "NEW"

    def test_unknown_address_has_no_data(self, store, clock):
        store.append(make_probe_sample(minutes_ago(1), latency=1.0))

        stats = Aggregator(store, clock=clock).compute_probe_stats(24, address="10.9.9.9")

        assert stats.has_data is False
        assert stats.note == NO_DATA_NOTE
