"""
测试数据构造
"""

from datetime import datetime, timedelta, timezone

from health_monitor.models import ProbeSample, ResourceSample

NOW = datetime(2026, 1, 20, 12, 0, 0, tzinfo=timezone.utc)


def minutes_ago(minutes: float) -> datetime:
    return NOW - timedelta(minutes=minutes)


def make_resource_sample(ts, cpu=10.0, memory=50.0, disk=30.0) -> ResourceSample:
    return ResourceSample(
        ts=ts,
        cpu_usage_pct=cpu,
        cpu_load_1=cpu / 100 * 4,
        cpu_load_5=0.5,
        cpu_load_15=0.4,
        mem_usage_pct=memory,
        mem_used_mb=4096,
        mem_total_mb=8192,
        disk_usage_pct=disk,
        disk_used_gb=30.0,
        disk_total_gb=100.0,
    )


def make_probe_sample(ts, address="172.16.5.196", latency=None, name=None) -> ProbeSample:
    """latency 为 None 时生成不可达样本"""
    reachable = latency is not None
    return ProbeSample(
        ts=ts,
        target_address=address,
        target_name=name,
        reachable=reachable,
        latency_ms=latency,
        packet_loss_pct=0.0 if reachable else 100.0,
        packets_sent=1,
        packets_received=1 if reachable else 0,
    )
