"""
窗口统计

从时序存储计算滑动窗口内的统计值（平均值、最小值、最大值、可用率）。
平均值 / 最小值 / 最大值由 SQLite 聚合得出，不把窗口内的样本加载到内存。
没有样本时返回 has_data=False 的空统计结构，这是正常状态（例如刚启动），不是错误。
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from .database import PROBE, RESOURCE, TimeSeriesStore
from .exceptions import StoreReadFailure
from .models import (
    NO_DATA_NOTE,
    LatestStatus,
    MetricStats,
    ProbeHistoryPoint,
    ProbeOverview,
    ProbeStats,
    ProbeStatsReport,
    ResourceHistoryPoint,
    ResourceOverview,
    ResourceStats,
    Summary,
)
from .utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_HOURS = 24


def _round(value: Optional[float]) -> Optional[float]:
    return round(value, 2) if value is not None else None


def metric_stats_from_row(row: Dict[str, Any], prefix: str) -> MetricStats:
    """
    从聚合行中取出单个指标的统计值

    Args:
        row: TimeSeriesStore.resource_window_stats() 的返回值
        prefix: 指标前缀（cpu / memory / disk）
    """
    samples = row.get("samples") or 0
    if not samples:
        return MetricStats()

    return MetricStats(
        avg=_round(row[f"{prefix}_avg"]),
        min=_round(row[f"{prefix}_min"]),
        max=_round(row[f"{prefix}_max"]),
        samples=samples,
    )


def probe_stats_from_row(row: Dict[str, Any], period_hours: float) -> ProbeStats:
    """从 TimeSeriesStore.probe_window_stats() 的一行构造 ProbeStats"""
    total = row["samples"]
    reachable_count = row["reachable_count"] or 0

    return ProbeStats(
        address=row["target_address"],
        name=row.get("name"),
        avg_latency_ms=_round(row["avg_latency_ms"]),
        min_latency_ms=_round(row["min_latency_ms"]),
        max_latency_ms=_round(row["max_latency_ms"]),
        avg_packet_loss=_round(row["avg_packet_loss"]),
        availability_pct=_round(reachable_count / total * 100.0),
        samples=total,
        period_hours=period_hours,
        has_data=True,
    )


class Aggregator:
    """统计计算器"""

    def __init__(self, store: TimeSeriesStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def _since(self, window_hours: float) -> datetime:
        if window_hours <= 0:
            raise ValueError("window_hours must be positive")
        return self.clock() - timedelta(hours=window_hours)

    # =========================================================================
    # 资源统计
    # =========================================================================

    def compute_resource_stats(self, window_hours: float = DEFAULT_WINDOW_HOURS) -> ResourceStats:
        """窗口内 CPU / 内存 / 磁盘统计"""
        since = self._since(window_hours)

        try:
            row = self.store.resource_window_stats(since)
        except StoreReadFailure as e:
            logger.error(f"Resource stats unavailable: {e}")
            return ResourceStats(period_hours=window_hours, error=str(e))

        if not row.get("samples"):
            return ResourceStats(period_hours=window_hours, note=NO_DATA_NOTE)

        return ResourceStats(
            cpu=metric_stats_from_row(row, "cpu"),
            memory=metric_stats_from_row(row, "memory"),
            disk=metric_stats_from_row(row, "disk"),
            period_hours=window_hours,
            has_data=True,
        )

    # =========================================================================
    # 探测统计
    # =========================================================================

    def compute_probe_stats(
        self,
        window_hours: float = DEFAULT_WINDOW_HOURS,
        address: Optional[str] = None,
    ) -> Union[ProbeStats, ProbeStatsReport]:
        """
        探测统计

        Args:
            window_hours: 窗口小时数
            address: 指定目标时返回该目标的 ProbeStats，否则返回所有目标的 ProbeStatsReport
        """
        since = self._since(window_hours)

        try:
            rows = self.store.probe_window_stats(since, address=address)
        except StoreReadFailure as e:
            logger.error(f"Probe stats unavailable: {e}")
            if address is not None:
                return ProbeStats(address=address, period_hours=window_hours, error=str(e))
            return ProbeStatsReport(period_hours=window_hours, error=str(e))

        if address is not None:
            if not rows:
                return ProbeStats(address=address, period_hours=window_hours, note=NO_DATA_NOTE)
            return probe_stats_from_row(rows[0], window_hours)

        # 聚合结果已按地址升序
        targets: Dict[str, ProbeStats] = {
            row["target_address"]: probe_stats_from_row(row, window_hours)
            for row in rows
        }
        return ProbeStatsReport(
            period_hours=window_hours,
            has_data=bool(targets),
            targets=targets,
        )

    # =========================================================================
    # 摘要
    # =========================================================================

    def compute_summary(self, window_hours: float = DEFAULT_WINDOW_HOURS) -> Summary:
        """
        统计摘要

        整体可用率 = 窗口内至少有一条样本的目标的可用率平均值，
        没有样本的目标不参与计算（不按 0% 处理）。
        """
        resources = self.compute_resource_stats(window_hours)
        probes = self.compute_probe_stats(window_hours)

        availabilities = [
            s.availability_pct for s in probes.targets.values()
            if s.samples > 0 and s.availability_pct is not None
        ]

        errors = [e for e in (resources.error, probes.error) if e]

        return Summary(
            period_hours=window_hours,
            resources=ResourceOverview(
                cpu_avg=resources.cpu.avg,
                memory_avg=resources.memory.avg,
                disk_avg=resources.disk.avg,
                samples=resources.cpu.samples,
            ),
            probes=ProbeOverview(
                targets_monitored=len(availabilities),
                overall_availability=_round(sum(availabilities) / len(availabilities)) if availabilities else None,
            ),
            has_data=resources.has_data or probes.has_data,
            generated_at=self.clock(),
            error="; ".join(errors) if errors else None,
        )

    # =========================================================================
    # 曲线数据 / 最新状态
    # =========================================================================

    def resource_history(self, window_hours: float = DEFAULT_WINDOW_HOURS) -> List[ResourceHistoryPoint]:
        """资源曲线数据（按时间升序）"""
        samples = self.store.query_window(RESOURCE, self._since(window_hours))
        return [
            ResourceHistoryPoint(ts=s.ts, cpu=s.cpu_usage_pct, memory=s.mem_usage_pct, disk=s.disk_usage_pct)
            for s in samples
        ]

    def probe_history(
        self,
        window_hours: float = DEFAULT_WINDOW_HOURS,
        address: Optional[str] = None,
    ) -> List[ProbeHistoryPoint]:
        """延迟曲线数据（按时间、地址升序）"""
        samples = self.store.query_window(PROBE, self._since(window_hours), address=address)
        return [
            ProbeHistoryPoint(
                ts=s.ts,
                address=s.target_address,
                name=s.target_name,
                latency_ms=s.latency_ms,
                reachable=s.reachable,
            )
            for s in samples
        ]

    def latest_status(self) -> LatestStatus:
        """最新资源样本和每个目标最新的探测样本"""
        try:
            return LatestStatus(
                resources=self.store.latest_resource_sample(),
                probes=self.store.latest_probe_samples(),
            )
        except StoreReadFailure as e:
            logger.error(f"Latest status unavailable: {e}")
            return LatestStatus(error=str(e))
