"""
状态与运维 API

- GET  /api/latest            最新资源样本和每个目标最新的探测样本
- GET  /api/health-check      即时健康检查（当前资源 + 即时探测 + 24 小时统计）
- POST /api/retention/purge   手动清理过期数据
"""

import asyncio
import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...aggregator import DEFAULT_WINDOW_HOURS, Aggregator
from ...exceptions import RegistryUnavailable, StoreWriteFailure
from ...models import (
    NO_DATA_NOTE,
    HealthCheckReport,
    HostInfo,
    LatestStatus,
    NetworkStats,
    ProbeStats,
    ServerCheck,
)
from ...probe import ProbeExecutor
from ...registry import TargetRegistry
from ...retention import RetentionManager
from ...sampler import ResourceSampler
from ...utils import utcnow
from ..dependencies import (
    get_aggregator,
    get_executor,
    get_registry,
    get_retention,
    get_sampler,
    verify_admin_token,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["maintenance"])


@router.get("/latest", response_model=LatestStatus)
async def get_latest(aggregator: Aggregator = Depends(get_aggregator)):
    """最新状态"""
    return await asyncio.to_thread(aggregator.latest_status)


@router.get("/health-check", response_model=HealthCheckReport)
async def health_check(
    ips: Optional[str] = Query(None, description="地址列表（逗号分隔），为空则检查所有启用的目标"),
    include_history: bool = Query(True, description="是否附带 24 小时统计"),
    registry: TargetRegistry = Depends(get_registry),
    executor: ProbeExecutor = Depends(get_executor),
    sampler: ResourceSampler = Depends(get_sampler),
    aggregator: Aggregator = Depends(get_aggregator),
):
    """
    即时健康检查

    立即采集一次本机资源并探测指定地址，结果不写入存储。
    """
    start_time = time.monotonic()

    if ips:
        names = {}
        addresses = [a.strip() for a in ips.split(",") if a.strip()]
    else:
        try:
            targets = await asyncio.to_thread(registry.list_targets)
        except RegistryUnavailable as e:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
        targets = [t for t in targets if t.enabled]
        names = {t.address: t.name for t in targets}
        addresses = [t.address for t in targets]

    resources, network, results = await asyncio.gather(
        asyncio.to_thread(sampler.sample),
        asyncio.to_thread(sampler.network_stats),
        executor.probe_many(addresses),
    )

    resource_stats = None
    probe_stats = {}
    if include_history:
        resource_stats = await asyncio.to_thread(aggregator.compute_resource_stats, DEFAULT_WINDOW_HOURS)
        report = await asyncio.to_thread(aggregator.compute_probe_stats, DEFAULT_WINDOW_HOURS)
        probe_stats = report.targets

    servers = []
    for result in results:
        stats_24h = None
        if include_history:
            stats_24h = probe_stats.get(result.address) or ProbeStats(
                address=result.address,
                period_hours=DEFAULT_WINDOW_HOURS,
                error=report.error,
                note=None if report.error else NO_DATA_NOTE,
            )
        servers.append(ServerCheck(
            **result.model_dump(),
            name=names.get(result.address),
            stats_24h=stats_24h,
        ))

    return HealthCheckReport(
        generated_at=utcnow(),
        execution_time_ms=round((time.monotonic() - start_time) * 1000, 2),
        host_info=HostInfo(**sampler.host_info()),
        system_resources=resources,
        network_stats=NetworkStats(**network),
        resource_stats_24h=resource_stats,
        dhcp_servers=servers,
        historical_data_available=include_history,
    )


@router.post("/retention/purge", dependencies=[Depends(verify_admin_token)])
async def purge_old_samples(
    days: Optional[float] = Query(None, ge=0, description="保留天数（默认使用配置值）"),
    retention: RetentionManager = Depends(get_retention),
):
    """手动清理过期数据（幂等）"""
    try:
        deleted = await asyncio.to_thread(retention.purge, days)
    except StoreWriteFailure as e:
        logger.error(f"Manual purge failed: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return {
        "deleted": deleted,
        "max_age_days": days if days is not None else retention.max_age_days,
    }
