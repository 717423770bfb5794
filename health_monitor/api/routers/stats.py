"""
统计 API

窗口统计按需计算，不做缓存，在工作线程中查询，不阻塞采集循环。
没有数据时返回 has_data=false，查询失败时带 error 字段。
"""

import asyncio
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query

from ...aggregator import DEFAULT_WINDOW_HOURS, Aggregator
from ...models import ProbeStats, ProbeStatsReport, ResourceStats, Summary
from ..dependencies import get_aggregator, optional_address

router = APIRouter(prefix="/api/stats", tags=["stats"])

MAX_WINDOW_HOURS = 24 * 31


def window_hours(hours: float = Query(DEFAULT_WINDOW_HOURS, gt=0, le=MAX_WINDOW_HOURS, description="统计窗口（小时）")) -> float:
    return hours


@router.get("/summary", response_model=Summary)
async def get_summary(
    hours: float = Depends(window_hours),
    aggregator: Aggregator = Depends(get_aggregator),
):
    """统计摘要"""
    return await asyncio.to_thread(aggregator.compute_summary, hours)


@router.get("/resources", response_model=ResourceStats)
async def get_resource_stats(
    hours: float = Depends(window_hours),
    aggregator: Aggregator = Depends(get_aggregator),
):
    """CPU / 内存 / 磁盘统计"""
    return await asyncio.to_thread(aggregator.compute_resource_stats, hours)


@router.get("/probes", response_model=Union[ProbeStats, ProbeStatsReport])
async def get_probe_stats(
    hours: float = Depends(window_hours),
    address: Optional[str] = Depends(optional_address),
    aggregator: Aggregator = Depends(get_aggregator),
):
    """
    探测统计

    指定 address 时返回单个目标的统计，否则返回所有目标（按地址索引）。
    """
    return await asyncio.to_thread(aggregator.compute_probe_stats, hours, address)
