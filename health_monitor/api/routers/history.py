"""
曲线数据 API

提供资源和延迟曲线数据（按时间升序）。
"""

import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from ...aggregator import Aggregator
from ...exceptions import StoreReadFailure
from ...models import ProbeHistoryPoint, ResourceHistoryPoint
from ..dependencies import get_aggregator, optional_address
from .stats import window_hours

router = APIRouter(prefix="/api/history", tags=["history"])


@router.get("/resources", response_model=List[ResourceHistoryPoint])
async def get_resource_history(
    hours: float = Depends(window_hours),
    aggregator: Aggregator = Depends(get_aggregator),
):
    """资源曲线"""
    try:
        return await asyncio.to_thread(aggregator.resource_history, hours)
    except StoreReadFailure as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.get("/probes", response_model=List[ProbeHistoryPoint])
async def get_probe_history(
    hours: float = Depends(window_hours),
    address: Optional[str] = Depends(optional_address),
    aggregator: Aggregator = Depends(get_aggregator),
):
    """延迟曲线（不可达的点 latency_ms 为 null）"""
    try:
        return await asyncio.to_thread(aggregator.probe_history, hours, address)
    except StoreReadFailure as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
