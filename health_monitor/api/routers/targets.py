"""
监控目标管理 API

修改直接写回目标列表文件，下一个探测周期生效，无需重启。
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ...exceptions import RegistryUnavailable, TargetExists, TargetNotFound
from ...models import Target, TargetUpdate
from ...registry import TargetRegistry
from ..dependencies import get_registry, parse_address, verify_admin_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/targets", tags=["targets"])


def _unavailable(e: RegistryUnavailable) -> HTTPException:
    logger.error(f"Target registry unavailable: {e}")
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.get("", response_model=List[Target])
async def list_targets(registry: TargetRegistry = Depends(get_registry)):
    """获取所有目标（含未启用的）"""
    try:
        return registry.list_targets()
    except RegistryUnavailable as e:
        raise _unavailable(e)


@router.get("/{address}", response_model=Target)
async def get_target(address: str = Depends(parse_address), registry: TargetRegistry = Depends(get_registry)):
    """获取单个目标"""
    try:
        return registry.get(address)
    except TargetNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except RegistryUnavailable as e:
        raise _unavailable(e)


@router.post(
    "",
    response_model=Target,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_admin_token)],
)
async def create_target(data: Target, registry: TargetRegistry = Depends(get_registry)):
    """
    添加目标

    下一个探测周期开始探测。
    """
    try:
        return registry.add(data)
    except TargetExists as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except RegistryUnavailable as e:
        raise _unavailable(e)


@router.put("/{address}", response_model=Target, dependencies=[Depends(verify_admin_token)])
async def update_target(
    data: TargetUpdate,
    address: str = Depends(parse_address),
    registry: TargetRegistry = Depends(get_registry),
):
    """更新目标名称、位置或启用状态"""
    try:
        return registry.update(address, **data.model_dump(exclude_unset=True))
    except TargetNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except RegistryUnavailable as e:
        raise _unavailable(e)


@router.delete("/{address}", dependencies=[Depends(verify_admin_token)])
async def delete_target(address: str = Depends(parse_address), registry: TargetRegistry = Depends(get_registry)):
    """
    删除目标

    已采集的历史样本保留，直到被保留策略清理。
    """
    try:
        registry.remove(address)
    except TargetNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except RegistryUnavailable as e:
        raise _unavailable(e)

    return {"message": f"Target {address} deleted"}
