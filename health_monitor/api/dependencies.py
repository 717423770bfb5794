"""
依赖注入模块

提供 FastAPI 依赖项（从 app.state 读取共享组件）。
"""

from typing import Optional

from fastapi import Header, HTTPException, Query, Request, status

from ..aggregator import Aggregator
from ..database import TimeSeriesStore
from ..exceptions import InvalidTarget
from ..probe import ProbeExecutor
from ..registry import TargetRegistry
from ..retention import RetentionManager
from ..sampler import ResourceSampler
from ..utils import validate_address

DEFAULT_ADMIN_TOKEN = "CHANGE_ME_IN_PRODUCTION"


def get_store(request: Request) -> TimeSeriesStore:
    return request.app.state.store


def get_registry(request: Request) -> TargetRegistry:
    return request.app.state.registry


def get_aggregator(request: Request) -> Aggregator:
    return request.app.state.aggregator


def get_retention(request: Request) -> RetentionManager:
    return request.app.state.retention


def get_executor(request: Request) -> ProbeExecutor:
    return request.app.state.executor


def get_sampler(request: Request) -> ResourceSampler:
    return request.app.state.sampler


def parse_address(address: str) -> str:
    """校验地址参数，非法时返回 400"""
    try:
        return validate_address(address)
    except InvalidTarget as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def optional_address(address: Optional[str] = Query(None, description="只查询该目标")) -> Optional[str]:
    return parse_address(address) if address is not None else None


async def verify_admin_token(request: Request, x_admin_token: Optional[str] = Header(None)):
    """
    验证管理员 Token

    用于保护 POST/PUT/DELETE 操作。
    """
    expected_token = request.app.state.config.api.admin_token

    # 如果配置为默认值，跳过验证（开发环境）
    if expected_token == DEFAULT_ADMIN_TOKEN:
        return

    if x_admin_token != expected_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token",
        )
