"""
FastAPI 应用配置

配置 CORS、路由注册。组件在入口处创建，通过 app.state 注入。
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..aggregator import Aggregator
from ..config import AppConfig
from ..database import TimeSeriesStore
from ..probe import ProbeExecutor
from ..registry import TargetRegistry
from ..retention import RetentionManager
from ..sampler import ResourceSampler
from .routers import history, maintenance, stats, targets

logger = logging.getLogger(__name__)


def create_app(
    store: TimeSeriesStore,
    registry: TargetRegistry,
    aggregator: Aggregator,
    retention: RetentionManager,
    executor: ProbeExecutor,
    sampler: ResourceSampler,
    config: Optional[AppConfig] = None,
) -> FastAPI:
    """
    创建 FastAPI 应用实例

    配置：
    - CORS 中间件
    - API 路由
    - 共享组件（app.state）
    """
    config = config or AppConfig()

    app = FastAPI(
        title="DHCP Health Monitor",
        description="DHCP 服务器与主机健康监控 API",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.store = store
    app.state.registry = registry
    app.state.aggregator = aggregator
    app.state.retention = retention
    app.state.executor = executor
    app.state.sampler = sampler

    app.include_router(stats.router)
    app.include_router(history.router)
    app.include_router(targets.router)
    app.include_router(maintenance.router)

    logger.debug(f"API app created with {len(app.routes)} routes")
    return app
