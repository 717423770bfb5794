"""
主程序入口

子命令：
- run      启动守护进程（探测循环 + 资源循环 + REST API）
- collect  执行一次采集并退出
- purge    清理过期数据
- check    临时探测指定地址（不写入存储）
- stats    输出统计摘要（JSON）
"""

import argparse
import asyncio
import json
import logging
import math
import os
import signal
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import uvicorn

from . import __version__
from .aggregator import DEFAULT_WINDOW_HOURS, Aggregator
from .config import AppConfig, load_config
from .database import TimeSeriesStore
from .exceptions import ConfigurationError, HealthMonitorError
from .probe import ProbeExecutor
from .registry import TargetRegistry
from .retention import RetentionManager
from .sampler import ResourceSampler
from .scheduler import Scheduler
from .utils import format_ts, utcnow

logger = logging.getLogger(__name__)


def setup_logging(config: AppConfig):
    """配置日志"""
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    if config.logging.file:
        log_path = Path(config.logging.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            str(log_path),
            maxBytes=config.logging.max_size_mb * 1024 * 1024,
            backupCount=config.logging.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(log_format))
        logging.getLogger().addHandler(file_handler)

    # 降低第三方库日志级别
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def acquire_single_instance_lock(lock_path: Path):
    """
    防止同时启动多个守护进程（多实例会重复采集并争用 SQLite 写锁）

    同一路径只能有一个进程持有文件锁，进程退出时自动释放。
    """
    import fcntl

    lock_path.parent.mkdir(parents=True, exist_ok=True)
    handle = open(lock_path, "a+b")

    try:
        fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError as e:
        handle.close()
        raise RuntimeError(f"Another health monitor instance is already running (lock: {lock_path})") from e

    handle.seek(0)
    handle.truncate()
    handle.write(str(os.getpid()).encode("utf-8"))
    handle.flush()
    return handle


@dataclass
class Components:
    """进程内共享的组件（在入口创建，注入到调度器和 API）"""
    config: AppConfig
    store: TimeSeriesStore
    registry: TargetRegistry
    executor: ProbeExecutor
    sampler: ResourceSampler
    retention: RetentionManager
    aggregator: Aggregator


def build_components(config: AppConfig) -> Components:
    """
    创建并初始化所有组件

    Raises:
        ConfigurationError: 目标列表未配置
        StoreError: 无法初始化数据库
    """
    store = TimeSeriesStore(config.database.path, timeout=config.database.timeout)
    store.init_schema()

    registry = TargetRegistry(config.registry.path)
    registry.check_source()

    return Components(
        config=config,
        store=store,
        registry=registry,
        executor=ProbeExecutor(
            count=config.probe.count,
            timeout=config.probe.timeout,
            deadline=config.probe.deadline,
        ),
        sampler=ResourceSampler(config.resources.disk_path, config.resources.network_interface),
        retention=RetentionManager(store, max_age_days=config.retention.days),
        aggregator=Aggregator(store),
    )


async def run_api_server(components: Components):
    """运行 API 服务器"""
    from .api.app import create_app

    config = components.config
    app = create_app(
        store=components.store,
        registry=components.registry,
        aggregator=components.aggregator,
        retention=components.retention,
        executor=components.executor,
        sampler=components.sampler,
        config=config,
    )

    server_config = uvicorn.Config(
        app=app,
        host=config.api.host,
        port=config.api.port,
        log_level="info",
        access_log=False,
    )
    server = uvicorn.Server(server_config)
    # 信号由主程序处理
    server.install_signal_handlers = lambda: None
    await server.serve()


async def run_daemon(config: AppConfig):
    """守护进程：采集循环和 API 服务并发运行，收到 SIGTERM/SIGINT 后退出"""
    logger.info("=" * 60)
    logger.info(f"DHCP Health Monitor v{__version__}")
    logger.info("=" * 60)
    logger.info(f"Database: {config.database.path}")
    logger.info(f"Targets: {config.registry.path}")

    lock_path = Path(config.daemon.lock_file) if config.daemon.lock_file else \
        Path(config.database.path).parent / "health-monitor.lock"
    lock_handle = acquire_single_instance_lock(lock_path)

    try:
        components = build_components(config)
        scheduler = Scheduler.from_config(
            config,
            registry=components.registry,
            executor=components.executor,
            sampler=components.sampler,
            store=components.store,
            retention=components.retention,
        )

        tasks = [scheduler.run()]
        if config.api.enabled:
            logger.info(f"API: {config.api.host}:{config.api.port}")
            tasks.append(run_api_server(components))

        main_task = asyncio.ensure_future(asyncio.gather(*tasks))

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, main_task.cancel)

        try:
            await main_task
        except asyncio.CancelledError:
            logger.info("Shutdown requested, stopping...")
        finally:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)
            logger.info(f"Stopped (store write failures: {scheduler.write_failures}, overruns: {scheduler.overruns})")
    finally:
        lock_handle.close()


# =============================================================================
# 一次性命令
# =============================================================================

async def collect_once(components: Components) -> dict:
    """执行一次探测周期和资源采集（不等待对齐边界）"""
    scheduler = Scheduler.from_config(
        components.config,
        registry=components.registry,
        executor=components.executor,
        sampler=components.sampler,
        store=components.store,
        retention=components.retention,
    )
    ts = utcnow().replace(microsecond=0)
    report = await scheduler.run_probe_tick(ts)
    resource = await scheduler.run_resource_tick(ts)

    return {
        "ts": format_ts(ts),
        "targets": len(report.results),
        "online": report.online,
        "written": report.written,
        "write_failures": report.write_failures,
        "resources": resource.model_dump(mode="json") if resource else None,
    }


def _print_json(data):
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def cmd_run(config: AppConfig, args) -> int:
    try:
        asyncio.run(run_daemon(config))
    except RuntimeError as e:
        logger.error(str(e))
        return 1
    return 0


def cmd_collect(config: AppConfig, args) -> int:
    components = build_components(config)
    result = asyncio.run(collect_once(components))
    _print_json(result)
    return 0 if result["write_failures"] == 0 else 1


def cmd_purge(config: AppConfig, args) -> int:
    components = build_components(config)
    deleted = components.retention.purge(args.days)
    max_age_days = args.days if args.days is not None else config.retention.days
    _print_json({"deleted": deleted, "max_age_days": max_age_days})
    return 0


def cmd_check(config: AppConfig, args) -> int:
    executor = ProbeExecutor(
        count=config.probe.count,
        timeout=config.probe.timeout,
        deadline=config.probe.deadline,
    )
    results = asyncio.run(executor.probe_many(args.addresses))
    _print_json([r.model_dump(mode="json", exclude_none=True) for r in results])
    return 0 if all(r.reachable for r in results) else 1


def cmd_stats(config: AppConfig, args) -> int:
    components = build_components(config)
    summary = components.aggregator.compute_summary(args.hours)
    _print_json(summary.model_dump(mode="json"))
    return 0 if summary.error is None else 1


def _number(value: str, allow_zero: bool) -> float:
    """argparse 数值参数校验，非法值由 argparse 报错并以退出码 2 结束"""
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}")

    in_range = number >= 0 if allow_zero else number > 0
    if not in_range or not math.isfinite(number):
        raise argparse.ArgumentTypeError(f"must be {'>= 0' if allow_zero else '> 0'}: {value!r}")
    return number


def positive_float(value: str) -> float:
    return _number(value, allow_zero=False)


def non_negative_float(value: str) -> float:
    return _number(value, allow_zero=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="health-monitor",
        description="DHCP server and host health monitor",
    )
    parser.add_argument("-c", "--config", default=None, help="配置文件路径（默认 config.yaml）")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="启动守护进程")
    run_parser.set_defaults(func=cmd_run)

    collect_parser = subparsers.add_parser("collect", help="执行一次采集")
    collect_parser.set_defaults(func=cmd_collect)

    purge_parser = subparsers.add_parser("purge", help="清理过期数据")
    purge_parser.add_argument("--days", type=non_negative_float, default=None, help="保留天数（默认使用配置值）")
    purge_parser.set_defaults(func=cmd_purge)

    check_parser = subparsers.add_parser("check", help="临时探测指定地址")
    check_parser.add_argument("addresses", help="地址，多个用逗号分隔")
    check_parser.set_defaults(func=cmd_check)

    stats_parser = subparsers.add_parser("stats", help="输出统计摘要")
    stats_parser.add_argument("--hours", type=positive_float, default=DEFAULT_WINDOW_HOURS, help="统计窗口（小时）")
    stats_parser.set_defaults(func=cmd_stats)

    return parser


def cli(argv: Optional[list] = None):
    """命令行入口"""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        # 不带子命令时默认启动守护进程
        args.func = cmd_run

    config = load_config(args.config)
    setup_logging(config)

    try:
        code = args.func(config, args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        code = 2
    except HealthMonitorError as e:
        logger.error(str(e))
        code = 1
    except KeyboardInterrupt:
        print("\nShutdown requested, exiting...")
        code = 0

    sys.exit(code)


if __name__ == "__main__":
    cli()
