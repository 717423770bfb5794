"""
采集调度循环

两个独立的周期，各自对齐到自己的时间边界：
- 探测循环：默认每 5 秒（:00/:05/:10...），并发探测所有启用的目标
- 资源循环：默认每 5 分钟，采集一次主机资源

周期边界用单调时钟推进，不受系统时间调整影响，也不会累积漂移。
探测超时或失败同样写入一条 reachable=False 的样本，单条写入失败只记录日志。
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from .config import AppConfig
from .database import TimeSeriesStore
from .models import ProbeResult, ProbeSample, ResourceSample, Target
from .probe import ProbeExecutor
from .registry import TargetRegistry
from .retention import RetentionManager
from .sampler import ResourceSampler
from .utils import format_ts

logger = logging.getLogger(__name__)


def next_aligned_time(now: float, interval: float) -> float:
    """下一个对齐到 interval 整数倍的时间点（严格大于 now）"""
    # 等价于 now - (now % interval) + interval，避免浮点取模误差
    return (math.floor(now / interval) + 1) * interval


@dataclass(frozen=True)
class Tick:
    """一个调度周期"""
    index: int
    wall_ts: float
    sleep: float
    missed: int = 0

    @property
    def timestamp(self) -> datetime:
        return datetime.fromtimestamp(self.wall_ts, tz=timezone.utc)


class TickClock:
    """
    对齐周期时钟

    首个周期对齐到墙上时间的 interval 边界，之后每个周期在单调时钟上
    严格 +interval。上一周期超时时 sleep <= 0（立即触发）；
    落后超过一个完整周期时跳过错过的边界，并通过 missed 报告。
    """

    def __init__(
        self,
        interval: float,
        wall: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self._wall = wall
        self._monotonic = monotonic
        self._index = 0
        self._deadline: Optional[float] = None
        self._wall_ts: Optional[float] = None

    def next_tick(self) -> Tick:
        mono_now = self._monotonic()

        if self._deadline is None:
            wall_now = self._wall()
            self._wall_ts = next_aligned_time(wall_now, self.interval)
            self._deadline = mono_now + (self._wall_ts - wall_now)
        else:
            self._wall_ts += self.interval
            self._deadline += self.interval

        missed = 0
        lag = mono_now - self._deadline
        if lag >= self.interval:
            missed = int(lag // self.interval)
            self._wall_ts += missed * self.interval
            self._deadline += missed * self.interval

        self._index += 1
        return Tick(
            index=self._index,
            wall_ts=self._wall_ts,
            sleep=self._deadline - mono_now,
            missed=missed,
        )


@dataclass
class ProbeTickReport:
    """单个探测周期的结果"""
    ts: datetime
    results: List[ProbeResult] = field(default_factory=list)
    written: int = 0
    write_failures: int = 0

    @property
    def online(self) -> int:
        return sum(1 for r in self.results if r.reachable)


class Scheduler:
    """
    采集调度器

    所有依赖（存储、目标列表、探测器、采样器、清理器）在构造时注入，
    由进程入口负责创建和关闭。
    """

    def __init__(
        self,
        registry: TargetRegistry,
        executor: ProbeExecutor,
        sampler: ResourceSampler,
        store: TimeSeriesStore,
        retention: RetentionManager,
        probe_interval: float = 5,
        resource_interval: float = 300,
        retention_every_ticks: int = 100,
        status_every_ticks: int = 12,
        wall: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.registry = registry
        self.executor = executor
        self.sampler = sampler
        self.store = store
        self.retention = retention
        self.probe_interval = probe_interval
        self.resource_interval = resource_interval
        self.retention_every_ticks = retention_every_ticks
        self.status_every_ticks = status_every_ticks
        self._wall = wall
        self._monotonic = monotonic
        self._sleep = sleep

        self.write_failures = 0
        self.overruns = 0

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        registry: TargetRegistry,
        executor: ProbeExecutor,
        sampler: ResourceSampler,
        store: TimeSeriesStore,
        retention: RetentionManager,
    ) -> "Scheduler":
        return cls(
            registry=registry,
            executor=executor,
            sampler=sampler,
            store=store,
            retention=retention,
            probe_interval=config.probe.interval,
            resource_interval=config.resources.interval,
            retention_every_ticks=config.retention.every_ticks,
            status_every_ticks=config.daemon.status_every_ticks,
        )

    # =========================================================================
    # 单个周期
    # =========================================================================

    async def _persist(self, sample) -> bool:
        try:
            ok = await asyncio.to_thread(self.store.append, sample)
        except Exception as e:
            logger.error(f"Failed to persist {type(sample).__name__}: {e}", exc_info=True)
            ok = False
        if not ok:
            self.write_failures += 1
        return ok

    async def _probe_target(self, target: Target) -> ProbeResult:
        try:
            result = await self.executor.safe_probe(target.address)
        except Exception as e:
            # 探测器内部异常也记录为不可达，不影响其它目标
            logger.error(f"Probe {target.address} failed unexpectedly: {e}", exc_info=True)
            result = ProbeResult(address=target.address, reachable=False, error=str(e))
        return result

    async def run_probe_tick(self, ts: datetime) -> ProbeTickReport:
        """
        执行一个探测周期

        重新读取目标列表，并发探测所有启用的目标，每个结果写入一条样本。
        """
        targets = self.registry.enabled_targets()
        report = ProbeTickReport(ts=ts)

        if not targets:
            logger.debug(f"No enabled targets at {format_ts(ts)}")
            return report

        async def _probe_and_record(target: Target) -> ProbeResult:
            result = await self._probe_target(target)
            sample: ProbeSample = result.to_sample(ts, target.name)
            if await self._persist(sample):
                report.written += 1
            else:
                report.write_failures += 1
            return result

        report.results = list(await asyncio.gather(*(_probe_and_record(t) for t in targets)))
        return report

    async def run_resource_tick(self, ts: datetime) -> Optional[ResourceSample]:
        """执行一个资源采集周期"""
        try:
            sample = await asyncio.to_thread(self.sampler.sample, ts)
        except Exception as e:
            logger.error(f"Resource sampling failed: {e}", exc_info=True)
            return None

        await self._persist(sample)
        return sample

    async def run_retention(self):
        """在工作线程中执行清理，不阻塞事件循环"""
        try:
            await asyncio.to_thread(self.retention.purge)
        except Exception as e:
            logger.error(f"Retention purge failed: {e}", exc_info=True)

    # =========================================================================
    # 循环
    # =========================================================================

    async def _wait_for(self, tick: Tick, loop_name: str):
        if tick.missed:
            logger.warning(
                f"{loop_name} loop fell behind, skipped {tick.missed} interval(s); "
                f"next tick at {format_ts(tick.timestamp)}"
            )
        if tick.sleep > 0:
            await self._sleep(tick.sleep)
        elif tick.index > 1:
            self.overruns += 1
            logger.warning(
                f"{loop_name} tick #{tick.index} is {-tick.sleep:.2f}s late "
                f"(previous tick overran the interval), running immediately"
            )

    async def run_probe_loop(self, max_ticks: Optional[int] = None):
        """
        运行探测循环

        Args:
            max_ticks: 执行指定周期数后返回（默认无限循环）
        """
        clock = TickClock(self.probe_interval, self._wall, self._monotonic)
        logger.info(
            f"Starting probe loop (interval={self.probe_interval}s, "
            f"retention every {self.retention_every_ticks} ticks)"
        )

        while max_ticks is None or clock._index < max_ticks:
            tick = clock.next_tick()
            try:
                await self._wait_for(tick, "Probe")
                report = await self.run_probe_tick(tick.timestamp)

                if tick.index % self.status_every_ticks == 0:
                    logger.info(
                        f"{format_ts(report.ts)} - Tick {tick.index}: "
                        f"{report.online}/{len(report.results)} online"
                    )

                if tick.index % self.retention_every_ticks == 0:
                    await self.run_retention()

            except asyncio.CancelledError:
                logger.info("Probe loop cancelled")
                raise
            except Exception as e:
                logger.error(f"Probe loop error: {e}", exc_info=True)

    async def run_resource_loop(self, max_ticks: Optional[int] = None):
        """运行资源采集循环"""
        clock = TickClock(self.resource_interval, self._wall, self._monotonic)
        logger.info(f"Starting resource loop (interval={self.resource_interval}s)")

        while max_ticks is None or clock._index < max_ticks:
            tick = clock.next_tick()
            try:
                await self._wait_for(tick, "Resource")
                await self.run_resource_tick(tick.timestamp)
            except asyncio.CancelledError:
                logger.info("Resource loop cancelled")
                raise
            except Exception as e:
                logger.error(f"Resource loop error: {e}", exc_info=True)

    async def run(self):
        """
        同时运行探测循环和资源循环，直到被取消

        取消时等待两个循环退出（进行中的探测会被取消，子进程被终止）。
        """
        tasks = [
            asyncio.create_task(self.run_probe_loop(), name="probe-loop"),
            asyncio.create_task(self.run_resource_loop(), name="resource-loop"),
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
