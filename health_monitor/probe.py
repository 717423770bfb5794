"""
探测执行器

对单个目标执行 ICMP echo 探测并解析为结构化结果。
探测失败（超时、不可达、输出无法解析）作为数据返回，不向调用方抛出。
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional, Union

from .exceptions import InvalidTarget, ProbeTimeout, ProbeUnreachable
from .models import ProbeResult
from .ping_parser import PingParseFailure, extract_error, parse_ping_output
from .utils import validate_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawProbeOutput:
    """探测机制的原始输出"""
    returncode: int
    output: str


PingRunner = Callable[[str, int, int], Awaitable[RawProbeOutput]]


async def run_system_ping(address: str, count: int, timeout: int) -> RawProbeOutput:
    """
    调用系统 ping 命令

    以参数列表方式执行（不经过 shell），调用前地址必须已通过 validate_address。
    被取消时会杀掉子进程，不留下孤儿进程。
    """
    proc = await asyncio.create_subprocess_exec(
        "ping", "-n", "-c", str(int(count)), "-W", str(int(timeout)), address,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    try:
        stdout, _ = await proc.communicate()
    finally:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()

    return RawProbeOutput(
        returncode=proc.returncode,
        output=stdout.decode(errors="replace") if stdout else "",
    )


def _unreachable(address: str, error: str, raw_output: Optional[str] = None, sent: int = 0) -> ProbeResult:
    return ProbeResult(
        address=address,
        reachable=False,
        latency_ms=None,
        packet_loss_pct=100.0,
        packets_sent=sent,
        packets_received=0,
        error=error,
        raw_output=raw_output,
    )


class ProbeExecutor:
    """
    探测执行器

    Args:
        count: 每次探测发送的包数
        timeout: 单个回应的等待秒数（ping -W）
        deadline: 整个探测的超时秒数，默认 count * timeout + 1
        runner: 探测机制，默认调用系统 ping
    """

    def __init__(
        self,
        count: int = 1,
        timeout: int = 2,
        deadline: Optional[float] = None,
        runner: Optional[PingRunner] = None,
    ):
        self.count = count
        self.timeout = timeout
        self.deadline = deadline if deadline is not None else count * timeout + 1
        self.runner = runner or run_system_ping

    async def _execute(self, address: str) -> RawProbeOutput:
        try:
            return await asyncio.wait_for(
                self.runner(address, self.count, self.timeout),
                timeout=self.deadline,
            )
        except asyncio.TimeoutError as e:
            raise ProbeTimeout(f"Probe timed out after {self.deadline}s") from e

    async def probe(self, address: str) -> ProbeResult:
        """
        探测单个目标

        Raises:
            InvalidTarget: 地址非法（不发起探测）
        """
        address = validate_address(address)

        try:
            raw = await self._execute(address)
        except ProbeTimeout as e:
            logger.debug(f"Probe {address}: {e}")
            return _unreachable(address, str(e), sent=self.count)
        except OSError as e:
            # ping 不存在或无法启动
            logger.warning(f"Probe {address}: failed to run probe mechanism: {e}")
            return _unreachable(address, f"Probe mechanism failed: {e}")

        return self._interpret(address, raw)

    def _interpret(self, address: str, raw: RawProbeOutput) -> ProbeResult:
        parsed = parse_ping_output(raw.output)

        if isinstance(parsed, PingParseFailure):
            error = ProbeUnreachable(parsed.reason)
            if raw.returncode == 0:
                logger.warning(f"Probe {address}: unparseable output despite exit code 0")
            return _unreachable(address, str(error), raw_output=parsed.raw_output, sent=self.count)

        if not parsed.reachable:
            return ProbeResult(
                address=address,
                reachable=False,
                latency_ms=None,
                packet_loss_pct=parsed.packet_loss_pct if parsed.transmitted else 100.0,
                packets_sent=parsed.transmitted,
                packets_received=parsed.received,
                error=extract_error(raw.output),
            )

        return ProbeResult(
            address=address,
            reachable=True,
            latency_ms=round(parsed.rtt_avg, 2),
            packet_loss_pct=parsed.packet_loss_pct,
            packets_sent=parsed.transmitted,
            packets_received=parsed.received,
        )

    async def safe_probe(self, address: str) -> ProbeResult:
        """探测单个目标，非法地址也返回不可达结果"""
        try:
            return await self.probe(address)
        except InvalidTarget as e:
            return _unreachable(address, str(e))

    async def probe_many(self, addresses: Union[str, Iterable[str]]) -> List[ProbeResult]:
        """
        并发探测多个目标

        Args:
            addresses: 地址列表，或逗号分隔的地址字符串

        Returns:
            与输入顺序一致的探测结果列表
        """
        if isinstance(addresses, str):
            addresses = [a.strip() for a in addresses.split(",") if a.strip()]

        tasks = [self.safe_probe(address) for address in addresses]
        return list(await asyncio.gather(*tasks))
