"""
ping 输出解析

把 ping 命令的原始输出解析为结构化结果：
- PingStats: 成功解析出收发统计（received 为 0 时表示不可达）
- PingParseFailure: 无法解析，保留原始输出用于诊断

支持的格式：
    iputils:  4 packets transmitted, 4 received, 0% packet loss, time 3003ms
              rtt min/avg/max/mdev = 0.123/0.145/0.167/0.015 ms
    BusyBox:  4 packets transmitted, 4 packets received, 0% packet loss
              round-trip min/avg/max = 0.123/0.145/0.167 ms
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Union

_TRANSMITTED_RE = re.compile(r"(\d+)\s+packets?\s+transmitted")
_RECEIVED_RE = re.compile(r"(\d+)\s+(?:packets\s+)?received")
_LOSS_RE = re.compile(r"([\d.]+)%\s+packet\s+loss")
_RTT_RE = re.compile(
    r"(?:rtt|round-trip)\s+min/avg/max(?:/(?:mdev|stddev))?\s*=\s*"
    r"([\d.]+)/([\d.]+)/([\d.]+)"
)
_REPLY_TIME_RE = re.compile(r"time[=<]\s*([\d.]+)\s*ms", re.IGNORECASE)
_ERROR_RE = re.compile(
    r"(Destination Host Unreachable|Network is unreachable|Name or service not known"
    r"|unknown host|Temporary failure in name resolution|Operation not permitted)",
    re.IGNORECASE,
)

DEFAULT_ERROR = "Host unreachable"


@dataclass(frozen=True)
class PingStats:
    """解析成功的 ping 统计"""
    transmitted: int
    received: int
    packet_loss_pct: float
    rtt_avg: Optional[float] = None
    rtt_min: Optional[float] = None
    rtt_max: Optional[float] = None

    @property
    def reachable(self) -> bool:
        return self.received > 0 and self.rtt_avg is not None


@dataclass(frozen=True)
class PingParseFailure:
    """无法解析的输出"""
    reason: str
    raw_output: str


ParseResult = Union[PingStats, PingParseFailure]


def extract_error(output: str) -> str:
    """从输出中提取错误信息"""
    match = _ERROR_RE.search(output)
    if match:
        return match.group(1)
    return DEFAULT_ERROR


def _reply_times(output: str) -> List[float]:
    # 跳过汇总行里的 "time 3003ms"（没有等号）
    return [float(m.group(1)) for m in _REPLY_TIME_RE.finditer(output)]


def parse_ping_output(output: str) -> ParseResult:
    """
    解析 ping 输出

    Args:
        output: stdout 与 stderr 合并后的文本

    Returns:
        PingStats 或 PingParseFailure
    """
    transmitted_match = _TRANSMITTED_RE.search(output)
    received_match = _RECEIVED_RE.search(output)

    if not transmitted_match or not received_match:
        return PingParseFailure(reason=extract_error(output), raw_output=output)

    transmitted = int(transmitted_match.group(1))
    received = int(received_match.group(1))

    if received > transmitted:
        return PingParseFailure(reason="Received more packets than transmitted", raw_output=output)

    loss_match = _LOSS_RE.search(output)
    if loss_match:
        packet_loss = float(loss_match.group(1))
    elif transmitted > 0:
        packet_loss = (transmitted - received) / transmitted * 100.0
    else:
        packet_loss = 100.0

    if received == 0:
        return PingStats(
            transmitted=transmitted,
            received=0,
            packet_loss_pct=round(packet_loss, 2),
        )

    rtt_match = _RTT_RE.search(output)
    if rtt_match:
        rtt_min, rtt_avg, rtt_max = (float(v) for v in rtt_match.groups())
    else:
        times = _reply_times(output)
        if not times:
            # 收到了回应却没有任何延迟数据，不能当作成功
            return PingParseFailure(reason="Missing round-trip statistics", raw_output=output)
        rtt_min, rtt_avg, rtt_max = min(times), sum(times) / len(times), max(times)

    return PingStats(
        transmitted=transmitted,
        received=received,
        packet_loss_pct=round(packet_loss, 2),
        rtt_avg=round(rtt_avg, 2),
        rtt_min=round(rtt_min, 2),
        rtt_max=round(rtt_max, 2),
    )
