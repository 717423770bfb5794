"""
工具函数模块
"""

import ipaddress
import re
from datetime import datetime, timedelta, timezone

from .exceptions import InvalidTarget

TS_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# RFC 1123 主机名：字母数字和连字符，标签不能以连字符开头或结尾
_HOSTNAME_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


def utcnow() -> datetime:
    """当前 UTC 时间（带时区）"""
    return datetime.now(timezone.utc)


def format_ts(ts: datetime) -> str:
    """datetime -> 存储用的 ISO 8601 字符串"""
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    return ts.strftime(TS_FORMAT)


def format_ts_ceil(ts: datetime) -> str:
    """
    datetime -> 存储格式，不足一秒的部分向上取整

    作为下界比较时使用：存储只精确到秒，截断会把下界提前最多 1 秒。
    """
    if ts.microsecond:
        ts = ts.replace(microsecond=0) + timedelta(seconds=1)
    return format_ts(ts)


def parse_ts(value: str) -> datetime:
    """存储用的 ISO 8601 字符串 -> datetime（UTC）"""
    return datetime.strptime(value, TS_FORMAT).replace(tzinfo=timezone.utc)


def validate_address(address: str) -> str:
    """
    验证目标地址

    接受 IPv4/IPv6 地址或 RFC 1123 主机名。地址会作为 ping 的参数使用，
    因此任何可能被解释为选项或控制字符的内容都会被拒绝。

    Returns:
        规范化后的地址

    Raises:
        InvalidTarget: 地址格式非法
    """
    if not isinstance(address, str):
        raise InvalidTarget(str(address))

    candidate = address.strip()
    if not candidate:
        raise InvalidTarget(address, "Empty address")

    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        pass

    # 纯数字和点的字符串只能是 IP，走到这里说明格式不对（如 999.1.1.1）
    if re.fullmatch(r"[\d.]+", candidate):
        raise InvalidTarget(address)

    hostname = candidate[:-1] if candidate.endswith(".") else candidate
    if len(hostname) > 253 or not all(_HOSTNAME_LABEL.match(label) for label in hostname.split(".")):
        raise InvalidTarget(address)

    return hostname.lower()


def format_uptime(seconds: int) -> str:
    """格式化运行时间"""
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    return f"{days} days {hours} hours {minutes} minutes"
