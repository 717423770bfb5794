"""
主机资源采集器

采集 CPU 负载、内存、磁盘使用情况和网络流量。均为本地读取，同步执行。

注意：CPU 使用率按 1 分钟负载平均 / 核数 × 100 近似计算，并非真实利用率，
多核突发负载时可能超过 100。下游依赖这个取值范围，保持不变。
"""

import os
import platform
import socket
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import psutil

from .models import ResourceSample
from .utils import format_uptime, utcnow

MB = 1024 * 1024
GB = 1024 * 1024 * 1024


def get_cpu_usage() -> Dict[str, Any]:
    """
    采集 CPU 负载

    Returns:
        {"usage_pct": ..., "cores": ..., "load": (1m, 5m, 15m)}
    """
    load_1, load_5, load_15 = psutil.getloadavg()
    cores = psutil.cpu_count(logical=True) or 1

    return {
        "usage_pct": round(load_1 / cores * 100.0, 2),
        "cores": cores,
        "load": (round(load_1, 2), round(load_5, 2), round(load_15, 2)),
    }


def get_memory_usage() -> Dict[str, Any]:
    """
    采集内存使用情况

    使用 "available" 而不是 "free"，free 不包含可回收的缓存，会高估使用率。
    """
    mem = psutil.virtual_memory()
    total = mem.total
    used = total - mem.available
    usage_pct = used / total * 100.0 if total > 0 else 0.0

    return {
        "usage_pct": round(usage_pct, 2),
        "used_mb": int(round(used / MB)),
        "total_mb": int(round(total / MB)),
        "available_mb": int(round(mem.available / MB)),
    }


def get_disk_usage(path: str = "/") -> Dict[str, Any]:
    """
    采集磁盘使用情况

    Args:
        path: 挂载点路径
    """
    usage = psutil.disk_usage(path)
    total = usage.total
    used = total - usage.free
    usage_pct = used / total * 100.0 if total > 0 else 0.0

    return {
        "path": path,
        "usage_pct": round(usage_pct, 2),
        "used_gb": round(used / GB, 2),
        "total_gb": round(total / GB, 2),
        "free_gb": round(usage.free / GB, 2),
    }


def _default_route_interface() -> Optional[str]:
    """/proc/net/route 中默认路由（目标 00000000）所在的接口"""
    try:
        lines = Path("/proc/net/route").read_text(encoding="utf-8").splitlines()[1:]
    except OSError:
        return None

    for line in lines:
        fields = line.split()
        if len(fields) > 1 and fields[1] == "00000000":
            return fields[0]
    return None


def get_network_stats(interface: Optional[str] = None) -> Dict[str, Any]:
    """
    采集网络接口流量（开机以来的累计值）

    Args:
        interface: 接口名称。为空时取默认路由所在接口，找不到则取第一个非 lo 接口
    """
    counters = psutil.net_io_counters(pernic=True)

    if interface is None:
        interface = _default_route_interface()
        if interface not in counters:
            interface = next((name for name in sorted(counters) if name != "lo"), None)

    stats = counters.get(interface) if interface else None
    if stats is None:
        rx_bytes = rx_packets = tx_bytes = tx_packets = 0
    else:
        rx_bytes, rx_packets = stats.bytes_recv, stats.packets_recv
        tx_bytes, tx_packets = stats.bytes_sent, stats.packets_sent

    return {
        "interface": interface,
        "rx_bytes": rx_bytes,
        "rx_packets": rx_packets,
        "tx_bytes": tx_bytes,
        "tx_packets": tx_packets,
        "rx_mb": round(rx_bytes / MB, 2),
        "tx_mb": round(tx_bytes / MB, 2),
    }


def _os_name() -> str:
    os_release = Path("/etc/os-release")
    if os_release.exists():
        try:
            for line in os_release.read_text(encoding="utf-8").splitlines():
                if line.startswith("PRETTY_NAME="):
                    return line.split("=", 1)[1].strip().strip('"')
        except OSError:
            pass
    return f"{platform.system()} {platform.release()}"


class ResourceSampler:
    """资源采样器"""

    def __init__(self, disk_path: str = "/", network_interface: Optional[str] = None):
        self.disk_path = disk_path
        self.network_interface = network_interface

    def sample(self, ts: Optional[datetime] = None) -> ResourceSample:
        """采集当前时刻的资源样本"""
        cpu = get_cpu_usage()
        mem = get_memory_usage()
        disk = get_disk_usage(self.disk_path)

        return ResourceSample(
            ts=ts or utcnow(),
            cpu_usage_pct=cpu["usage_pct"],
            cpu_load_1=cpu["load"][0],
            cpu_load_5=cpu["load"][1],
            cpu_load_15=cpu["load"][2],
            mem_usage_pct=mem["usage_pct"],
            mem_used_mb=mem["used_mb"],
            mem_total_mb=mem["total_mb"],
            disk_usage_pct=disk["usage_pct"],
            disk_used_gb=disk["used_gb"],
            disk_total_gb=disk["total_gb"],
        )

    def network_stats(self) -> Dict[str, Any]:
        return get_network_stats(self.network_interface)

    def host_info(self) -> Dict[str, Any]:
        """主机基本信息"""
        uptime_seconds = max(0, int(time.time() - psutil.boot_time()))
        return {
            "hostname": socket.gethostname(),
            "os": _os_name(),
            "kernel": platform.release(),
            "cores": psutil.cpu_count(logical=True) or os.cpu_count() or 1,
            "uptime_seconds": uptime_seconds,
            "uptime_formatted": format_uptime(uptime_seconds),
        }
