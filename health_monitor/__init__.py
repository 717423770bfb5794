"""
DHCP Health Monitor - DHCP 服务器与主机健康监控

负责：
- 每 5s 并发探测所有启用的 DHCP 服务器（ICMP echo）
- 每 5 分钟采集本机 CPU / 内存 / 磁盘
- 按保留期限定期清理旧数据
- 计算滑动窗口统计并通过 REST API 提供
"""

__version__ = "1.0.0"
