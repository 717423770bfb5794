"""
异常定义

- 单个探测 / 单条样本的失败只影响自身，不中断采集周期
- 只有启动阶段不可恢复的问题（ConfigurationError）才是致命的
"""


class HealthMonitorError(Exception):
    """所有异常的基类"""


class InvalidTarget(HealthMonitorError):
    """目标地址格式非法（不会发起探测）"""

    def __init__(self, address: str, reason: str = "Invalid IP address format"):
        self.address = address
        self.reason = reason
        super().__init__(f"{reason}: {address!r}")


class ProbeError(HealthMonitorError):
    """探测失败（作为数据记录，不向调用方抛出）"""


class ProbeTimeout(ProbeError):
    """探测超时"""


class ProbeUnreachable(ProbeError):
    """目标不可达或输出无法解析"""


class StoreError(HealthMonitorError):
    """存储层错误"""


class StoreWriteFailure(StoreError):
    """写入失败"""


class StoreReadFailure(StoreError):
    """查询失败"""


class RegistryUnavailable(HealthMonitorError):
    """目标列表无法读取"""


class TargetExists(HealthMonitorError):
    """目标已存在"""


class TargetNotFound(HealthMonitorError):
    """目标不存在"""


class ConfigurationError(HealthMonitorError):
    """启动配置错误（致命）"""
