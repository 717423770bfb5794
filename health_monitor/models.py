"""
数据模型定义

包括：
- 样本模型（写入时序存储，不可变）
- 探测结果 / 目标模型
- 聚合统计响应模型（按需计算，不持久化）
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from .exceptions import InvalidTarget
from .utils import validate_address

NO_DATA_NOTE = "No history yet, waiting for data collection"


# =============================================================================
# 样本模型
# =============================================================================

class ResourceSample(BaseModel):
    """主机资源样本（每个资源采集周期一条）"""
    model_config = ConfigDict(frozen=True)

    ts: datetime
    cpu_usage_pct: float = Field(..., description="1 分钟负载 / 核数 × 100，可能超过 100")
    cpu_load_1: float
    cpu_load_5: float
    cpu_load_15: float
    mem_usage_pct: float
    mem_used_mb: int
    mem_total_mb: int
    disk_usage_pct: float
    disk_used_gb: float
    disk_total_gb: float


class ProbeSample(BaseModel):
    """探测样本（每个周期、每个启用的目标一条）"""
    model_config = ConfigDict(frozen=True)

    ts: datetime
    target_address: str
    target_name: Optional[str] = None
    reachable: bool
    latency_ms: Optional[float] = None
    packet_loss_pct: float = 100.0
    packets_sent: int = 0
    packets_received: int = 0

    @model_validator(mode="after")
    def _check_latency(self):
        if not self.reachable and self.latency_ms is not None:
            raise ValueError("latency_ms must be null when target is unreachable")
        if self.reachable and (self.latency_ms is None or self.latency_ms < 0):
            raise ValueError("latency_ms must be a non-negative number when target is reachable")
        return self


class Target(BaseModel):
    """监控目标（DHCP 服务器）"""
    address: str = Field(..., validation_alias=AliasChoices("address", "ip"))
    name: Optional[str] = Field(None, validation_alias=AliasChoices("name", "hostname", "display_name"))
    location: Optional[str] = None
    enabled: bool = True

    @field_validator("address")
    @classmethod
    def _validate_address(cls, value: str) -> str:
        try:
            return validate_address(value)
        except InvalidTarget as e:
            raise ValueError(str(e)) from e


class TargetUpdate(BaseModel):
    """更新目标请求模型"""
    name: Optional[str] = None
    location: Optional[str] = None
    enabled: Optional[bool] = None


class ProbeResult(BaseModel):
    """单次探测的结构化结果"""
    address: str
    reachable: bool
    latency_ms: Optional[float] = None
    packet_loss_pct: float = 100.0
    packets_sent: int = 0
    packets_received: int = 0
    error: Optional[str] = None
    raw_output: Optional[str] = Field(None, description="无法解析时保留的原始输出")

    def to_sample(self, ts: datetime, target_name: Optional[str] = None) -> ProbeSample:
        """转换为带周期时间戳的探测样本"""
        return ProbeSample(
            ts=ts,
            target_address=self.address,
            target_name=target_name,
            reachable=self.reachable,
            latency_ms=self.latency_ms if self.reachable else None,
            packet_loss_pct=self.packet_loss_pct,
            packets_sent=self.packets_sent,
            packets_received=self.packets_received,
        )


# =============================================================================
# 聚合统计模型
# =============================================================================

class MetricStats(BaseModel):
    """单个指标的窗口统计"""
    avg: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    samples: int = 0


class ResourceStats(BaseModel):
    """资源统计（CPU / 内存 / 磁盘）"""
    cpu: MetricStats = Field(default_factory=MetricStats)
    memory: MetricStats = Field(default_factory=MetricStats)
    disk: MetricStats = Field(default_factory=MetricStats)
    period_hours: float
    has_data: bool = False
    note: Optional[str] = None
    error: Optional[str] = None


class ProbeStats(BaseModel):
    """单个目标的探测统计"""
    address: str
    name: Optional[str] = None
    avg_latency_ms: Optional[float] = None
    min_latency_ms: Optional[float] = None
    max_latency_ms: Optional[float] = None
    avg_packet_loss: Optional[float] = None
    availability_pct: Optional[float] = None
    samples: int = 0
    period_hours: float
    has_data: bool = False
    note: Optional[str] = None
    error: Optional[str] = None


class ProbeStatsReport(BaseModel):
    """所有目标的探测统计（按地址索引）"""
    period_hours: float
    has_data: bool = False
    targets: Dict[str, ProbeStats] = Field(default_factory=dict)
    error: Optional[str] = None


class ResourceOverview(BaseModel):
    cpu_avg: Optional[float] = None
    memory_avg: Optional[float] = None
    disk_avg: Optional[float] = None
    samples: int = 0


class ProbeOverview(BaseModel):
    targets_monitored: int = 0
    overall_availability: Optional[float] = None


class Summary(BaseModel):
    """统计摘要（快速总览）"""
    period_hours: float
    resources: ResourceOverview = Field(default_factory=ResourceOverview)
    probes: ProbeOverview = Field(default_factory=ProbeOverview)
    has_data: bool = False
    generated_at: datetime
    error: Optional[str] = None


class ResourceHistoryPoint(BaseModel):
    """资源曲线数据点"""
    ts: datetime
    cpu: float
    memory: float
    disk: float


class ProbeHistoryPoint(BaseModel):
    """延迟曲线数据点"""
    ts: datetime
    address: str
    name: Optional[str] = None
    latency_ms: Optional[float] = None
    reachable: bool


class LatestStatus(BaseModel):
    """最新状态"""
    resources: Optional[ResourceSample] = None
    probes: List[ProbeSample] = Field(default_factory=list)
    error: Optional[str] = None


# =============================================================================
# 健康检查报告
# =============================================================================

class HostInfo(BaseModel):
    hostname: str
    os: str
    kernel: str
    cores: int
    uptime_seconds: int
    uptime_formatted: str


class NetworkStats(BaseModel):
    """网络接口流量（开机以来的累计值）"""
    interface: Optional[str] = None
    rx_bytes: int = 0
    rx_packets: int = 0
    tx_bytes: int = 0
    tx_packets: int = 0
    rx_mb: float = 0.0
    tx_mb: float = 0.0


class ServerCheck(ProbeResult):
    """单个 DHCP 服务器的即时检查结果"""
    name: Optional[str] = None
    stats_24h: Optional[ProbeStats] = None


class HealthCheckReport(BaseModel):
    """即时健康检查报告"""
    report_type: str = "daily_health_check"
    generated_at: datetime
    execution_time_ms: float
    host_info: HostInfo
    system_resources: ResourceSample
    network_stats: Optional[NetworkStats] = None
    resource_stats_24h: Optional[ResourceStats] = None
    dhcp_servers: List[ServerCheck] = Field(default_factory=list)
    historical_data_available: bool = False
