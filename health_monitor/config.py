"""
配置加载模块

从 config.yaml 加载配置，支持 Pydantic 验证和环境变量覆盖。

环境变量使用 HEALTH_MONITOR_ 前缀，嵌套字段用双下划线分隔，例如：
    HEALTH_MONITOR_PROBE__INTERVAL=10
    HEALTH_MONITOR_DATABASE__PATH=/var/lib/health-monitor/monitor.db
"""

import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseModel):
    """数据库配置"""
    path: str = "data/monitor.db"
    timeout: float = 30


class RegistryConfig(BaseModel):
    """监控目标列表配置"""
    path: Optional[str] = "config/targets.yaml"


class ProbeConfig(BaseModel):
    """探测配置"""
    interval: int = Field(default=5, ge=1, description="探测周期（秒）")
    count: int = Field(default=1, ge=1, description="每次探测的包数")
    timeout: int = Field(default=2, ge=1, description="单个回应等待秒数")
    deadline: Optional[float] = Field(default=None, description="单次探测总超时，默认 count * timeout + 1")


class ResourceConfig(BaseModel):
    """资源采集配置"""
    interval: int = Field(default=300, ge=1, description="资源采集周期（秒）")
    disk_path: str = "/"
    network_interface: Optional[str] = Field(default=None, description="网络统计的接口，默认取默认路由所在接口")


class RetentionConfig(BaseModel):
    """数据保留策略"""
    days: float = Field(default=7, gt=0)
    every_ticks: int = Field(default=100, ge=1, description="每多少个探测周期清理一次")


class APIConfig(BaseModel):
    """API 服务配置"""
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: List[str] = ["http://localhost:8080", "http://127.0.0.1:8080"]
    admin_token: str = "CHANGE_ME_IN_PRODUCTION"


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = "INFO"
    file: Optional[str] = None
    max_size_mb: int = 50
    backup_count: int = 5


class DaemonConfig(BaseModel):
    """守护进程配置"""
    status_every_ticks: int = Field(default=12, ge=1, description="每多少个周期输出一次状态")
    lock_file: Optional[str] = None


class AppConfig(BaseSettings):
    """应用配置（完整配置）"""
    model_config = SettingsConfigDict(
        env_prefix="HEALTH_MONITOR_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    resources: ResourceConfig = Field(default_factory=ResourceConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    daemon: DaemonConfig = Field(default_factory=DaemonConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # 环境变量优先于配置文件
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def _resolve_paths(raw_config: dict, base_dir: Path) -> dict:
    """配置文件中的相对路径按配置文件所在目录解析"""

    def _resolve(value: Optional[str]) -> Optional[str]:
        if not value:
            return value
        path = Path(value)
        if path.is_absolute():
            return str(path)
        return str((base_dir / path).resolve())

    for section, key in (
        ("database", "path"),
        ("registry", "path"),
        ("logging", "file"),
        ("daemon", "lock_file"),
    ):
        values = raw_config.get(section)
        if isinstance(values, dict) and key in values:
            values[key] = _resolve(values[key])

    return raw_config


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    加载配置文件

    优先级：
    1. 参数指定的路径
    2. 环境变量 HEALTH_MONITOR_CONFIG
    3. 当前目录下的 config.yaml
    """
    if config_path is None:
        config_path = os.environ.get("HEALTH_MONITOR_CONFIG", "config.yaml")

    config_file = Path(config_path)

    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
        if raw_config:
            return AppConfig(**_resolve_paths(raw_config, config_file.resolve().parent))

    # 配置文件不存在时使用默认配置（仍可被环境变量覆盖）
    return AppConfig()
