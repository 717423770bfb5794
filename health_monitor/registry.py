"""
监控目标列表

目标列表保存在 YAML/JSON 文件中，可随时修改，无需重启守护进程：
调度器每个周期都会重新读取文件。

文件格式（JSON 是 YAML 的子集，两种都可以）：
    - address: 172.16.5.196
      name: DHCP-CH-HQ2
      location: HQ
      enabled: true

兼容旧格式的 ip / hostname 字段。
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from .exceptions import ConfigurationError, RegistryUnavailable, TargetExists, TargetNotFound
from .models import Target
from .utils import validate_address

logger = logging.getLogger(__name__)


class TargetRegistry:
    """监控目标注册表"""

    def __init__(self, path: Optional[str]):
        self.path = Path(path) if path else None
        self._last_known: List[Target] = []

    def check_source(self):
        """
        启动检查

        Raises:
            ConfigurationError: 未配置目标列表文件
        """
        if self.path is None:
            raise ConfigurationError("No target registry file configured (registry.path)")
        if not self.path.exists():
            logger.warning(f"Target registry {self.path} does not exist yet, monitoring no targets")

    def _read_raw(self) -> List[Dict[str, Any]]:
        if self.path is None:
            raise RegistryUnavailable("No target registry file configured")
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise RegistryUnavailable(f"Target registry not found: {self.path}") from e
        except (OSError, yaml.YAMLError) as e:
            raise RegistryUnavailable(f"Failed to read target registry {self.path}: {e}") from e

        if data is None:
            return []
        if isinstance(data, dict) and "targets" in data:
            data = data["targets"] or []
        if not isinstance(data, list):
            raise RegistryUnavailable(f"Target registry {self.path} must contain a list")
        return data

    def load(self) -> List[Target]:
        """
        重新读取目标列表

        非法或重复的条目会被跳过（记录警告），不影响其它目标。

        Raises:
            RegistryUnavailable: 文件不存在或无法解析
        """
        targets: List[Target] = []
        seen = set()

        for index, entry in enumerate(self._read_raw()):
            if not isinstance(entry, dict):
                logger.warning(f"Skipping registry entry #{index}: not a mapping")
                continue
            try:
                target = Target.model_validate(entry)
            except ValidationError as e:
                logger.warning(f"Skipping registry entry #{index}: {e.errors()[0].get('msg')}")
                continue
            if target.address in seen:
                logger.warning(f"Skipping duplicate registry entry for {target.address}")
                continue
            seen.add(target.address)
            targets.append(target)

        self._last_known = targets
        return targets

    def enabled_targets(self) -> List[Target]:
        """
        当前启用的目标

        读取失败时回退到上一次成功读取的列表（首次失败则为空）。
        """
        try:
            targets = self.load()
        except RegistryUnavailable as e:
            logger.warning(f"{e}; using last known target set ({len(self._last_known)} targets)")
            targets = self._last_known
        return [t for t in targets if t.enabled]

    # =========================================================================
    # 增删改（供 API 使用）
    # =========================================================================

    def _load_for_edit(self) -> List[Target]:
        try:
            return self.load()
        except RegistryUnavailable:
            if self.path is not None and not self.path.exists():
                return []
            raise

    def save(self, targets: List[Target]):
        """原子写入目标列表（临时文件 + rename）"""
        if self.path is None:
            raise RegistryUnavailable("No target registry file configured")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = [t.model_dump(exclude_none=True) for t in targets]

        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".targets-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, allow_unicode=True, sort_keys=False)
            os.replace(tmp_path, self.path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

        self._last_known = list(targets)

    def list_targets(self) -> List[Target]:
        """所有目标（含未启用的），文件不存在时为空"""
        return self._load_for_edit()

    def get(self, address: str) -> Target:
        address = validate_address(address)
        for target in self._load_for_edit():
            if target.address == address:
                return target
        raise TargetNotFound(f"Target {address} not found")

    def add(self, target: Target) -> Target:
        targets = self._load_for_edit()
        if any(t.address == target.address for t in targets):
            raise TargetExists(f"Target {target.address} already exists")
        targets.append(target)
        self.save(targets)
        logger.info(f"Added target {target.address} ({target.name})")
        return target

    def update(self, address: str, **changes) -> Target:
        address = validate_address(address)
        targets = self._load_for_edit()
        for i, target in enumerate(targets):
            if target.address == address:
                updated = target.model_copy(update={k: v for k, v in changes.items() if v is not None})
                targets[i] = updated
                self.save(targets)
                logger.info(f"Updated target {address}: {changes}")
                return updated
        raise TargetNotFound(f"Target {address} not found")

    def remove(self, address: str):
        address = validate_address(address)
        targets = self._load_for_edit()
        remaining = [t for t in targets if t.address != address]
        if len(remaining) == len(targets):
            raise TargetNotFound(f"Target {address} not found")
        self.save(remaining)
        logger.info(f"Removed target {address}")
