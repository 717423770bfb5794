"""
数据保留策略

删除超过保留期限的样本（两条数据流）。
调度器周期性调用，也可由运维手动触发（CLI / API），行为一致且幂等。
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from .database import TimeSeriesStore
from .utils import format_ts, utcnow

logger = logging.getLogger(__name__)


class RetentionManager:
    """过期数据清理"""

    def __init__(
        self,
        store: TimeSeriesStore,
        max_age_days: float = 7,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.max_age_days = max_age_days
        self.clock = clock

    def cutoff(self, max_age_days: Optional[float] = None) -> datetime:
        days = self.max_age_days if max_age_days is None else max_age_days
        return self.clock() - timedelta(days=days)

    def purge(self, max_age_days: Optional[float] = None) -> Dict[str, int]:
        """
        清理过期数据

        Args:
            max_age_days: 保留天数，默认使用配置值

        Returns:
            {"resource": 删除条数, "probe": 删除条数}

        Raises:
            StoreWriteFailure: 删除失败
        """
        if max_age_days is not None and max_age_days < 0:
            raise ValueError("max_age_days must not be negative")

        cutoff = self.cutoff(max_age_days)
        deleted = self.store.delete_older_than(cutoff)

        if any(deleted.values()):
            logger.info(
                f"Retention purge removed {deleted['resource']} resource and "
                f"{deleted['probe']} probe samples older than {format_ts(cutoff)}"
            )
        else:
            logger.debug(f"Retention purge: nothing older than {format_ts(cutoff)}")

        return deleted
