"""
时序存储

封装 SQLite 操作。两条独立的只追加数据流：
- resource_samples: 主机资源样本
- probe_samples: 探测样本

每次操作使用独立的短连接；WAL 模式下清理任务的删除和采集循环的写入
可以并发进行，由 SQLite 自身的锁保证一致性。
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .exceptions import StoreReadFailure, StoreWriteFailure
from .models import ProbeSample, ResourceSample
from .utils import format_ts, format_ts_ceil, parse_ts

logger = logging.getLogger(__name__)

RESOURCE = "resource"
PROBE = "probe"
KINDS = (RESOURCE, PROBE)

SCHEMA = """
CREATE TABLE IF NOT EXISTS resource_samples (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ts TEXT NOT NULL,
    cpu_usage_pct REAL NOT NULL,
    cpu_load_1 REAL NOT NULL,
    cpu_load_5 REAL NOT NULL,
    cpu_load_15 REAL NOT NULL,
    mem_usage_pct REAL NOT NULL,
    mem_used_mb INTEGER NOT NULL,
    mem_total_mb INTEGER NOT NULL,
    disk_usage_pct REAL NOT NULL,
    disk_used_gb REAL NOT NULL,
    disk_total_gb REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_resource_samples_ts ON resource_samples(ts);

CREATE TABLE IF NOT EXISTS probe_samples (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ts TEXT NOT NULL,
    target_address TEXT NOT NULL,
    target_name TEXT,
    reachable INTEGER NOT NULL,
    latency_ms REAL,
    packet_loss_pct REAL NOT NULL,
    packets_sent INTEGER NOT NULL,
    packets_received INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_probe_samples_ts ON probe_samples(ts);
CREATE INDEX IF NOT EXISTS idx_probe_samples_target_ts ON probe_samples(target_address, ts);
"""

_TABLES = {RESOURCE: "resource_samples", PROBE: "probe_samples"}

Sample = Union[ResourceSample, ProbeSample]


def _row_to_resource(row: sqlite3.Row) -> ResourceSample:
    data = dict(row)
    data.pop("id", None)
    data["ts"] = parse_ts(data["ts"])
    return ResourceSample(**data)


def _row_to_probe(row: sqlite3.Row) -> ProbeSample:
    data = dict(row)
    data.pop("id", None)
    data["ts"] = parse_ts(data["ts"])
    data["reachable"] = bool(data["reachable"])
    return ProbeSample(**data)


class TimeSeriesStore:
    """时序存储"""

    def __init__(self, db_path: str, timeout: float = 30):
        """
        Args:
            db_path: 数据库文件路径
            timeout: 等待锁的秒数
        """
        self.db_path = Path(db_path)
        self.timeout = timeout

        # 确保目录存在
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def get_conn(self):
        """
        获取数据库连接（上下文管理器）

        使用方式：
            with store.get_conn() as conn:
                cursor = conn.execute("SELECT ...")
        """
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout = {int(self.timeout * 1000)}")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_schema(self):
        """建表（幂等）"""
        with self.get_conn() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(SCHEMA)
        logger.debug(f"Schema ready at {self.db_path}")

    # =========================================================================
    # 写入
    # =========================================================================

    def insert_resource_sample(self, sample: ResourceSample):
        """写入资源样本"""
        try:
            with self.get_conn() as conn:
                conn.execute("""
                    INSERT INTO resource_samples (
                        ts, cpu_usage_pct, cpu_load_1, cpu_load_5, cpu_load_15,
                        mem_usage_pct, mem_used_mb, mem_total_mb,
                        disk_usage_pct, disk_used_gb, disk_total_gb
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    format_ts(sample.ts), sample.cpu_usage_pct,
                    sample.cpu_load_1, sample.cpu_load_5, sample.cpu_load_15,
                    sample.mem_usage_pct, sample.mem_used_mb, sample.mem_total_mb,
                    sample.disk_usage_pct, sample.disk_used_gb, sample.disk_total_gb,
                ))
        except sqlite3.Error as e:
            raise StoreWriteFailure(f"Failed to write resource sample: {e}") from e

    def insert_probe_sample(self, sample: ProbeSample):
        """写入探测样本"""
        try:
            with self.get_conn() as conn:
                conn.execute("""
                    INSERT INTO probe_samples (
                        ts, target_address, target_name, reachable, latency_ms,
                        packet_loss_pct, packets_sent, packets_received
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    format_ts(sample.ts), sample.target_address, sample.target_name,
                    1 if sample.reachable else 0, sample.latency_ms,
                    sample.packet_loss_pct, sample.packets_sent, sample.packets_received,
                ))
        except sqlite3.Error as e:
            raise StoreWriteFailure(
                f"Failed to write probe sample for {sample.target_address}: {e}"
            ) from e

    def append(self, sample: Sample) -> bool:
        """
        追加一条样本

        Returns:
            是否写入成功（失败时记录日志，不抛出）
        """
        try:
            if isinstance(sample, ResourceSample):
                self.insert_resource_sample(sample)
            elif isinstance(sample, ProbeSample):
                self.insert_probe_sample(sample)
            else:
                raise TypeError(f"Unsupported sample type: {type(sample).__name__}")
        except StoreWriteFailure as e:
            logger.error(str(e))
            return False
        return True

    # =========================================================================
    # 查询
    # =========================================================================

    def query_window(
        self,
        kind: str,
        since: datetime,
        until: Optional[datetime] = None,
        address: Optional[str] = None,
    ) -> List[Sample]:
        """
        查询时间窗口内的样本

        Args:
            kind: "resource" 或 "probe"
            since: 起始时间（包含）
            until: 结束时间（包含，可选）
            address: 仅查询该目标（仅 probe）

        Returns:
            按时间升序（探测样本再按地址升序）排列的样本列表

        Raises:
            StoreReadFailure: 查询失败
        """
        if kind not in KINDS:
            raise ValueError(f"Invalid kind {kind!r}. Must be one of: {KINDS}")

        sql = f"SELECT * FROM {_TABLES[kind]} WHERE ts >= ?"
        params: list = [format_ts_ceil(since)]

        if until is not None:
            sql += " AND ts <= ?"
            params.append(format_ts(until))
        if address is not None and kind == PROBE:
            sql += " AND target_address = ?"
            params.append(address)

        sql += " ORDER BY ts ASC, target_address ASC, id ASC" if kind == PROBE else " ORDER BY ts ASC, id ASC"

        try:
            with self.get_conn() as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreReadFailure(f"Failed to query {kind} samples: {e}") from e

        convert = _row_to_probe if kind == PROBE else _row_to_resource
        return [convert(row) for row in rows]

    def latest_resource_sample(self) -> Optional[ResourceSample]:
        """最新一条资源样本"""
        try:
            with self.get_conn() as conn:
                row = conn.execute(
                    "SELECT * FROM resource_samples ORDER BY ts DESC, id DESC LIMIT 1"
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreReadFailure(f"Failed to query latest resource sample: {e}") from e
        return _row_to_resource(row) if row else None

    def latest_probe_samples(self) -> List[ProbeSample]:
        """每个目标最新的一条探测样本"""
        try:
            with self.get_conn() as conn:
                rows = conn.execute("""
                    SELECT p.* FROM probe_samples p
                    JOIN (
                        SELECT target_address, MAX(id) AS max_id
                        FROM probe_samples
                        GROUP BY target_address
                    ) latest ON p.id = latest.max_id
                    ORDER BY p.target_address
                """).fetchall()
        except sqlite3.Error as e:
            raise StoreReadFailure(f"Failed to query latest probe samples: {e}") from e
        return [_row_to_probe(row) for row in rows]

    def count(self, kind: str) -> int:
        """样本总数"""
        if kind not in KINDS:
            raise ValueError(f"Invalid kind {kind!r}. Must be one of: {KINDS}")
        try:
            with self.get_conn() as conn:
                return conn.execute(f"SELECT COUNT(*) FROM {_TABLES[kind]}").fetchone()[0]
        except sqlite3.Error as e:
            raise StoreReadFailure(f"Failed to count {kind} samples: {e}") from e

    # =========================================================================
    # 窗口聚合（在 SQLite 中计算，不加载样本）
    # =========================================================================

    def resource_window_stats(self, since: datetime) -> Dict[str, Any]:
        """
        窗口内资源指标的平均值 / 最小值 / 最大值

        Returns:
            {"samples": n, "cpu_avg": ..., "cpu_min": ..., "cpu_max": ...,
             "memory_*": ..., "disk_*": ...}，没有样本时 samples 为 0、其余为 None

        Raises:
            StoreReadFailure: 查询失败
        """
        try:
            with self.get_conn() as conn:
                row = conn.execute("""
                    SELECT
                        COUNT(*) AS samples,
                        AVG(cpu_usage_pct) AS cpu_avg,
                        MIN(cpu_usage_pct) AS cpu_min,
                        MAX(cpu_usage_pct) AS cpu_max,
                        AVG(mem_usage_pct) AS memory_avg,
                        MIN(mem_usage_pct) AS memory_min,
                        MAX(mem_usage_pct) AS memory_max,
                        AVG(disk_usage_pct) AS disk_avg,
                        MIN(disk_usage_pct) AS disk_min,
                        MAX(disk_usage_pct) AS disk_max
                    FROM resource_samples
                    WHERE ts >= ?
                """, (format_ts_ceil(since),)).fetchone()
        except sqlite3.Error as e:
            raise StoreReadFailure(f"Failed to aggregate resource samples: {e}") from e
        return dict(row)

    def probe_window_stats(self, since: datetime, address: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        按目标分组的探测聚合值

        延迟只统计可达的样本；丢包率和可达数统计全部样本。
        name 为窗口内最新的非空目标名称。

        Returns:
            按地址升序排列的列表，每项包含 target_address, name, samples, reachable_count,
            avg_latency_ms, min_latency_ms, max_latency_ms, avg_packet_loss

        Raises:
            StoreReadFailure: 查询失败
        """
        where = "WHERE ts >= ?"
        params: list = [format_ts_ceil(since)]
        if address is not None:
            where += " AND target_address = ?"
            params.append(address)

        sql = f"""
            SELECT g.*, named.target_name AS name
            FROM (
                SELECT
                    target_address,
                    COUNT(*) AS samples,
                    SUM(reachable) AS reachable_count,
                    AVG(CASE WHEN reachable = 1 THEN latency_ms END) AS avg_latency_ms,
                    MIN(CASE WHEN reachable = 1 THEN latency_ms END) AS min_latency_ms,
                    MAX(CASE WHEN reachable = 1 THEN latency_ms END) AS max_latency_ms,
                    AVG(packet_loss_pct) AS avg_packet_loss,
                    MAX(CASE WHEN target_name IS NOT NULL THEN id END) AS name_id
                FROM probe_samples
                {where}
                GROUP BY target_address
            ) g
            LEFT JOIN probe_samples named ON named.id = g.name_id
            ORDER BY g.target_address
        """

        try:
            with self.get_conn() as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreReadFailure(f"Failed to aggregate probe samples: {e}") from e

        result = []
        for row in rows:
            data = dict(row)
            data.pop("name_id", None)
            result.append(data)
        return result

    # =========================================================================
    # 数据清理
    # =========================================================================

    def delete_older_than(self, cutoff: datetime) -> Dict[str, int]:
        """
        删除早于 cutoff 的样本

        每张表一个短事务，避免长时间阻塞采集写入。

        Returns:
            {"resource": 删除条数, "probe": 删除条数}
        """
        cutoff_ts = format_ts_ceil(cutoff)
        deleted = {}

        for kind in KINDS:
            try:
                with self.get_conn() as conn:
                    cursor = conn.execute(f"DELETE FROM {_TABLES[kind]} WHERE ts < ?", (cutoff_ts,))
                    deleted[kind] = cursor.rowcount
            except sqlite3.Error as e:
                raise StoreWriteFailure(f"Failed to delete old {kind} samples: {e}") from e

        return deleted
