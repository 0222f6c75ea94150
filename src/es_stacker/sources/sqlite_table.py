"""
SQLite 源表适配器
"""

import sqlite3
from typing import Any, List, Optional, Sequence, Tuple

from es_stacker.models.cursor import TimestampCursor
from es_stacker.models.record import SourceRecord, TimestampColumn
from es_stacker.models.sync_config import TableConfig
from es_stacker.sources.base import BaseSourceTable
from es_stacker.utils.logging import get_logger

logger = get_logger(__name__)


class SQLiteSourceTable(BaseSourceTable):
    """
    SQLite 源表

    时间列以 Unix 秒（REAL）存储，边界比较直接使用浮点值。
    连接由单个同步任务独占，查询在协程内同步执行。
    """

    def __init__(
        self,
        db_path: str,
        table: TableConfig,
        conn: Optional[sqlite3.Connection] = None
    ):
        """
        初始化 SQLite 源表

        参数:
            db_path: 数据库文件路径
            table: 源表结构配置
            conn: 已有连接（可选，主要用于测试）
        """
        super().__init__(table)
        self.db_path = db_path
        self._conn = conn
        if conn is not None:
            conn.row_factory = sqlite3.Row
            self._connected = True

    async def connect(self) -> None:
        """打开数据库连接"""
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        self._connected = True
        logger.info("sqlite_source_connected", db_path=self.db_path, table=self.table.name)

    async def disconnect(self) -> None:
        """关闭数据库连接"""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
        self._connected = False
        logger.info("sqlite_source_disconnected", db_path=self.db_path)

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        if self._conn is None:
            raise RuntimeError("SQLite 源未连接")
        return self._conn.execute(sql, tuple(params)).fetchall()

    async def max_key(self) -> int:
        """当前最大主键"""
        pk = self.table.primary_key
        rows = self._execute(
            f'SELECT COALESCE(MAX("{pk}"), 0) AS max_key FROM "{self.table.name}"'
        )
        return int(rows[0]["max_key"]) if rows else 0

    async def fetch_key_range(
        self,
        start_id: int,
        end_id: int,
        limit: int
    ) -> List[SourceRecord]:
        """读取主键区间 (start_id, end_id]"""
        pk = self.table.primary_key
        rows = self._execute(f"""
            SELECT * FROM "{self.table.name}"
            WHERE "{pk}" > ? AND "{pk}" <= ?
            ORDER BY "{pk}"
            LIMIT ?
        """, (start_id, end_id, limit))
        return [self._row_to_record(row) for row in rows]

    async def latest_mutation(
        self,
        column: TimestampColumn
    ) -> Optional[Tuple[float, int]]:
        """指定时间列上最新的 (时间戳, 主键)"""
        pk = self.table.primary_key
        col = self.column_name(column)
        rows = self._execute(f"""
            SELECT "{pk}" AS pk, "{col}" AS ts FROM "{self.table.name}"
            WHERE "{col}" IS NOT NULL
            ORDER BY "{col}" DESC, "{pk}" DESC
            LIMIT 1
        """)
        if not rows:
            return None
        return float(rows[0]["ts"]), int(rows[0]["pk"])

    async def fetch_mutations(
        self,
        column: TimestampColumn,
        start: TimestampCursor,
        end_timestamp: float,
        limit: int
    ) -> List[SourceRecord]:
        """读取时间列窗口内的记录"""
        pk = self.table.primary_key
        col = self.column_name(column)
        rows = self._execute(f"""
            SELECT * FROM "{self.table.name}"
            WHERE ("{col}" = ? AND "{pk}" > ?)
               OR ("{col}" > ? AND "{col}" <= ?)
            ORDER BY "{col}", "{pk}"
            LIMIT ?
        """, (start.timestamp, start.id, start.timestamp, end_timestamp, limit))
        return [self._row_to_record(row) for row in rows]

    def _row_to_record(self, row: sqlite3.Row) -> SourceRecord:
        """将 sqlite3.Row 转换为 SourceRecord"""
        data = dict(row)
        return self._build_record(
            data,
            (
                data.get(self.table.create_column),
                data.get(self.table.update_column),
                data.get(self.table.delete_column),
            ),
        )
