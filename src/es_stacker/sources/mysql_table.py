"""
MySQL 源表适配器实现
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiomysql

from es_stacker.models.cursor import TimestampCursor
from es_stacker.models.record import SourceRecord, TimestampColumn
from es_stacker.models.sync_config import MySQLConnection, TableConfig
from es_stacker.sources.base import BaseSourceTable
from es_stacker.utils.logging import get_logger

logger = get_logger(__name__)

# 辅助列别名，不进入文档内容
_CREATE_TS = "__stacker_create_ts"
_UPDATE_TS = "__stacker_update_ts"
_DELETE_TS = "__stacker_delete_ts"


def _unix_param(timestamp: float) -> Decimal:
    """FROM_UNIXTIME 参数，保留微秒精度"""
    return Decimal(f"{timestamp:.6f}")


class MySQLSourceTable(BaseSourceTable):
    """
    MySQL 源表

    使用 aiomysql 连接池，时间列为 DATETIME(6)，
    通过 UNIX_TIMESTAMP / FROM_UNIXTIME 与游标中的 Unix 秒互转。
    连接池开启 autocommit，保证每次轮询都能读到最新提交的数据。
    """

    def __init__(
        self,
        connection: MySQLConnection,
        table: TableConfig,
        pool: Optional[aiomysql.Pool] = None
    ):
        """
        初始化 MySQL 源表

        参数:
            connection: 连接配置
            table: 源表结构配置
            pool: 已有连接池（可选）
        """
        super().__init__(table)
        self.conn_config = connection
        self._pool = pool
        if pool is not None:
            self._connected = True

    async def connect(self) -> None:
        """建立 MySQL 连接池"""
        if self._pool is not None:
            return
        try:
            self._pool = await aiomysql.create_pool(
                host=self.conn_config.host,
                port=self.conn_config.port,
                user=self.conn_config.username,
                password=self.conn_config.password,
                db=self.conn_config.database,
                charset=self.conn_config.charset,
                minsize=1,
                maxsize=self.conn_config.pool_size,
                autocommit=True,
            )
            self._connected = True
            logger.info(
                "mysql_source_connected",
                host=self.conn_config.host,
                database=self.conn_config.database,
                table=self.table.name
            )
        except Exception as e:
            logger.error("mysql_source_connect_failed", error=str(e))
            raise

    async def disconnect(self) -> None:
        """关闭连接池"""
        if self._pool:
            self._pool.close()
            await self._pool.wait_closed()
            self._pool = None
        self._connected = False
        logger.info("mysql_source_disconnected")

    async def _fetch(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        if not self._pool:
            raise RuntimeError("MySQL 源未连接")

        async with self._pool.acquire() as conn:
            async with conn.cursor(aiomysql.DictCursor) as cursor:
                await cursor.execute(sql, tuple(params))
                return list(await cursor.fetchall())

    def _select_columns(self) -> str:
        """SELECT 列表：原始列 + 三个时间列的 Unix 秒"""
        t = self.table
        return (
            f"*, UNIX_TIMESTAMP(`{t.create_column}`) AS `{_CREATE_TS}`, "
            f"UNIX_TIMESTAMP(`{t.update_column}`) AS `{_UPDATE_TS}`, "
            f"UNIX_TIMESTAMP(`{t.delete_column}`) AS `{_DELETE_TS}`"
        )

    async def max_key(self) -> int:
        """当前最大主键"""
        pk = self.table.primary_key
        rows = await self._fetch(
            f"SELECT COALESCE(MAX(`{pk}`), 0) AS max_key FROM `{self.table.name}`"
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
        rows = await self._fetch(f"""
            SELECT {self._select_columns()} FROM `{self.table.name}`
            WHERE `{pk}` > %s AND `{pk}` <= %s
            ORDER BY `{pk}`
            LIMIT %s
        """, (start_id, end_id, limit))
        return [self._row_to_record(row) for row in rows]

    async def latest_mutation(
        self,
        column: TimestampColumn
    ) -> Optional[Tuple[float, int]]:
        """指定时间列上最新的 (时间戳, 主键)"""
        pk = self.table.primary_key
        col = self.column_name(column)
        rows = await self._fetch(f"""
            SELECT `{pk}` AS pk, UNIX_TIMESTAMP(`{col}`) AS ts FROM `{self.table.name}`
            WHERE `{col}` IS NOT NULL
            ORDER BY `{col}` DESC, `{pk}` DESC
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
        start_ts = _unix_param(start.timestamp)
        rows = await self._fetch(f"""
            SELECT {self._select_columns()} FROM `{self.table.name}`
            WHERE (`{col}` = FROM_UNIXTIME(%s) AND `{pk}` > %s)
               OR (`{col}` > FROM_UNIXTIME(%s) AND `{col}` <= FROM_UNIXTIME(%s))
            ORDER BY `{col}`, `{pk}`
            LIMIT %s
        """, (start_ts, start.id, start_ts, _unix_param(end_timestamp), limit))
        return [self._row_to_record(row) for row in rows]

    def _row_to_record(self, row: Dict[str, Any]) -> SourceRecord:
        """将 DictCursor 行转换为 SourceRecord"""
        return self._build_record(
            row,
            (row.get(_CREATE_TS), row.get(_UPDATE_TS), row.get(_DELETE_TS)),
            skip_keys=(_CREATE_TS, _UPDATE_TS, _DELETE_TS),
        )
