"""
MySQL 游标存储实现
"""

from typing import Any, Dict, Optional

import aiomysql

from es_stacker.models.sync_config import MySQLConnection
from es_stacker.storage.base import BaseCursorStore, decode_cursor, encode_cursor
from es_stacker.utils.logging import get_logger

logger = get_logger(__name__)


class MySQLCursorStore(BaseCursorStore):
    """
    MySQL 游标存储

    每个同步流一行，使用 INSERT ... ON DUPLICATE KEY UPDATE 写入，
    表在首次连接时创建。
    """

    def __init__(
        self,
        connection: MySQLConnection,
        table_name: str = "stacker_cursor",
        pool: Optional[aiomysql.Pool] = None
    ):
        """
        初始化 MySQL 游标存储

        参数:
            connection: 连接配置
            table_name: 游标表名
            pool: 已有连接池（可选）
        """
        self.conn_config = connection
        self.table_name = table_name
        self._pool = pool

    async def connect(self) -> None:
        """建立连接池并确保表存在"""
        if self._pool is None:
            self._pool = await aiomysql.create_pool(
                host=self.conn_config.host,
                port=self.conn_config.port,
                user=self.conn_config.username,
                password=self.conn_config.password,
                db=self.conn_config.database,
                charset=self.conn_config.charset,
                minsize=1,
                maxsize=self.conn_config.pool_size,
                autocommit=False,
            )
            logger.info(
                "mysql_cursor_store_connected",
                host=self.conn_config.host,
                table=self.table_name
            )
        await self._ensure_table()

    async def close(self) -> None:
        """关闭连接池"""
        if self._pool:
            self._pool.close()
            await self._pool.wait_closed()
            self._pool = None

    async def _ensure_table(self) -> None:
        """确保游标表存在"""
        if not self._pool:
            raise RuntimeError("MySQL 游标存储未连接")

        async with self._pool.acquire() as conn:
            async with conn.cursor() as cursor:
                await cursor.execute(f"""
                    CREATE TABLE IF NOT EXISTS `{self.table_name}` (
                        agent VARCHAR(191) NOT NULL PRIMARY KEY,
                        position TEXT NOT NULL,
                        updated_at TIMESTAMP(6) NOT NULL
                            DEFAULT CURRENT_TIMESTAMP(6) ON UPDATE CURRENT_TIMESTAMP(6)
                    )
                """)
            await conn.commit()

    async def get(self, agent_id: str) -> Optional[Dict[str, Any]]:
        """读取游标"""
        if not self._pool:
            raise RuntimeError("MySQL 游标存储未连接")

        async with self._pool.acquire() as conn:
            async with conn.cursor() as cursor:
                await cursor.execute(
                    f"SELECT position FROM `{self.table_name}` WHERE agent = %s",
                    (agent_id,)
                )
                row = await cursor.fetchone()
            await conn.commit()

        if not row:
            return None
        return decode_cursor(agent_id, row[0])

    async def set(self, agent_id: str, value: Dict[str, Any]) -> bool:
        """保存游标"""
        if not self._pool:
            raise RuntimeError("MySQL 游标存储未连接")

        async with self._pool.acquire() as conn:
            async with conn.cursor() as cursor:
                await cursor.execute(
                    f"INSERT INTO `{self.table_name}` (agent, position) VALUES (%s, %s) "
                    f"ON DUPLICATE KEY UPDATE position = VALUES(position)",
                    (agent_id, encode_cursor(value))
                )
            await conn.commit()
        return True
