"""
游标持久化存储 - 使用 SQLite 本地存储
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from es_stacker.storage.base import BaseCursorStore, decode_cursor, encode_cursor


class SQLiteCursorStore(BaseCursorStore):
    """
    本地 SQLite 游标存储

    每次操作打开新连接，适合单进程运行的同步流。
    """

    def __init__(self, db_path: Union[str, Path] = "cursors.db"):
        """
        初始化游标存储

        参数:
            db_path: 存储数据库路径，默认 cursors.db
        """
        self.db_path = Path(db_path)
        self._ensure_tables()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """获取数据库连接，退出时提交并关闭"""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _ensure_tables(self) -> None:
        """确保表结构存在"""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sync_cursors (
                    agent_id TEXT PRIMARY KEY,
                    cursor TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

    async def get(self, agent_id: str) -> Optional[Dict[str, Any]]:
        """读取游标"""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT cursor FROM sync_cursors WHERE agent_id = ?",
                (agent_id,)
            ).fetchone()

        if row is None:
            return None
        return decode_cursor(agent_id, row["cursor"])

    async def set(self, agent_id: str, value: Dict[str, Any]) -> bool:
        """保存游标（不存在时创建）"""
        with self._get_connection() as conn:
            cursor = conn.execute("""
                INSERT INTO sync_cursors (agent_id, cursor, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(agent_id) DO UPDATE SET
                    cursor = excluded.cursor,
                    updated_at = excluded.updated_at
            """, (
                agent_id,
                encode_cursor(value),
                datetime.now(timezone.utc).isoformat()
            ))
            return cursor.rowcount > 0

    def list_agents(self) -> List[Dict[str, Any]]:
        """列出所有同步流及其游标"""
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT agent_id, cursor, updated_at
                FROM sync_cursors
                ORDER BY agent_id
            """).fetchall()

        return [
            {
                "agent_id": row["agent_id"],
                "cursor": decode_cursor(row["agent_id"], row["cursor"]),
                "updated_at": row["updated_at"],
            }
            for row in rows
        ]
