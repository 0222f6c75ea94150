"""
测试配置和共享工具 (unittest 兼容)
"""

import sqlite3
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

from es_stacker.core.listeners import EngineListener
from es_stacker.models.sync_config import TableConfig
from es_stacker.sources.sqlite_table import SQLiteSourceTable

# 测试基准时间（2023-11-14T22:13:20Z）
BASE_TS = 1_700_000_000.0


# ============================================================================
# SQLite 源表工具
# ============================================================================

def create_posts_table(conn: sqlite3.Connection, name: str = "posts") -> None:
    """创建带三个 REAL 时间列的测试表"""
    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS "{name}" (
            id INTEGER PRIMARY KEY,
            title TEXT,
            createAt REAL NOT NULL,
            updateAt REAL,
            deleteAt REAL
        )
    """)
    conn.commit()


def insert_rows(
    conn: sqlite3.Connection,
    rows: Iterable[Tuple[int, float, Optional[float], Optional[float]]],
    name: str = "posts"
) -> None:
    """插入 (id, createAt, updateAt, deleteAt) 行，标题为 post-{id}"""
    conn.executemany(
        f'INSERT INTO "{name}" (id, title, createAt, updateAt, deleteAt) '
        f"VALUES (?, ?, ?, ?, ?)",
        [(pk, f"post-{pk}", c, u, d) for pk, c, u, d in rows]
    )
    conn.commit()


def create_memory_source(
    rows: Iterable[Tuple[int, float, Optional[float], Optional[float]]] = ()
) -> Tuple[sqlite3.Connection, SQLiteSourceTable]:
    """创建内存中的 SQLite 源表适配器（已连接）"""
    conn = sqlite3.connect(":memory:")
    create_posts_table(conn)
    insert_rows(conn, rows)
    table = SQLiteSourceTable(":memory:", TableConfig(name="posts"), conn=conn)
    return conn, table


def create_temp_db_path() -> Path:
    """创建临时数据库文件路径（调用方负责删除）"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        return Path(f.name)


# ============================================================================
# Elasticsearch 模拟客户端
# ============================================================================

class FakeSearchClient:
    """
    内存中的 AsyncElasticsearch 替身

    实现 bulk 的 external_gte 版本语义：新版本小于已存版本时返回 409
    version_conflict_engine_exception，不修改已存文档。
    """

    def __init__(self, index_exists: bool = True):
        self.index_exists = index_exists
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.versions: Dict[str, int] = {}
        self.bulk_calls: List[List[Dict[str, Any]]] = []
        self.update_by_query_calls: List[Dict[str, Any]] = []
        self.delete_by_query_calls: List[Dict[str, Any]] = []
        self.hard_errors: Dict[str, Tuple[int, str]] = {}
        self.raise_on_bulk: Optional[Exception] = None
        self.closed = False

    async def bulk(self, operations: List[Dict[str, Any]], refresh: Any = None) -> Dict[str, Any]:
        self.bulk_calls.append(list(operations))
        if self.raise_on_bulk is not None:
            raise self.raise_on_bulk

        items = []
        position = 0
        while position < len(operations):
            action = operations[position]
            position += 1
            (operation, meta), = action.items()
            source = None
            if operation == "index":
                source = operations[position]
                position += 1
            items.append({operation: self._apply(operation, meta, source)})

        errors = any("error" in result for item in items for result in item.values())
        return {"took": 1, "errors": errors, "items": items}

    def _apply(
        self,
        operation: str,
        meta: Dict[str, Any],
        source: Optional[Dict[str, Any]]
    ) -> Dict[str, Any]:
        doc_id = meta["_id"]
        result: Dict[str, Any] = {"_index": meta["_index"], "_id": doc_id}

        if not self.index_exists:
            result.update(status=404, error={
                "type": "index_not_found_exception",
                "reason": f"no such index [{meta['_index']}]",
            })
            return result

        if doc_id in self.hard_errors:
            status, error_type = self.hard_errors[doc_id]
            result.update(status=status, error={"type": error_type, "reason": "rejected"})
            return result

        if operation == "delete":
            if doc_id in self.documents:
                del self.documents[doc_id]
                self.versions.pop(doc_id, None)
                result.update(status=200, result="deleted")
            else:
                result.update(status=404, result="not_found")
            return result

        version = meta["version"]
        stored = self.versions.get(doc_id)
        if stored is not None and version < stored:
            result.update(status=409, error={
                "type": "version_conflict_engine_exception",
                "reason": f"[{doc_id}]: version conflict, current version "
                          f"[{stored}] is higher than the one provided [{version}]",
            })
            return result

        created = doc_id not in self.documents
        self.documents[doc_id] = dict(source or {})
        self.versions[doc_id] = version
        result.update(status=201 if created else 200, _version=version,
                      result="created" if created else "updated")
        return result

    async def update_by_query(self, **kwargs: Any) -> Dict[str, Any]:
        self.update_by_query_calls.append(kwargs)
        return {"updated": 0}

    async def delete_by_query(self, **kwargs: Any) -> Dict[str, Any]:
        self.delete_by_query_calls.append(kwargs)
        return {"deleted": 0}

    async def ping(self) -> bool:
        return not self.closed

    async def close(self) -> None:
        self.closed = True


# ============================================================================
# 监听器与游标存储
# ============================================================================

class RecordingListener(EngineListener):
    """按顺序记录收到的事件"""

    def __init__(self):
        self.events: List[Tuple[str, Any]] = []

    def of(self, name: str) -> List[Any]:
        return [payload for event, payload in self.events if event == name]

    def on_startup(self, cursor):
        self.events.append(("startup", cursor))

    def on_executed_chunk(self, chunk):
        self.events.append(("executed_chunk", chunk))

    def on_skipped_chunk(self, reason):
        self.events.append(("skipped_chunk", reason))

    def on_bulk_error(self, report):
        self.events.append(("bulk_error", report))

    def on_bulk_error_ignored(self, report):
        self.events.append(("bulk_error_ignored", report))

    def on_uncaught_error(self, error, cursor):
        self.events.append(("uncaught_error", (error, cursor)))


class MemoryCursorStore:
    """内存游标存储，记录每次写入"""

    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None):
        self.data: Dict[str, Dict[str, Any]] = dict(initial or {})
        self.set_calls: List[Tuple[str, Dict[str, Any]]] = []
        self.closed = False

    async def get(self, agent_id: str) -> Optional[Dict[str, Any]]:
        return self.data.get(agent_id)

    async def set(self, agent_id: str, value: Dict[str, Any]) -> bool:
        self.set_calls.append((agent_id, dict(value)))
        self.data[agent_id] = dict(value)
        return True

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        self.closed = True


# ============================================================================
# 配置工厂函数
# ============================================================================

def create_test_config_dict(db_path: Path, cursor_db: Path) -> Dict[str, Any]:
    """返回测试配置字典"""
    return {
        "agent_id": "posts-test",
        "strategy": "timestamp",
        "index": "posts",
        "chunk_limit": 100,
        "chunk_delay_ms": 10,
        "source": {
            "type": "sqlite",
            "db_path": str(db_path),
            "table": {"name": "posts"},
        },
        "cursor_store": {
            "type": "sqlite",
            "db_path": str(cursor_db),
        },
        "log_level": "DEBUG",
    }


def create_test_config_yaml(db_path: Path, cursor_db: Path, strategy: str = "timestamp") -> str:
    """返回测试配置 YAML 字符串"""
    return f"""
agent_id: "posts-test"
strategy: "{strategy}"
index: "posts"
chunk_limit: 100
source:
  type: "sqlite"
  db_path: "{db_path}"
  table:
    name: "posts"
cursor_store:
  type: "sqlite"
  db_path: "{cursor_db}"
log_level: "DEBUG"
"""


# ============================================================================
# aiomysql 连接池模拟
# ============================================================================

class AsyncContext:
    """把对象包装为 async with 上下文"""

    def __init__(self, value: Any):
        self.value = value

    async def __aenter__(self) -> Any:
        return self.value

    async def __aexit__(self, *exc: Any) -> bool:
        return False


def create_mock_pool(fetch_results: Optional[List[Any]] = None) -> Tuple[Any, Any, Any]:
    """
    创建模拟的 aiomysql 连接池

    返回:
        (pool, conn, cursor)；cursor.fetchall 依次返回 fetch_results 中的值
    """
    cursor = MagicMock()
    cursor.execute = AsyncMock()
    cursor.fetchone = AsyncMock(return_value=None)
    cursor.fetchall = AsyncMock(side_effect=list(fetch_results or []))

    conn = MagicMock()
    conn.cursor = MagicMock(side_effect=lambda *args: AsyncContext(cursor))
    conn.commit = AsyncMock()

    pool = MagicMock()
    pool.acquire = MagicMock(side_effect=lambda: AsyncContext(conn))
    pool.wait_closed = AsyncMock()
    return pool, conn, cursor
