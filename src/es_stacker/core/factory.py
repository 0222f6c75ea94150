"""
组件装配 - 根据配置创建源表、读取策略、写入器和游标存储
"""

from typing import Optional, Sequence, Union

from elasticsearch import AsyncElasticsearch

from es_stacker.core.engine import SyncEngine
from es_stacker.core.listeners import EngineListener, LoggingListener
from es_stacker.models.sync_config import (
    MySQLCursorStoreConfig,
    MySQLSourceConfig,
    RedisCursorStoreConfig,
    SQLiteCursorStoreConfig,
    SQLiteSourceConfig,
    StrategyType,
    SyncConfig,
)
from es_stacker.readers.base import SourceReader
from es_stacker.readers.key_reader import KeyReader
from es_stacker.readers.timestamp_reader import TimestampReader
from es_stacker.sources.base import BaseSourceTable
from es_stacker.sources.mysql_table import MySQLSourceTable
from es_stacker.sources.sqlite_table import SQLiteSourceTable
from es_stacker.storage.base import BaseCursorStore
from es_stacker.storage.mysql_store import MySQLCursorStore
from es_stacker.storage.redis_store import RedisCursorStore
from es_stacker.storage.sqlite_store import SQLiteCursorStore
from es_stacker.targets.cleanup import DeletedDocumentCleaner
from es_stacker.targets.elasticsearch_writer import ElasticsearchWriter, create_search_client
from es_stacker.utils.logging import get_logger

logger = get_logger(__name__)


def create_source_table(
    config: Union[SQLiteSourceConfig, MySQLSourceConfig]
) -> BaseSourceTable:
    """根据源配置创建源表适配器（未连接）"""
    if config.type == "sqlite":
        return SQLiteSourceTable(config.db_path, config.table)
    elif config.type == "mysql":
        return MySQLSourceTable(config.connection, config.table)
    raise ValueError(f"不支持的源类型: {config.type}")


def create_cursor_store(
    config: Union[SQLiteCursorStoreConfig, MySQLCursorStoreConfig, RedisCursorStoreConfig]
) -> BaseCursorStore:
    """根据存储配置创建游标存储（未连接）"""
    if config.type == "sqlite":
        return SQLiteCursorStore(config.db_path)
    elif config.type == "mysql":
        return MySQLCursorStore(config.connection, table_name=config.table_name)
    elif config.type == "redis":
        return RedisCursorStore.from_config(config)
    raise ValueError(f"不支持的游标存储类型: {config.type}")


def create_reader(
    config: SyncConfig,
    table: BaseSourceTable,
    client: Optional[AsyncElasticsearch] = None
) -> SourceReader:
    """
    根据策略创建读取器

    参数:
        config: 同步配置
        table: 源表适配器
        client: 启用删除清理时使用的 Elasticsearch 客户端

    返回:
        SourceReader: KeyReader 或 TimestampReader
    """
    if config.strategy == StrategyType.KEY:
        return KeyReader(
            table,
            config.index,
            chunk_limit=config.chunk_limit,
            id_prefix=config.id_prefix
        )

    cleaner = None
    if config.cleanup.is_enabled():
        if client is None:
            raise ValueError("启用 cleanup 时必须提供 Elasticsearch 客户端")
        cleaner = DeletedDocumentCleaner(client, config.index, config.cleanup)

    return TimestampReader(
        table,
        config.index,
        chunk_limit=config.chunk_limit,
        id_prefix=config.id_prefix,
        cleaner=cleaner
    )


async def build_engine(
    config: SyncConfig,
    listeners: Optional[Sequence[EngineListener]] = None
) -> SyncEngine:
    """
    按配置装配并连接一个同步引擎

    参数:
        config: 同步配置
        listeners: 事件监听器，默认只输出结构化日志

    返回:
        SyncEngine: 已连接源表和游标存储的引擎，调用方负责 close()

    示例:
        ```python
        engine = await build_engine(load_config("stacker.yaml"))
        try:
            await engine.run()
        finally:
            await engine.close()
        ```
    """
    table = create_source_table(config.source)
    store = create_cursor_store(config.cursor_store)
    client = create_search_client(config.elasticsearch)

    try:
        await table.connect()
        await store.connect()
    except Exception:
        await table.disconnect()
        await client.close()
        await store.close()
        raise

    reader = create_reader(config, table, client)
    writer = ElasticsearchWriter(client)

    if listeners is None:
        listeners = [LoggingListener(config.agent_id)]

    logger.info(
        "sync_engine_built",
        agent=config.agent_id,
        strategy=config.strategy.value,
        source=config.source.type,
        cursor_store=config.cursor_store.type,
        index=config.index
    )

    return SyncEngine(
        agent_id=config.agent_id,
        reader=reader,
        writer=writer,
        cursor_store=store,
        chunk_delay_ms=config.chunk_delay_ms,
        listeners=listeners
    )
