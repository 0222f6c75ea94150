"""
同步引擎 - 核心协调器
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

from es_stacker.core.listeners import EngineListener
from es_stacker.models.cursor import cursor_to_dict, serialize_cursor
from es_stacker.models.document import BulkOutcome, ChunkResult
from es_stacker.models.status import SyncState, SyncStatus
from es_stacker.readers.base import SourceReader
from es_stacker.storage.base import BaseCursorStore
from es_stacker.targets.base import BaseTargetWriter
from es_stacker.utils.logging import get_logger

logger = get_logger(__name__)

SKIP_CURSOR_NOT_CHANGED = "cursor is not changed"
SKIP_NOT_FOUND_ITEMS = "not found items"


class SyncEngine:
    """
    同步引擎 - 分块轮询循环

    每次迭代：
    - 读取源端最新位置，与内存游标序列化结果相同则跳过
    - 读取窗口 (current, latest] 内最多 chunk_limit 条文档
    - 批量写入，全部成功或只有可忽略失败时推进并持久化游标
    - 等待分块间隔后进入下一次迭代

    任何异常都在迭代边界被捕获并上报，循环继续，直到调用 stop()。
    """

    def __init__(
        self,
        agent_id: str,
        reader: SourceReader,
        writer: BaseTargetWriter,
        cursor_store: BaseCursorStore,
        chunk_delay_ms: int = 100,
        listeners: Optional[Sequence[EngineListener]] = None
    ):
        """
        初始化同步引擎

        参数:
            agent_id: 同步流标识（游标存储的键）
            reader: 变更读取策略
            writer: 目标写入器
            cursor_store: 游标存储
            chunk_delay_ms: 分块间隔（毫秒），也是出错后的重试间隔
            listeners: 事件监听器
        """
        if chunk_delay_ms < 0:
            raise ValueError("chunk_delay_ms 不能为负数")

        self.agent_id = agent_id
        self.reader = reader
        self.writer = writer
        self.cursor_store = cursor_store
        self.chunk_delay_ms = chunk_delay_ms
        self._listeners: List[EngineListener] = list(listeners or [])

        self.status = SyncStatus(agent_id=agent_id)
        self._cursor: Optional[Any] = None
        self._running = False
        self._stop_event = asyncio.Event()

    @property
    def cursor(self) -> Optional[Any]:
        """当前内存游标（加载前为 None）"""
        return self._cursor

    def add_listener(self, listener: EngineListener) -> None:
        """添加事件监听器"""
        self._listeners.append(listener)

    def is_running(self) -> bool:
        """检查是否运行中"""
        return self._running

    async def run(self) -> None:
        """
        运行同步循环

        直到 stop() 被调用才返回；正在执行的分块会先完成。
        """
        if self._running:
            raise RuntimeError("同步引擎已在运行")

        self._running = True
        self._stop_event.clear()
        self.status.state = SyncState.RUNNING
        self.status.started_at = datetime.now(timezone.utc)

        logger.info(
            "sync_engine_start",
            agent=self.agent_id,
            reader=type(self.reader).__name__,
            chunk_limit=self.reader.chunk_limit,
            chunk_delay_ms=self.chunk_delay_ms
        )

        try:
            while not self._stop_event.is_set():
                try:
                    await self.exec_chunk()
                except Exception as e:
                    self.status.record_error(f"{type(e).__name__}: {e}")
                    self._emit("on_uncaught_error", e, self._cursor)

                await self._delay()
        finally:
            self._running = False
            self.status.state = SyncState.STOPPED
            logger.info(
                "sync_engine_stopped",
                agent=self.agent_id,
                executed_chunks=self.status.executed_chunks,
                total_documents=self.status.total_documents,
                documents_per_second=round(self.status.documents_per_second(), 2)
            )

    def stop(self) -> None:
        """请求停止；等待中的分块间隔会立即结束"""
        if not self._stop_event.is_set():
            logger.info("sync_engine_stopping", agent=self.agent_id)
        self._stop_event.set()

    async def close(self) -> None:
        """释放源表、写入器和游标存储的连接"""
        if self.reader.table.is_connected():
            await self.reader.table.disconnect()
        await self.writer.close()
        await self.cursor_store.close()

    async def load_cursor(self) -> Any:
        """
        从游标存储加载游标到内存

        不存在时使用策略的初始游标，加载时不回写存储。
        """
        raw = await self.cursor_store.get(self.agent_id)
        self._cursor = self.reader.parse_cursor(raw)
        self.status.cursor = cursor_to_dict(self._cursor)
        self._emit("on_startup", self._cursor)
        return self._cursor

    async def exec_chunk(self) -> Optional[ChunkResult]:
        """
        执行一个分块

        返回:
            写入后的 ChunkResult；跳过时返回 None
        """
        if self._cursor is None:
            await self.load_cursor()

        current = self._cursor
        latest = await self.reader.get_latest()

        if serialize_cursor(latest) == serialize_cursor(current):
            self._skip(SKIP_CURSOR_NOT_CHANGED)
            return None

        items = await self.reader.get_items(current, latest)
        if not items:
            self._skip(SKIP_NOT_FOUND_ITEMS)
            return None

        latest_from_items = self.reader.cursor_from_items(items)
        await self.reader.before_bulk(items)
        report = await self.writer.write(items)

        chunk = ChunkResult(
            current=current,
            latest=latest,
            latest_from_items=latest_from_items,
            items=list(items),
            outcome=report.outcome,
        )

        if not report.is_delivered():
            self.status.failed_chunks += 1
            self._emit("on_bulk_error", report)
            return chunk

        if report.outcome == BulkOutcome.PARTIALLY_IGNORABLE:
            self._emit("on_bulk_error_ignored", report)

        await self._advance(latest_from_items)
        self.status.record_chunk(len(items))
        self._emit("on_executed_chunk", chunk)
        return chunk

    async def _advance(self, cursor: Any) -> None:
        """推进内存游标并立即持久化"""
        if serialize_cursor(cursor) == serialize_cursor(self._cursor):
            return

        self._cursor = cursor
        self.status.cursor = cursor_to_dict(cursor)
        if not await self.cursor_store.set(self.agent_id, cursor_to_dict(cursor)):
            logger.warning(
                "cursor_store_rejected",
                agent=self.agent_id,
                cursor=cursor_to_dict(cursor)
            )

    def _skip(self, reason: str) -> None:
        self.status.skipped_chunks += 1
        self._emit("on_skipped_chunk", reason)

    async def _delay(self) -> None:
        """分块间隔；stop() 会提前唤醒"""
        try:
            await asyncio.wait_for(
                self._stop_event.wait(),
                timeout=self.chunk_delay_ms / 1000.0
            )
        except asyncio.TimeoutError:
            pass

    def _emit(self, method: str, *args: Any) -> None:
        """同步调用所有监听器，监听器异常只记录日志"""
        for listener in self._listeners:
            try:
                getattr(listener, method)(*args)
            except Exception as e:
                logger.error(
                    "listener_failed",
                    listener=type(listener).__name__,
                    callback=method,
                    error=str(e)
                )
