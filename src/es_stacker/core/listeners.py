"""
引擎事件监听器 - 引擎通过回调上报生命周期事件，自身不做日志 I/O
"""

from typing import Any, Optional

from es_stacker.models.document import BulkReport, ChunkResult
from es_stacker.utils.logging import get_logger

logger = get_logger(__name__)


class EngineListener:
    """
    引擎事件监听器基类

    所有回调默认不做任何事，子类只需覆盖关心的事件。
    回调在引擎协程内同步调用，不应执行阻塞 I/O。
    """

    def on_startup(self, cursor: Any) -> None:
        """游标加载完成，同步循环开始"""

    def on_executed_chunk(self, chunk: ChunkResult) -> None:
        """分块写入被接受，游标已推进"""

    def on_skipped_chunk(self, reason: str) -> None:
        """分块被跳过（游标未变化 / 没有读到记录）"""

    def on_bulk_error(self, report: BulkReport) -> None:
        """批量写入失败，游标未推进"""

    def on_bulk_error_ignored(self, report: BulkReport) -> None:
        """批量写入存在可忽略的失败，游标照常推进"""

    def on_uncaught_error(self, error: BaseException, cursor: Optional[Any]) -> None:
        """分块执行中出现未处理异常"""


class LoggingListener(EngineListener):
    """把引擎事件写入结构化日志"""

    def __init__(self, agent_id: str = ""):
        self.agent_id = agent_id
        self._logger = logger.bind(agent=agent_id) if agent_id else logger

    def on_startup(self, cursor: Any) -> None:
        self._logger.info("sync_startup", cursor=_dump(cursor))

    def on_executed_chunk(self, chunk: ChunkResult) -> None:
        self._logger.info(
            "chunk_executed",
            current=_dump(chunk.current),
            latest=_dump(chunk.latest),
            latest_from_items=_dump(chunk.latest_from_items),
            count=len(chunk),
            outcome=chunk.outcome.value
        )

    def on_skipped_chunk(self, reason: str) -> None:
        self._logger.debug("chunk_skipped", reason=reason)

    def on_bulk_error(self, report: BulkReport) -> None:
        hard = report.hard_failures()
        self._logger.error(
            "bulk_error",
            failures=len(report.failures),
            hard_failures=len(hard),
            first_error=hard[0].model_dump() if hard else None
        )

    def on_bulk_error_ignored(self, report: BulkReport) -> None:
        self._logger.warning(
            "bulk_error_ignored",
            failures=len(report.failures),
            error_types=sorted({f.error_type or "" for f in report.failures})
        )

    def on_uncaught_error(self, error: BaseException, cursor: Optional[Any]) -> None:
        self._logger.error(
            "uncaught_error",
            cursor=_dump(cursor),
            error=f"{type(error).__name__}: {error}"
        )


def _dump(cursor: Any) -> Any:
    if cursor is None:
        return None
    return cursor.model_dump() if hasattr(cursor, "model_dump") else cursor
