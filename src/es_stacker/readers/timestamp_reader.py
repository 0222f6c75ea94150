"""
时间戳读取策略 - 基于创建/更新/删除三个时间列检测变更
"""

from typing import List, Optional, Sequence, Tuple

from es_stacker.models.cursor import TimestampCursor
from es_stacker.models.document import DeleteDocument, Document, UpsertDocument
from es_stacker.models.record import SourceRecord, TimestampColumn
from es_stacker.readers.base import SourceReader
from es_stacker.sources.base import BaseSourceTable
from es_stacker.targets.cleanup import DeletedDocumentCleaner
from es_stacker.utils.converters import to_version
from es_stacker.utils.logging import get_logger

logger = get_logger(__name__)

# 三个时间列相互独立，任何一个都可能推进一行的可见位置
MUTATION_COLUMNS = (
    TimestampColumn.CREATE,
    TimestampColumn.UPDATE,
    TimestampColumn.DELETE,
)

_Entry = Tuple[float, int, SourceRecord]


class TimestampReader(SourceReader):
    """
    按 (时间戳, 主键) 检测新增、更新和软删除

    窗口边界条件:
        (col = start.timestamp AND id > start.id)
        OR (col > start.timestamp AND col <= end.timestamp)

    与游标时间戳相同的行只有在主键大于游标决胜主键时才会被读取，
    因此既不会重复发送已处理的行，也不会漏掉与边界同时间戳的未处理行。
    """

    cursor_type = TimestampCursor

    def __init__(
        self,
        table: BaseSourceTable,
        index: str,
        chunk_limit: int = 1000,
        id_prefix: str = "id_",
        cleaner: Optional[DeletedDocumentCleaner] = None
    ):
        """
        初始化时间戳读取策略

        参数:
            table: 源表适配器
            index: 目标索引名
            chunk_limit: 每个分块的最大记录数
            id_prefix: 文档 ID 前缀
            cleaner: 删除文档的附加清理器（可选）
        """
        super().__init__(table, index, chunk_limit=chunk_limit, id_prefix=id_prefix)
        self.cleaner = cleaner

    async def get_latest(self) -> TimestampCursor:
        """三个时间列中最新的 (时间戳, 主键)，同时间戳取主键最大者"""
        candidates = []
        for column in MUTATION_COLUMNS:
            latest = await self.table.latest_mutation(column)
            if latest is not None:
                candidates.append(latest)

        if not candidates:
            return self.zero_cursor()

        timestamp, pk = max(candidates)
        return TimestampCursor(timestamp=timestamp, id=pk)

    async def get_items(
        self,
        start: TimestampCursor,
        end: TimestampCursor
    ) -> List[Document]:
        """
        读取游标窗口内的变更文档

        三个时间列分别查询（各自最多 chunk_limit 行），按 (时间戳, 主键)
        归并排序后截断为 chunk_limit 行。同一行在本批中以多个时间列出现时，
        只保留排序最靠后的一次。
        """
        entries: List[_Entry] = []
        for column in MUTATION_COLUMNS:
            records = await self.table.fetch_mutations(
                column, start, end.timestamp, self.chunk_limit
            )
            for record in records:
                timestamp = record.timestamp_of(column)
                if timestamp is not None:
                    entries.append((timestamp, record.id, record))

        entries.sort(key=lambda entry: (entry[0], entry[1]))
        del entries[self.chunk_limit:]

        last_position = {pk: position for position, (_, pk, _) in enumerate(entries)}
        documents = [
            self._to_document(timestamp, record)
            for position, (timestamp, pk, record) in enumerate(entries)
            if last_position[pk] == position
        ]

        logger.debug(
            "timestamp_items_fetched",
            start=start.model_dump(),
            end=end.model_dump(),
            candidates=len(entries),
            count=len(documents)
        )
        return documents

    async def before_bulk(self, items: Sequence[Document]) -> None:
        """对删除文档执行附加清理（尽力而为，不影响批量写入结果）"""
        if self.cleaner is None:
            return

        deleted_ids = [item.id for item in items if isinstance(item, DeleteDocument)]
        if deleted_ids:
            await self.cleaner.clean(deleted_ids)

    def _to_document(self, timestamp: float, record: SourceRecord) -> Document:
        """
        构造文档

        删除时间为最新变更时生成删除文档，否则生成以最新变更时间为版本号的写入文档。
        """
        cursor = TimestampCursor(timestamp=timestamp, id=record.id)
        if record.is_deleted():
            return DeleteDocument(
                cursor=cursor,
                index=self.index,
                id=self.document_id(record.id),
            )

        return UpsertDocument(
            cursor=cursor,
            index=self.index,
            id=self.document_id(record.id),
            version=to_version(record.latest_mutation()),
            source=record.data,
        )
