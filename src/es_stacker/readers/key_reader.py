"""
自增主键读取策略
"""

from typing import List

from es_stacker.models.cursor import KeyCursor
from es_stacker.models.document import UpsertDocument
from es_stacker.models.record import SourceRecord
from es_stacker.readers.base import SourceReader
from es_stacker.utils.converters import to_version
from es_stacker.utils.logging import get_logger

logger = get_logger(__name__)


class KeyReader(SourceReader):
    """
    按自增主键检测新增行

    只能发现新插入的行；已同步行的后续更新不会再被读取。
    """

    cursor_type = KeyCursor

    async def get_latest(self) -> KeyCursor:
        """源表当前最大主键"""
        return KeyCursor(id=await self.table.max_key())

    async def get_items(self, start: KeyCursor, end: KeyCursor) -> List[UpsertDocument]:
        """
        读取主键区间 (start.id, end.id] 内的记录

        结果按主键升序并受 chunk_limit 截断，剩余的行在后续分块中读取。
        """
        records = await self.table.fetch_key_range(start.id, end.id, self.chunk_limit)
        logger.debug(
            "key_items_fetched",
            start=start.id,
            end=end.id,
            count=len(records)
        )
        return [self._to_document(record) for record in records]

    def _to_document(self, record: SourceRecord) -> UpsertDocument:
        """版本号取三个时间列中最新的一个"""
        return UpsertDocument(
            cursor=KeyCursor(id=record.id),
            index=self.index,
            id=self.document_id(record.id),
            version=to_version(record.latest_mutation()),
            source=record.data,
        )
