"""
源表适配器抽象基类
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from es_stacker.exceptions import SourceError
from es_stacker.models.cursor import TimestampCursor
from es_stacker.models.record import SourceRecord, TimestampColumn
from es_stacker.models.sync_config import TableConfig
from es_stacker.utils.converters import epoch_to_iso, to_epoch, to_jsonable


class BaseSourceTable(ABC):
    """
    源表适配器抽象基类

    封装各数据库方言的参数化查询，并在边界处把驱动返回的原始行
    映射为 SourceRecord。读取策略只依赖这里定义的查询接口。
    """

    def __init__(self, table: TableConfig):
        """
        初始化源表适配器

        参数:
            table: 源表结构配置
        """
        self.table = table
        self._connected = False

    @abstractmethod
    async def connect(self) -> None:
        """建立数据库连接"""
        raise NotImplementedError

    @abstractmethod
    async def disconnect(self) -> None:
        """断开数据库连接"""
        raise NotImplementedError

    @abstractmethod
    async def max_key(self) -> int:
        """当前最大主键，空表返回 0"""
        raise NotImplementedError

    @abstractmethod
    async def fetch_key_range(
        self,
        start_id: int,
        end_id: int,
        limit: int
    ) -> List[SourceRecord]:
        """
        读取主键区间 (start_id, end_id] 内的记录

        参数:
            start_id: 起始主键（不含）
            end_id: 结束主键（含）
            limit: 最大返回行数

        返回:
            按主键升序排列的记录
        """
        raise NotImplementedError

    @abstractmethod
    async def latest_mutation(
        self,
        column: TimestampColumn
    ) -> Optional[Tuple[float, int]]:
        """
        指定时间列上最新的 (时间戳, 主键)

        同一时间戳下取主键最大的一行；该列全为空时返回 None。
        """
        raise NotImplementedError

    @abstractmethod
    async def fetch_mutations(
        self,
        column: TimestampColumn,
        start: TimestampCursor,
        end_timestamp: float,
        limit: int
    ) -> List[SourceRecord]:
        """
        读取指定时间列在游标窗口内的记录

        条件:
            (col = start.timestamp AND pk > start.id)
            OR (col > start.timestamp AND col <= end_timestamp)

        返回:
            按 (col, pk) 升序排列的记录
        """
        raise NotImplementedError

    def is_connected(self) -> bool:
        """检查是否已连接"""
        return self._connected

    def column_name(self, column: TimestampColumn) -> str:
        """时间列对应的实际列名"""
        if column == TimestampColumn.CREATE:
            return self.table.create_column
        if column == TimestampColumn.UPDATE:
            return self.table.update_column
        return self.table.delete_column

    def _build_record(
        self,
        row: Dict[str, Any],
        timestamps: Tuple[Any, Any, Any],
        skip_keys: Tuple[str, ...] = ()
    ) -> SourceRecord:
        """
        将原始行映射为 SourceRecord

        参数:
            row: 驱动返回的行字典
            timestamps: (创建, 更新, 删除) 时间的原始值
            skip_keys: 不进入文档内容的辅助列

        返回:
            SourceRecord，文档内容中的时间列为 ISO-8601 字符串
        """
        pk = self.table.primary_key
        if row.get(pk) is None:
            raise SourceError(f"源表 {self.table.name} 的行缺少主键列 {pk}")

        create_at, update_at, delete_at = (to_epoch(value) for value in timestamps)
        if create_at is None:
            raise SourceError(
                f"源表 {self.table.name} 中 {pk}={row[pk]} 的 "
                f"{self.table.create_column} 为空"
            )

        data = {
            key: to_jsonable(value)
            for key, value in row.items()
            if key not in skip_keys
        }
        data[self.table.create_column] = epoch_to_iso(create_at)
        data[self.table.update_column] = epoch_to_iso(update_at)
        data[self.table.delete_column] = epoch_to_iso(delete_at)

        return SourceRecord(
            id=int(row[pk]),
            create_at=create_at,
            update_at=update_at,
            delete_at=delete_at,
            data=data,
        )
