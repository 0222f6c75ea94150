"""
变更读取策略抽象基类
"""

from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional, Sequence, Type

from pydantic import BaseModel, ValidationError

from es_stacker.exceptions import CursorStoreError
from es_stacker.models.document import Document
from es_stacker.sources.base import BaseSourceTable


class SourceReader(ABC):
    """
    变更读取策略

    给定游标窗口 (current, latest]，从源表读取有序的变更文档，
    并从一批文档推导出新的游标。引擎只依赖此接口，不感知具体策略。
    """

    #: 策略使用的游标类型
    cursor_type: Type[BaseModel]

    def __init__(
        self,
        table: BaseSourceTable,
        index: str,
        chunk_limit: int = 1000,
        id_prefix: str = "id_"
    ):
        """
        初始化读取策略

        参数:
            table: 源表适配器
            index: 目标索引名
            chunk_limit: 每个分块的最大记录数
            id_prefix: 文档 ID 前缀，避免与共享同一索引的其他流冲突
        """
        if chunk_limit < 1:
            raise ValueError("chunk_limit 必须大于 0")
        self.table = table
        self.index = index
        self.chunk_limit = chunk_limit
        self.id_prefix = id_prefix

    @abstractmethod
    async def get_latest(self) -> Any:
        """源端当前的最新位置"""
        raise NotImplementedError

    @abstractmethod
    async def get_items(self, start: Any, end: Any) -> List[Document]:
        """
        读取游标窗口内的变更文档

        参数:
            start: 当前游标（不含）
            end: 源端最新位置

        返回:
            按策略顺序排列、最多 chunk_limit 条的文档
        """
        raise NotImplementedError

    def cursor_from_items(self, items: Sequence[Document]) -> Optional[Any]:
        """本批最后一条文档的位置，空批返回 None"""
        if not items:
            return None
        return items[-1].cursor

    async def before_bulk(self, items: Sequence[Document]) -> None:
        """批量写入前的附加动作（默认无）"""
        return None

    def zero_cursor(self) -> Any:
        """游标初始值"""
        return self.cursor_type()

    def parse_cursor(self, raw: Optional[Mapping[str, Any]]) -> Any:
        """
        从游标存储的内容构造游标

        缺失的字段取初始值；存储中没有记录时返回初始游标。

        异常:
            CursorStoreError: 存储内容与游标结构不符
        """
        if raw is None:
            return self.zero_cursor()
        try:
            return self.cursor_type.model_validate(dict(raw))
        except ValidationError as e:
            raise CursorStoreError(f"游标内容无效: {dict(raw)} ({e})")

    def document_id(self, pk: int) -> str:
        """带命名空间前缀的文档 ID"""
        return f"{self.id_prefix}{pk}"
