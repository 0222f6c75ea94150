"""
索引文档模型 - 写入 Elasticsearch 的批量动作单元
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from es_stacker.models.cursor import KeyCursor, TimestampCursor

VERSION_TYPE_EXTERNAL_GTE = "external_gte"


class UpsertDocument(BaseModel):
    """
    带外部版本号的写入文档

    属性:
        cursor: 该记录在同步流中的位置
        index: 目标索引名
        id: 文档 ID（带命名空间前缀）
        version: 外部版本号，由记录自身的变更时间推导
        version_type: 版本类型，默认 external_gte
        source: 文档内容
    """
    type: Literal["upsert"] = "upsert"
    cursor: Union[KeyCursor, TimestampCursor] = Field(..., description="记录位置")
    index: str = Field(..., min_length=1, description="目标索引")
    id: str = Field(..., min_length=1, description="文档 ID")
    version: int = Field(..., ge=0, description="外部版本号")
    version_type: Literal["external", "external_gte"] = Field(
        default=VERSION_TYPE_EXTERNAL_GTE,
        description="版本类型"
    )
    source: Dict[str, Any] = Field(default_factory=dict, description="文档内容")


class DeleteDocument(BaseModel):
    """
    删除文档

    属性:
        cursor: 该记录在同步流中的位置
        index: 目标索引名
        id: 文档 ID
    """
    type: Literal["delete"] = "delete"
    cursor: Union[KeyCursor, TimestampCursor] = Field(..., description="记录位置")
    index: str = Field(..., min_length=1, description="目标索引")
    id: str = Field(..., min_length=1, description="文档 ID")


Document = Annotated[
    Union[UpsertDocument, DeleteDocument],
    Field(discriminator="type")
]


class BulkOutcome(str, Enum):
    """批量写入结果分类"""
    ALL_ACCEPTED = "all_accepted"
    PARTIALLY_IGNORABLE = "partially_ignorable"
    FAILED = "failed"


class BulkItemFailure(BaseModel):
    """单个动作的失败信息"""
    operation: str = Field(..., description="动作类型 (index/delete/...)")
    id: Optional[str] = Field(default=None, description="文档 ID")
    status: Optional[int] = Field(default=None, description="HTTP 状态码")
    error_type: Optional[str] = Field(default=None, description="错误类型")
    reason: Optional[str] = Field(default=None, description="错误原因")
    ignorable: bool = Field(default=False, description="是否可忽略")


class BulkReport(BaseModel):
    """
    批量写入报告

    属性:
        outcome: 结果分类
        failures: 失败动作列表（含可忽略的）
        response: 原始响应体
    """
    outcome: BulkOutcome = Field(..., description="结果分类")
    failures: List[BulkItemFailure] = Field(default_factory=list, description="失败动作")
    response: Optional[Dict[str, Any]] = Field(default=None, description="原始响应")

    def is_delivered(self) -> bool:
        """批次是否视为已送达（游标可推进）"""
        return self.outcome != BulkOutcome.FAILED

    def hard_failures(self) -> List[BulkItemFailure]:
        """不可忽略的失败"""
        return [f for f in self.failures if not f.ignorable]


class ChunkResult(BaseModel):
    """
    单次分块执行结果快照

    仅用于事件上报，不会被持久化。
    """
    model_config = ConfigDict(frozen=True)

    current: Union[KeyCursor, TimestampCursor] = Field(..., description="执行前游标")
    latest: Union[KeyCursor, TimestampCursor] = Field(..., description="源端最新位置")
    latest_from_items: Union[KeyCursor, TimestampCursor] = Field(
        ..., description="本批最后一条记录的位置"
    )
    items: List[Document] = Field(default_factory=list, description="本批文档")
    outcome: BulkOutcome = Field(..., description="写入结果")

    def __len__(self) -> int:
        """返回文档数量"""
        return len(self.items)
