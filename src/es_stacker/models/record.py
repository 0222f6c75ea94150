"""
源表记录模型 - 关系型数据库行的强类型映射
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator


class TimestampColumn(str, Enum):
    """源表中的三个变更时间列"""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SourceRecord(BaseModel):
    """
    源表中的一行记录

    在源表适配器边界处由原始行映射而来，之后引擎、读取器和写入器
    只与此对象打交道。

    属性:
        id: 主键值
        create_at: 创建时间（Unix 秒）
        update_at: 更新时间（Unix 秒，可为空）
        delete_at: 软删除时间（Unix 秒，可为空）
        data: 可直接序列化为 JSON 的文档内容
    """
    id: int = Field(..., ge=0, description="主键值")
    create_at: float = Field(..., description="创建时间")
    update_at: Optional[float] = Field(default=None, description="更新时间")
    delete_at: Optional[float] = Field(default=None, description="软删除时间")
    data: Dict[str, Any] = Field(default_factory=dict, description="文档内容")

    @model_validator(mode="after")
    def validate_timestamps(self) -> "SourceRecord":
        """时间戳不能为负"""
        for value in (self.create_at, self.update_at, self.delete_at):
            if value is not None and value < 0:
                raise ValueError("时间戳不能为负数")
        return self

    def timestamp_of(self, column: TimestampColumn) -> Optional[float]:
        """获取指定时间列的值"""
        if column == TimestampColumn.CREATE:
            return self.create_at
        if column == TimestampColumn.UPDATE:
            return self.update_at
        return self.delete_at

    def latest_mutation(self) -> float:
        """三个时间列中最新的一个"""
        return max(
            value
            for value in (self.create_at, self.update_at, self.delete_at)
            if value is not None
        )

    def is_deleted(self) -> bool:
        """软删除时间是否为最新的变更"""
        return self.delete_at is not None and self.delete_at >= self.latest_mutation()
