"""
游标模型 - 同步进度水位线
"""

import json
from typing import Any, Dict, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field


class KeyCursor(BaseModel):
    """
    自增主键游标

    属性:
        id: 已同步的最大主键值
    """
    model_config = ConfigDict(frozen=True)

    id: int = Field(default=0, ge=0, description="主键水位线")


class TimestampCursor(BaseModel):
    """
    时间戳游标

    由 (时间戳, 主键) 组成，主键用于区分同一时间戳下的多行记录。

    属性:
        timestamp: Unix 时间（秒，可带小数部分）
        id: 同一时间戳下的决胜主键
    """
    model_config = ConfigDict(frozen=True)

    timestamp: float = Field(default=0.0, ge=0, description="Unix 时间戳（秒）")
    id: int = Field(default=0, ge=0, description="决胜主键")


Cursor = Union[KeyCursor, TimestampCursor]


def serialize_cursor(cursor: Optional[BaseModel]) -> str:
    """
    游标的规范化序列化形式

    引擎只通过序列化结果判断游标是否相等，从不比较大小。

    示例:
        >>> serialize_cursor(TimestampCursor(timestamp=1.5, id=3))
        '{"id":3,"timestamp":1.5}'
    """
    if cursor is None:
        return "null"
    return json.dumps(
        cursor.model_dump(mode="json"),
        sort_keys=True,
        separators=(",", ":"),
    )


def cursor_to_dict(cursor: BaseModel) -> Dict[str, Any]:
    """转换为可写入游标存储的字典"""
    return cursor.model_dump(mode="json")


def cursor_type_for(strategy: str) -> Type[BaseModel]:
    """按策略名称获取游标类型"""
    if strategy == "key":
        return KeyCursor
    if strategy == "timestamp":
        return TimestampCursor
    raise ValueError(f"未知的同步策略: {strategy}")
