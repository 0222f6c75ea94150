"""
值转换器 - 数据库驱动返回值到 JSON / 版本号的转换
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

# 外部版本号精度：微秒
VERSION_SCALE = 1_000_000


def to_epoch(value: Any) -> Optional[float]:
    """
    将驱动返回的时间值转为 Unix 秒

    支持 None、数字、Decimal（MySQL UNIX_TIMESTAMP 的返回类型）和 datetime。

    示例:
        >>> to_epoch(Decimal("1700000000.123456"))
        1700000000.123456
        >>> to_epoch(None) is None
        True
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        return float(value)
    raise TypeError(f"无法转换为时间戳: {value!r}")


def epoch_to_iso(timestamp: Optional[float]) -> Optional[str]:
    """
    Unix 秒转 ISO-8601 (UTC) 字符串

    示例:
        >>> epoch_to_iso(0)
        '1970-01-01T00:00:00+00:00'
    """
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def to_version(timestamp: float) -> int:
    """
    由变更时间推导外部版本号（整数微秒）

    示例:
        >>> to_version(1700000000.5)
        1700000000500000
    """
    return int(round(timestamp * VERSION_SCALE))


def to_jsonable(value: Any) -> Any:
    """
    将单个列值转为可 JSON 序列化的值

    示例:
        >>> to_jsonable(Decimal("1.50"))
        1.5
        >>> to_jsonable(b"abc")
        'abc'
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)
