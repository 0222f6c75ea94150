"""
游标存储抽象基类
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from es_stacker.exceptions import CursorStoreError


class BaseCursorStore(ABC):
    """
    游标存储

    按同步流标识（agent_id）保存一个 JSON 对象形式的游标。
    记录在首次写入时创建，引擎从不删除。
    """

    @abstractmethod
    async def get(self, agent_id: str) -> Optional[Dict[str, Any]]:
        """
        读取游标

        参数:
            agent_id: 同步流标识

        返回:
            游标字典，不存在时返回 None
        """
        raise NotImplementedError

    @abstractmethod
    async def set(self, agent_id: str, value: Dict[str, Any]) -> bool:
        """
        保存游标

        参数:
            agent_id: 同步流标识
            value: 游标字典

        返回:
            是否写入成功
        """
        raise NotImplementedError

    async def connect(self) -> None:
        """建立连接（默认无需连接）"""
        return None

    async def close(self) -> None:
        """关闭连接（默认无需关闭）"""
        return None


def encode_cursor(value: Dict[str, Any]) -> str:
    """游标字典编码为 JSON 字符串"""
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def decode_cursor(agent_id: str, raw: Any) -> Optional[Dict[str, Any]]:
    """
    解码存储中的游标

    异常:
        CursorStoreError: 内容不是 JSON 对象
    """
    if raw is None or raw == "" or raw == b"":
        return None
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8")
    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise CursorStoreError(f"游标 {agent_id} 不是有效的 JSON: {e}")
    if not isinstance(value, dict):
        raise CursorStoreError(f"游标 {agent_id} 必须是 JSON 对象，实际: {value!r}")
    return value
