"""
Redis 游标存储实现
"""

from typing import Any, Dict, Optional

from redis.asyncio import Redis

from es_stacker.models.sync_config import RedisCursorStoreConfig
from es_stacker.storage.base import BaseCursorStore, decode_cursor, encode_cursor


class RedisCursorStore(BaseCursorStore):
    """
    Redis 游标存储

    游标以 JSON 字符串保存在 "{key_prefix}:{agent_id}" 键下。
    """

    def __init__(self, client: Redis, key_prefix: str = "stacker:cursor"):
        """
        初始化 Redis 游标存储

        参数:
            client: redis.asyncio 客户端
            key_prefix: 键前缀
        """
        self._redis = client
        self._key_prefix = key_prefix

    @classmethod
    def from_config(cls, config: RedisCursorStoreConfig) -> "RedisCursorStore":
        """根据配置创建"""
        client = Redis(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            decode_responses=True,
        )
        return cls(client, key_prefix=config.key_prefix)

    def _get_key(self, agent_id: str) -> str:
        """完整的 Redis 键"""
        return f"{self._key_prefix}:{agent_id}"

    async def connect(self) -> None:
        """检查连接可用"""
        await self._redis.ping()

    async def close(self) -> None:
        """关闭客户端"""
        await self._redis.aclose()

    async def get(self, agent_id: str) -> Optional[Dict[str, Any]]:
        """读取游标"""
        value = await self._redis.get(self._get_key(agent_id))
        return decode_cursor(agent_id, value)

    async def set(self, agent_id: str, value: Dict[str, Any]) -> bool:
        """保存游标，返回服务端是否应答 OK"""
        result = await self._redis.set(self._get_key(agent_id), encode_cursor(value))
        return bool(result)
