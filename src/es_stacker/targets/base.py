"""
目标写入器抽象基类
"""

from abc import ABC, abstractmethod
from typing import Sequence

from es_stacker.models.document import BulkReport, Document


class BaseTargetWriter(ABC):
    """
    目标索引写入器抽象基类

    把一批文档作为一次批量请求提交，并把响应归类为
    全部成功 / 可忽略的部分失败 / 失败。
    """

    @abstractmethod
    async def write(self, documents: Sequence[Document]) -> BulkReport:
        """
        批量写入文档

        参数:
            documents: 按同步顺序排列的文档

        返回:
            BulkReport: 写入结果分类
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """释放客户端连接"""
        raise NotImplementedError

    async def health_check(self) -> bool:
        """
        健康检查

        返回:
            连接是否健康
        """
        try:
            return bool(await self._ping())
        except Exception:
            return False

    @abstractmethod
    async def _ping(self) -> bool:
        """发送 ping 检查连接"""
        raise NotImplementedError
