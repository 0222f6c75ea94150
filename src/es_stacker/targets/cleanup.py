"""
删除文档附加清理 - 按 ID 打标记或物理删除
"""

from typing import Any, Dict, Sequence

from elasticsearch import AsyncElasticsearch

from es_stacker.models.sync_config import CleanupConfig
from es_stacker.utils.logging import get_logger

logger = get_logger(__name__)


class DeletedDocumentCleaner:
    """
    删除文档清理器

    在主批次写入之前，对本批中被删除的文档 ID 执行 update_by_query
    （打标记）和/或 delete_by_query（物理删除）。清理失败只记录日志，
    不会影响主批次的成功/失败判定。
    """

    def __init__(
        self,
        client: AsyncElasticsearch,
        index: str,
        config: CleanupConfig
    ):
        """
        初始化清理器

        参数:
            client: AsyncElasticsearch 客户端
            index: 目标索引名
            config: 清理配置
        """
        self.client = client
        self.index = index
        self.config = config

    @staticmethod
    def _ids_query(document_ids: Sequence[str]) -> Dict[str, Any]:
        return {"bool": {"filter": [{"ids": {"values": list(document_ids)}}]}}

    async def clean(self, document_ids: Sequence[str]) -> None:
        """
        清理指定 ID 的文档

        参数:
            document_ids: 文档 ID 列表
        """
        if not document_ids:
            return

        if self.config.tag_deleted:
            await self.tag(document_ids)
        if self.config.purge_deleted:
            await self.purge(document_ids)

    async def tag(self, document_ids: Sequence[str]) -> None:
        """通过 update_by_query 给文档写入删除标记"""
        logger.info("cleanup_tag_deleted", index=self.index, count=len(document_ids))
        try:
            await self.client.update_by_query(
                index=self.index,
                query=self._ids_query(document_ids),
                script={
                    "source": "ctx._source[params.field] = params.value",
                    "params": {
                        "field": self.config.tag_field,
                        "value": self.config.tag_value,
                    },
                },
                conflicts="proceed",
                refresh=True,
            )
        except Exception as e:
            logger.warning(
                "cleanup_tag_failed",
                index=self.index,
                count=len(document_ids),
                error=str(e)
            )

    async def purge(self, document_ids: Sequence[str]) -> None:
        """通过 delete_by_query 物理删除文档"""
        logger.info("cleanup_purge_deleted", index=self.index, count=len(document_ids))
        try:
            await self.client.delete_by_query(
                index=self.index,
                query=self._ids_query(document_ids),
                conflicts="proceed",
                refresh=True,
            )
        except Exception as e:
            logger.warning(
                "cleanup_purge_failed",
                index=self.index,
                count=len(document_ids),
                error=str(e)
            )
