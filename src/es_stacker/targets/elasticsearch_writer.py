"""
Elasticsearch 批量写入器实现
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from elasticsearch import AsyncElasticsearch

from es_stacker.models.document import (
    BulkItemFailure,
    BulkOutcome,
    BulkReport,
    DeleteDocument,
    Document,
    UpsertDocument,
)
from es_stacker.models.sync_config import ElasticsearchConfig
from es_stacker.targets.base import BaseTargetWriter
from es_stacker.utils.logging import get_logger

logger = get_logger(__name__)

# 可忽略的单条失败：
#   version_conflict_engine_exception (409) 目标已持有相同或更新的版本
#   index_not_found_exception (404)         目标索引尚未创建
IGNORABLE_ERROR_TYPES = frozenset({
    "version_conflict_engine_exception",
    "index_not_found_exception",
})


def create_search_client(config: ElasticsearchConfig) -> AsyncElasticsearch:
    """根据配置创建 AsyncElasticsearch 客户端"""
    basic_auth = None
    if config.username is not None and config.password is not None:
        basic_auth = (config.username, config.password)

    return AsyncElasticsearch(
        hosts=config.hosts,
        basic_auth=basic_auth,
        request_timeout=config.request_timeout,
        verify_certs=config.verify_certs,
    )


def build_operations(documents: Sequence[Document]) -> List[Dict[str, Any]]:
    """
    构建 bulk 请求体

    写入文档生成 index 动作（external_gte 外部版本号）+ 文档内容，
    删除文档只生成 delete 动作。

    示例:
        >>> build_operations([DeleteDocument(cursor=KeyCursor(id=1), index="test", id="id_1")])
        [{'delete': {'_index': 'test', '_id': 'id_1'}}]
    """
    operations: List[Dict[str, Any]] = []
    for document in documents:
        if isinstance(document, UpsertDocument):
            operations.append({
                "index": {
                    "_index": document.index,
                    "_id": document.id,
                    "version": document.version,
                    "version_type": document.version_type,
                }
            })
            operations.append(document.source)
        elif isinstance(document, DeleteDocument):
            operations.append({
                "delete": {
                    "_index": document.index,
                    "_id": document.id,
                }
            })
        else:
            raise TypeError(f"不支持的文档类型: {type(document).__name__}")
    return operations


def _parse_failure(operation: str, result: Mapping[str, Any]) -> Optional[BulkItemFailure]:
    """解析单个动作结果，没有 error 时返回 None"""
    error = result.get("error")
    if not error:
        return None

    if isinstance(error, Mapping):
        error_type = error.get("type")
        reason = error.get("reason")
    else:
        error_type = None
        reason = str(error)

    return BulkItemFailure(
        operation=operation,
        id=result.get("_id"),
        status=result.get("status"),
        error_type=error_type,
        reason=reason,
        ignorable=error_type in IGNORABLE_ERROR_TYPES,
    )


def classify_response(response: Any) -> BulkReport:
    """
    将 bulk 响应归类

    规则:
        - 存在不可忽略的失败 → FAILED
        - 只有可忽略的失败 → PARTIALLY_IGNORABLE
        - 没有失败 → ALL_ACCEPTED
        - errors 标记为真但无法解析动作列表 → FAILED

    参数:
        response: bulk 响应（ObjectApiResponse 或字典）

    返回:
        BulkReport
    """
    body = getattr(response, "body", response)
    if not isinstance(body, Mapping):
        return BulkReport(outcome=BulkOutcome.FAILED, response={"raw": repr(body)})

    body = dict(body)
    items = body.get("items")
    if not isinstance(items, list):
        outcome = BulkOutcome.FAILED if body.get("errors") else BulkOutcome.ALL_ACCEPTED
        return BulkReport(outcome=outcome, response=body)

    failures: List[BulkItemFailure] = []
    for entry in items:
        if not isinstance(entry, Mapping):
            continue
        for operation, result in entry.items():
            if not isinstance(result, Mapping):
                continue
            failure = _parse_failure(operation, result)
            if failure is not None:
                failures.append(failure)

    if any(not failure.ignorable for failure in failures):
        outcome = BulkOutcome.FAILED
    elif failures:
        outcome = BulkOutcome.PARTIALLY_IGNORABLE
    else:
        outcome = BulkOutcome.ALL_ACCEPTED

    return BulkReport(outcome=outcome, failures=failures, response=body)


class ElasticsearchWriter(BaseTargetWriter):
    """
    Elasticsearch 目标写入器

    每批文档作为一次 bulk 请求提交，refresh=wait_for 保证
    下一次读取最新位置时能看到本次写入。
    """

    def __init__(self, client: AsyncElasticsearch, refresh: str = "wait_for"):
        """
        初始化写入器

        参数:
            client: AsyncElasticsearch 客户端
            refresh: bulk 请求的 refresh 参数
        """
        self.client = client
        self.refresh = refresh

    async def write(self, documents: Sequence[Document]) -> BulkReport:
        """批量写入并归类响应"""
        if not documents:
            return BulkReport(outcome=BulkOutcome.ALL_ACCEPTED)

        operations = build_operations(documents)
        response = await self.client.bulk(operations=operations, refresh=self.refresh)
        report = classify_response(response)

        logger.debug(
            "bulk_written",
            count=len(documents),
            outcome=report.outcome.value,
            failures=len(report.failures)
        )
        return report

    async def close(self) -> None:
        """关闭客户端"""
        await self.client.close()

    async def _ping(self) -> bool:
        """发送 ping 检查连接"""
        return bool(await self.client.ping())
