"""
运行状态模型
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class SyncState(str, Enum):
    """同步状态"""
    IDLE = "idle"  # 空闲
    RUNNING = "running"  # 运行中
    STOPPED = "stopped"  # 已停止


class SyncStatus(BaseModel):
    """
    同步状态信息

    运行时状态查询返回的数据，仅保存在内存中。
    """
    state: SyncState = Field(default=SyncState.IDLE, description="当前状态")
    agent_id: str = Field(default="", description="同步流标识")

    # 统计信息
    executed_chunks: int = Field(default=0, description="已执行分块数")
    skipped_chunks: int = Field(default=0, description="跳过分块数")
    failed_chunks: int = Field(default=0, description="写入失败分块数")
    total_documents: int = Field(default=0, description="已送达文档数")
    started_at: Optional[datetime] = Field(default=None, description="启动时间")

    # 游标
    cursor: Optional[Dict[str, Any]] = Field(default=None, description="当前游标")

    # 错误信息
    last_error: Optional[str] = Field(default=None, description="最后错误信息")
    last_error_at: Optional[datetime] = Field(default=None, description="最后错误时间")

    def is_running(self) -> bool:
        """检查是否运行中"""
        return self.state == SyncState.RUNNING

    def record_chunk(self, count: int) -> None:
        """记录一次成功送达的分块"""
        self.executed_chunks += 1
        self.total_documents += count

    def record_error(self, error: str) -> None:
        """记录错误"""
        self.last_error = error
        self.last_error_at = datetime.now(timezone.utc)

    def documents_per_second(self) -> float:
        """平均同步速率"""
        if self.started_at is None or self.total_documents == 0:
            return 0.0
        elapsed = (datetime.now(timezone.utc) - self.started_at).total_seconds()
        return self.total_documents / elapsed if elapsed > 0 else 0.0
