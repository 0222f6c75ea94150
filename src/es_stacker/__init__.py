"""
ES Stacker 增量同步引擎

将关系型数据库表中的变更按游标分块、增量地同步到 Elasticsearch 索引，
支持自增主键与时间戳两种变更检测策略，以及基于外部版本号的幂等批量写入。
"""

from typing import Any

__version__ = "0.1.0"

# 延迟导入，避免循环依赖
__all__ = [
    "SyncEngine",
    "SyncConfig",
    "KeyCursor",
    "TimestampCursor",
    "build_engine",
    "load_config",
]


def __getattr__(name: str) -> Any:
    """延迟加载核心类"""
    if name == "SyncEngine":
        from es_stacker.core.engine import SyncEngine
        return SyncEngine
    elif name == "SyncConfig":
        from es_stacker.models.sync_config import SyncConfig
        return SyncConfig
    elif name == "KeyCursor":
        from es_stacker.models.cursor import KeyCursor
        return KeyCursor
    elif name == "TimestampCursor":
        from es_stacker.models.cursor import TimestampCursor
        return TimestampCursor
    elif name == "build_engine":
        from es_stacker.core.factory import build_engine
        return build_engine
    elif name == "load_config":
        from es_stacker.config import load_config
        return load_config
    raise AttributeError(f"module 'es_stacker' has no attribute '{name}'")
