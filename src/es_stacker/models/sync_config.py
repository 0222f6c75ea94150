"""
同步配置模型 - 使用 Pydantic 进行配置验证
"""

import os
import re
from enum import Enum
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_ENV_VAR_RE = re.compile(r'\$\{([^}:-]+)(?::-([^}]*))?\}')


class StrategyType(str, Enum):
    """变更检测策略"""
    KEY = "key"                # 自增主键
    TIMESTAMP = "timestamp"    # 创建/更新/删除时间戳


def _validate_identifier(value: str) -> str:
    if not _IDENTIFIER_RE.match(value):
        raise ValueError(f"非法的标识符: {value!r}")
    return value


class TableConfig(BaseModel):
    """
    源表结构配置

    属性:
        name: 表名
        primary_key: 自增主键列
        create_column: 创建时间列
        update_column: 更新时间列（可为空）
        delete_column: 软删除时间列（可为空）
    """
    name: str = Field(default="dummy", description="表名")
    primary_key: str = Field(default="id", description="主键列")
    create_column: str = Field(default="createAt", description="创建时间列")
    update_column: str = Field(default="updateAt", description="更新时间列")
    delete_column: str = Field(default="deleteAt", description="软删除时间列")

    @field_validator(
        "name", "primary_key", "create_column", "update_column", "delete_column"
    )
    @classmethod
    def validate_identifiers(cls, v: str) -> str:
        """列名/表名只能包含字母、数字和下划线"""
        return _validate_identifier(v)


class MySQLConnection(BaseModel):
    """MySQL 连接配置"""
    model_config = ConfigDict(title="MySQL Connection")

    host: str = Field(..., description="主机地址")
    port: int = Field(default=3306, ge=1, le=65535, description="端口")
    database: str = Field(..., description="数据库名")
    username: str = Field(..., description="用户名")
    password: str = Field(..., description="密码")
    charset: str = Field(default="utf8mb4", description="字符集")
    pool_size: int = Field(default=5, ge=1, le=50, description="连接池大小")


class SQLiteSourceConfig(BaseModel):
    """SQLite 源配置（时间列以 Unix 秒 REAL 存储）"""
    type: Literal["sqlite"] = Field(default="sqlite", description="源类型")
    db_path: str = Field(..., min_length=1, description="SQLite 数据库文件路径")
    table: TableConfig = Field(default_factory=TableConfig, description="源表结构")


class MySQLSourceConfig(BaseModel):
    """MySQL 源配置（时间列为 DATETIME(6)）"""
    type: Literal["mysql"] = Field(default="mysql", description="源类型")
    connection: MySQLConnection = Field(..., description="连接配置")
    table: TableConfig = Field(default_factory=TableConfig, description="源表结构")


class SQLiteCursorStoreConfig(BaseModel):
    """本地 SQLite 游标存储"""
    type: Literal["sqlite"] = Field(default="sqlite", description="存储类型")
    db_path: str = Field(default="cursors.db", min_length=1, description="存储文件路径")


class MySQLCursorStoreConfig(BaseModel):
    """MySQL 表游标存储"""
    type: Literal["mysql"] = Field(default="mysql", description="存储类型")
    connection: MySQLConnection = Field(..., description="连接配置")
    table_name: str = Field(default="stacker_cursor", description="游标表名")

    @field_validator("table_name")
    @classmethod
    def validate_table_name(cls, v: str) -> str:
        """验证表名"""
        return _validate_identifier(v)


class RedisCursorStoreConfig(BaseModel):
    """Redis 游标存储"""
    type: Literal["redis"] = Field(default="redis", description="存储类型")
    host: str = Field(default="localhost", description="主机地址")
    port: int = Field(default=6379, ge=1, le=65535, description="端口")
    db: int = Field(default=0, ge=0, description="数据库编号")
    password: Optional[str] = Field(default=None, description="密码")
    key_prefix: str = Field(default="stacker:cursor", min_length=1, description="键前缀")


class ElasticsearchConfig(BaseModel):
    """Elasticsearch 连接配置"""
    hosts: List[str] = Field(
        default_factory=lambda: ["http://localhost:9200"],
        min_length=1,
        description="节点地址列表"
    )
    username: Optional[str] = Field(default=None, description="用户名")
    password: Optional[str] = Field(default=None, description="密码")
    request_timeout: float = Field(default=30.0, gt=0, description="请求超时（秒）")
    verify_certs: bool = Field(default=True, description="是否校验证书")

    @model_validator(mode="after")
    def validate_credentials(self) -> "ElasticsearchConfig":
        """用户名和密码必须同时提供"""
        if (self.username is None) != (self.password is None):
            raise ValueError("username 和 password 必须同时提供")
        return self


class CleanupConfig(BaseModel):
    """
    删除文档的附加清理配置

    属性:
        tag_deleted: 通过 update_by_query 给已删除文档打标记
        purge_deleted: 通过 delete_by_query 物理删除文档
        tag_field: 标记字段名
        tag_value: 标记值
    """
    tag_deleted: bool = Field(default=False, description="打删除标记")
    purge_deleted: bool = Field(default=False, description="按查询物理删除")
    tag_field: str = Field(default="tag", min_length=1, description="标记字段")
    tag_value: str = Field(default="DELETED", description="标记值")

    def is_enabled(self) -> bool:
        """是否启用任一清理动作"""
        return self.tag_deleted or self.purge_deleted


class SyncConfig(BaseModel):
    """
    同步配置根对象

    属性:
        agent_id: 同步流标识，游标存储的键
        strategy: 变更检测策略 (key/timestamp)
        index: 目标索引名
        chunk_limit: 每个分块的最大记录数，默认 1000
        chunk_delay_ms: 分块间隔（毫秒），默认 100
        id_prefix: 文档 ID 前缀，默认 "id_"
        source: 源数据库配置
        cursor_store: 游标存储配置
        elasticsearch: Elasticsearch 连接配置
        cleanup: 删除文档附加清理配置
        log_level: 日志级别，默认 INFO
    """
    agent_id: str = Field(..., min_length=1, description="同步流标识")
    strategy: StrategyType = Field(..., description="变更检测策略")
    index: str = Field(..., min_length=1, description="目标索引")
    chunk_limit: int = Field(default=1000, ge=1, le=10000, description="分块大小")
    chunk_delay_ms: int = Field(default=100, ge=0, description="分块间隔（毫秒）")
    id_prefix: str = Field(default="id_", description="文档 ID 前缀")
    source: Union[SQLiteSourceConfig, MySQLSourceConfig] = Field(
        ..., discriminator="type", description="源数据库配置"
    )
    cursor_store: Union[
        SQLiteCursorStoreConfig, MySQLCursorStoreConfig, RedisCursorStoreConfig
    ] = Field(
        default_factory=SQLiteCursorStoreConfig,
        discriminator="type",
        description="游标存储配置"
    )
    elasticsearch: ElasticsearchConfig = Field(
        default_factory=ElasticsearchConfig, description="Elasticsearch 配置"
    )
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig, description="删除清理")
    log_level: str = Field(default="INFO", description="日志级别")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """验证日志级别"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        if v.upper() not in valid_levels:
            raise ValueError(f"日志级别必须是以下之一: {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def validate_cleanup_strategy(self) -> "SyncConfig":
        """只有时间戳策略会产生删除文档"""
        if self.cleanup.is_enabled() and self.strategy != StrategyType.TIMESTAMP:
            raise ValueError("cleanup 仅适用于 timestamp 策略")
        return self

    @property
    def chunk_delay(self) -> float:
        """分块间隔（秒）"""
        return self.chunk_delay_ms / 1000.0


def expand_env_vars(value: Any) -> Any:
    """
    递归展开值中的环境变量

    支持格式:
        - ${VAR_NAME}
        - ${VAR_NAME:-default_value}
    """
    if isinstance(value, str):
        def replacer(match: "re.Match[str]") -> str:
            var_name = match.group(1)
            default_val = match.group(2)
            env_value = os.getenv(var_name)
            if env_value is None:
                if default_val is not None:
                    return default_val
                raise ValueError(f"环境变量 {var_name} 未设置且无默认值")
            return env_value

        return _ENV_VAR_RE.sub(replacer, value)
    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value
