"""
配置加载模块 - 支持 YAML 和环境变量
"""

from pathlib import Path
from typing import Union

import yaml
from pydantic import ValidationError

from es_stacker.exceptions import ConfigError
from es_stacker.models.sync_config import SyncConfig, expand_env_vars


def load_config(path: Union[str, Path]) -> SyncConfig:
    """
    加载 YAML 配置文件

    支持环境变量替换，格式:
        - ${VAR_NAME}
        - ${VAR_NAME:-default_value}

    参数:
        path: 配置文件路径

    返回:
        SyncConfig: 验证后的配置对象

    异常:
        ConfigError: 配置文件不存在、格式错误或验证失败

    示例:
        ```python
        config = load_config("stacker.yaml")
        print(config.source.type, config.index)
        ```
    """
    config_path = Path(path)

    if not config_path.exists():
        raise ConfigError(f"配置文件不存在: {config_path}")

    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"读取配置文件失败: {e}")

    return load_config_from_string(content)


def load_config_from_string(content: str) -> SyncConfig:
    """
    从字符串加载配置

    参数:
        content: YAML 配置字符串

    返回:
        SyncConfig: 验证后的配置对象

    异常:
        ConfigError: YAML 解析失败、环境变量缺失或验证失败
    """
    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML 解析失败: {e}")

    if not isinstance(raw_config, dict):
        raise ConfigError("配置文件必须是一个对象")

    try:
        expanded_config = expand_env_vars(raw_config)
    except ValueError as e:
        raise ConfigError(str(e))

    try:
        return SyncConfig(**expanded_config)
    except ValidationError as e:
        raise ConfigError(f"配置验证失败: {e}")


def generate_config_template() -> str:
    """
    生成配置模板

    返回:
        str: YAML 配置模板
    """
    return '''# ES Stacker 增量同步配置

# 同步流标识（游标存储的键，不同流必须唯一）
agent_id: "posts-to-es"

# 变更检测策略: key=自增主键（只同步新增）, timestamp=创建/更新/删除时间戳
strategy: "timestamp"

# 目标索引
index: "posts"

chunk_limit: 1000          # 每个分块的最大记录数
chunk_delay_ms: 100        # 分块间隔（毫秒）
id_prefix: "id_"           # 文档 ID 前缀

# 源数据库配置
source:
  type: "sqlite"
  db_path: "./source.db"
  table:
    name: "posts"
    primary_key: "id"
    create_column: "createAt"
    update_column: "updateAt"
    delete_column: "deleteAt"

# MySQL 源示例
# source:
#   type: "mysql"
#   connection:
#     host: "localhost"
#     port: 3306
#     database: "app"
#     username: "${MYSQL_USER}"
#     password: "${MYSQL_PASSWORD}"
#   table:
#     name: "posts"

# 游标存储: sqlite / mysql / redis
cursor_store:
  type: "sqlite"
  db_path: "./cursors.db"

# cursor_store:
#   type: "redis"
#   host: "localhost"
#   port: 6379
#   key_prefix: "stacker:cursor"

# Elasticsearch 连接
elasticsearch:
  hosts: ["${ES_HOST:-http://localhost:9200}"]
  request_timeout: 30

# 删除文档的附加清理（仅 timestamp 策略）
cleanup:
  tag_deleted: false       # update_by_query 打标记
  purge_deleted: false     # delete_by_query 物理删除
  tag_field: "tag"
  tag_value: "DELETED"

log_level: "INFO"          # 日志级别 (DEBUG, INFO, WARNING, ERROR)
'''


def save_config_template(path: Union[str, Path]) -> None:
    """
    保存配置模板到文件

    参数:
        path: 输出文件路径
    """
    config_path = Path(path)
    config_path.write_text(generate_config_template(), encoding="utf-8")
