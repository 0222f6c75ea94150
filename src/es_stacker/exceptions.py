"""
异常定义
"""


class StackerError(Exception):
    """同步引擎异常基类"""
    pass


class ConfigError(StackerError):
    """配置错误"""
    pass


class SourceError(StackerError):
    """源表读取或行数据映射失败"""
    pass


class CursorStoreError(StackerError):
    """游标存储读写失败或存储内容损坏"""
    pass
