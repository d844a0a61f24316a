"""
模块接口契约 - 定义各模块的抽象接口与异常体系

设计原则：
1. 模块间通过接口通信，不直接依赖具体实现
2. 每个接口定义清晰的输入输出类型
3. 便于单元测试和mock替换

使用方式：
    from dynaform.interfaces import IStorageBackend

    class RedisStorage(IStorageBackend):
        def get_item(self, key: str) -> str | None:
            ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import DataSource, FormConfig, ValidationResult


# ============================================================================
# 配置解析接口
# ============================================================================

class IConfigParser(ABC):
    """配置解析器接口 - 文本文档 → FormConfig"""

    @abstractmethod
    def parse(self, document: str) -> FormConfig:
        """
        解析配置文档

        Args:
            document: 配置文本

        Returns:
            表单配置对象

        Raises:
            ParseError: 文档格式错误
        """
        ...

    @abstractmethod
    def validate(self, config: FormConfig) -> ValidationResult:
        """
        校验配置结构

        Args:
            config: 表单配置对象

        Returns:
            校验结果（收集全部错误，而非仅第一个）
        """
        ...


# ============================================================================
# 远程数据接口
# ============================================================================

class IDataSourceLoader(ABC):
    """远程选项数据加载器接口"""

    @abstractmethod
    async def load_data(
        self, name: str, override: DataSource | None = None
    ) -> list[dict[str, Any]]:
        """
        加载指定数据源的选项列表

        Raises:
            DataSourceNotFoundError: 数据源不存在
            RemoteLoadError: 请求失败
        """
        ...

    @abstractmethod
    async def load_all_data(self) -> dict[str, list[dict[str, Any]]]:
        """加载全部数据源（单个失败不影响其他）"""
        ...

    @abstractmethod
    def clear_cache(self, name: str | None = None) -> None:
        """清除缓存（不传name则全部清除）"""
        ...


# ============================================================================
# 存储接口
# ============================================================================

class IStorageBackend(ABC):
    """键值存储接口（浏览器存储等外部实现的边界）"""

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        ...


# ============================================================================
# 异常定义
# ============================================================================

class DynaformError(Exception):
    """基础异常"""
    pass


class ParseError(DynaformError):
    """配置文档解析错误（格式不合法）"""

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.reason = reason


class ConfigValidationError(DynaformError):
    """配置结构校验错误（汇总全部违规项）"""

    def __init__(self, errors: list[str]):
        super().__init__(f"表单配置无效: {', '.join(errors)}")
        self.errors = list(errors)


class FunctionSyntaxError(DynaformError):
    """函数文本不符合受支持的形式"""
    pass


class FunctionEvaluationError(DynaformError):
    """合成函数执行期错误（未定义标识符、禁止的属性/方法等）"""
    pass


class ValidationError(DynaformError):
    """提交时字段校验错误（汇总每个字段的错误）"""

    def __init__(self, field_errors: dict[str, list[str]]):
        summary = "; ".join(f"{name}: {', '.join(msgs)}" for name, msgs in field_errors.items())
        super().__init__(f"字段校验失败: {summary}")
        self.field_errors = field_errors


class DataSourceNotFoundError(DynaformError):
    """数据源不存在"""

    def __init__(self, name: str):
        super().__init__(f'Data source "{name}" not found')
        self.name = name


class RemoteLoadError(DynaformError):
    """远程数据加载失败"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SubmitError(DynaformError):
    """提交失败（非2xx响应）"""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PluginHookError(DynaformError):
    """插件钩子执行异常（总是被捕获并隔离）"""

    def __init__(self, plugin_name: str, hook: str, original: BaseException):
        super().__init__(f"Error in plugin {plugin_name} at {hook} hook: {original}")
        self.plugin_name = plugin_name
        self.hook = hook
        self.original = original


class LifecycleError(DynaformError):
    """非法的生命周期状态转换"""
    pass
