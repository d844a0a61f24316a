"""
数据模型层 - 定义引擎核心数据结构

所有模块通过这些模型交互，实现解耦：
- FormConfig: 表单配置（字段/按钮/布局/提交接口）
- DataSource: 远程选项数据源声明
- FormContext: 插件共享的表单上下文
"""

from .context import FieldState, FormContext, FormLifecycle, flatten_values, set_value_at_path
from .data_source import CacheEntry, DataSource, RemoteDataOptions
from .form import (
    FIELD_TYPES,
    ApiConfig,
    ButtonAction,
    ButtonConfig,
    FieldConfig,
    FieldType,
    FormConfig,
    LayoutConfig,
    LayoutSection,
    LayoutType,
    SpanConfig,
    ValidationResult,
    ValidationRule,
    walk_fields,
)

DependencyGraph = dict[str, set[str]]

__all__ = [
    "FormConfig",
    "FieldConfig",
    "FieldType",
    "FIELD_TYPES",
    "ButtonConfig",
    "ButtonAction",
    "LayoutConfig",
    "LayoutSection",
    "LayoutType",
    "SpanConfig",
    "ApiConfig",
    "ValidationRule",
    "ValidationResult",
    "walk_fields",
    "DataSource",
    "RemoteDataOptions",
    "CacheEntry",
    "FormContext",
    "FormLifecycle",
    "FieldState",
    "flatten_values",
    "set_value_at_path",
    "DependencyGraph",
]
