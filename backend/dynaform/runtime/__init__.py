"""
运行时层 - 表单实例、字段状态解析与提交流水线
"""

from .form import FormInstance, default_values
from .state import FieldStateResolver, build_eval_context, resolve_flag
from .submission import SubmissionPipeline

__all__ = [
    "FormInstance",
    "default_values",
    "FieldStateResolver",
    "build_eval_context",
    "resolve_flag",
    "SubmissionPipeline",
]
