"""
校验层 - 校验规则注册表与字段校验
"""

from .field_validator import compile_pattern, validate_fields, validate_value
from .rules import NamedRule, RuleRegistry, is_empty

__all__ = [
    "RuleRegistry",
    "NamedRule",
    "is_empty",
    "compile_pattern",
    "validate_fields",
    "validate_value",
]
