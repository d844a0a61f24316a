"""
字段校验 - 按字段 rules 校验当前值

规则形式：
- 字符串：已注册命名规则
- 内联规则：required / whitespace / type / len / min / max / pattern / validator
  （type 命中注册表时按命名规则校验，消息可由内联 message 覆盖）

每条规则最多产生一条错误；非必填的空值跳过其余检查。
隐藏字段（及隐藏分组下的字段）不参与校验。
"""

from __future__ import annotations

import logging
import re
from typing import Any

from ..expression.evaluator import get_value_from_path
from ..models import FieldConfig, FieldState, FormConfig, ValidationRule
from .rules import RuleRegistry, is_empty

logger = logging.getLogger(__name__)

_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
    "float": lambda v: isinstance(v, float),
}

_JS_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}


def compile_pattern(pattern: str) -> re.Pattern:
    """普通正则或 /re/flags 写法"""
    m = re.fullmatch(r"/(.+)/([a-z]*)", pattern, re.S)
    if m:
        flags = 0
        for ch in m.group(2):
            flags |= _JS_FLAGS.get(ch, 0)
        return re.compile(m.group(1), flags)
    return re.compile(pattern)


def _measure(value: Any) -> float | None:
    """字符串/列表取长度，数值取值本身"""
    if isinstance(value, (str, list, tuple)):
        return len(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return None


def _check_inline(
    rule: ValidationRule,
    value: Any,
    values: dict[str, Any],
    label: str,
    registry: RuleRegistry,
) -> str | None:
    message = rule.message
    blank = is_empty(value) or (rule.whitespace and isinstance(value, str) and not value.strip())

    if rule.required and blank:
        return message or f"{label}不能为空"
    if is_empty(value):
        return None

    if rule.type:
        named = registry.get(rule.type)
        if named is not None:
            error = named.run(value, message)
            if error:
                return error
        elif rule.type in _TYPE_CHECKS and not _TYPE_CHECKS[rule.type](value):
            return message or f"{label}类型应为{rule.type}"

    size = _measure(value)
    is_length = isinstance(value, (str, list, tuple))
    if rule.len is not None and size is not None and size != rule.len:
        return message or (f"{label}长度必须为{rule.len}" if is_length else f"{label}必须等于{rule.len}")
    if rule.min is not None and size is not None and size < rule.min:
        return message or (f"{label}长度不能少于{rule.min:g}" if is_length else f"{label}不能小于{rule.min:g}")
    if rule.max is not None and size is not None and size > rule.max:
        return message or (f"{label}长度不能超过{rule.max:g}" if is_length else f"{label}不能大于{rule.max:g}")

    if rule.pattern:
        try:
            regex = compile_pattern(rule.pattern)
        except re.error as e:
            logger.warning(f"{label} 的校验正则无效: {rule.pattern} ({e})")
        else:
            if not regex.search(str(value)):
                return message or f"{label}格式不正确"

    if rule.validator:
        fn = registry.get_validator(rule.validator)
        if fn is None:
            logger.warning(f"未注册的校验函数: {rule.validator}")
        else:
            error = fn(value, values)
            if error:
                return message or str(error)
    return None


def validate_value(
    value: Any,
    rules: list[ValidationRule | str],
    registry: RuleRegistry,
    values: dict[str, Any] | None = None,
    label: str = "该字段",
) -> list[str]:
    """按规则列表校验单个值，返回全部错误信息"""
    errors: list[str] = []
    for rule in rules:
        if isinstance(rule, str):
            named = registry.get(rule)
            if named is None:
                logger.warning(f"未注册的校验规则: {rule}")
                continue
            error = named.run(value)
        else:
            error = _check_inline(rule, value, values or {}, label, registry)
        if error:
            errors.append(error)
    return errors


def _hidden(path: str, states: dict[str, FieldState]) -> bool:
    """字段本身或任一上级分组不可见"""
    parts = path.split(".")
    for i in range(1, len(parts) + 1):
        state = states.get(".".join(parts[:i]))
        if state is not None and not state.visible:
            return True
    return False


def validate_fields(
    config: FormConfig,
    values: dict[str, Any],
    registry: RuleRegistry,
    states: dict[str, FieldState] | None = None,
) -> dict[str, list[str]]:
    """校验全部可见字段，返回 {字段路径: [错误]}（无错误的字段不出现）"""
    field_errors: dict[str, list[str]] = {}
    states = states or {}
    for path, field in config.leaf_fields():
        if not field.rules or _hidden(path, states):
            continue
        errors = validate_value(
            get_value_from_path(values, path),
            field.rules,
            registry,
            values,
            label=_label(field, path),
        )
        if errors:
            field_errors[path] = errors
    return field_errors


def _label(field: FieldConfig, path: str) -> str:
    return field.label or field.name or path
