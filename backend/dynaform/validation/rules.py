"""
校验规则注册表 - 命名规则与校验函数

内置规则：email, phone, url, idcard, number, integer, positive, non-negative
（空值一律视为通过，必填由 required 单独控制）

使用方式：
    rules = RuleRegistry.with_builtins()

    @rules.validator("even")
    def even(value, values):
        return None if value % 2 == 0 else "请输入偶数"
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlparse

from ..expression.evaluator import to_number

RuleCheck = Callable[[Any], bool]
Validator = Callable[[Any, dict[str, Any]], "str | None"]

EMAIL_RE = re.compile(r"^[\w-]+(\.[\w-]+)*@[\w-]+(\.[\w-]+)+$")
PHONE_RE = re.compile(r"^1[3-9]\d{9}$")
IDCARD_RE = re.compile(r"(^\d{15}$)|(^\d{18}$)|(^\d{17}(\d|X|x)$)")
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*$")


def is_empty(value: Any) -> bool:
    """None、空字符串、空列表视为空"""
    return value is None or value == "" or (isinstance(value, (list, tuple)) and not value)


@dataclass
class NamedRule:
    """命名规则：check 返回 True 表示通过"""
    name: str
    check: RuleCheck
    message: str

    def run(self, value: Any, message: str | None = None) -> str | None:
        if is_empty(value):
            return None
        return None if self.check(value) else (message or self.message)


def _is_url(value: Any) -> bool:
    parsed = urlparse(str(value))
    if not parsed.scheme or not _SCHEME_RE.match(parsed.scheme):
        return False
    return bool(parsed.netloc or parsed.path)


class RuleRegistry:
    """校验规则注册表（每个引擎实例一个）"""

    def __init__(self) -> None:
        self._rules: dict[str, NamedRule] = {}
        self._validators: dict[str, Validator] = {}

    def register(self, name: str, check: RuleCheck, message: str) -> None:
        self._rules[name] = NamedRule(name, check, message)

    def get(self, name: str) -> NamedRule | None:
        return self._rules.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    def names(self) -> list[str]:
        return sorted(self._rules)

    def validator(self, name: str, fn: Validator | None = None):
        """注册校验函数 fn(value, values) -> 错误信息 | None；不传 fn 时作为装饰器"""
        if fn is None:
            def decorator(func: Validator) -> Validator:
                self._validators[name] = func
                return func
            return decorator
        self._validators[name] = fn
        return fn

    def get_validator(self, name: str) -> Validator | None:
        return self._validators.get(name)

    @classmethod
    def with_builtins(cls) -> RuleRegistry:
        registry = cls()
        registry.register("email", lambda v: bool(EMAIL_RE.match(str(v))), "请输入有效的邮箱地址")
        registry.register("phone", lambda v: bool(PHONE_RE.match(str(v))), "请输入有效的手机号码")
        registry.register("url", _is_url, "请输入有效的URL地址")
        registry.register("idcard", lambda v: bool(IDCARD_RE.search(str(v))), "请输入有效的身份证号码")
        registry.register("number", lambda v: not math.isnan(to_number(v)), "请输入有效的数字")
        registry.register(
            "integer",
            lambda v: math.isfinite(to_number(v)) and float(to_number(v)).is_integer(),
            "请输入有效的整数",
        )
        registry.register("positive", lambda v: to_number(v) > 0, "请输入大于0的数字")
        registry.register("non-negative", lambda v: to_number(v) >= 0, "请输入大于等于0的数字")
        return registry
