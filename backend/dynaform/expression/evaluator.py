"""
条件表达式求值 - visible/disabled 等字符串表达式

语法（优先级固定，由低到高）：
    expr       := all_of
    all_of     := any_of ('&&' any_of)*
    any_of     := comparison ('||' comparison)*
    comparison := operand (op operand)?      op ∈ == != >= <= > <
    operand    := $path | 'text' | number | true | false | null | undefined | path

表达式先解析为小型AST（AllOf/AnyOf/Comparison/PathRef/Literal/RawToken），
再由树遍历器解释执行。运算符扫描跳过单引号字面量。

测试要点：
- 路径中间缺失 → None，不抛异常
- == / != 宽松相等（'1' == 1 为真）
- 任何内部失败 → 记录日志并原样返回表达式
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Union

logger = logging.getLogger(__name__)

COMPARISON_OPERATORS = ("==", "!=", ">=", "<=", ">", "<")

_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_PATH_RE = re.compile(r"^\$?[A-Za-z_][\w$]*(\.[\w$]+)*$")

_KEYWORD_LITERALS = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
}


# ============================================================================
# AST 节点
# ============================================================================

@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class PathRef:
    path: str


@dataclass(frozen=True)
class RawToken:
    """无法识别的顶层记号，求值时原样返回"""
    text: str


@dataclass(frozen=True)
class Comparison:
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class AllOf:
    operands: tuple[Node, ...]


@dataclass(frozen=True)
class AnyOf:
    operands: tuple[Node, ...]


Node = Union[Literal, PathRef, RawToken, Comparison, AllOf, AnyOf]


# ============================================================================
# 解析
# ============================================================================

def _split_outside_quotes(text: str, sep: str) -> list[str]:
    """按分隔符切分，单引号内的内容不参与匹配"""
    parts: list[str] = []
    start = 0
    i = 0
    in_quote = False
    while i < len(text):
        ch = text[i]
        if ch == "'":
            in_quote = not in_quote
        elif not in_quote and text.startswith(sep, i):
            parts.append(text[start:i])
            i += len(sep)
            start = i
            continue
        i += 1
    parts.append(text[start:])
    return parts


def _find_operator(text: str) -> tuple[int, str] | None:
    """按固定顺序查找第一个出现的比较运算符"""
    for op in COMPARISON_OPERATORS:
        parts = _split_outside_quotes(text, op)
        if len(parts) > 1:
            return len(parts[0]), op
    return None


def _parse_literal(token: str) -> Literal | None:
    if len(token) >= 2 and token.startswith("'") and token.endswith("'"):
        return Literal(token[1:-1])
    if _NUMBER_RE.match(token):
        if "." in token or "e" in token.lower():
            return Literal(float(token))
        return Literal(int(token))
    if token in _KEYWORD_LITERALS:
        return Literal(_KEYWORD_LITERALS[token])
    return None


def _parse_operand(token: str) -> Node:
    token = token.strip()
    if not token:
        return Literal(None)
    literal = _parse_literal(token)
    if literal is not None:
        return literal
    return PathRef(token[1:] if token.startswith("$") else token)


def _parse_term(text: str) -> Node:
    text = text.strip()
    found = _find_operator(text)
    if found is not None:
        index, op = found
        return Comparison(op, _parse_operand(text[:index]), _parse_operand(text[index + len(op):]))

    if text.startswith("$"):
        return PathRef(text[1:])
    literal = _parse_literal(text)
    if literal is not None:
        return literal
    return RawToken(text)


def _parse_any(text: str) -> Node:
    parts = _split_outside_quotes(text, "||")
    if len(parts) > 1:
        return AnyOf(tuple(_parse_term(p) for p in parts))
    return _parse_term(text)


@lru_cache(maxsize=512)
def parse_expression(expression: str) -> Node:
    """表达式字符串 → AST（结果缓存）"""
    parts = _split_outside_quotes(expression, "&&")
    if len(parts) > 1:
        return AllOf(tuple(_parse_any(p) for p in parts))
    return _parse_any(expression)


# ============================================================================
# 求值
# ============================================================================

def get_value_from_path(obj: Any, path: str) -> Any:
    """按点分路径取值，中间缺失即返回 None"""
    if path.startswith("$"):
        path = path[1:]
    result = obj
    for key in path.split("."):
        if result is None:
            return None
        if isinstance(result, dict):
            result = result.get(key)
        elif isinstance(result, (list, tuple)) and key.isdigit():
            index = int(key)
            result = result[index] if index < len(result) else None
        else:
            return None
    return result


def to_number(value: Any) -> float:
    """宽松数值转换，失败返回 NaN"""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def loose_equals(left: Any, right: Any) -> bool:
    """宽松相等：None 只等于 None；数值与字符串/布尔比较时转为数值"""
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    scalar = (bool, int, float, str)
    if isinstance(left, scalar) and isinstance(right, scalar):
        a, b = to_number(left), to_number(right)
        return not (math.isnan(a) or math.isnan(b)) and a == b
    return left == right


def is_truthy(value: Any) -> bool:
    """真值判定（列表/字典恒为真）"""
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    if isinstance(value, (list, dict, tuple, set)):
        return True
    return bool(value)


def _compare(op: str, left: Any, right: Any) -> bool:
    if op == "==":
        return loose_equals(left, right)
    if op == "!=":
        return not loose_equals(left, right)

    a, b = to_number(left), to_number(right)
    if math.isnan(a) or math.isnan(b):
        return False
    if op == ">=":
        return a >= b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a < b


def _eval_node(node: Node, context: dict[str, Any]) -> Any:
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, PathRef):
        return get_value_from_path(context, node.path)
    if isinstance(node, RawToken):
        return node.text
    if isinstance(node, Comparison):
        return _compare(node.op, _eval_node(node.left, context), _eval_node(node.right, context))
    if isinstance(node, AllOf):
        return all(is_truthy(_eval_node(n, context)) for n in node.operands)
    if isinstance(node, AnyOf):
        return any(is_truthy(_eval_node(n, context)) for n in node.operands)
    raise TypeError(f"未知的表达式节点: {node!r}")


def evaluate(expression: Any, context: dict[str, Any]) -> Any:
    """
    求值条件表达式

    Args:
        expression: 表达式字符串（非字符串原样返回）
        context: 取值上下文

    Returns:
        求值结果；无法识别的记号原样返回，内部失败返回原表达式
    """
    if not isinstance(expression, str):
        return expression
    try:
        return _eval_node(parse_expression(expression), context)
    except Exception as e:
        logger.warning(f"表达式求值失败: {expression!r} ({e})")
        return expression


def _collect_paths(node: Node, out: list[str]) -> None:
    if isinstance(node, PathRef):
        if node.path and node.path not in out:
            out.append(node.path)
    elif isinstance(node, RawToken):
        # 顶层裸路径（如 formValues.enabled）同样视为引用
        if _PATH_RE.match(node.text) and node.text not in out:
            out.append(node.text)
    elif isinstance(node, Comparison):
        _collect_paths(node.left, out)
        _collect_paths(node.right, out)
    elif isinstance(node, (AllOf, AnyOf)):
        for child in node.operands:
            _collect_paths(child, out)


def extract_references(expression: str) -> list[str]:
    """返回表达式引用的全部路径（去重，保持出现顺序）"""
    refs: list[str] = []
    try:
        _collect_paths(parse_expression(expression), refs)
    except Exception as e:
        logger.warning(f"表达式解析失败: {expression!r} ({e})")
    return refs
