"""
表达式层 - 条件表达式求值与函数合成

- evaluator: visible/disabled 条件表达式（AST + 树遍历）
- functions: formatter/parser 等函数文本的受限解释执行
"""

from .evaluator import (
    evaluate,
    extract_references,
    get_value_from_path,
    is_truthy,
    loose_equals,
    parse_expression,
)
from .functions import FunctionRegistry, SynthesizedFunction, resolve_function, synthesize

__all__ = [
    "evaluate",
    "extract_references",
    "get_value_from_path",
    "is_truthy",
    "loose_equals",
    "parse_expression",
    "FunctionRegistry",
    "SynthesizedFunction",
    "resolve_function",
    "synthesize",
]
