"""
字段状态解析 - 计算字段/按钮的 visible、disabled

- 布尔值直接使用；字符串按条件表达式求值
- 求值上下文同时以顶层键和 formValues 暴露表单值
- 表达式无法解析时回退为 visible=True / disabled=False
- recompute 只重算依赖图给出的受影响字段

同时负责把 props.formatter / props.parser 引用解析为可调用对象。
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from ..dependency import get_fields_to_recalculate
from ..expression import FunctionRegistry, evaluate, is_truthy, resolve_function
from ..models import DependencyGraph, FieldConfig, FieldState, FormConfig

logger = logging.getLogger(__name__)

FUNCTION_PROPS = ("formatter", "parser")


def build_eval_context(values: dict[str, Any]) -> dict[str, Any]:
    return {**values, "formValues": values}


def resolve_flag(expression: bool | str | None, context: dict[str, Any], default: bool) -> bool:
    """布尔/表达式 → 布尔，无法求值时返回默认值"""
    if expression is None:
        return default
    if isinstance(expression, bool):
        return expression
    if not isinstance(expression, str):
        return is_truthy(expression)
    result = evaluate(expression, context)
    if result == expression:
        logger.debug(f"表达式未能求值，使用默认值 {default}: {expression!r}")
        return default
    return is_truthy(result)


class FieldStateResolver:
    """字段状态解析器（每个表单实例一个）"""

    def __init__(
        self,
        config: FormConfig,
        graph: DependencyGraph,
        functions: FunctionRegistry | None = None,
    ):
        self.config = config
        self.graph = graph
        self.functions = functions
        self._fields: dict[str, FieldConfig] = dict(config.iter_fields())
        self.states: dict[str, FieldState] = {}
        self.button_states: list[FieldState] = []
        self._props: dict[str, dict[str, Any]] = {}

    def _state_for(self, field: FieldConfig, context: dict[str, Any]) -> FieldState:
        return FieldState(
            visible=resolve_flag(field.visible, context, True),
            disabled=resolve_flag(field.disabled, context, False),
        )

    def _compute_buttons(self, context: dict[str, Any]) -> None:
        self.button_states = [
            FieldState(
                visible=resolve_flag(button.visible, context, True),
                disabled=resolve_flag(button.disabled, context, False),
            )
            for button in self.config.buttons
        ]

    def compute_all(self, values: dict[str, Any]) -> dict[str, FieldState]:
        """全量计算（初始化/重置时）"""
        context = build_eval_context(values)
        self.states = {path: self._state_for(field, context) for path, field in self._fields.items()}
        self._compute_buttons(context)
        return dict(self.states)

    def recompute(self, changed: Iterable[str], values: dict[str, Any]) -> list[str]:
        """只重算受变化字段影响的字段，返回重算的字段路径"""
        context = build_eval_context(values)
        affected = [p for p in get_fields_to_recalculate(changed, self.graph) if p in self._fields]
        for path in affected:
            self.states[path] = self._state_for(self._fields[path], context)
        self._compute_buttons(context)
        return affected

    def field_state(self, path: str) -> FieldState:
        return self.states.get(path, FieldState())

    def resolved_props(self, path: str) -> dict[str, Any]:
        """字段 props，formatter/parser 已解析为可调用对象（解析失败保留原值）"""
        if path in self._props:
            return self._props[path]
        field = self._fields.get(path)
        props = dict(field.props) if field else {}
        for key in FUNCTION_PROPS:
            ref = props.get(key)
            if isinstance(ref, str):
                fn = resolve_function(ref, self.functions)
                if fn is not None:
                    props[key] = fn
        self._props[path] = props
        return props

    def format_value(self, path: str, value: Any) -> Any:
        return self._apply(path, "formatter", value)

    def parse_value(self, path: str, value: Any) -> Any:
        return self._apply(path, "parser", value)

    def _apply(self, path: str, key: str, value: Any) -> Any:
        fn: Callable[..., Any] | Any = self.resolved_props(path).get(key)
        if not callable(fn):
            return value
        try:
            return fn(value)
        except Exception as e:
            logger.warning(f"字段 {path} 的 {key} 执行失败，保留原值: {e}")
            return value
