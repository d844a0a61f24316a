"""
依赖解析器 - 构建字段反应图，缩小值变化后的重算范围

依赖图：{源字段路径: {依赖它的字段路径}}
- 显式依赖：字段 dependencies 列表
- 隐式依赖：visible/disabled 表达式中引用的路径（formValues. 前缀剥离）

测试要点：
- 分组成员以点分路径限定（group.child）
- 闭包遍历带已访问集合，环路可终止；环上字段会出现在自身闭包中
"""

from __future__ import annotations

import logging
from typing import Iterable

from ..expression.evaluator import extract_references
from ..models import DependencyGraph, FieldConfig

logger = logging.getLogger(__name__)

FORM_VALUES_PREFIX = "formValues."


def _implicit_dependencies(expression: bool | str | None) -> list[str]:
    if not isinstance(expression, str):
        return []
    deps = []
    for ref in extract_references(expression):
        if ref.startswith(FORM_VALUES_PREFIX):
            ref = ref[len(FORM_VALUES_PREFIX):]
        if ref and ref not in deps:
            deps.append(ref)
    return deps


def build_dependency_graph(fields: list[FieldConfig]) -> DependencyGraph:
    """深度优先遍历字段（含分组成员）构建依赖图"""
    graph: DependencyGraph = {}

    def _add(source: str, dependent: str) -> None:
        graph.setdefault(source, set()).add(dependent)

    def _process(field_list: list[FieldConfig], parent_path: str = "") -> None:
        for field in field_list:
            path = f"{parent_path}.{field.name}" if parent_path else (field.name or "")
            for dep in field.dependencies:
                _add(dep, path)
            for dep in _implicit_dependencies(field.visible):
                _add(dep, path)
            for dep in _implicit_dependencies(field.disabled):
                _add(dep, path)
            if field.is_group and field.fields:
                _process(field.fields, path)

    _process(fields)

    cycles = find_cycles(graph)
    for cycle in cycles:
        logger.warning(f"字段依赖存在环路: {' -> '.join(cycle)}")
    return graph


def get_dependent_fields(field: str, graph: DependencyGraph) -> list[str]:
    """字段的传递依赖闭包（深度优先，不重复访问）"""
    result: list[str] = []
    visited: set[str] = set()

    def _visit(name: str) -> None:
        for dependent in sorted(graph.get(name, ())):
            if dependent not in visited:
                visited.add(dependent)
                result.append(dependent)
                _visit(dependent)

    _visit(field)
    return result


def get_fields_to_recalculate(changed: Iterable[str], graph: DependencyGraph) -> list[str]:
    """多个变化字段的依赖闭包并集（保持首次出现顺序）"""
    result: list[str] = []
    seen: set[str] = set()
    for field in changed:
        for dependent in get_dependent_fields(field, graph):
            if dependent not in seen:
                seen.add(dependent)
                result.append(dependent)
    return result


def find_cycles(graph: DependencyGraph) -> list[list[str]]:
    """找出依赖图中的环路（每个环以起点结尾闭合，如 [a, b, a]）"""
    cycles: list[list[str]] = []
    reported: set[frozenset[str]] = set()
    state: dict[str, int] = {}  # 1=访问中 2=已完成
    stack: list[str] = []

    def _visit(node: str) -> None:
        state[node] = 1
        stack.append(node)
        for nxt in sorted(graph.get(node, ())):
            if state.get(nxt) == 1:
                cycle = stack[stack.index(nxt):] + [nxt]
                key = frozenset(cycle)
                if key not in reported:
                    reported.add(key)
                    cycles.append(cycle)
            elif nxt not in state:
                _visit(nxt)
        stack.pop()
        state[node] = 2

    for node in sorted(graph):
        if node not in state:
            _visit(node)
    return cycles
