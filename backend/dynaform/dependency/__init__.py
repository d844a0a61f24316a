"""
依赖层 - 字段依赖图构建与重算范围计算
"""

from .resolver import (
    build_dependency_graph,
    find_cycles,
    get_dependent_fields,
    get_fields_to_recalculate,
)

__all__ = [
    "build_dependency_graph",
    "find_cycles",
    "get_dependent_fields",
    "get_fields_to_recalculate",
]
