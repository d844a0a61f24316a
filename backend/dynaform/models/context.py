"""
表单上下文 - 插件与单个表单实例之间的共享桥梁

FormContext 按引用在同一表单实例的全部插件间共享：
- 当前配置（before_render 改写后的版本）
- 字段值读写（点分路径对应嵌套结构）
- 字段选项列表
- 提交/重置入口
- 值变化监听
"""

from __future__ import annotations

import copy
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from ..expression.evaluator import get_value_from_path

if TYPE_CHECKING:
    from .form import FormConfig

logger = logging.getLogger(__name__)

ValuesChangeListener = Callable[[dict[str, Any], dict[str, Any]], Any]


class FormLifecycle(str, Enum):
    """表单实例生命周期"""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    DISPOSED = "disposed"


@dataclass
class FieldState:
    """字段/按钮的运行期状态"""
    visible: bool = True
    disabled: bool = False


def set_value_at_path(values: dict[str, Any], path: str, value: Any) -> None:
    """按点分路径写入嵌套字典（自动创建中间层）"""
    keys = path.split(".")
    target = values
    for key in keys[:-1]:
        nxt = target.get(key)
        if not isinstance(nxt, dict):
            nxt = {}
            target[key] = nxt
        target = nxt
    target[keys[-1]] = value


def flatten_values(values: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """嵌套字典 → {点分路径: 值}"""
    flat: dict[str, Any] = {}
    for key, value in values.items():
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict) and value:
            flat.update(flatten_values(value, path))
        else:
            flat[path] = value
    return flat


class FormContext:
    """插件上下文"""

    def __init__(
        self,
        config: FormConfig,
        values: dict[str, Any] | None = None,
        *,
        submit: Callable[[], Awaitable[Any]] | None = None,
        reset: Callable[[], Awaitable[None]] | None = None,
    ):
        self.config = config
        self._values: dict[str, Any] = copy.deepcopy(values) if values else {}
        self._field_options: dict[str, list[Any]] = {}
        self._listeners: list[ValuesChangeListener] = []
        self._submit = submit
        self._reset = reset

    @property
    def form_id(self) -> str:
        return self.config.form_id or ""

    @property
    def values(self) -> dict[str, Any]:
        """当前值的快照（修改请用 set_value/set_values）"""
        return copy.deepcopy(self._values)

    def get_value(self, path: str) -> Any:
        return get_value_from_path(self._values, path)

    async def set_value(self, path: str, value: Any) -> None:
        await self.set_values({path: value})

    async def set_values(self, changes: dict[str, Any]) -> None:
        """批量写入 {点分路径: 值} 并通知监听者"""
        if not changes:
            return
        for path, value in changes.items():
            set_value_at_path(self._values, path, value)
        await self._notify(dict(changes))

    async def replace_values(self, values: dict[str, Any]) -> None:
        """整体替换（重置场景），变化集为新旧值的全部路径"""
        changed = set(flatten_values(self._values)) | set(flatten_values(values))
        self._values = copy.deepcopy(values)
        await self._notify({path: get_value_from_path(self._values, path) for path in changed})

    def field_options(self, path: str) -> list[Any]:
        return list(self._field_options.get(path, []))

    def set_field_options(self, path: str, options: list[Any]) -> None:
        self._field_options[path] = list(options)

    def on_values_change(self, listener: ValuesChangeListener) -> Callable[[], None]:
        """注册值变化监听，返回取消函数"""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def submit(self) -> Any:
        if self._submit is None:
            raise RuntimeError("submit entry point not bound")
        return await self._submit()

    async def reset(self) -> None:
        if self._reset is None:
            raise RuntimeError("reset entry point not bound")
        await self._reset()

    async def _notify(self, changed: dict[str, Any]) -> None:
        snapshot = self.values
        for listener in list(self._listeners):
            result = listener(changed, snapshot)
            if inspect.isawaitable(result):
                await result
