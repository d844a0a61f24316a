"""
插件基类 - 生命周期钩子与能力声明

插件通过 capabilities 显式声明实现了哪些钩子，流水线只调度已声明的钩子。
钩子可以是普通函数或 async 函数。

使用方式：
    class AuditPlugin(FormPlugin):
        name = "audit"
        capabilities = frozenset({Hook.BEFORE_SUBMIT})

        async def before_submit(self, values):
            return {**values, "submittedBy": "ops"}
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..models import FormConfig, FormContext


class Hook(str, Enum):
    """生命周期钩子"""
    INITIALIZE = "initialize"
    BEFORE_RENDER = "before_render"
    AFTER_RENDER = "after_render"
    BEFORE_SUBMIT = "before_submit"
    AFTER_SUBMIT = "after_submit"
    ON_ERROR = "on_error"
    DISPOSE = "dispose"


class FormPlugin:
    """插件基类（默认实现均为空操作）"""

    name: str = "plugin"
    capabilities: frozenset[Hook] = frozenset()

    def supports(self, hook: Hook) -> bool:
        return hook in self.capabilities

    def initialize(self, context: FormContext) -> Any:
        """表单初始化（每个插件一次）"""
        return None

    def before_render(self, config: FormConfig) -> FormConfig | None:
        """渲染前改写配置；返回 None 表示不修改"""
        return config

    def after_render(self, context: FormContext) -> Any:
        return None

    def before_submit(self, values: dict[str, Any]) -> dict[str, Any] | None:
        """提交前转换值；返回 None 表示不修改"""
        return values

    def after_submit(self, values: dict[str, Any], response: Any) -> Any:
        return None

    def on_error(self, error: BaseException) -> Any:
        return None

    def dispose(self) -> Any:
        return None

    def __repr__(self) -> str:
        hooks = ",".join(sorted(h.value for h in self.capabilities))
        return f"{type(self).__name__}(name={self.name!r}, hooks=[{hooks}])"
