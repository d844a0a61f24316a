"""
插件流水线 - 按注册顺序调度插件钩子，并维护表单生命周期

生命周期：
    uninitialized → initializing → active ⇄ submitting → disposed
    （任意未销毁状态均可直接 dispose）

失败隔离：
- 任一钩子异常被捕获、记录、包装为 PluginHookError 并交给该插件的 on_error
- 不中断后续插件；链式钩子（before_render/before_submit）保留上一个成功的值

测试要点：
- test_capability_dispatch: 未声明的钩子不被调用
- test_failure_isolation: 抛异常的插件不影响后续插件
- test_illegal_transition: 非法状态转换抛 LifecycleError
"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any, Iterable

from ..interfaces import LifecycleError, PluginHookError
from ..models import FormLifecycle
from .base import FormPlugin, Hook

if TYPE_CHECKING:
    from ..models import FormConfig, FormContext

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[FormLifecycle, frozenset[FormLifecycle]] = {
    FormLifecycle.UNINITIALIZED: frozenset({FormLifecycle.INITIALIZING, FormLifecycle.DISPOSED}),
    FormLifecycle.INITIALIZING: frozenset({FormLifecycle.ACTIVE, FormLifecycle.DISPOSED}),
    FormLifecycle.ACTIVE: frozenset({FormLifecycle.SUBMITTING, FormLifecycle.DISPOSED}),
    FormLifecycle.SUBMITTING: frozenset({FormLifecycle.ACTIVE, FormLifecycle.DISPOSED}),
    FormLifecycle.DISPOSED: frozenset(),
}


class PluginPipeline:
    """插件流水线（每个表单实例一个）"""

    def __init__(self, plugins: Iterable[FormPlugin] = ()):
        self._plugins: list[FormPlugin] = list(plugins)
        self.state = FormLifecycle.UNINITIALIZED

    @property
    def plugins(self) -> list[FormPlugin]:
        return list(self._plugins)

    def register(self, plugin: FormPlugin) -> None:
        if self.state is not FormLifecycle.UNINITIALIZED:
            raise LifecycleError(f"表单已初始化，无法再注册插件: {plugin.name}")
        self._plugins.append(plugin)

    def transition(self, target: FormLifecycle) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise LifecycleError(f"非法的生命周期转换: {self.state.value} -> {target.value}")
        logger.debug(f"生命周期: {self.state.value} -> {target.value}")
        self.state = target

    def _require(self, *states: FormLifecycle) -> None:
        if self.state not in states:
            allowed = "/".join(s.value for s in states)
            raise LifecycleError(f"当前状态 {self.state.value} 不允许此操作（需要 {allowed}）")

    # ------------------------------------------------------------------
    # 钩子调用
    # ------------------------------------------------------------------

    @staticmethod
    async def _invoke(plugin: FormPlugin, hook: Hook, *args: Any) -> Any:
        result = getattr(plugin, hook.value)(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _run_hook(self, plugin: FormPlugin, hook: Hook, *args: Any) -> tuple[bool, Any]:
        """执行单个钩子，返回 (是否成功, 结果)"""
        try:
            return True, await self._invoke(plugin, hook, *args)
        except Exception as e:
            logger.exception(f"Error in plugin {plugin.name} at {hook.value} hook")
            await self._route_error(plugin, PluginHookError(plugin.name, hook.value, e))
            return False, None

    async def _route_error(self, plugin: FormPlugin, error: BaseException) -> None:
        if not plugin.supports(Hook.ON_ERROR):
            return
        try:
            await self._invoke(plugin, Hook.ON_ERROR, error)
        except Exception:
            logger.exception(f"Error in plugin {plugin.name} at on_error hook")

    async def _broadcast(self, hook: Hook, *args: Any) -> None:
        for plugin in self._plugins:
            if plugin.supports(hook):
                await self._run_hook(plugin, hook, *args)

    # ------------------------------------------------------------------
    # 生命周期点
    # ------------------------------------------------------------------

    async def initialize(self, context: FormContext) -> None:
        self._require(FormLifecycle.INITIALIZING)
        await self._broadcast(Hook.INITIALIZE, context)

    async def before_render(self, config: FormConfig) -> FormConfig:
        """链式改写配置"""
        self._require(FormLifecycle.INITIALIZING)
        current = config
        for plugin in self._plugins:
            if not plugin.supports(Hook.BEFORE_RENDER):
                continue
            ok, result = await self._run_hook(plugin, Hook.BEFORE_RENDER, current)
            if ok and result is not None:
                current = result
        return current

    async def after_render(self, context: FormContext) -> None:
        self._require(FormLifecycle.INITIALIZING, FormLifecycle.ACTIVE)
        await self._broadcast(Hook.AFTER_RENDER, context)

    async def before_submit(self, values: dict[str, Any]) -> dict[str, Any]:
        """链式转换提交值"""
        self._require(FormLifecycle.SUBMITTING)
        current = values
        for plugin in self._plugins:
            if not plugin.supports(Hook.BEFORE_SUBMIT):
                continue
            ok, result = await self._run_hook(plugin, Hook.BEFORE_SUBMIT, current)
            if ok and result is not None:
                current = result
        return current

    async def after_submit(self, values: dict[str, Any], response: Any) -> None:
        self._require(FormLifecycle.SUBMITTING)
        await self._broadcast(Hook.AFTER_SUBMIT, values, response)

    async def on_error(self, error: BaseException) -> None:
        """把错误交给每个声明了 on_error 的插件"""
        for plugin in self._plugins:
            await self._route_error(plugin, error)

    async def dispose(self) -> None:
        if self.state is FormLifecycle.DISPOSED:
            return
        await self._broadcast(Hook.DISPOSE)
        self.transition(FormLifecycle.DISPOSED)
