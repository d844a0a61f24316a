"""
表单实例 - 组合解析、插件、依赖图、状态解析与提交

生命周期：
    open(source)   解析配置 → before_render → 依赖图 → initialize → 字段状态 → after_render
    set_values()   写入值 → 重算受影响字段状态 → 通知监听者
    submit()       见 SubmissionPipeline
    reset()        恢复默认值
    click(button)  submit / reset / cancel / 已注册的自定义处理函数
    dispose()

使用方式：
    async with FormInstance(registry, plugins=[StoragePlugin({"key": "draft"})]) as form:
        await form.open(config_text)
        await form.set_values({"age": 18})
        await form.submit()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Iterable

import httpx
import pydantic

from ..config import EngineSettings, fetch_config, get_config, parse_config, validate_config
from ..dependency import build_dependency_graph
from ..interfaces import ConfigValidationError, DynaformError, LifecycleError, ParseError
from ..models import (
    ButtonAction,
    ButtonConfig,
    DependencyGraph,
    FieldState,
    FormConfig,
    FormContext,
    FormLifecycle,
    RemoteDataOptions,
    flatten_values,
    set_value_at_path,
)
from ..plugins import FormPlugin, PluginPipeline
from ..registry import EngineRegistry
from ..remote import RemoteDataLoader
from .state import FieldStateResolver
from .submission import SubmissionPipeline

logger = logging.getLogger(__name__)

URL_PREFIXES = ("http://", "https://")


def default_values(config: FormConfig) -> dict[str, Any]:
    """由字段 default_value 构建初始值（嵌套结构）"""
    values: dict[str, Any] = {}
    for path, field in config.leaf_fields():
        if field.default_value is not None:
            set_value_at_path(values, path, field.default_value)
    return values


class FormInstance:
    """单个表单实例"""

    def __init__(
        self,
        registry: EngineRegistry | None = None,
        plugins: Iterable[FormPlugin] = (),
        client: httpx.AsyncClient | None = None,
        settings: EngineSettings | None = None,
        on_cancel: Callable[[], Any] | None = None,
    ):
        self.registry = registry or EngineRegistry()
        self.settings = settings or get_config()
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=self.settings.http.timeout_sec,
            headers=self.settings.http.headers,
        )
        self.pipeline = PluginPipeline(plugins)
        self.submission = SubmissionPipeline(self.pipeline, self.client, self.registry.rules)
        self.option_loader = RemoteDataLoader(
            RemoteDataOptions(), self.client, cache=self.registry.option_cache
        )
        self.on_cancel = on_cancel

        self.context: FormContext | None = None
        self.resolver: FieldStateResolver | None = None
        self.graph: DependencyGraph = {}
        self._defaults: dict[str, Any] = {}

    async def __aenter__(self) -> FormInstance:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.dispose()

    # ------------------------------------------------------------------
    # 状态访问
    # ------------------------------------------------------------------

    @property
    def state(self) -> FormLifecycle:
        return self.pipeline.state

    @property
    def config(self) -> FormConfig:
        return self._require_context().config

    @property
    def values(self) -> dict[str, Any]:
        return self._require_context().values

    @property
    def states(self) -> dict[str, FieldState]:
        return dict(self.resolver.states) if self.resolver else {}

    @property
    def button_states(self) -> list[FieldState]:
        return list(self.resolver.button_states) if self.resolver else []

    def field_state(self, path: str) -> FieldState:
        return self.resolver.field_state(path) if self.resolver else FieldState()

    def field_options(self, path: str) -> list[Any]:
        return self._require_context().field_options(path)

    def _require_context(self) -> FormContext:
        if self.context is None:
            raise LifecycleError("表单尚未打开")
        return self.context

    def _require_active(self) -> FormContext:
        if self.state is not FormLifecycle.ACTIVE:
            raise LifecycleError(f"当前状态 {self.state.value} 不允许此操作（需要 active）")
        return self._require_context()

    # ------------------------------------------------------------------
    # 打开
    # ------------------------------------------------------------------

    async def _load_config(self, source: str | FormConfig | dict[str, Any]) -> FormConfig:
        config_format = self.settings.parser.default_format
        if isinstance(source, FormConfig):
            config = source.model_copy(deep=True)
        elif isinstance(source, dict):
            try:
                config = FormConfig.model_validate(source)
            except pydantic.ValidationError as e:
                raise ParseError(f"表单配置结构无法识别: {e}", reason=str(e)) from e
        elif isinstance(source, str) and source.strip().startswith(URL_PREFIXES):
            return await fetch_config(source.strip(), self.client, config_format)
        elif isinstance(source, str):
            return parse_config(source, config_format)
        else:
            raise TypeError(f"不支持的配置来源类型: {type(source).__name__}")

        result = validate_config(config)
        if not result.valid:
            raise ConfigValidationError(result.errors)
        return config

    async def open(
        self,
        source: str | FormConfig | dict[str, Any],
        initial_values: dict[str, Any] | None = None,
    ) -> FormInstance:
        """
        解析配置并完成初始化（配置无效时状态保持 uninitialized）

        initial_values 覆盖字段 default_value（嵌套结构或点分路径均可），reset 时也恢复到它
        """
        config = await self._load_config(source)

        self.pipeline.transition(FormLifecycle.INITIALIZING)
        config = await self.pipeline.before_render(config)
        self.graph = build_dependency_graph(config.fields)

        self._defaults = default_values(config)
        for path, value in flatten_values(initial_values or {}).items():
            set_value_at_path(self._defaults, path, value)
        self.context = FormContext(config, self._defaults, submit=self.submit, reset=self.reset)
        self.resolver = FieldStateResolver(config, self.graph, self.registry.functions)
        self.context.on_values_change(self._on_values_change)
        await self._load_static_options(config)

        await self.pipeline.initialize(self.context)
        self.resolver.compute_all(self.context.values)
        await self.pipeline.after_render(self.context)

        self.pipeline.transition(FormLifecycle.ACTIVE)
        logger.info(f"表单已打开: {config.form_id}（{len(self.graph)} 个依赖源）")
        return self

    async def _load_static_options(self, config: FormConfig) -> None:
        """内联选项直接写入；http(s) 选项并发拉取"""
        pending = []
        for path, field in config.iter_fields():
            if isinstance(field.options, list):
                self.context.set_field_options(path, field.options)
            elif isinstance(field.options, str) and field.options.startswith(URL_PREFIXES):
                pending.append(self._fetch_field_options(path, field.options))
        if pending:
            await asyncio.gather(*pending)

    async def _fetch_field_options(self, path: str, url: str) -> None:
        try:
            options = await self.option_loader.fetch_options(url)
        except Exception as e:
            logger.warning(f"字段 {path} 的选项加载失败: {e}")
            return
        self.context.set_field_options(path, options)

    def _on_values_change(self, changed: dict[str, Any], values: dict[str, Any]) -> None:
        if self.resolver is None:
            return
        affected = self.resolver.recompute(changed.keys(), values)
        if affected:
            logger.debug(f"重算字段状态: {', '.join(affected)}")

    # ------------------------------------------------------------------
    # 交互
    # ------------------------------------------------------------------

    async def set_values(self, changes: dict[str, Any]) -> None:
        """写入 {点分路径: 值}，并重算受影响字段的状态"""
        context = self._require_active()
        await context.set_values(changes)

    async def submit(self, on_complete: Callable[..., Any] | None = None) -> Any:
        context = self._require_active()
        return await self.submission.submit(context, self.resolver.states, on_complete)

    async def reset(self) -> None:
        """恢复到默认值"""
        context = self._require_active()
        await context.replace_values(self._defaults)

    async def click(self, button: int | ButtonConfig) -> Any:
        """触发按钮动作（隐藏或禁用的按钮不响应）"""
        context = self._require_active()
        if isinstance(button, int):
            index = button
            button = context.config.buttons[index]
            state = self.button_states[index] if index < len(self.button_states) else FieldState()
            if not state.visible or state.disabled:
                logger.info(f"按钮不可用，忽略点击: {button.text}")
                return None

        action = button.action
        if action == ButtonAction.SUBMIT.value:
            return await self.submit()
        if action == ButtonAction.RESET.value:
            await self.reset()
            return None
        if action == ButtonAction.CANCEL.value:
            if self.on_cancel is not None:
                result = self.on_cancel()
                if inspect.isawaitable(result):
                    await result
            return None
        if action == ButtonAction.CUSTOM.value:
            handler = self.registry.get_handler(button.handler or "")
            if handler is None:
                raise DynaformError(f"未注册的按钮处理函数: {button.handler}")
            result = handler(context, context.values)
            if inspect.isawaitable(result):
                result = await result
            return result
        raise DynaformError(f"不支持的按钮动作: {action}")

    async def dispose(self) -> None:
        await self.pipeline.dispose()
        if self._owns_client:
            await self.client.aclose()
            self._owns_client = False
