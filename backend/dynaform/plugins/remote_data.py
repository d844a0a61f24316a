"""
远程数据插件 - 把 options: "remote:<name>" 的字段接到数据源

职责：
- initialize: auto_load 时预加载全部数据源（未声明时取引擎配置 remote_data.auto_load）；监听值变化
- before_render: remote:<name> → 空列表 + remote_source 标记（递归进入分组）
- after_render: 并发加载各标记字段的选项，只写入该字段
- 级联：数据源声明 params_from 时，所引用字段变化后按新值重新加载
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..config import EngineSettings, get_config
from ..models import DataSource, FieldConfig, FormConfig, FormContext, RemoteDataOptions
from ..remote import OptionCache, RemoteDataLoader
from .base import FormPlugin, Hook

logger = logging.getLogger(__name__)

REMOTE_PREFIX = "remote:"


def _mark_remote_fields(fields: list[FieldConfig]) -> None:
    for field in fields:
        if isinstance(field.options, str) and field.options.startswith(REMOTE_PREFIX):
            field.remote_source = field.options[len(REMOTE_PREFIX):]
            field.options = []
        if field.is_group and field.fields:
            _mark_remote_fields(field.fields)


def _path_affects(changed: str, watched: str) -> bool:
    """changed 等于 watched，或是其上级/下级路径"""
    return (
        changed == watched
        or watched.startswith(f"{changed}.")
        or changed.startswith(f"{watched}.")
    )


class RemoteDataPlugin(FormPlugin):
    """远程数据插件"""

    name = "remoteData"
    capabilities = frozenset({Hook.INITIALIZE, Hook.BEFORE_RENDER, Hook.AFTER_RENDER, Hook.DISPOSE})

    def __init__(
        self,
        options: RemoteDataOptions | dict[str, Any],
        loader: RemoteDataLoader,
        settings: EngineSettings | None = None,
    ):
        if isinstance(options, dict):
            options = RemoteDataOptions.model_validate(options)
        self.options = options
        self.loader = loader
        self.settings = settings
        self.context: FormContext | None = None
        self._remote_fields: dict[str, str] = {}  # 字段路径 → 数据源名
        self._unsubscribe = None

    @classmethod
    def from_client(
        cls,
        options: RemoteDataOptions | dict[str, Any],
        client: httpx.AsyncClient,
        cache: OptionCache | None = None,
        settings: EngineSettings | None = None,
    ) -> RemoteDataPlugin:
        """按客户端构建；传入 registry.option_cache 可与其他表单共享缓存"""
        if isinstance(options, dict):
            options = RemoteDataOptions.model_validate(options)
        return cls(options, RemoteDataLoader(options, client, cache=cache), settings)

    @property
    def auto_load(self) -> bool:
        if self.options.auto_load is not None:
            return self.options.auto_load
        return (self.settings or get_config()).remote_data.auto_load

    async def initialize(self, context: FormContext) -> None:
        self.context = context
        self._unsubscribe = context.on_values_change(self._on_values_change)
        if self.auto_load and self.options.data_sources:
            await self.loader.load_all_data()

    def before_render(self, config: FormConfig) -> FormConfig:
        _mark_remote_fields(config.fields)
        return config

    async def after_render(self, context: FormContext) -> None:
        self.context = context
        self._remote_fields = {
            path: field.remote_source
            for path, field in context.config.iter_fields()
            if field.remote_source
        }
        await asyncio.gather(
            *(self._load_field(path, name) for path, name in self._remote_fields.items())
        )

    def dispose(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _resolve_source(self, name: str) -> DataSource | None:
        """带 params_from 的数据源：用当前字段值补全请求参数"""
        source = self.options.find_source(name)
        if source is None or not source.params_from or self.context is None:
            return None
        params = dict(source.params)
        for param, path in source.params_from.items():
            params[param] = self.context.get_value(path)
        return source.model_copy(update={"params": params})

    async def _load_field(self, path: str, name: str) -> None:
        try:
            resolved = self._resolve_source(name)
            if resolved is not None:
                options = await self.loader.load_source(resolved)
            else:
                options = await self.loader.load_data(name)
        except Exception as e:
            logger.warning(f"字段 {path} 的远程选项加载失败: {e}")
            return
        self.context.set_field_options(path, options)
        logger.debug(f"字段 {path} 已加载 {len(options)} 个选项（数据源 {name}）")

    async def _on_values_change(self, changed: dict[str, Any], values: dict[str, Any]) -> None:
        reloads = []
        for path, name in self._remote_fields.items():
            source = self.options.find_source(name)
            if source is None or not source.params_from:
                continue
            if any(_path_affects(c, w) for c in changed for w in source.params_from.values()):
                reloads.append(self._load_field(path, name))
        if reloads:
            await asyncio.gather(*reloads)
