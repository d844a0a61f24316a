"""
远程数据加载器 - 按数据源声明拉取选项列表并缓存

流程（单个数据源）：
1. 查缓存：条目存在、cache_time 为正、且未过期 → 直接返回同一列表对象
2. 合并参数（全局 → 数据源）与请求头（默认 → 全局 → 数据源）
3. 发送请求，非2xx → RemoteLoadError
4. 按 data_path 取出数组（缺失 → []，非数组 → []）
5. 映射为 {value, label, **原始对象}，原始值映射为 {value: v, label: v}
6. 写入缓存并返回

并发未命中不做合并去重，后写入者覆盖。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..interfaces import DataSourceNotFoundError, IDataSourceLoader, RemoteLoadError
from ..models import DataSource, RemoteDataOptions
from .cache import Clock, OptionCache, monotonic_ms
from .transport import send_request

logger = logging.getLogger(__name__)


def extract_data_path(payload: Any, data_path: str | None) -> Any:
    """按点分路径取出数据，任一段缺失返回 []"""
    if not data_path:
        return payload
    data = payload
    for key in data_path.split("."):
        if isinstance(data, dict) and key in data:
            data = data[key]
        else:
            return []
    return data


def map_options(items: Any, value_field: str = "value", label_field: str = "label") -> list[dict[str, Any]]:
    """原始数组 → 选项列表（原始对象的键优先）"""
    if not isinstance(items, list):
        return []
    options = []
    for item in items:
        if isinstance(item, dict):
            options.append({"value": item.get(value_field), "label": item.get(label_field), **item})
        else:
            options.append({"value": item, "label": item})
    return options


class RemoteDataLoader(IDataSourceLoader):
    """远程选项数据加载器"""

    def __init__(
        self,
        options: RemoteDataOptions,
        client: httpx.AsyncClient,
        cache: OptionCache | None = None,
        clock: Clock | None = None,
    ):
        self.options = options
        self.client = client
        # 传入共享缓存时沿用其时钟
        self.cache = cache if cache is not None else OptionCache(clock or monotonic_ms)

    async def load_data(
        self, name: str, override: DataSource | None = None
    ) -> list[dict[str, Any]]:
        """加载具名数据源（override 替换声明，但缓存仍以名称为键）"""
        source = override or self.options.find_source(name)
        if source is None:
            raise DataSourceNotFoundError(name)
        return await self._load(name, source)

    async def load_source(self, source: DataSource) -> list[dict[str, Any]]:
        """加载临时数据源（以 METHOD:url:params:body 组合键缓存）"""
        return await self._load(source.cache_key(), source)

    async def fetch_options(self, url: str) -> list[dict[str, Any]]:
        """加载 http(s) 选项地址（响应体为 JSON 数组）"""
        return await self.load_source(DataSource(name=url, url=url))

    async def load_all_data(self) -> dict[str, list[dict[str, Any]]]:
        """并发加载全部数据源，单个失败记录警告并以 [] 代替"""
        names = [source.name for source in self.options.data_sources]
        results = await asyncio.gather(*(self._load_or_empty(name) for name in names))
        return dict(zip(names, results))

    def get_all_data(self) -> dict[str, list[dict[str, Any]]]:
        """已缓存的全部数据（不做TTL判定）"""
        return self.cache.snapshot()

    def clear_cache(self, name: str | None = None) -> None:
        self.cache.clear(name)

    async def _load_or_empty(self, name: str) -> list[dict[str, Any]]:
        try:
            return await self.load_data(name)
        except Exception as e:
            logger.warning(f"数据源 {name} 加载失败，使用空列表: {e}")
            return []

    async def _load(self, key: str, source: DataSource) -> list[dict[str, Any]]:
        cached = self.cache.get(key, source.cache_time)
        if cached is not None:
            logger.debug(f"数据源缓存命中: {key}")
            return cached

        data = await self._fetch(source)
        self.cache.put(key, data)
        return data

    async def _fetch(self, source: DataSource) -> list[dict[str, Any]]:
        params = {**self.options.params, **source.params}
        headers = {**self.options.headers, **source.headers}
        response = await send_request(
            self.client,
            source.method,
            source.url,
            params=params,
            headers=headers,
            body=source.body,
        )
        if not response.is_success:
            raise RemoteLoadError(
                f"Request failed with status {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteLoadError(f"Invalid JSON response from {source.url}: {e}") from e

        items = extract_data_path(payload, source.data_path)
        return map_options(items, source.value_field, source.label_field)
