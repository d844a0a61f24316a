"""
数据源模型 - 远程选项列表的声明与缓存条目
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from pydantic import Field

from .base import DocumentModel


class DataSource(DocumentModel):
    """数据源声明"""
    name: str = ""
    url: str
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    data_path: str | None = Field(None, description="点分路径，如 data.items")
    value_field: str = "value"
    label_field: str = "label"
    cache_time: int | None = Field(None, description="缓存时间（毫秒）")
    params_from: dict[str, str] = Field(
        default_factory=dict, description="请求参数名 → 表单字段路径（级联加载）"
    )

    @property
    def is_read(self) -> bool:
        return self.method.upper() == "GET"

    def cache_key(self) -> str:
        """临时数据源的组合缓存键：METHOD:url:params:body"""
        params = json.dumps(self.params, sort_keys=True, default=str)
        body = json.dumps(self.body, sort_keys=True, default=str)
        return f"{self.method.upper()}:{self.url}:{params}:{body}"


class RemoteDataOptions(DocumentModel):
    """远程数据插件配置"""
    data_sources: list[DataSource] = Field(default_factory=list)
    auto_load: bool | None = Field(None, description="None 表示沿用引擎配置")
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, Any] = Field(default_factory=dict)

    def find_source(self, name: str) -> DataSource | None:
        for source in self.data_sources:
            if source.name == name:
                return source
        return None


@dataclass
class CacheEntry:
    """缓存条目"""
    data: list[dict[str, Any]]
    timestamp: float  # 毫秒
