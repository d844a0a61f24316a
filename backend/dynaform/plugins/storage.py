"""
存储插件 - 表单值的本地持久化（草稿恢复）

职责：
- initialize 时从存储恢复（auto_load），过期数据删除
- 值变化时自动保存（auto_save），提交成功后保存
- include/exclude 过滤（点分路径，匹配字段本身及其子路径）

存储后端实现 IStorageBackend：InMemoryStorage、JsonFileStorage。
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable

from pydantic import Field

from ..interfaces import IStorageBackend
from ..models import FormContext, flatten_values, set_value_at_path
from ..models.base import DocumentModel
from .base import FormPlugin, Hook

logger = logging.getLogger(__name__)

TIMESTAMP_KEY = "_timestamp"


def wall_clock_ms() -> float:
    return time.time() * 1000


class InMemoryStorage(IStorageBackend):
    """进程内存储"""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage(IStorageBackend):
    """文件存储：每个键一个 <key>.json"""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return self.directory / f"{safe}.json"

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(key).write_text(value, encoding="utf-8")

    def remove_item(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()


class StorageOptions(DocumentModel):
    """存储插件配置"""
    key: str
    auto_load: bool = True
    auto_save: bool = True
    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    expiry: int | None = Field(None, description="过期时间（毫秒）")


def _matches(path: str, patterns: list[str]) -> bool:
    return any(path == p or path.startswith(f"{p}.") for p in patterns)


class StoragePlugin(FormPlugin):
    """存储插件"""

    name = "storage"
    capabilities = frozenset({Hook.INITIALIZE, Hook.AFTER_SUBMIT, Hook.DISPOSE})

    def __init__(
        self,
        options: StorageOptions | dict[str, Any],
        backend: IStorageBackend | None = None,
        clock: Callable[[], float] = wall_clock_ms,
    ):
        if isinstance(options, dict):
            options = StorageOptions.model_validate(options)
        self.options = options
        self.backend = backend or InMemoryStorage()
        self.clock = clock
        self.context: FormContext | None = None
        self._unsubscribe = None

    async def initialize(self, context: FormContext) -> None:
        self.context = context
        if self.options.auto_load:
            await self.load_from_storage()
        if self.options.auto_save:
            self._unsubscribe = context.on_values_change(
                lambda changed, values: self.save_to_storage(values)
            )

    def after_submit(self, values: dict[str, Any], response: Any) -> None:
        self.save_to_storage(values)

    def dispose(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def filter_fields(self, values: dict[str, Any]) -> dict[str, Any]:
        """按 include/exclude 过滤值（返回点分路径字典）"""
        flat = flatten_values(values)
        if self.options.exclude:
            flat = {p: v for p, v in flat.items() if not _matches(p, self.options.exclude)}
        if self.options.include:
            flat = {p: v for p, v in flat.items() if _matches(p, self.options.include)}
        return flat

    async def load_from_storage(self) -> None:
        if self.context is None:
            return
        raw = self.backend.get_item(self.options.key)
        if not raw:
            return
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning(f"存储数据无法解析，已忽略: {self.options.key} ({e})")
            return
        if not isinstance(data, dict):
            return

        timestamp = data.pop(TIMESTAMP_KEY, None)
        if self.options.expiry and timestamp is not None:
            if self.clock() - timestamp > self.options.expiry:
                logger.info(f"存储数据已过期: {self.options.key}")
                self.backend.remove_item(self.options.key)
                return

        restored = self.filter_fields(data)
        if restored:
            await self.context.set_values(restored)

    def save_to_storage(self, values: dict[str, Any]) -> None:
        document: dict[str, Any] = {}
        for path, value in self.filter_fields(values).items():
            set_value_at_path(document, path, value)
        if self.options.expiry:
            document[TIMESTAMP_KEY] = self.clock()
        try:
            self.backend.set_item(self.options.key, json.dumps(document, ensure_ascii=False, default=str))
        except OSError as e:
            logger.warning(f"表单数据保存失败: {self.options.key} ({e})")

    def clear_storage(self) -> None:
        self.backend.remove_item(self.options.key)
