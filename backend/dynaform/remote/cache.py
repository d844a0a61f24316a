"""
选项缓存 - 按键存放 (data, timestamp)，命中需 TTL 未过期

条目在首次加载时创建，仅在显式清除或过期后失效，不主动回收。
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable

from ..models import CacheEntry

Clock = Callable[[], float]


def monotonic_ms() -> float:
    """默认时钟（毫秒）"""
    return time.monotonic() * 1000


class OptionCache:
    """带TTL判定的选项缓存（写操作加锁）"""

    def __init__(self, clock: Clock = monotonic_ms):
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.clock = clock

    def get(self, key: str, cache_time: int | None) -> list[dict[str, Any]] | None:
        """命中条件：条目存在、cache_time 为正、且 now - timestamp < cache_time"""
        if not cache_time or cache_time <= 0:
            return None
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() - entry.timestamp < cache_time:
            return entry.data
        return None

    def put(self, key: str, data: list[dict[str, Any]]) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(data=data, timestamp=self.clock())

    def clear(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def peek(self, key: str) -> CacheEntry | None:
        """不做TTL判定的原始条目"""
        return self._entries.get(key)

    def snapshot(self) -> dict[str, list[dict[str, Any]]]:
        return {key: entry.data for key, entry in self._entries.items()}

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
