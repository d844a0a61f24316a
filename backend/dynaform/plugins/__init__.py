"""
插件层 - 生命周期钩子流水线与内置插件
"""

from .base import FormPlugin, Hook
from .pipeline import PluginPipeline
from .remote_data import RemoteDataPlugin
from .storage import InMemoryStorage, JsonFileStorage, StorageOptions, StoragePlugin

__all__ = [
    "FormPlugin",
    "Hook",
    "PluginPipeline",
    "RemoteDataPlugin",
    "StoragePlugin",
    "StorageOptions",
    "InMemoryStorage",
    "JsonFileStorage",
]
