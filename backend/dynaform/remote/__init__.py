"""
远程数据层 - 数据源加载、选项缓存与HTTP传输
"""

from .cache import OptionCache, monotonic_ms
from .loader import RemoteDataLoader, extract_data_path, map_options
from .transport import build_query_url, decode_response, send_request

__all__ = [
    "OptionCache",
    "monotonic_ms",
    "RemoteDataLoader",
    "extract_data_path",
    "map_options",
    "build_query_url",
    "decode_response",
    "send_request",
]
