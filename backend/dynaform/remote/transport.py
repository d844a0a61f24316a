"""
HTTP传输 - 基于 httpx.AsyncClient 的请求封装

约定：
- GET 请求参数拼接为查询串，不发送请求体
- 其他方法在有请求体时以 JSON 发送
- 默认 Content-Type: application/json，调用方头部覆盖默认值
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from ..interfaces import RemoteLoadError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {"Content-Type": "application/json"}


def build_query_url(url: str, params: dict[str, Any] | None) -> str:
    """把参数拼接为查询串（值为 None 的参数跳过）"""
    query = {k: _query_value(v) for k, v in (params or {}).items() if v is not None}
    if not query:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(query)}"


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


async def send_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    body: Any = None,
) -> httpx.Response:
    """
    发送请求并返回响应（不检查状态码）

    Raises:
        RemoteLoadError: 网络层失败（连接/超时/URL非法等）
    """
    method = method.upper()
    merged_headers = {**DEFAULT_HEADERS, **(headers or {})}
    kwargs: dict[str, Any] = {"headers": merged_headers}
    if method == "GET":
        url = build_query_url(url, params)
    elif body is not None:
        kwargs["json"] = body

    logger.debug(f"{method} {url}")
    try:
        return await client.request(method, url, **kwargs)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise RemoteLoadError(f"Request failed for {url}: {e}") from e


def decode_response(response: httpx.Response) -> Any:
    """响应体按 JSON 解码，失败时返回文本"""
    try:
        return response.json()
    except ValueError:
        return response.text
