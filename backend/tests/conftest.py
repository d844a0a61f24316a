"""
pytest 配置与公共 fixtures

使用方式：
    async def test_something(api, client, registry):
        api.add("GET", "/options", json=[1, 2])
        ...
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from dynaform.config import EngineSettings
from dynaform.models import FormConfig
from dynaform.registry import EngineRegistry

API_BASE = "https://api.example.com"


# ============================================================================
# 时钟 / HTTP 替身
# ============================================================================

class FakeClock:
    """可手动推进的毫秒时钟"""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class ApiStub:
    """基于 httpx.MockTransport 的接口桩：按 (method, path) 返回预设响应并记录请求"""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], tuple[int, Any]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, status: int = 200, json: Any = None, text: str | None = None) -> None:
        body = text if text is not None else json
        self.routes[(method.upper(), path)] = (status, body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        status, body = route
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content) if request.content else None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def api() -> ApiStub:
    return ApiStub()


@pytest.fixture
def client(api: ApiStub) -> httpx.AsyncClient:
    """走 MockTransport 的客户端（无真实网络）"""
    return httpx.AsyncClient(transport=httpx.MockTransport(api.handler))


# ============================================================================
# 引擎 Fixtures
# ============================================================================

@pytest.fixture
def registry() -> EngineRegistry:
    """每个测试独立的引擎注册表"""
    return EngineRegistry()


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings()


@pytest.fixture
def minimal_document() -> dict[str, Any]:
    """最小合法配置"""
    return {
        "formId": "f1",
        "fields": [{"name": "age", "type": "number"}],
        "buttons": [{"text": "Go", "action": "submit"}],
    }


@pytest.fixture
def order_document() -> dict[str, Any]:
    """带条件可见性、分组与提交接口的配置"""
    return {
        "formId": "order",
        "name": "下单",
        "api": {"submit": f"{API_BASE}/orders", "headers": {"X-Tenant": "t1"}},
        "fields": [
            {
                "name": "customerType",
                "type": "radio",
                "label": "客户类型",
                "defaultValue": "person",
                "options": [
                    {"label": "个人", "value": "person"},
                    {"label": "企业", "value": "company"},
                ],
            },
            {
                "name": "companyName",
                "type": "input",
                "label": "公司名称",
                "visible": "formValues.customerType == 'company'",
                "rules": [{"required": True, "message": "请输入公司名称"}],
            },
            {
                "name": "quantity",
                "type": "number",
                "label": "数量",
                "defaultValue": 1,
                "rules": [{"required": True}, {"type": "positive"}],
            },
            {
                "name": "contact",
                "type": "group",
                "fields": [
                    {"name": "email", "type": "input", "rules": ["email"]},
                    {
                        "name": "phone",
                        "type": "input",
                        "disabled": "$contact.email != null",
                    },
                ],
            },
        ],
        "buttons": [
            {"text": "提交", "action": "submit"},
            {"text": "重置", "action": "reset"},
        ],
    }


@pytest.fixture
def order_config(order_document: dict[str, Any]) -> FormConfig:
    return FormConfig.model_validate(order_document)


# ============================================================================
# 文件 Fixtures
# ============================================================================

@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """临时目录"""
    return tmp_path
