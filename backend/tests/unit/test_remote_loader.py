"""
远程数据加载器单元测试

运行：pytest backend/tests/unit/test_remote_loader.py -v
"""

import pytest

from dynaform.interfaces import DataSourceNotFoundError, RemoteLoadError
from dynaform.models import DataSource, RemoteDataOptions
from dynaform.remote import OptionCache, RemoteDataLoader, build_query_url, extract_data_path, map_options

API_BASE = "https://api.example.com"


def _loader(client, clock=None, **options):
    return RemoteDataLoader(RemoteDataOptions.model_validate(options), client, clock=clock)


class TestCache:
    """缓存测试"""

    @pytest.mark.asyncio
    async def test_cache_time_window(self, api, client, clock):
        """测试 cacheTime 内命中同一对象，过期后重新请求"""
        api.add("GET", "/brands", json=[{"value": 1, "label": "A"}])
        loader = _loader(
            client,
            clock,
            dataSources=[{"name": "brands", "url": f"{API_BASE}/brands", "cacheTime": 1000}],
        )

        first = await loader.load_data("brands")
        clock.advance(500)
        second = await loader.load_data("brands")
        assert second is first
        assert len(api.calls("/brands")) == 1

        clock.advance(1000)
        third = await loader.load_data("brands")
        assert third is not first
        assert len(api.calls("/brands")) == 2

    @pytest.mark.asyncio
    async def test_no_cache_time_always_fetches(self, api, client, clock):
        """测试未设置 cacheTime 时每次请求"""
        api.add("GET", "/brands", json=[])
        loader = _loader(client, clock, dataSources=[{"name": "brands", "url": f"{API_BASE}/brands"}])
        await loader.load_data("brands")
        await loader.load_data("brands")
        assert len(api.calls("/brands")) == 2

    @pytest.mark.asyncio
    async def test_clear_cache(self, api, client, clock):
        """测试清除缓存后重新请求"""
        api.add("GET", "/brands", json=[])
        loader = _loader(
            client,
            clock,
            dataSources=[{"name": "brands", "url": f"{API_BASE}/brands", "cacheTime": 60000}],
        )
        await loader.load_data("brands")
        loader.clear_cache("brands")
        await loader.load_data("brands")
        assert len(api.calls("/brands")) == 2
        assert "brands" in loader.get_all_data()

    @pytest.mark.asyncio
    async def test_shared_cache_across_loaders(self, api, client, clock):
        """测试多个加载器共用同一缓存（即使缓存为空），时钟取自共享缓存"""
        api.add("GET", "/brands", json=["bmw"])
        shared = OptionCache(clock)
        sources = [{"name": "brands", "url": f"{API_BASE}/brands", "cacheTime": 1000}]
        first = RemoteDataLoader(RemoteDataOptions.model_validate({"dataSources": sources}), client, cache=shared)
        second = RemoteDataLoader(RemoteDataOptions.model_validate({"dataSources": sources}), client, cache=shared)
        assert first.cache is shared
        assert second.cache is shared

        options = await first.load_data("brands")
        clock.advance(500)
        assert await second.load_data("brands") is options
        assert len(api.calls("/brands")) == 1
        assert len(shared) == 1

        clock.advance(600)
        await second.load_data("brands")
        assert len(api.calls("/brands")) == 2

    def test_option_cache_ttl(self, clock):
        """测试缓存条目的 TTL 判定"""
        cache = OptionCache(clock)
        cache.put("k", [{"value": 1}])
        assert cache.get("k", 100) == [{"value": 1}]
        assert cache.get("k", None) is None
        assert cache.get("k", 0) is None
        clock.advance(100)
        assert cache.get("k", 100) is None
        assert cache.peek("k").timestamp == 0


class TestRequest:
    """请求构造测试"""

    @pytest.mark.asyncio
    async def test_params_and_headers_merged(self, api, client):
        """测试全局与数据源参数/请求头合并，数据源优先"""
        api.add("GET", "/cities", json=[])
        loader = _loader(
            client,
            headers={"Authorization": "Bearer t", "X-Scope": "global"},
            params={"lang": "zh", "page": 1},
            dataSources=[{
                "name": "cities",
                "url": f"{API_BASE}/cities",
                "headers": {"X-Scope": "cities"},
                "params": {"page": 2, "province": "zj", "empty": None},
            }],
        )
        await loader.load_data("cities")
        request = api.requests[0]
        assert dict(request.url.params) == {"lang": "zh", "page": "2", "province": "zj"}
        assert request.headers["Authorization"] == "Bearer t"
        assert request.headers["X-Scope"] == "cities"
        assert request.headers["Content-Type"] == "application/json"
        assert request.content == b""

    @pytest.mark.asyncio
    async def test_post_sends_json_body(self, api, client):
        """测试 POST 以 JSON 发送请求体"""
        api.add("POST", "/search", json={"data": {"items": ["x"]}})
        loader = _loader(
            client,
            dataSources=[{
                "name": "search",
                "url": f"{API_BASE}/search",
                "method": "post",
                "body": {"keyword": "a"},
                "dataPath": "data.items",
            }],
        )
        options = await loader.load_data("search")
        assert api.body(api.requests[0]) == {"keyword": "a"}
        assert options == [{"value": "x", "label": "x"}]

    def test_build_query_url(self):
        """测试查询串拼接"""
        assert build_query_url("http://h/p", {"a": 1, "b": None}) == "http://h/p?a=1"
        assert build_query_url("http://h/p?x=1", {"on": True}) == "http://h/p?x=1&on=true"
        assert build_query_url("http://h/p", {}) == "http://h/p"


class TestResponse:
    """响应处理测试"""

    @pytest.mark.asyncio
    async def test_field_mapping(self, api, client):
        """测试 valueField/labelField 映射，保留原始键"""
        api.add("GET", "/users", json={"data": [{"id": 7, "name": "Ann"}]})
        loader = _loader(
            client,
            dataSources=[{
                "name": "users",
                "url": f"{API_BASE}/users",
                "dataPath": "data",
                "valueField": "id",
                "labelField": "name",
            }],
        )
        assert await loader.load_data("users") == [{"value": 7, "label": "Ann", "id": 7, "name": "Ann"}]

    def test_original_keys_win(self):
        """测试原始对象自带 value/label 时覆盖映射结果"""
        options = map_options([{"id": 1, "value": "own"}], value_field="id")
        assert options == [{"value": "own", "label": None, "id": 1}]

    def test_missing_data_path(self):
        """测试 dataPath 缺失返回空列表"""
        assert extract_data_path({"data": {}}, "data.items") == []
        assert extract_data_path([1], None) == [1]
        assert map_options({"not": "a list"}) == []

    @pytest.mark.asyncio
    async def test_http_error(self, api, client):
        """测试非2xx响应"""
        api.add("GET", "/brands", status=503, json={})
        loader = _loader(client, dataSources=[{"name": "brands", "url": f"{API_BASE}/brands"}])
        with pytest.raises(RemoteLoadError, match="Request failed with status 503") as exc_info:
            await loader.load_data("brands")
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_invalid_json(self, api, client):
        """测试响应体不是 JSON"""
        api.add("GET", "/brands", text="<html>")
        loader = _loader(client, dataSources=[{"name": "brands", "url": f"{API_BASE}/brands"}])
        with pytest.raises(RemoteLoadError):
            await loader.load_data("brands")


class TestLoaderApi:
    """加载器接口测试"""

    @pytest.mark.asyncio
    async def test_unknown_source(self, client):
        """测试数据源不存在"""
        loader = _loader(client)
        with pytest.raises(DataSourceNotFoundError, match='Data source "nope" not found'):
            await loader.load_data("nope")

    @pytest.mark.asyncio
    async def test_load_all_isolates_failures(self, api, client):
        """测试批量加载时单个失败以空列表代替"""
        api.add("GET", "/ok", json=[1])
        api.add("GET", "/bad", status=500, json={})
        loader = _loader(
            client,
            dataSources=[
                {"name": "ok", "url": f"{API_BASE}/ok"},
                {"name": "bad", "url": f"{API_BASE}/bad"},
            ],
        )
        result = await loader.load_all_data()
        assert result == {"ok": [{"value": 1, "label": 1}], "bad": []}

    @pytest.mark.asyncio
    async def test_load_all_survives_malformed_url(self, api, client):
        """测试非法 URL 的数据源不影响其他数据源"""
        api.add("GET", "/good", json=["g"])
        loader = _loader(
            client,
            dataSources=[
                {"name": "bad", "url": "http://[::1"},
                {"name": "good", "url": f"{API_BASE}/good"},
            ],
        )
        result = await loader.load_all_data()
        assert result == {"bad": [], "good": [{"value": "g", "label": "g"}]}

    @pytest.mark.asyncio
    async def test_malformed_url_raises_remote_load_error(self, client):
        """测试直接加载时非法 URL 转为 RemoteLoadError"""
        loader = _loader(client, dataSources=[{"name": "bad", "url": "http://[::1"}])
        with pytest.raises(RemoteLoadError):
            await loader.load_data("bad")

    @pytest.mark.asyncio
    async def test_override_cached_under_name(self, api, client):
        """测试 override 数据源以名称缓存"""
        api.add("GET", "/v2/brands", json=["b"])
        loader = _loader(client)
        override = DataSource(name="brands", url=f"{API_BASE}/v2/brands", cache_time=1000)
        await loader.load_data("brands", override)
        assert loader.get_all_data() == {"brands": [{"value": "b", "label": "b"}]}

    @pytest.mark.asyncio
    async def test_load_source_composite_key(self, api, client):
        """测试临时数据源按请求参数分别缓存"""
        api.add("GET", "/cities", json=[])
        loader = _loader(client)
        zj = DataSource(url=f"{API_BASE}/cities", params={"p": "zj"}, cache_time=60000)
        js = DataSource(url=f"{API_BASE}/cities", params={"p": "js"}, cache_time=60000)
        await loader.load_source(zj)
        await loader.load_source(js)
        await loader.load_source(zj)
        assert len(api.calls("/cities")) == 2
        assert zj.cache_key() != js.cache_key()

    @pytest.mark.asyncio
    async def test_fetch_options(self, api, client):
        """测试 http 选项地址"""
        api.add("GET", "/colors", json=["red"])
        loader = _loader(client)
        assert await loader.fetch_options(f"{API_BASE}/colors") == [{"value": "red", "label": "red"}]
