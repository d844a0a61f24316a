"""
插件流水线与远程数据插件单元测试

运行：pytest backend/tests/unit/test_plugins.py -v
"""

import logging

import pytest

from dynaform.config import EngineSettings
from dynaform.interfaces import LifecycleError, PluginHookError
from dynaform.models import FormConfig, FormContext, FormLifecycle
from dynaform.plugins import FormPlugin, Hook, PluginPipeline, RemoteDataPlugin
from dynaform.runtime import FormInstance

pytestmark = pytest.mark.asyncio

API_BASE = "https://api.example.com"


class RecordingPlugin(FormPlugin):
    """记录钩子调用；fail 中的钩子抛出异常"""

    def __init__(self, name, hooks, calls, fail=()):
        self.name = name
        self.capabilities = frozenset(hooks)
        self.calls = calls
        self.fail = set(fail)
        self.errors = []

    def _record(self, hook):
        self.calls.append((self.name, hook.value))
        if hook in self.fail:
            raise RuntimeError(f"{self.name} failed")

    def initialize(self, context):
        self._record(Hook.INITIALIZE)

    async def before_submit(self, values):
        self._record(Hook.BEFORE_SUBMIT)
        return {**values, self.name: True}

    def after_render(self, context):
        self._record(Hook.AFTER_RENDER)

    def on_error(self, error):
        self.errors.append(error)

    def dispose(self):
        self._record(Hook.DISPOSE)


def _context():
    return FormContext(FormConfig(form_id="t", fields=[]))


async def _initializing(*plugins):
    pipeline = PluginPipeline(plugins)
    pipeline.transition(FormLifecycle.INITIALIZING)
    return pipeline


class TestDispatch:
    """钩子调度测试"""

    async def test_capability_dispatch(self):
        """测试未声明的钩子不被调用"""
        calls = []
        plugin = RecordingPlugin("p", {Hook.AFTER_RENDER}, calls)
        pipeline = await _initializing(plugin)
        await pipeline.initialize(_context())
        await pipeline.after_render(_context())
        assert calls == [("p", "after_render")]

    async def test_registration_order(self):
        """测试按注册顺序调用（含 async 钩子）"""
        calls = []
        pipeline = await _initializing(
            RecordingPlugin("a", {Hook.INITIALIZE}, calls),
            RecordingPlugin("b", {Hook.INITIALIZE}, calls),
        )
        await pipeline.initialize(_context())
        assert calls == [("a", "initialize"), ("b", "initialize")]

    async def test_before_render_chain(self):
        """测试 before_render 链式改写，返回 None 不修改"""

        class Rename(FormPlugin):
            name = "rename"
            capabilities = frozenset({Hook.BEFORE_RENDER})

            def before_render(self, config):
                return config.model_copy(update={"name": "renamed"})

        class Noop(FormPlugin):
            name = "noop"
            capabilities = frozenset({Hook.BEFORE_RENDER})

            def before_render(self, config):
                return None

        pipeline = await _initializing(Rename(), Noop())
        config = await pipeline.before_render(FormConfig(form_id="t"))
        assert config.name == "renamed"


class TestIsolation:
    """失败隔离测试"""

    async def test_failure_isolation(self, caplog):
        """测试抛异常的插件不影响后续插件，错误交给其 on_error"""
        calls = []
        bad = RecordingPlugin("bad", {Hook.INITIALIZE, Hook.ON_ERROR}, calls, fail={Hook.INITIALIZE})
        good = RecordingPlugin("good", {Hook.INITIALIZE, Hook.ON_ERROR}, calls)
        pipeline = await _initializing(bad, good)

        with caplog.at_level(logging.ERROR):
            await pipeline.initialize(_context())

        assert calls == [("bad", "initialize"), ("good", "initialize")]
        assert len(bad.errors) == 1
        error = bad.errors[0]
        assert isinstance(error, PluginHookError)
        assert error.plugin_name == "bad"
        assert error.hook == "initialize"
        assert isinstance(error.original, RuntimeError)
        assert good.errors == []
        assert "Error in plugin bad at initialize hook" in caplog.text

    async def test_before_submit_keeps_last_good_value(self):
        """测试链式钩子失败时保留上一个成功的值"""
        calls = []
        pipeline = await _initializing(
            RecordingPlugin("a", {Hook.BEFORE_SUBMIT}, calls),
            RecordingPlugin("b", {Hook.BEFORE_SUBMIT}, calls, fail={Hook.BEFORE_SUBMIT}),
            RecordingPlugin("c", {Hook.BEFORE_SUBMIT}, calls),
        )
        pipeline.transition(FormLifecycle.ACTIVE)
        pipeline.transition(FormLifecycle.SUBMITTING)

        values = await pipeline.before_submit({"x": 1})
        assert values == {"x": 1, "a": True, "c": True}

    async def test_failing_on_error_swallowed(self):
        """测试 on_error 自身异常不外抛"""

        class Broken(FormPlugin):
            name = "broken"
            capabilities = frozenset({Hook.ON_ERROR})

            def on_error(self, error):
                raise ValueError("again")

        pipeline = PluginPipeline([Broken()])
        await pipeline.on_error(RuntimeError("boom"))


class TestLifecycle:
    """生命周期测试"""

    async def test_illegal_transition(self):
        """测试非法状态转换"""
        pipeline = PluginPipeline()
        with pytest.raises(LifecycleError, match="非法的生命周期转换"):
            pipeline.transition(FormLifecycle.ACTIVE)

    async def test_hook_requires_state(self):
        """测试钩子在错误状态下调用"""
        pipeline = PluginPipeline()
        with pytest.raises(LifecycleError):
            await pipeline.initialize(_context())
        with pytest.raises(LifecycleError):
            await pipeline.before_submit({})

    async def test_register_after_initialize(self):
        """测试初始化后不能注册插件"""
        pipeline = await _initializing()
        with pytest.raises(LifecycleError):
            pipeline.register(FormPlugin())

    async def test_dispose_is_terminal(self):
        """测试销毁后状态不可再转换，重复销毁无副作用"""
        calls = []
        pipeline = await _initializing(RecordingPlugin("p", {Hook.DISPOSE}, calls))
        await pipeline.dispose()
        await pipeline.dispose()
        assert pipeline.state is FormLifecycle.DISPOSED
        assert calls == [("p", "dispose")]
        with pytest.raises(LifecycleError):
            pipeline.transition(FormLifecycle.ACTIVE)


class TestRemoteDataPlugin:
    """远程数据插件测试"""

    @staticmethod
    def _document():
        return {
            "formId": "car",
            "fields": [
                {"name": "brand", "type": "select", "options": "remote:brands"},
                {
                    "name": "trim",
                    "type": "group",
                    "fields": [{"name": "model", "type": "select", "options": "remote:models"}],
                },
                {"name": "color", "type": "select", "options": "remote:nope"},
            ],
        }

    @staticmethod
    def _options():
        return {
            "dataSources": [
                {"name": "brands", "url": f"{API_BASE}/brands", "cacheTime": 60000},
                {"name": "models", "url": f"{API_BASE}/models", "paramsFrom": {"brand": "brand"}},
            ],
        }

    async def test_marks_and_loads_fields(self, api, client, settings):
        """测试 remote: 字段被标记并在渲染后加载（含分组成员）"""
        api.add("GET", "/brands", json=[{"value": "bmw", "label": "BMW"}])
        api.add("GET", "/models", json=["x5"])
        plugin = RemoteDataPlugin.from_client(self._options(), client)

        async with FormInstance(plugins=[plugin], client=client, settings=settings) as form:
            await form.open(self._document())

            brand = form.config.find_field("brand")
            assert brand.remote_source == "brands"
            assert brand.options == []
            assert form.config.find_field("trim.model").remote_source == "models"

            assert form.field_options("brand") == [{"value": "bmw", "label": "BMW"}]
            assert form.field_options("trim.model") == [{"value": "x5", "label": "x5"}]
            assert form.field_options("color") == []
            # autoLoad 预加载后渲染阶段命中缓存
            assert len(api.calls("/brands")) == 1

    async def test_cascading_reload(self, api, client, settings):
        """测试 paramsFrom 引用的字段变化后按新值重新加载"""
        api.add("GET", "/brands", json=[])
        api.add("GET", "/models", json=["x5"])
        plugin = RemoteDataPlugin.from_client(self._options(), client)

        async with FormInstance(plugins=[plugin], client=client, settings=settings) as form:
            await form.open(self._document())
            first = api.calls("/models")[-1]
            assert "brand" not in first.url.params

            await form.set_values({"brand": "bmw"})
            last = api.calls("/models")[-1]
            assert last.url.params["brand"] == "bmw"

            calls = len(api.calls("/models"))
            await form.set_values({"color": "red"})
            assert len(api.calls("/models")) == calls

    async def test_dispose_unsubscribes(self, api, client, settings):
        """测试销毁时取消值监听"""
        api.add("GET", "/brands", json=[])
        api.add("GET", "/models", json=[])
        plugin = RemoteDataPlugin.from_client({**self._options(), "autoLoad": False}, client)
        form = FormInstance(plugins=[plugin], client=client, settings=settings)
        await form.open(self._document())
        assert plugin._unsubscribe is not None
        await form.dispose()
        assert plugin._unsubscribe is None

    async def test_shared_cache_across_forms(self, api, client, settings, registry):
        """测试两个表单的插件共用注册表上的选项缓存"""
        api.add("GET", "/brands", json=["bmw"])
        api.add("GET", "/models", json=[])

        for _ in range(2):
            plugin = RemoteDataPlugin.from_client(
                self._options(), client, cache=registry.option_cache, settings=settings
            )
            async with FormInstance(registry, plugins=[plugin], client=client, settings=settings) as form:
                await form.open(self._document())
                assert form.field_options("brand") == [{"value": "bmw", "label": "bmw"}]

        assert len(api.calls("/brands")) == 1
        assert "brands" in registry.option_cache

    async def test_auto_load_follows_settings(self, api, client):
        """测试未声明 autoLoad 时沿用引擎配置，显式声明优先"""
        api.add("GET", "/brands", json=[])
        options = {"dataSources": [{"name": "brands", "url": f"{API_BASE}/brands"}]}
        document = {"formId": "b", "fields": [{"name": "brand", "type": "select", "options": "remote:brands"}]}
        no_preload = EngineSettings(remote_data={"auto_load": False})

        plugin = RemoteDataPlugin.from_client(options, client, settings=no_preload)
        assert plugin.auto_load is False
        async with FormInstance(plugins=[plugin], client=client, settings=no_preload) as form:
            await form.open(document)
        assert len(api.calls("/brands")) == 1

        plugin = RemoteDataPlugin.from_client({**options, "autoLoad": True}, client, settings=no_preload)
        assert plugin.auto_load is True
        async with FormInstance(plugins=[plugin], client=client, settings=no_preload) as form:
            await form.open(document)
        assert len(api.calls("/brands")) == 3

    async def test_malformed_source_url_isolated(self, api, client, settings):
        """测试单个字段的数据源 URL 非法时只影响该字段"""
        api.add("GET", "/brands", json=["bmw"])
        options = {
            "autoLoad": False,
            "dataSources": [
                {"name": "brands", "url": f"{API_BASE}/brands"},
                {"name": "broken", "url": "http://[::1"},
            ],
        }
        document = {
            "formId": "b",
            "fields": [
                {"name": "brand", "type": "select", "options": "remote:brands"},
                {"name": "other", "type": "select", "options": "remote:broken"},
            ],
        }
        plugin = RemoteDataPlugin.from_client(options, client, settings=settings)
        async with FormInstance(plugins=[plugin], client=client, settings=settings) as form:
            await form.open(document)
            assert form.field_options("brand") == [{"value": "bmw", "label": "bmw"}]
            assert form.field_options("other") == []
            assert form.state is FormLifecycle.ACTIVE
