"""
函数合成器单元测试

运行：pytest backend/tests/unit/test_functions.py -v
"""

import pytest

from dynaform.expression import FunctionRegistry, SynthesizedFunction, resolve_function, synthesize
from dynaform.interfaces import FunctionEvaluationError


class TestFunctionShapes:
    """支持的函数形式测试"""

    def test_single_param_arrow_template(self):
        """测试单参数箭头函数与模板字符串"""
        fn = synthesize("value => `¥ ${value}`")
        assert isinstance(fn, SynthesizedFunction)
        assert fn(12) == "¥ 12"

    def test_multi_param_arrow(self):
        """测试多参数箭头函数"""
        fn = synthesize("(a, b) => a + b")
        assert fn(1, 2) == 3
        assert fn("a", 1) == "a1"

    def test_arrow_with_block(self):
        """测试块语句箭头函数"""
        fn = synthesize("(a) => { return a * 2; }")
        assert fn(4) == 8

    def test_function_keyword(self):
        """测试 function 关键字形式"""
        fn = synthesize("function (a, b) { return a - b; }")
        assert fn(5, 3) == 2

    def test_declarations_in_block(self):
        """测试块内 const/let 声明"""
        fn = synthesize("function(x){ const y = x * 10; let z = y + 1; return z }")
        assert fn(2) == 21

    def test_bare_expression_uses_value(self):
        """测试裸表达式隐式参数 value"""
        fn = synthesize("value * 2")
        assert fn.params == ["value"]
        assert fn(21) == 42

    def test_missing_args_are_none(self):
        """测试缺少的实参为 None"""
        fn = synthesize("(a, b) => b ?? 'none'")
        assert fn(1) == "none"


class TestFunctionSemantics:
    """表达式语义测试"""

    def test_to_fixed(self):
        """测试 toFixed"""
        assert synthesize("value => value.toFixed(2)")(3.14159) == "3.14"

    def test_regex_replace(self):
        """测试正则替换（解析器常见写法）"""
        fn = synthesize(r"value => value.replace(/\$\s?|(,*)/g, '')")
        assert fn("$ 1,234") == "1234"

    def test_thousands_separator(self):
        """测试千分位格式化"""
        fn = synthesize(r"value => `${value}`.replace(/\B(?=(\d{3})+(?!\d))/g, ',')")
        assert fn(1234567) == "1,234,567"

    def test_conditional(self):
        """测试三元运算"""
        fn = synthesize("value => value > 10 ? 'big' : 'small'")
        assert fn(11) == "big"
        assert fn(3) == "small"

    def test_optional_chaining_and_nullish(self):
        """测试可选链与空值合并"""
        fn = synthesize("value => value?.name ?? 'none'")
        assert fn(None) == "none"
        assert fn({"name": "x"}) == "x"

    def test_template_renders_none_as_empty(self):
        """测试模板中 None 渲染为空串"""
        assert synthesize("value => `[${value}]`")(None) == "[]"

    def test_string_methods(self):
        """测试字符串方法链"""
        assert synthesize("value => value.trim().toUpperCase()")("  ab ") == "AB"

    def test_list_methods(self):
        """测试数组方法"""
        assert synthesize("value => value.join('-')")([1, 2]) == "1-2"
        assert synthesize("value => value.length")([1, 2, 3]) == 3

    def test_builtins(self):
        """测试内置函数"""
        assert synthesize("value => Math.round(value)")(1.5) == 2
        assert synthesize("value => Number(value) + 1")("41") == 42
        assert synthesize("value => parseInt(value)")("12px") == 12

    def test_richer_helpers_come_from_registry(self):
        """测试内置表之外的函数需由宿主注册（限定名同样可用）"""
        fn = synthesize("value => JSON.stringify(value)")
        with pytest.raises(FunctionEvaluationError):
            fn({"a": 1})

        registry = FunctionRegistry.with_builtins()
        registry.register("JSON.stringify", lambda v: "json")
        assert synthesize("value => JSON.stringify(value)", registry)({"a": 1}) == "json"

    def test_unlisted_method_rejected(self):
        """测试白名单外的字符串方法在调用时报错"""
        fn = synthesize("value => value.padStart(5, '0')")
        with pytest.raises(FunctionEvaluationError):
            fn("7")

    def test_strict_equality(self):
        """测试 === 不做类型转换"""
        fn = synthesize("value => value === 1")
        assert fn(1) is True
        assert fn("1") is False


class TestFunctionRejection:
    """不支持的输入测试"""

    @pytest.mark.parametrize(
        "source",
        [
            "",
            None,
            123,
            "value =>",
            "(a, b => a",
            "value => { while (true) {} }",
            "value => value.replace(/(/g, '')",
            "value => @",
            "value => value[0]",
            "value => [value]",
        ],
    )
    def test_unsupported_returns_none(self, source):
        """测试不支持的形式返回 None"""
        assert synthesize(source) is None

    def test_unknown_identifier_raises_on_call(self):
        """测试未定义标识符在调用时报错"""
        fn = synthesize("value => __import__('os')")
        assert fn is not None
        with pytest.raises(FunctionEvaluationError):
            fn(1)

    def test_private_attribute_blocked(self):
        """测试禁止访问下划线属性"""
        fn = synthesize("value => value.__class__")
        with pytest.raises(FunctionEvaluationError):
            fn("x")

    def test_unsupported_method_blocked(self):
        """测试白名单外的方法"""
        fn = synthesize("value => value.format('x')")
        with pytest.raises(FunctionEvaluationError):
            fn("{}")


class TestFunctionRegistry:
    """函数注册表测试"""

    def test_registered_function_callable_from_source(self):
        """测试函数文本可调用已注册函数"""
        registry = FunctionRegistry()
        registry.register("upper", lambda s: s.upper())
        fn = synthesize("value => upper(value)", registry)
        assert fn("ab") == "AB"

    def test_decorator_registration(self):
        """测试装饰器注册"""
        registry = FunctionRegistry()

        @registry.register("double")
        def double(v):
            return v * 2

        assert registry.get("double") is double
        assert "double" in registry

    def test_resolve_prefers_registered_name(self):
        """测试引用解析优先使用已注册名称"""
        registry = FunctionRegistry.with_builtins()

        def money(v):
            return f"${v}"

        registry.register("money", money)
        assert resolve_function("money", registry) is money
        assert resolve_function(" money ", registry) is money

    def test_resolve_passthrough_and_synthesis(self):
        """测试可调用对象原样返回，文本则合成"""
        assert resolve_function(len) is len
        assert resolve_function(42) is None
        assert resolve_function("value => value + 1")(1) == 2
