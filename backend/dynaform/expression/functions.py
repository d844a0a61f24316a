"""
函数合成器 - 把配置中的函数文本（formatter/parser 等）转为可调用对象

支持的形式：
    (a, b) => expr
    a => expr
    (a) => { const x = expr; return expr; }
    function (a, b) { return expr; }
    expr                      # 裸表达式，隐式参数 value

配置文本从不作为 Python 代码执行：函数体被解析为受限AST后解释执行。
可用的语法：字面量、参数、模板字符串、正则字面量、算术/比较/逻辑/三元运算、
属性访问（字典键、length）、少量白名单方法（格式化/解析常用的字符串、数值、数组方法）、
调用 FunctionRegistry 中注册的函数。更复杂的逻辑由宿主应用注册具名函数提供。

使用方式：
    registry = FunctionRegistry.with_builtins()
    fmt = synthesize("value => `¥ ${value}`", registry)
    fmt(12)  # '¥ 12'
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Union

from ..interfaces import FunctionEvaluationError, FunctionSyntaxError
from .evaluator import is_truthy, loose_equals, to_number

logger = logging.getLogger(__name__)


# ============================================================================
# 词法
# ============================================================================

@dataclass
class Token:
    kind: str
    value: str
    pos: int


KEYWORDS = {"true", "false", "null", "undefined", "function", "return", "const", "let", "var"}

TOKEN_RE = re.compile(
    r"""
    (?P<NUMBER>\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|\.\d+)
  | (?P<STRING>"(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])*')
  | (?P<TEMPLATE>`(?:\\.|[^`\\])*`)
  | (?P<OP>===|!==|\?\.(?!\d)|\?\?|=>|==|!=|<=|>=|&&|\|\||[+\-*/%<>!?:,.;(){}\[\]=])
  | (?P<ID>[A-Za-z_$][A-Za-z0-9_$]*)
  | (?P<SKIP>\s+)
  | (?P<MISMATCH>.)
    """,
    re.VERBOSE,
)

REGEX_RE = re.compile(r"/((?:\\.|\[(?:\\.|[^\]\\])*\]|[^/\\\n\[])+)/([gimsuy]*)")

# 这些记号之后的 / 是除号，其余位置是正则字面量
_OPERAND_END = {")", "]", "}"}


def _regex_allowed(prev: Token | None) -> bool:
    if prev is None:
        return True
    if prev.kind == "OP":
        return prev.value not in _OPERAND_END
    return prev.kind == "KW" and prev.value == "return"


def tokenize(source: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    while pos < len(source):
        prev = tokens[-1] if tokens else None
        if source[pos] == "/" and _regex_allowed(prev):
            m = REGEX_RE.match(source, pos)
            if m:
                tokens.append(Token("REGEX", m.group(0), pos))
                pos = m.end()
                continue
        m = TOKEN_RE.match(source, pos)
        kind = m.lastgroup or "MISMATCH"
        value = m.group(0)
        if kind == "SKIP":
            pass
        elif kind == "MISMATCH":
            raise FunctionSyntaxError(f"无法识别的字符 {value!r}（位置 {pos}）")
        elif kind == "ID" and value in KEYWORDS:
            tokens.append(Token("KW", value, pos))
        else:
            tokens.append(Token(kind, value, pos))
        pos = m.end()
    tokens.append(Token("EOF", "", pos))
    return tokens


_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}


def _unescape(text: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), text, flags=re.S)


# ============================================================================
# AST
# ============================================================================

@dataclass
class Expr:
    pass


@dataclass
class Const(Expr):
    value: Any


@dataclass
class Var(Expr):
    name: str


@dataclass
class Template(Expr):
    parts: list[Union[str, Expr]]


@dataclass
class RegexLiteral(Expr):
    pattern: str
    flags: str


@dataclass
class Unary(Expr):
    op: str
    expr: Expr


@dataclass
class Binary(Expr):
    left: Expr
    op: str
    right: Expr


@dataclass
class Conditional(Expr):
    cond: Expr
    then: Expr
    otherwise: Expr


@dataclass
class Member(Expr):
    obj: Expr
    name: str
    optional: bool = False


@dataclass
class Call(Expr):
    callee: Expr
    args: list[Expr]


@dataclass
class Assign:
    name: str
    expr: Expr


@dataclass
class Return:
    expr: Expr | None


Body = Union[Expr, list[Union[Assign, Return]]]


# ============================================================================
# 语法分析
# ============================================================================

class Parser:
    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.i = 0

    def cur(self) -> Token:
        return self.tokens[self.i]

    def peek(self, offset: int = 1) -> Token:
        return self.tokens[min(self.i + offset, len(self.tokens) - 1)]

    def match(self, kind: str, value: str | None = None) -> Token | None:
        t = self.cur()
        if t.kind != kind or (value is not None and t.value != value):
            return None
        self.i += 1
        return t

    def expect(self, kind: str, value: str | None = None) -> Token:
        t = self.match(kind, value)
        if t is None:
            cur = self.cur()
            wanted = value or kind
            raise FunctionSyntaxError(f"期望 {wanted!r}，实际为 {cur.value or cur.kind!r}（位置 {cur.pos}）")
        return t

    # --- 函数形式 ---

    def parse_function(self) -> tuple[list[str], Body]:
        if self.match("KW", "function"):
            self.match("ID")
            self.expect("OP", "(")
            params = self.parse_params()
            body = self.parse_block()
            self.expect("EOF")
            return params, body

        if self.cur().kind == "ID" and self.peek().kind == "OP" and self.peek().value == "=>":
            params = [self.expect("ID").value]
            self.expect("OP", "=>")
            return params, self.parse_arrow_body()

        if self.cur().kind == "OP" and self.cur().value == "(":
            start = self.i
            try:
                self.expect("OP", "(")
                params = self.parse_params()
                self.expect("OP", "=>")
            except FunctionSyntaxError:
                self.i = start
            else:
                return params, self.parse_arrow_body()

        body = self.parse_expr()
        self.expect("EOF")
        return ["value"], body

    def parse_params(self) -> list[str]:
        """解析到右括号为止（左括号已消费）"""
        params: list[str] = []
        if self.match("OP", ")"):
            return params
        while True:
            params.append(self.expect("ID").value)
            if self.match("OP", ")"):
                return params
            self.expect("OP", ",")

    def parse_arrow_body(self) -> Body:
        if self.cur().kind == "OP" and self.cur().value == "{":
            body: Body = self.parse_block()
        else:
            body = self.parse_expr()
        self.expect("EOF")
        return body

    def parse_block(self) -> list[Union[Assign, Return]]:
        self.expect("OP", "{")
        stmts: list[Union[Assign, Return]] = []
        while not self.match("OP", "}"):
            if self.cur().kind == "KW" and self.cur().value in {"const", "let", "var"}:
                self.i += 1
                name = self.expect("ID").value
                self.expect("OP", "=")
                stmts.append(Assign(name, self.parse_expr()))
            elif self.match("KW", "return"):
                t = self.cur()
                if t.kind == "OP" and t.value in {";", "}"}:
                    stmts.append(Return(None))
                else:
                    stmts.append(Return(self.parse_expr()))
            else:
                t = self.cur()
                raise FunctionSyntaxError(f"函数体仅支持声明与 return 语句（位置 {t.pos}）")
            self.match("OP", ";")
        return stmts

    # --- 表达式 ---

    def parse_expr(self) -> Expr:
        cond = self.parse_nullish()
        if self.match("OP", "?"):
            then = self.parse_expr()
            self.expect("OP", ":")
            return Conditional(cond, then, self.parse_expr())
        return cond

    def _binary_level(self, ops: set[str], operand: Callable[[], Expr]) -> Expr:
        expr = operand()
        while self.cur().kind == "OP" and self.cur().value in ops:
            op = self.expect("OP").value
            expr = Binary(expr, op, operand())
        return expr

    def parse_nullish(self) -> Expr:
        return self._binary_level({"??"}, self.parse_or)

    def parse_or(self) -> Expr:
        return self._binary_level({"||"}, self.parse_and)

    def parse_and(self) -> Expr:
        return self._binary_level({"&&"}, self.parse_eq)

    def parse_eq(self) -> Expr:
        return self._binary_level({"==", "!=", "===", "!=="}, self.parse_cmp)

    def parse_cmp(self) -> Expr:
        return self._binary_level({"<", ">", "<=", ">="}, self.parse_term)

    def parse_term(self) -> Expr:
        return self._binary_level({"+", "-"}, self.parse_factor)

    def parse_factor(self) -> Expr:
        return self._binary_level({"*", "/", "%"}, self.parse_unary)

    def parse_unary(self) -> Expr:
        if self.cur().kind == "OP" and self.cur().value in {"-", "+", "!"}:
            op = self.expect("OP").value
            return Unary(op, self.parse_unary())
        return self.parse_postfix()

    def parse_postfix(self) -> Expr:
        expr = self.parse_primary()
        while True:
            if self.match("OP", "."):
                expr = Member(expr, self.expect("ID").value)
            elif self.match("OP", "?."):
                expr = Member(expr, self.expect("ID").value, optional=True)
            elif self.match("OP", "("):
                args: list[Expr] = []
                if not self.match("OP", ")"):
                    while True:
                        args.append(self.parse_expr())
                        if self.match("OP", ")"):
                            break
                        self.expect("OP", ",")
                expr = Call(expr, args)
            else:
                return expr

    def parse_primary(self) -> Expr:
        t = self.cur()
        if self.match("NUMBER"):
            number = float(t.value)
            return Const(int(number) if number.is_integer() and "." not in t.value else number)
        if self.match("STRING"):
            return Const(_unescape(t.value[1:-1]))
        if self.match("TEMPLATE"):
            return Template(_parse_template(t.value[1:-1]))
        if self.match("REGEX"):
            m = REGEX_RE.fullmatch(t.value)
            try:
                re.compile(m.group(1))
            except re.error as e:
                raise FunctionSyntaxError(f"正则表达式无效: {t.value} ({e})") from e
            return RegexLiteral(m.group(1), m.group(2))
        if t.kind == "KW" and t.value in {"true", "false", "null", "undefined"}:
            self.i += 1
            return Const({"true": True, "false": False}.get(t.value))
        if self.match("ID"):
            return Var(t.value)
        if self.match("OP", "("):
            expr = self.parse_expr()
            self.expect("OP", ")")
            return expr
        raise FunctionSyntaxError(f"意外的记号 {t.value or t.kind!r}（位置 {t.pos}）")


def _parse_template(text: str) -> list[Union[str, Expr]]:
    """模板字符串 → 文本段与 ${} 表达式段"""
    parts: list[Union[str, Expr]] = []
    buf = ""
    i = 0
    while i < len(text):
        if text[i] == "\\" and i + 1 < len(text):
            buf += text[i:i + 2]
            i += 2
            continue
        if text.startswith("${", i):
            depth = 1
            j = i + 2
            while j < len(text) and depth:
                if text[j] == "{":
                    depth += 1
                elif text[j] == "}":
                    depth -= 1
                j += 1
            if depth:
                raise FunctionSyntaxError("模板字符串中的 ${ 未闭合")
            if buf:
                parts.append(_unescape(buf))
                buf = ""
            inner = Parser(tokenize(text[i + 2:j - 1]))
            parts.append(inner.parse_expr())
            inner.expect("EOF")
            i = j
            continue
        buf += text[i]
        i += 1
    if buf:
        parts.append(_unescape(buf))
    return parts


# ============================================================================
# 值语义
# ============================================================================

@dataclass
class RegexValue:
    regex: re.Pattern
    global_: bool


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def normalize_number(value: float) -> int | float:
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return value


def js_str(value: Any) -> str:
    """值 → 字符串（None 渲染为空串）"""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        return str(normalize_number(value))
    if isinstance(value, (list, tuple)):
        return ",".join(js_str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def strict_equals(left: Any, right: Any) -> bool:
    if _is_number(left) and _is_number(right):
        return float(left) == float(right)
    if type(left) is not type(right):
        return False
    return left == right


def _arith(op: str, left: Any, right: Any) -> Any:
    if op == "+":
        if isinstance(left, (str, list, dict)) or isinstance(right, (str, list, dict)):
            return js_str(left) + js_str(right)
        if _is_number(left) and _is_number(right) and isinstance(left, int) and isinstance(right, int):
            return left + right
        return normalize_number(to_number(left) + to_number(right))

    a, b = to_number(left), to_number(right)
    if op == "-":
        return normalize_number(a - b)
    if op == "*":
        return normalize_number(a * b)
    if op == "/":
        if b == 0:
            if a == 0 or math.isnan(a):
                return math.nan
            return math.copysign(math.inf, a) * math.copysign(1, b)
        return normalize_number(a / b)
    if b == 0 or math.isnan(a) or math.isnan(b):
        return math.nan
    return normalize_number(math.fmod(a, b))


def _order(op: str, left: Any, right: Any) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        a, b = left, right
    else:
        a, b = to_number(left), to_number(right)
        if math.isnan(a) or math.isnan(b):
            return False
    if op == "<":
        return a < b
    if op == ">":
        return a > b
    if op == "<=":
        return a <= b
    return a >= b


def _js_replacement(repl: str) -> str:
    """$1/$& 替换语法 → Python re 语法"""
    repl = repl.replace("\\", "\\\\")
    repl = re.sub(r"\$(\d)", r"\\g<\1>", repl)
    return repl.replace("$&", r"\g<0>")


def _str_method(obj: str, name: str, args: list[Any]) -> Any:
    arg = args[0] if args else None
    if name == "toUpperCase":
        return obj.upper()
    if name == "toLowerCase":
        return obj.lower()
    if name == "trim":
        return obj.strip()
    if name == "includes":
        return js_str(arg) in obj
    if name == "startsWith":
        return obj.startswith(js_str(arg))
    if name == "slice":
        start = int(to_number(arg)) if arg is not None else 0
        end = int(to_number(args[1])) if len(args) > 1 else None
        return obj[start:end]
    if name == "split":
        if isinstance(arg, RegexValue):
            return arg.regex.split(obj)
        if arg is None:
            return [obj]
        return list(obj) if arg == "" else obj.split(js_str(arg))
    if name == "replace":
        repl = js_str(args[1]) if len(args) > 1 else "undefined"
        if isinstance(arg, RegexValue):
            return arg.regex.sub(_js_replacement(repl), obj, count=0 if arg.global_ else 1)
        return obj.replace(js_str(arg), repl, 1)
    if name == "toString":
        return obj
    raise FunctionEvaluationError(f"不支持的字符串方法: {name}")


def _number_method(obj: int | float, name: str, args: list[Any]) -> Any:
    if name == "toFixed":
        digits = int(to_number(args[0])) if args else 0
        return f"{obj:.{digits}f}"
    if name == "toString":
        return js_str(obj)
    raise FunctionEvaluationError(f"不支持的数值方法: {name}")


def _list_method(obj: list, name: str, args: list[Any]) -> Any:
    arg = args[0] if args else None
    if name == "join":
        sep = "," if arg is None else js_str(arg)
        return sep.join(js_str(v) for v in obj)
    if name == "includes":
        return any(strict_equals(v, arg) for v in obj)
    if name == "toString":
        return js_str(obj)
    raise FunctionEvaluationError(f"不支持的数组方法: {name}")


def _call_method(obj: Any, name: str, args: list[Any]) -> Any:
    if isinstance(obj, RegexValue) and name == "test":
        return obj.regex.search(js_str(args[0] if args else None)) is not None
    if isinstance(obj, str):
        return _str_method(obj, name, args)
    if _is_number(obj):
        return _number_method(obj, name, args)
    if isinstance(obj, list):
        return _list_method(obj, name, args)
    if obj is None:
        raise FunctionEvaluationError(f"无法在空值上调用方法: {name}")
    raise FunctionEvaluationError(f"不支持的方法调用: {type(obj).__name__}.{name}")


# ============================================================================
# 函数注册表
# ============================================================================

def _parse_float(value: Any) -> float:
    m = re.match(r"\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?", js_str(value))
    return normalize_number(float(m.group(0))) if m else math.nan


def _parse_int(value: Any) -> int | float:
    m = re.match(r"\s*[+-]?\d+", js_str(value))
    return int(m.group(0)) if m else math.nan


def _js_round(value: Any) -> int | float:
    number = to_number(value)
    if not math.isfinite(number):
        return number
    return math.floor(number + 0.5)


def _numeric(fn: Callable[[float], float]) -> Callable[[Any], Any]:
    def wrapper(value: Any = None) -> Any:
        number = to_number(value)
        return number if math.isnan(number) else normalize_number(fn(number))
    return wrapper


class FunctionRegistry:
    """具名函数注册表（宿主应用预先注册，配置按名称引用）"""

    def __init__(self) -> None:
        self._functions: dict[str, Callable[..., Any]] = {}

    def register(self, name: str, fn: Callable[..., Any] | None = None):
        """注册函数；不传 fn 时作为装饰器使用"""
        if fn is None:
            def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
                self._functions[name] = func
                return func
            return decorator
        self._functions[name] = fn
        return fn

    def get(self, name: str) -> Callable[..., Any] | None:
        return self._functions.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def names(self) -> list[str]:
        return sorted(self._functions)

    @classmethod
    def with_builtins(cls) -> FunctionRegistry:
        registry = cls()
        registry.register("Number", lambda v=None: normalize_number(to_number(v)))
        registry.register("String", js_str)
        registry.register("Boolean", is_truthy)
        registry.register("parseFloat", _parse_float)
        registry.register("parseInt", _parse_int)
        registry.register("isNaN", lambda v=None: math.isnan(to_number(v)))
        registry.register("Math.round", _js_round)
        registry.register("Math.floor", _numeric(math.floor))
        return registry


# ============================================================================
# 解释执行
# ============================================================================

@dataclass
class _Scope:
    variables: dict[str, Any]
    registry: FunctionRegistry = field(repr=False)


def _qualified_name(node: Member, scope: _Scope) -> str | None:
    """Math.round 这类注册表限定名（对象不是局部变量时）"""
    if isinstance(node.obj, Var) and node.obj.name not in scope.variables:
        name = f"{node.obj.name}.{node.name}"
        if name in scope.registry:
            return name
    return None


def _get_property(obj: Any, name: str, optional: bool) -> Any:
    if obj is None:
        if optional:
            return None
        raise FunctionEvaluationError(f"无法读取空值的属性: {name}")
    if name.startswith("_"):
        raise FunctionEvaluationError(f"不允许访问属性: {name}")
    if isinstance(obj, dict):
        return obj.get(name)
    if name == "length" and isinstance(obj, (str, list)):
        return len(obj)
    raise FunctionEvaluationError(f"不允许访问属性: {type(obj).__name__}.{name}")


def _eval(node: Expr, scope: _Scope) -> Any:
    if isinstance(node, Const):
        return node.value
    if isinstance(node, Var):
        if node.name in scope.variables:
            return scope.variables[node.name]
        fn = scope.registry.get(node.name)
        if fn is not None:
            return fn
        raise FunctionEvaluationError(f"未定义的标识符: {node.name}")
    if isinstance(node, Template):
        return "".join(p if isinstance(p, str) else js_str(_eval(p, scope)) for p in node.parts)
    if isinstance(node, RegexLiteral):
        flags = 0
        if "i" in node.flags:
            flags |= re.IGNORECASE
        if "m" in node.flags:
            flags |= re.MULTILINE
        if "s" in node.flags:
            flags |= re.DOTALL
        return RegexValue(re.compile(node.pattern, flags), "g" in node.flags)
    if isinstance(node, Unary):
        value = _eval(node.expr, scope)
        if node.op == "!":
            return not is_truthy(value)
        number = to_number(value)
        return normalize_number(-number if node.op == "-" else number)
    if isinstance(node, Binary):
        return _eval_binary(node, scope)
    if isinstance(node, Conditional):
        branch = node.then if is_truthy(_eval(node.cond, scope)) else node.otherwise
        return _eval(branch, scope)
    if isinstance(node, Member):
        qualified = _qualified_name(node, scope)
        if qualified is not None:
            return scope.registry.get(qualified)
        return _get_property(_eval(node.obj, scope), node.name, node.optional)
    if isinstance(node, Call):
        return _eval_call(node, scope)
    raise FunctionEvaluationError(f"未知的语法节点: {type(node).__name__}")


def _eval_binary(node: Binary, scope: _Scope) -> Any:
    op = node.op
    if op == "&&":
        left = _eval(node.left, scope)
        return _eval(node.right, scope) if is_truthy(left) else left
    if op == "||":
        left = _eval(node.left, scope)
        return left if is_truthy(left) else _eval(node.right, scope)
    if op == "??":
        left = _eval(node.left, scope)
        return _eval(node.right, scope) if left is None else left

    left = _eval(node.left, scope)
    right = _eval(node.right, scope)
    if op == "==":
        return loose_equals(left, right)
    if op == "!=":
        return not loose_equals(left, right)
    if op == "===":
        return strict_equals(left, right)
    if op == "!==":
        return not strict_equals(left, right)
    if op in {"<", ">", "<=", ">="}:
        return _order(op, left, right)
    return _arith(op, left, right)


def _eval_call(node: Call, scope: _Scope) -> Any:
    args = [_eval(a, scope) for a in node.args]
    callee = node.callee
    if isinstance(callee, Member):
        qualified = _qualified_name(callee, scope)
        if qualified is not None:
            return scope.registry.get(qualified)(*args)
        obj = _eval(callee.obj, scope)
        if obj is None and callee.optional:
            return None
        return _call_method(obj, callee.name, args)

    fn = _eval(callee, scope)
    if not callable(fn):
        raise FunctionEvaluationError(f"不可调用的值: {js_str(fn)!r}")
    return fn(*args)


class SynthesizedFunction:
    """由配置文本合成的函数"""

    def __init__(self, source: str, params: list[str], body: Body, registry: FunctionRegistry):
        self.source = source
        self.params = params
        self.body = body
        self.registry = registry

    def __call__(self, *args: Any) -> Any:
        variables = {p: (args[i] if i < len(args) else None) for i, p in enumerate(self.params)}
        scope = _Scope(variables, self.registry)
        if isinstance(self.body, Expr):
            return _eval(self.body, scope)
        for stmt in self.body:
            if isinstance(stmt, Assign):
                scope.variables[stmt.name] = _eval(stmt.expr, scope)
            else:
                return None if stmt.expr is None else _eval(stmt.expr, scope)
        return None

    def __repr__(self) -> str:
        return f"SynthesizedFunction({self.source!r})"


def synthesize(source: Any, registry: FunctionRegistry | None = None) -> SynthesizedFunction | None:
    """
    函数文本 → 可调用对象

    Returns:
        合成的函数；文本为空、非字符串或不符合支持的形式时返回 None
    """
    if not source or not isinstance(source, str):
        return None
    try:
        params, body = Parser(tokenize(source)).parse_function()
    except FunctionSyntaxError as e:
        logger.warning(f"无法合成函数 {source!r}: {e}")
        return None
    return SynthesizedFunction(source, params, body, registry or FunctionRegistry.with_builtins())


def resolve_function(
    ref: Any, registry: FunctionRegistry | None = None
) -> Callable[..., Any] | None:
    """函数引用解析：可调用对象原样返回，已注册名称优先，其次合成"""
    if callable(ref):
        return ref
    if not isinstance(ref, str):
        return None
    if registry is not None:
        registered = registry.get(ref.strip())
        if registered is not None:
            return registered
    return synthesize(ref, registry)
