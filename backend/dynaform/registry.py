"""
引擎注册表 - 进程启动时构建一次，按引用传给每个表单实例

汇集宿主应用预先注册的：
- functions: 具名函数（formatter/parser 等按名称引用）
- rules: 校验规则与校验函数
- handlers: 自定义按钮处理函数 handler(context)
- option_cache: 进程内共享的远程选项缓存（各表单的加载器共用）
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from .expression.functions import FunctionRegistry
from .remote.cache import OptionCache
from .validation.rules import RuleRegistry

ButtonHandler = Callable[..., Any]


@dataclass
class EngineRegistry:
    functions: FunctionRegistry = field(default_factory=FunctionRegistry.with_builtins)
    rules: RuleRegistry = field(default_factory=RuleRegistry.with_builtins)
    handlers: dict[str, ButtonHandler] = field(default_factory=dict)
    option_cache: OptionCache = field(default_factory=OptionCache)

    def register_handler(self, name: str, handler: ButtonHandler | None = None):
        """注册按钮处理函数；不传 handler 时作为装饰器"""
        if handler is None:
            def decorator(func: ButtonHandler) -> ButtonHandler:
                self.handlers[name] = func
                return func
            return decorator
        self.handlers[name] = handler
        return handler

    def get_handler(self, name: str) -> ButtonHandler | None:
        return self.handlers.get(name)
