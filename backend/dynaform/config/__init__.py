"""
配置层 - 表单配置文档解析与引擎运行期配置

职责：
- 解析/校验/序列化表单配置（JSON/YAML）
- 加载引擎运行期参数（YAML + 环境变量覆盖）
"""

from .parser import (
    ConfigFormat,
    JsonConfigParser,
    YamlConfigParser,
    create_parser,
    detect_format,
    dump_config,
    fetch_config,
    load_config_file,
    parse,
    parse_config,
    validate_config,
)
from .runtime_config import EngineSettings, get_config, reload_config, setup_logging

__all__ = [
    "ConfigFormat",
    "JsonConfigParser",
    "YamlConfigParser",
    "create_parser",
    "detect_format",
    "dump_config",
    "fetch_config",
    "load_config_file",
    "parse",
    "parse_config",
    "validate_config",
    "EngineSettings",
    "get_config",
    "reload_config",
    "setup_logging",
]
