"""
运行期配置 - 引擎级参数（HTTP超时、远程数据、解析默认格式、日志）

职责：
- 加载 YAML 配置文件
- 提供环境变量覆盖机制（DYNAFORM_ 前缀，嵌套用 __ 分隔）
- 类型安全的配置访问
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

DEFAULT_CONFIG_PATH = Path("config/dynaform.yaml")


class HttpConfig(BaseModel):
    """HTTP传输配置"""

    timeout_sec: float = 30.0
    headers: dict[str, str] = Field(default_factory=dict)


class RemoteDataConfig(BaseModel):
    """远程数据配置"""

    auto_load: bool = True


class ParserConfig(BaseModel):
    """配置解析参数"""

    default_format: str | None = None  # None 表示按内容自动识别


class LoggingConfig(BaseModel):
    """日志配置"""

    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class EngineSettings(BaseSettings):
    """引擎运行期配置（支持环境变量覆盖）"""

    http: HttpConfig = Field(default_factory=HttpConfig)
    remote_data: RemoteDataConfig = Field(default_factory=RemoteDataConfig)
    parser: ParserConfig = Field(default_factory=ParserConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {
        "env_prefix": "DYNAFORM_",
        "env_nested_delimiter": "__",
    }

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> EngineSettings:
        """从YAML文件加载配置（文件不存在时使用默认值）"""
        path = Path(yaml_path)
        if not path.exists():
            return cls()

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        engine_opts = data.get("engine", data)

        return cls(
            http=HttpConfig(**cls._extract(engine_opts, "http")),
            remote_data=RemoteDataConfig(**cls._extract(engine_opts, "remote_data")),
            parser=ParserConfig(**cls._extract(engine_opts, "parser")),
            logging=LoggingConfig(**cls._extract(engine_opts, "logging")),
        )

    @staticmethod
    def _extract(data: dict[str, Any], key: str) -> dict[str, Any]:
        """提取并展平配置（支持 {default: x} 写法）"""
        section = data.get(key) or {}
        result = {}
        for k, v in section.items():
            if isinstance(v, dict) and "default" in v:
                result[k] = v["default"]
            else:
                result[k] = v
        return result


def setup_logging(settings: EngineSettings | None = None) -> None:
    """按配置初始化根日志"""
    settings = settings or get_config()
    level = getattr(logging, settings.logging.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=settings.logging.log_format)
    # 已有处理器时 basicConfig 不生效，级别仍需落到根日志
    logging.getLogger().setLevel(level)


# 全局配置实例
_config: EngineSettings | None = None


def get_config() -> EngineSettings:
    """获取全局配置（惰性加载）"""
    global _config
    if _config is None:
        _config = EngineSettings.from_yaml(DEFAULT_CONFIG_PATH)
    return _config


def reload_config(yaml_path: str | Path | None = None) -> EngineSettings:
    """重新加载配置"""
    global _config
    _config = EngineSettings.from_yaml(yaml_path or DEFAULT_CONFIG_PATH)
    return _config
