"""
配置解析器 - JSON/YAML 配置文档 → FormConfig

职责：
- 解析配置文本（格式可指定或自动识别：以 { 或 [ 开头为 JSON，否则 YAML）
- 结构校验（收集全部违规项）
- 序列化回 JSON/YAML，支持文件与远程 URL 加载

使用方式：
    config = parse_config(text)               # 解析 + 校验，失败抛 ConfigValidationError
    result = validate_config(parse(text))     # 仅获取校验结果
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any

import httpx
import pydantic
import yaml

from ..interfaces import ConfigValidationError, IConfigParser, ParseError, RemoteLoadError
from ..models import (
    FIELD_TYPES,
    ButtonAction,
    FieldConfig,
    FormConfig,
    LayoutConfig,
    LayoutType,
    ValidationResult,
)
from ..remote.transport import send_request

logger = logging.getLogger(__name__)


class ConfigFormat(str, Enum):
    """配置文档格式"""
    JSON = "json"
    YAML = "yaml"


_SUFFIX_FORMATS = {
    ".json": ConfigFormat.JSON,
    ".yaml": ConfigFormat.YAML,
    ".yml": ConfigFormat.YAML,
}

_LAYOUT_TYPES = frozenset(t.value for t in LayoutType)
_BUTTON_ACTIONS = frozenset(a.value for a in ButtonAction)


def detect_format(document: str) -> ConfigFormat:
    """以 { 或 [ 开头（忽略空白）视为 JSON，否则 YAML"""
    stripped = document.lstrip()
    if stripped.startswith("{") or stripped.startswith("["):
        return ConfigFormat.JSON
    return ConfigFormat.YAML


# ============================================================================
# 结构校验
# ============================================================================

def _validate_fields(
    fields: list[FieldConfig], errors: list[str], parent: str | None = None
) -> None:
    seen: set[str] = set()
    for index, field in enumerate(fields):
        name = field.name
        path = f"{parent}.{name}" if parent and name else name

        if not name:
            if parent:
                errors.append(f"Field at index {index} in group '{parent}' must have a name")
            else:
                errors.append(f"Field at index {index} must have a name")
        elif name in seen:
            errors.append(f"Duplicate field name '{path}'")
        else:
            seen.add(name)

        errors.extend(f"Field '{path or index}': {message}" for message in field.shape_errors)

        if not field.type:
            errors.append(f"Field '{path}' must have a type")
        elif field.type not in FIELD_TYPES:
            errors.append(f"Field '{path}' has unsupported type '{field.type}'")

        if field.is_group:
            if not field.fields:
                errors.append(f"Group field '{path}' must have non-empty fields array")
            else:
                _validate_fields(field.fields, errors, path or f"#{index}")


def _validate_layout(layout: LayoutConfig | str | None, field_count: int, errors: list[str]) -> None:
    if layout is None:
        return
    layout_type = layout if isinstance(layout, str) else layout.type
    if layout_type and layout_type not in _LAYOUT_TYPES:
        errors.append(f"Unsupported layout type '{layout_type}'")
    if isinstance(layout, str):
        return
    for section in layout.sections():
        for index in section.fields:
            if index < 0 or index >= field_count:
                errors.append(
                    f"Layout {layout.type} '{section.title}' references missing field index {index}"
                )


def validate_config(config: FormConfig) -> ValidationResult:
    """校验表单配置（收集全部错误）"""
    errors: list[str] = []

    if not config.form_id:
        errors.append("formId is required")
    errors.extend(config.shape_errors)

    if not config.fields:
        errors.append("fields must be a non-empty array")
    else:
        _validate_fields(config.fields, errors)

    _validate_layout(config.layout, len(config.fields), errors)

    for index, button in enumerate(config.buttons):
        label = button.text or f"#{index}"
        if button.action not in _BUTTON_ACTIONS:
            errors.append(f"Button '{label}' has unsupported action '{button.action}'")
        elif button.action == ButtonAction.CUSTOM.value and not button.handler:
            errors.append(f"Custom button '{label}' must have a handler")

    return ValidationResult(valid=not errors, errors=errors)


# ============================================================================
# 解析器
# ============================================================================

class BaseConfigParser(IConfigParser):
    """解析器基类：子类只负责文本解码"""

    format: ConfigFormat

    def decode(self, document: str) -> Any:
        raise NotImplementedError

    def parse(self, document: str) -> FormConfig:
        data = self.decode(document)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ParseError(
                f"表单配置顶层必须是对象，实际为 {type(data).__name__}",
                reason="top-level value is not a mapping",
            )
        try:
            return FormConfig.model_validate(data)
        except pydantic.ValidationError as e:
            raise ParseError(f"表单配置结构无法识别: {e}", reason=str(e)) from e

    def validate(self, config: FormConfig) -> ValidationResult:
        return validate_config(config)


class JsonConfigParser(BaseConfigParser):
    """JSON配置解析器"""

    format = ConfigFormat.JSON

    def decode(self, document: str) -> Any:
        try:
            return json.loads(document)
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid JSON format: {e}", reason=str(e)) from e


class YamlConfigParser(BaseConfigParser):
    """YAML配置解析器"""

    format = ConfigFormat.YAML

    def decode(self, document: str) -> Any:
        try:
            return yaml.safe_load(document)
        except yaml.YAMLError as e:
            raise ParseError(f"Invalid YAML format: {e}", reason=str(e)) from e


def create_parser(config_format: ConfigFormat | str) -> BaseConfigParser:
    """按格式创建解析器"""
    try:
        fmt = ConfigFormat(config_format)
    except ValueError:
        raise ValueError(f"Unsupported config type: {config_format}") from None
    if fmt is ConfigFormat.JSON:
        return JsonConfigParser()
    return YamlConfigParser()


def parse(document: str, config_format: ConfigFormat | str | None = None) -> FormConfig:
    """解析配置文本（不做结构校验）"""
    fmt = config_format or detect_format(document)
    return create_parser(fmt).parse(document)


def parse_config(document: str, config_format: ConfigFormat | str | None = None) -> FormConfig:
    """
    解析并校验配置

    Raises:
        ParseError: 文本格式错误
        ConfigValidationError: 结构不合法（包含全部违规项）
    """
    config = parse(document, config_format)
    result = validate_config(config)
    if not result.valid:
        raise ConfigValidationError(result.errors)
    return config


def dump_config(config: FormConfig, config_format: ConfigFormat | str = ConfigFormat.JSON) -> str:
    """FormConfig → 配置文本"""
    document = config.to_document()
    if ConfigFormat(config_format) is ConfigFormat.JSON:
        return json.dumps(document, ensure_ascii=False, indent=2)
    return yaml.safe_dump(document, allow_unicode=True, sort_keys=False)


def load_config_file(path: str | Path, validate: bool = True) -> FormConfig:
    """从文件加载配置（按后缀选择格式，未知后缀自动识别）"""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"配置文件不存在: {path}")
    document = path.read_text(encoding="utf-8")
    fmt = _SUFFIX_FORMATS.get(path.suffix.lower())
    logger.info(f"加载表单配置: {path}")
    if validate:
        return parse_config(document, fmt)
    return parse(document, fmt)


async def fetch_config(
    url: str,
    client: httpx.AsyncClient,
    config_format: ConfigFormat | str | None = None,
    headers: dict[str, str] | None = None,
) -> FormConfig:
    """
    通过 HTTP 加载并解析配置

    Raises:
        RemoteLoadError: 请求失败或非2xx响应
        ParseError / ConfigValidationError: 同 parse_config
    """
    response = await send_request(client, "GET", url, headers=headers)
    if not response.is_success:
        raise RemoteLoadError(
            f"Failed to load form config: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
        )
    logger.info(f"远程表单配置已加载: {url}")
    return parse_config(response.text, config_format)
