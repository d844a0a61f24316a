"""
表单配置模型 - FormConfig / FieldConfig / ButtonConfig 等

对应配置文档的顶层结构：
    formId, name, version, layout, api, fields, buttons, props
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterator

from pydantic import BaseModel, Field, model_validator

from .base import DocumentModel, pop_non_list_keys


class FieldType(str, Enum):
    """字段类型枚举（由外部渲染层消费）"""
    INPUT = "input"
    TEXTAREA = "textarea"
    PASSWORD = "password"
    NUMBER = "number"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    SWITCH = "switch"
    SLIDER = "slider"
    DATE_PICKER = "date-picker"
    TIME_PICKER = "time-picker"
    RANGE_PICKER = "range-picker"
    UPLOAD = "upload"
    RATE = "rate"
    CASCADER = "cascader"
    TRANSFER = "transfer"
    TREE_SELECT = "tree-select"
    GROUP = "group"
    CUSTOM = "custom"


class ButtonAction(str, Enum):
    """按钮动作"""
    SUBMIT = "submit"
    RESET = "reset"
    CANCEL = "cancel"
    CUSTOM = "custom"


class LayoutType(str, Enum):
    """布局模式"""
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    INLINE = "inline"
    TABS = "tabs"
    STEPS = "steps"
    GRID = "grid"


FIELD_TYPES = frozenset(t.value for t in FieldType)


class ValidationRule(DocumentModel):
    """校验规则（内联规则；type 可引用已注册的命名规则）"""
    required: bool = False
    message: str | None = None
    type: str | None = None
    min: float | None = None
    max: float | None = None
    len: int | None = None
    pattern: str | None = None
    validator: str | None = Field(None, description="已注册的校验函数名")
    whitespace: bool = False


class SpanConfig(DocumentModel):
    """栅格跨度"""
    span: int
    offset: int | None = None


class LayoutSection(DocumentModel):
    """标签页/步骤描述（fields 为字段下标）"""
    title: str = ""
    description: str | None = None
    fields: list[int] = Field(default_factory=list)


class LayoutConfig(DocumentModel):
    """表单布局"""
    type: str | None = None
    label_col: SpanConfig | None = None
    wrapper_col: SpanConfig | None = None
    gutter: int | None = None
    spans: list[int] | None = None
    tabs: list[LayoutSection] | None = None
    steps: list[LayoutSection] | None = None

    def sections(self) -> list[LayoutSection]:
        """当前模式下的分区（tabs/steps），其他模式为空"""
        if self.type == LayoutType.TABS.value:
            return list(self.tabs or [])
        if self.type == LayoutType.STEPS.value:
            return list(self.steps or [])
        return []


class ApiConfig(DocumentModel):
    """提交接口配置"""
    fetch: str | None = None
    submit: str | None = None
    method: str = "POST"
    headers: dict[str, str] = Field(default_factory=dict)


class FieldConfig(DocumentModel):
    """字段配置"""
    name: str | None = None
    type: str | None = None
    label: str | None = None
    default_value: Any = None
    placeholder: str | None = None
    rules: list[ValidationRule | str] = Field(default_factory=list)
    props: dict[str, Any] = Field(default_factory=dict)
    options: list[Any] | str | None = None
    dependencies: list[str] = Field(default_factory=list)
    visible: bool | str = True
    disabled: bool | str = False
    fields: list[FieldConfig] | None = None
    custom_type: str | None = None

    # 由 RemoteDataPlugin.before_render 写入
    remote_source: str | None = None
    shape_errors: list[str] = Field(default_factory=list, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _check_shape(cls, data: Any) -> Any:
        return pop_non_list_keys(data, ("fields", "rules"), object_items=("fields",))

    @property
    def is_group(self) -> bool:
        return self.type == FieldType.GROUP.value


class ButtonConfig(DocumentModel):
    """按钮配置"""
    text: str = ""
    type: str | None = None
    action: str = ButtonAction.SUBMIT.value
    props: dict[str, Any] = Field(default_factory=dict)
    visible: bool | str = True
    disabled: bool | str = False
    handler: str | None = Field(None, description="已注册的自定义处理函数名")
    icon: str | None = None


class FormConfig(DocumentModel):
    """完整表单配置"""
    form_id: str | None = None
    name: str | None = None
    version: str | None = None
    description: str | None = None
    layout: LayoutConfig | str | None = None
    api: ApiConfig | None = None
    fields: list[FieldConfig] = Field(default_factory=list)
    buttons: list[ButtonConfig] = Field(default_factory=list)
    props: dict[str, Any] = Field(default_factory=dict)
    shape_errors: list[str] = Field(default_factory=list, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _check_shape(cls, data: Any) -> Any:
        return pop_non_list_keys(data, ("fields", "buttons"), object_items=("fields", "buttons"))

    def iter_fields(self) -> Iterator[tuple[str, FieldConfig]]:
        """深度优先遍历全部字段（含分组成员），产出 (点分路径, 字段)"""
        return walk_fields(self.fields)

    def find_field(self, path: str) -> FieldConfig | None:
        for field_path, field in self.iter_fields():
            if field_path == path:
                return field
        return None

    def leaf_fields(self) -> list[tuple[str, FieldConfig]]:
        """承载值的字段（排除分组本身）"""
        return [(p, f) for p, f in self.iter_fields() if not f.is_group]


class ValidationResult(BaseModel):
    """配置校验结果"""
    valid: bool
    errors: list[str] = Field(default_factory=list)


def walk_fields(
    fields: list[FieldConfig], parent_path: str = ""
) -> Iterator[tuple[str, FieldConfig]]:
    """深度优先遍历字段树，分组成员以父路径为前缀"""
    for field in fields:
        name = field.name or ""
        path = f"{parent_path}.{name}" if parent_path else name
        yield path, field
        if field.is_group and field.fields:
            yield from walk_fields(field.fields, path)


FieldConfig.model_rebuild()
