"""
文档模型基类 - 配置文档使用camelCase键，模型属性使用snake_case
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class DocumentModel(BaseModel):
    """配置文档模型基类（两种键名写法均可，保留未知键）"""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "extra": "allow",
        # YAML 中 version: 1.0 / name: 123 之类的标量按字符串接收
        "coerce_numbers_to_str": True,
    }

    def to_document(self) -> dict:
        """导出为文档结构（camelCase键，省略空值）"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def pop_non_list_keys(data: Any, keys: tuple[str, ...], object_items: tuple[str, ...] = ()) -> Any:
    """
    预处理：列表键为 null 时视为缺失，非列表时移除并记入 shapeErrors；
    object_items 中的键还要求每个元素都是对象，不是对象的元素被剔除并记录

    结构形状问题交给 validate_config 报告，而不是在解析阶段失败。
    """
    if not isinstance(data, dict):
        return data
    data = dict(data)
    errors: list[str] = []
    for key in keys:
        if key not in data:
            continue
        value = data[key]
        if value is None:
            del data[key]
        elif not isinstance(value, list):
            errors.append(f"{key} must be an array, got {type(value).__name__}")
            del data[key]
        elif key in object_items:
            items = []
            for index, item in enumerate(value):
                if isinstance(item, (dict, BaseModel)):
                    items.append(item)
                else:
                    errors.append(f"{key}[{index}] must be an object, got {type(item).__name__}")
            data[key] = items
    if errors:
        data["shapeErrors"] = errors
    return data
