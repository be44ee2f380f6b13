"""
内核工具函数
Kernel helpers shared by the bus, the registry and the scopes.
"""

from __future__ import annotations

import inspect
from typing import Any

from pydantic import BaseModel


def is_bailed(value: Any) -> bool:
    """None 和 False 之外的任何值都会终止 serial/bail / Anything but None and False stops serial/bail."""
    return value is not None and value is not False


def remove(items: list[Any], item: Any) -> bool:
    """按身份从列表中移除元素 / Remove an element from a list by identity."""
    for index, value in enumerate(items):
        if value is item:
            del items[index]
            return True
    return False


def resolve_config(plugin: Any, config: Any) -> Any:
    """
    通过插件声明的 schema 解析配置
    Resolve a config through the plugin's declared schema.

    pydantic 模型类使用 model_validate，其他可调用对象直接调用，
    schema = False 表示跳过；None 结果变为 {}。
    A pydantic model class is validated with ``model_validate``, any other
    callable is called, ``schema = False`` skips; a None result becomes ``{}``.
    """
    schema = getattr(plugin, "Config", None) or getattr(plugin, "schema", None)
    if schema and getattr(plugin, "schema", None) is not False:
        if inspect.isclass(schema) and issubclass(schema, BaseModel):
            config = schema.model_validate(config if config is not None else {})
        elif callable(schema):
            config = schema(config)
    return {} if config is None else config
