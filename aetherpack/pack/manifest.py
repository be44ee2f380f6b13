"""
条目清单 - 描述加载器中一个子插件的配置
Entry manifest - describes the configuration of one child plugin in the loader.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class EntryOptions:
    """
    条目选项 - 由外部加载器（配置文件等）提供
    Entry options - supplied by the outer loader (config files and the like).
    """

    # 插件名（注册名或 "module:attr" 导入路径）
    name: str = ""
    # 条目编号（稳定，跨作用域重建保持不变）
    id: str = ""
    # 插件配置；分组条目为子条目列表
    config: Any = None
    # 是否停用（仅自身的标记，不受祖先影响）
    disabled: bool = False
    # 是否为分组
    group: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EntryOptions:
        """
        从字典构建条目选项
        Build entry options from a dictionary.
        """
        return cls(
            name=data.get("name", ""),
            id=data.get("id") or "",
            config=data.get("config"),
            disabled=bool(data.get("disabled", False)),
            group=bool(data.get("group", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        """转为字典 / Convert to dictionary."""
        data: dict[str, Any] = {"id": self.id, "name": self.name}
        if self.disabled:
            data["disabled"] = True
        if self.group:
            data["group"] = True
        if self.config is not None:
            data["config"] = self.config
        return data
