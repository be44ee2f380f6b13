"""
配置文件 - 把 JSON 文件变成 KernelSettings
Config file - turns a JSON file into KernelSettings.

文件中缺失的键由默认值补齐后写回，之后再由 pydantic 校验。
校验失败不会阻止启动：内核以默认设置运行并记录警告。
Keys missing from the file are filled in from the defaults and written back
before pydantic validates the result. A file that fails validation does not
stop startup: the kernel runs on default settings and logs a warning.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from aetherpack.config.defaults import build_default_config
from aetherpack.config.models import KernelSettings

logger = logging.getLogger(__name__)

CONFIG_FILE = Path("data") / "config" / "aetherpack.json"


def merge_defaults(config: dict[str, Any], defaults: dict[str, Any]) -> dict[str, Any]:
    """
    返回补齐了默认值的配置副本，已有的值保持不变
    Return a copy of ``config`` with defaults filled in; existing values win.
    """
    merged = dict(config)
    for key, default in defaults.items():
        if key not in merged:
            merged[key] = copy.deepcopy(default)
        elif isinstance(default, dict) and isinstance(merged[key], dict):
            merged[key] = merge_defaults(merged[key], default)
    return merged


class ConfigManager:
    """
    配置文件管理器
    Config file manager.

    用法 / Usage::

        settings = await ConfigManager("data/config/aetherpack.json").load()
        app = App(settings)
    """

    def __init__(
        self,
        path: str | Path = CONFIG_FILE,
        defaults: dict[str, Any] | None = None,
    ) -> None:
        self.path = Path(path)
        self._defaults = build_default_config() if defaults is None else defaults
        self._data: dict[str, Any] = {}

    async def load(self) -> KernelSettings:
        """
        读取文件、补齐默认值并写回，返回校验后的设置
        Read the file, fill in defaults, write it back and return the
        validated settings.
        """
        self._data = merge_defaults(self._read(), self._defaults)
        await self.save()
        return self.settings()

    async def save(self) -> None:
        """写回当前配置 / Write the current config back to the file."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                json.dumps(self._data, ensure_ascii=False, indent=2), encoding="utf-8"
            )
        except OSError:
            logger.exception("保存配置失败: %s", self.path)

    def settings(self) -> KernelSettings:
        """
        校验当前配置，无效时回退到默认设置
        Validate the current config, falling back to the defaults when invalid.
        """
        try:
            return KernelSettings.model_validate(self._data)
        except ValidationError as exc:
            logger.warning("配置校验失败，使用默认值: %s", exc)
            return KernelSettings()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            logger.info("未找到配置文件 %s，将写入默认配置", self.path)
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("读取配置失败，使用默认值: %s", exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("配置文件顶层必须是对象: %s", self.path)
            return {}
        logger.info("配置已从 %s 加载", self.path)
        return data
