"""
配置模型 - 校验后的内核配置
Config models - validated kernel settings.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class LifecycleSettings(BaseModel):
    """生命周期总线配置 / Lifecycle bus settings."""

    # 单个事件的钩子数量超过该值时发出警告
    max_listeners: int = Field(default=64, ge=1)


class LoggingSettings(BaseModel):
    """日志配置 / Logging settings."""

    level: str = "INFO"
    colorize: bool = True
    file: str | None = None
    # 为 True 时 App 安装日志处理器 / install handlers when the App starts
    setup: bool = False

    @field_validator("level")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()


class KernelSettings(BaseModel):
    """
    内核配置
    Kernel settings.
    """

    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    # 启动时交给加载器的条目 / entries handed to the loader at start
    entries: list[dict[str, Any]] = Field(default_factory=list)
