"""
配置模块 - 管理内核配置
Config module - manages kernel configuration.
"""

from aetherpack.config.defaults import build_default_config
from aetherpack.config.manager import ConfigManager, merge_defaults
from aetherpack.config.models import KernelSettings, LifecycleSettings, LoggingSettings

__all__ = [
    "ConfigManager",
    "KernelSettings",
    "LifecycleSettings",
    "LoggingSettings",
    "build_default_config",
    "merge_defaults",
]
