"""
默认配置 - 内核的所有默认配置值
Default configuration - all default configuration values of the kernel.
"""

from __future__ import annotations

from typing import Any

# 框架版本
VERSION = "1.0.0"


def build_default_config() -> dict[str, Any]:
    """
    构建默认配置
    Build the default configuration.
    """
    return {
        # 生命周期总线配置
        "lifecycle": {
            "max_listeners": 64,
        },
        # 日志配置
        "logging": {
            "level": "INFO",
            "colorize": True,
            "file": None,
            "setup": False,
        },
        # 加载器条目列表
        "entries": [],
    }
