"""
启动引导 - 应用根上下文
Bootstrap - the application root context.

App 持有服务表、注册表和生命周期总线，安装默认服务，
并负责启动与优雅关闭。
The App owns the service table, the registry and the lifecycle bus, installs
the default services, and drives startup and graceful shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from aetherpack.config.manager import CONFIG_FILE, ConfigManager
from aetherpack.config.models import KernelSettings
from aetherpack.kernel.context import Context
from aetherpack.kernel.lifecycle import Lifecycle
from aetherpack.kernel.logging import LoggerService
from aetherpack.kernel.registry import Registry
from aetherpack.kernel.scope import EffectScope
from aetherpack.kernel.services import ServiceTable

logger = logging.getLogger(__name__)


class App(Context):
    """
    应用 - 根上下文
    App - the root context.

    启动顺序：
    1. 校验配置
    2. 创建服务表、注册表、生命周期总线
    3. 激活根作用域
    4. 安装默认服务（logger，有条目时安装 loader）
    5. start() 触发 ready 钩子
    """

    def __init__(self, config: KernelSettings | Mapping[str, Any] | None = None) -> None:
        if isinstance(config, KernelSettings):
            settings = config
        else:
            settings = KernelSettings.model_validate(dict(config or {}))
        self.settings = settings

        self._services = ServiceTable(self)
        self._registry = Registry(self)
        self._lifecycle = Lifecycle(self, settings.lifecycle.max_listeners)
        super().__init__(None, None)
        self.scope = EffectScope(None, settings, None, context=self)
        self._shutdown_event: asyncio.Event | None = None
        self._activate()

    @classmethod
    async def from_file(cls, path: str | Path = CONFIG_FILE) -> App:
        """
        从 JSON 配置文件创建应用
        Create an App from a JSON config file.
        """
        return cls(await ConfigManager(path).load())

    def _activate(self) -> None:
        self.scope.start()
        self.plugin(LoggerService, self.settings.logging)
        if self.settings.entries:
            from aetherpack.pack.loader import PackLoader

            self.plugin(PackLoader, {"entries": self.settings.entries})

    async def start(self) -> None:
        """
        启动应用
        Start the application.
        """
        logger.info("AetherPack 正在启动...")
        if not self.scope.is_active:
            self._activate()
        await self.lifecycle.start()
        logger.info("AetherPack 启动成功")

    async def stop(self) -> None:
        """
        优雅关闭：销毁所有插件并等待清理完成
        Graceful shutdown: dispose every plugin and wait for cleanup.
        """
        logger.info("AetherPack 正在关闭...")
        await self.lifecycle.stop()
        logger.info("AetherPack 已完全关闭")

    async def flush(self) -> None:
        """等待所有排队任务完成 / Wait for every queued task."""
        await self.lifecycle.flush()

    def shutdown(self) -> None:
        """请求 run_forever 退出 / Ask ``run_forever`` to return."""
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    async def run_forever(self) -> None:
        """
        持续运行直到收到关闭信号
        Run until a shutdown signal is received.
        """
        loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()

        # 注册系统信号（仅 Unix）
        if sys.platform != "win32":
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self._shutdown_event.set)

        try:
            await self._shutdown_event.wait()
        finally:
            if sys.platform != "win32":
                for sig in (signal.SIGINT, signal.SIGTERM):
                    loop.remove_signal_handler(sig)
            await self.stop()
