"""
服务基类 - 以类插件的形式发布一个命名服务
Service base - a class plugin that publishes itself as a named service.

同一个服务类的所有安装共享一个实例：第一次安装时构造实例，
之后每次安装只调用 fork()。实例在 ready 时 start()，
在构造它的作用域被清理时 stop() 并撤回服务。
Every install of one service class shares a single instance: the first
install constructs it, later installs only call ``fork()``. The instance
runs ``start()`` on ``ready`` and ``stop()`` when the scope that constructed
it is cleaned up, which also withdraws the service.
"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from aetherpack.kernel.context import Context


class Service:
    """
    服务基类

    用法 / Usage::

        class Database(Service):
            def __init__(self, ctx, config):
                super().__init__(ctx, "db")

            async def start(self):
                await self.connect()

    immediate=True 时构造后立即发布；否则在 start() 完成后发布。
    With ``immediate=True`` the service is published at construction time,
    otherwise once ``start()`` has finished.
    """

    # 同一插件的后续安装复用实例 / later installs reuse the instance
    shared = True
    reusable = True

    def __init__(self, ctx: Context, name: str, immediate: bool = False) -> None:
        self.ctx = ctx
        self.name = name
        self.immediate = immediate
        self.logger: logging.Logger = ctx.logger(name)

        ctx.provide(name)
        if immediate:
            ctx.set_service(name, self)
        ctx.on("ready", self._on_ready)
        ctx.on("dispose", self._on_dispose)

    async def _on_ready(self) -> None:
        result = self.start()
        if inspect.isawaitable(result):
            await result
        if not self.immediate:
            self.ctx.set_service(self.name, self)

    def _on_dispose(self) -> Any:
        return self.stop()

    # ========== 生命周期钩子 / Lifecycle hooks ==========

    def start(self) -> Any:
        """应用就绪时调用，可以是协程 / Called on ready; may be a coroutine."""

    def stop(self) -> Any:
        """服务卸载时调用，可以是协程 / Called on unload; may be a coroutine."""

    def fork(self, ctx: Context, config: Any) -> Any:
        """每次安装都会调用，包括第一次 / Called on every install, the first one included."""
