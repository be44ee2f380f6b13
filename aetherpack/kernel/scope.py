"""
作用域 - 插件实例的生命周期状态机
Effect scope - the lifecycle state machine of one plugin instance.

每个作用域拥有一组清理函数（副作用的撤销），重置时逆序执行。
子作用域的 dispose 作为清理函数注册在父作用域上，
因此销毁会沿树向下级联。
Every scope owns a list of disposables (undo actions of its effects) that
run in reverse order on reset. A child scope registers its own ``dispose``
as a disposable of its parent, so disposal cascades down the tree.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from aetherpack.kernel.context import Context
from aetherpack.kernel.errors import ScopeError
from aetherpack.kernel.utils import remove, resolve_config

if TYPE_CHECKING:
    from aetherpack.kernel.registry import PluginMeta

logger = logging.getLogger(__name__)


class ScopeStatus(str, Enum):
    """作用域状态 / Scope status."""

    PENDING = "pending"
    LOADING = "loading"
    ACTIVE = "active"
    FAILED = "failed"
    DISPOSED = "disposed"


class EffectScope:
    """
    插件实例作用域

    状态流转 / Transitions:
        PENDING -> ACTIVE | LOADING | FAILED   (start)
        LOADING -> ACTIVE | FAILED             (异步主体完成 / async body settles)
        任意 / any -> PENDING                  (reset)
        FAILED 且 held 时 reset 不改变状态 / a held FAILED scope stays FAILED on reset
        任意 / any -> DISPOSED                 (dispose, 终态 / terminal)

    每次激活都会递增代数，过期的异步主体完成后被丢弃。
    Every activation bumps the generation; an async body that settles after
    a newer activation or a reset is discarded.
    """

    def __init__(
        self,
        parent: Context | None,
        config: Any,
        meta: PluginMeta | None,
        *,
        context: Context | None = None,
    ) -> None:
        self.parent = parent
        self.config = config
        self.meta = meta
        self.status = ScopeStatus.PENDING
        self.error: BaseException | None = None
        self.enabled = True
        self.disposables: list[Callable[[], Any]] = []
        # 配置未通过校验，等待 update
        self._held = False
        self._generation = 0
        self._detach: Callable[[], Any] | None = None

        if parent is None:
            # 根作用域 / root scope
            self.uid = 0
            self.ctx = context
        else:
            self.uid = parent.registry.counter
            self.ctx = Context(parent.root, self, parent)
            self._detach = parent.scope.collect(f"fork <{self.name}>", self.dispose)

    def __repr__(self) -> str:
        return f"<EffectScope {self.uid} {self.name} {self.status.value}>"

    @property
    def name(self) -> str:
        if self.meta is None:
            return "root"
        return self.meta.name or "anonymous"

    @property
    def is_active(self) -> bool:
        return self.status is ScopeStatus.ACTIVE

    @property
    def disposed(self) -> bool:
        return self.status is ScopeStatus.DISPOSED

    @property
    def missing(self) -> list[str]:
        """尚未满足的必需依赖 / Required dependencies that are not available."""
        if self.meta is None:
            return []
        services = self.ctx.services
        return [
            name
            for name, inject in self.meta.inject.items()
            if inject.required and services.get(name) is None
        ]

    @property
    def held(self) -> bool:
        """配置被拒绝，需要 update 才能再次启动 / Config was rejected; only update() releases it."""
        return self._held

    @property
    def ready(self) -> bool:
        return self.enabled and not self.missing

    def collect(self, label: str, callback: Callable[[], Any]) -> Callable[[], Any]:
        """
        注册清理函数，返回的函数可用于提前执行并移除
        Register a disposable; the returned function runs it early and
        removes it from the list.
        """

        def dispose() -> Any:
            remove(self.disposables, dispose)
            return callback()

        dispose.__name__ = label
        self.disposables.append(dispose)
        return dispose

    def assert_active(self) -> None:
        if self.status is ScopeStatus.DISPOSED:
            raise ScopeError(f"cannot create effect on disposed scope {self.uid} ({self.name})")

    # ========== 状态流转 / Transitions ==========

    def start(self) -> bool:
        """
        依赖满足时激活作用域
        Activate the scope if its dependencies are satisfied.

        Returns:
            作用域是否处于（或正在进入）活动状态 / whether the scope is (becoming) active
        """
        if self.status is ScopeStatus.DISPOSED:
            return False
        if self.status in (ScopeStatus.ACTIVE, ScopeStatus.LOADING):
            return True
        if self._held or not self.ready:
            return False

        self._generation += 1
        generation = self._generation
        self.status = ScopeStatus.LOADING
        self.error = None

        try:
            result = self.meta.invoke(self.ctx, self.config) if self.meta is not None else None
        except Exception as exc:
            if generation == self._generation:
                self._fail(exc)
            return False

        if generation != self._generation:
            # 主体内部触发了重置 / the body reset its own scope
            if inspect.iscoroutine(result):
                result.close()
            return self.status in (ScopeStatus.ACTIVE, ScopeStatus.LOADING)

        if inspect.isawaitable(result):
            self.ctx.lifecycle.queue(self._settle(result, generation))
            return True

        self.status = ScopeStatus.ACTIVE
        logger.debug("作用域已激活: %d (%s)", self.uid, self.name)
        return True

    async def _settle(self, result: Awaitable[Any], generation: int) -> None:
        if generation != self._generation:
            if inspect.iscoroutine(result):
                result.close()
            return
        try:
            await result
        except Exception as exc:
            if generation == self._generation:
                self._fail(exc)
            return
        if generation == self._generation and self.status is ScopeStatus.LOADING:
            self.status = ScopeStatus.ACTIVE
            logger.debug("作用域已激活: %d (%s)", self.uid, self.name)

    def _fail(self, error: BaseException) -> None:
        self.cancel(error)
        self.ctx.lifecycle.report("error", "plugin %s failed to start: %s", self.name, error)

    def reset(self) -> None:
        """
        逆序执行所有清理函数并回到 PENDING
        Run every disposable in reverse order and return to PENDING.

        清理失败以 warning 报告，不会中断剩余清理。
        A failing disposable is reported as a warning and never stops the rest.
        """
        self._generation += 1
        disposables, self.disposables = self.disposables, []
        for dispose in reversed(disposables):
            try:
                result = dispose()
            except Exception as exc:
                label = getattr(dispose, "__name__", dispose)
                self.ctx.lifecycle.report(
                    "warning", "failed to dispose %s of %s: %s", label, self.name, exc
                )
                continue
            if inspect.isawaitable(result):
                self.ctx.lifecycle.queue(result)
        if self.status is not ScopeStatus.DISPOSED:
            self.status = ScopeStatus.FAILED if self._held else ScopeStatus.PENDING

    def cancel(self, error: BaseException | None = None) -> None:
        """重置作用域，若给出错误则进入 FAILED / Reset; enter FAILED when an error is given."""
        self.reset()
        if error is not None and self.status is not ScopeStatus.DISPOSED:
            self.error = error
            self.status = ScopeStatus.FAILED

    def hold(self, error: BaseException) -> None:
        """
        以错误取消作用域并保持 FAILED，直到 update 提供可用的配置
        Cancel with the error and stay FAILED until update() supplies a config
        that resolves. Dependency changes, restart() and enable() leave a held
        scope alone.
        """
        self.cancel(error)
        self._held = True

    def restart(self) -> bool:
        self.reset()
        return self.start()

    def update(self, config: Any) -> bool:
        """
        以新配置重启作用域
        Restart the scope with a new config.
        """
        if self.status is ScopeStatus.DISPOSED:
            return False
        if self.meta is not None:
            try:
                config = resolve_config(self.meta.plugin, config)
            except Exception as exc:
                self.hold(exc)
                self.ctx.lifecycle.report(
                    "error", "failed to resolve config of %s: %s", self.name, exc
                )
                return False
        self._held = False
        self.config = config
        return self.restart()

    def enable(self) -> bool:
        self.enabled = True
        return self.start()

    def disable(self) -> None:
        if not self.enabled:
            return
        self.enabled = False
        if self.status is not ScopeStatus.DISPOSED:
            self.reset()

    def transfer(self, parent: Context) -> None:
        """
        将作用域移到另一个父上下文下，不重启
        Move the scope under another parent context without restarting it.
        """
        if parent is self.parent or self.parent is None:
            return
        parent.scope.assert_active()
        if self._detach is not None:
            remove(self.parent.scope.disposables, self._detach)
        self.parent = parent
        self.ctx.parent = parent
        self._detach = parent.scope.collect(f"fork <{self.name}>", self.dispose)
        logger.debug("作用域已迁移: %d (%s) -> %d", self.uid, self.name, parent.scope.uid)

    def dispose(self) -> bool:
        """
        销毁作用域（终态）
        Dispose the scope; this is terminal.
        """
        if self.status is ScopeStatus.DISPOSED:
            return False
        if self._detach is not None:
            remove(self.parent.scope.disposables, self._detach)
            self._detach = None
        self.reset()
        self.status = ScopeStatus.DISPOSED
        if self.meta is not None:
            remove(self.meta.scopes, self)
            registry = self.ctx.registry
            if not self.meta.scopes and registry.get(self.meta.plugin) is self.meta:
                registry.delete(self.meta.plugin)
        logger.debug("作用域已销毁: %d (%s)", self.uid, self.name)
        return True
