"""
生命周期事件总线 - 按上下文注册钩子，并提供多种分发策略
Lifecycle event bus - per-context hook registration with several dispatch strategies.

每个钩子都归属于注册它的上下文：上下文的过滤器决定
钩子能否看到某个会话，作用域被取消时钩子自动注销。
Every hook belongs to the context that registered it: the context's filter
decides whether the hook sees a session, and cancelling the owning scope
unregisters the hook automatically.

分发策略 / Dispatch strategies:
- emit / parallel: 并发调用，失败只记录警告 / concurrent, failures only warned
- serial / bail: 顺序调用，第一个有效返回值终止 / sequential, first bailed result wins
- waterfall / chain: 顺序调用，返回值替换第一个参数 / sequential, result replaces first argument
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from aetherpack.kernel.utils import is_bailed, remove

if TYPE_CHECKING:
    from aetherpack.kernel.context import Context

logger = logging.getLogger(__name__)

Disposer = Callable[[], Any]

# 报告通道 -> 日志级别
CHANNEL_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}
REPORT_EVENTS = frozenset(f"internal/{channel}" for channel in CHANNEL_LEVELS)


@dataclass
class HookBinding:
    """
    钩子绑定 - 将处理器绑定到事件名和所属上下文
    Hook binding - binds a handler to an event name and its owning context.
    """

    name: str
    context: Context
    callback: Callable[..., Any]


class TaskQueue:
    """
    任务队列 - 收集即发即忘的异步工作，由 flush 等待完成
    Task queue - accumulates fire-and-forget work that ``flush`` drains.

    没有运行中的事件循环时，可等待对象会被暂存，直到下一次 flush。
    Without a running event loop, awaitables are held until the next flush.
    """

    def __init__(self, bus: Lifecycle) -> None:
        self._bus = bus
        self._internal: set[asyncio.Future[Any]] = set()
        self._deferred: list[Awaitable[Any]] = []

    def queue(self, value: Awaitable[Any]) -> None:
        """排入一个可等待对象 / Queue an awaitable."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self._deferred.append(value)
            return
        self._spawn(value)

    def _spawn(self, value: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(self._guard(value))
        self._internal.add(task)
        task.add_done_callback(self._internal.discard)

    async def _guard(self, value: Awaitable[Any]) -> None:
        try:
            await value
        except Exception as exc:
            self._bus.report("warning", "queued task failed: %s", exc)

    async def flush(self) -> None:
        """
        等待所有任务完成，包括执行期间新排入的任务
        Wait until every task settles, including tasks queued meanwhile.
        """
        while self._deferred or self._internal:
            deferred, self._deferred = self._deferred, []
            for value in deferred:
                self._spawn(value)
            await asyncio.gather(*list(self._internal), return_exceptions=True)
            # 就地清理：完成回调绑定在这个集合上
            self._internal.difference_update([task for task in self._internal if task.done()])

    def __len__(self) -> int:
        return len(self._internal) + len(self._deferred)


class Lifecycle:
    """
    生命周期总线 - 管理所有钩子的注册与分发
    Lifecycle bus - manages registration and dispatch of every hook.

    特殊事件：
    - ready: 总线启动时触发；总线已启动后注册则排入队列（不会重放）
    - dispose: 直接加入调用者作用域的清理列表
    Special events:
    - ready: fired when the bus starts; queued (never replayed) once active
    - dispose: goes straight into the caller scope's disposables
    """

    def __init__(self, app: Context, max_listeners: int = 64) -> None:
        self.app = app
        self.max_listeners = max_listeners
        self.is_active = False
        self._tasks = TaskQueue(self)
        # 事件名 -> 钩子绑定列表
        self._hooks: dict[str, list[HookBinding]] = {}
        # 正在分发的报告通道，防止递归
        self._reporting: set[str] = set()

    def get_hooks(self, name: str, session: Any = None) -> Iterator[Callable[..., Any]]:
        """按注册顺序产出与会话匹配的钩子 / Yield hooks matching the session, in order."""
        for binding in list(self._hooks.get(name, ())):
            if not binding.context.match(session):
                continue
            yield binding.callback

    def hook_count(self, name: str | None = None) -> int:
        """获取钩子数量 / Get the number of hooks."""
        if name is None:
            return sum(len(bindings) for bindings in self._hooks.values())
        return len(self._hooks.get(name, ()))

    def queue(self, value: Awaitable[Any]) -> None:
        """将可等待对象交给总线任务队列 / Hand an awaitable to the bus task queue."""
        self._tasks.queue(value)

    async def flush(self) -> None:
        """等待总线任务队列清空 / Wait for the bus task queue to drain."""
        await self._tasks.flush()

    @property
    def pending(self) -> int:
        """尚未完成的排队任务数 / Number of queued tasks that have not settled."""
        return len(self._tasks)

    # ------------------------------------------------------------------
    # 报告 / Reporting
    # ------------------------------------------------------------------

    def report(self, channel: str, message: str, *args: Any) -> None:
        """
        通过 internal/<channel> 报告非致命情况
        Report a non-fatal condition through ``internal/<channel>``.

        没有处理器时（或处理器自身在报告中失败时）回退到模块日志。
        Falls back to the module logger when nothing listens, or when the
        listeners themselves fail while reporting.
        """
        name = f"internal/{channel}"
        if self._hooks.get(name) and name not in self._reporting:
            self._reporting.add(name)
            try:
                self.emit(name, message, *args)
            finally:
                self._reporting.discard(name)
            return

        error = next((arg for arg in args if isinstance(arg, BaseException)), None)
        logger.log(CHANNEL_LEVELS[channel], message, *args, exc_info=error)

    def _hook_failed(self, name: str, error: Exception) -> None:
        if name in REPORT_EVENTS:
            # 报告通道自身失败时不再回到总线
            logger.warning("hook for event \"%s\" raised: %s", name, error, exc_info=error)
            return
        self.report("warning", "hook for event \"%s\" raised: %s", name, error)

    async def _settle(self, name: str, result: Awaitable[Any]) -> Any:
        try:
            return await result
        except Exception as exc:
            self._hook_failed(name, exc)

    # ------------------------------------------------------------------
    # 分发 / Dispatch
    # ------------------------------------------------------------------

    def emit(self, name: str, *args: Any, session: Any = None) -> None:
        """
        即发即忘的并行分发
        Fire-and-forget parallel dispatch.

        钩子立即被调用；异步结果排入任务队列。
        Hooks are invoked right away; async results are queued on the bus.
        """
        for callback in self.get_hooks(name, session):
            try:
                result = callback(*args)
            except Exception as exc:
                self._hook_failed(name, exc)
                continue
            if inspect.isawaitable(result):
                self._tasks.queue(self._settle(name, result))

    async def parallel(self, name: str, *args: Any, session: Any = None) -> None:
        """
        并发调用所有匹配的钩子并等待全部完成，从不抛出
        Run every matching hook concurrently and await them all; never raises.
        """
        tasks: list[Awaitable[Any]] = []
        for callback in self.get_hooks(name, session):
            try:
                result = callback(*args)
            except Exception as exc:
                self._hook_failed(name, exc)
                continue
            if inspect.isawaitable(result):
                tasks.append(self._settle(name, result))
        if tasks:
            await asyncio.gather(*tasks)

    async def serial(self, name: str, *args: Any, session: Any = None) -> Any:
        """顺序等待每个钩子，返回第一个有效结果 / Await hooks in order, return the first bailed result."""
        for callback in self.get_hooks(name, session):
            result = callback(*args)
            if inspect.isawaitable(result):
                result = await result
            if is_bailed(result):
                return result
        return None

    def bail(self, name: str, *args: Any, session: Any = None) -> Any:
        """serial 的同步版本 / Synchronous variant of ``serial``."""
        for callback in self.get_hooks(name, session):
            result = callback(*args)
            if is_bailed(result):
                return result
        return None

    async def waterfall(self, name: str, *args: Any, session: Any = None) -> Any:
        """每个钩子的结果替换下一个钩子的第一个参数 / Each result replaces the next hook's first argument."""
        values = list(args) or [None]
        for callback in self.get_hooks(name, session):
            result = callback(*values)
            if inspect.isawaitable(result):
                result = await result
            values[0] = result
        return values[0]

    def chain(self, name: str, *args: Any, session: Any = None) -> Any:
        """waterfall 的同步版本 / Synchronous variant of ``waterfall``."""
        values = list(args) or [None]
        for callback in self.get_hooks(name, session):
            values[0] = callback(*values)
        return values[0]

    # ------------------------------------------------------------------
    # 注册 / Registration
    # ------------------------------------------------------------------

    def on(
        self,
        context: Context,
        name: str,
        listener: Callable[..., Any],
        prepend: bool = False,
    ) -> Disposer:
        """
        为上下文注册钩子，返回注销函数
        Register a hook for a context and return its disposer.

        注销函数同时被记录为调用者作用域的清理项。
        The disposer is also recorded as a disposable of the caller's scope.
        """
        scope = context.scope

        if name == "ready" and self.is_active:
            self._tasks.queue(self._defer(listener))
            return lambda: False
        if name == "dispose":
            if prepend:
                scope.disposables.insert(0, listener)
            else:
                scope.disposables.append(listener)
            return lambda: remove(scope.disposables, listener)

        hooks = self._hooks.setdefault(name, [])
        if len(hooks) >= self.max_listeners:
            self.report(
                "warning",
                "max listener count (%d) for event \"%s\" exceeded, which may be caused by a memory leak",
                self.max_listeners,
                name,
            )

        binding = HookBinding(name=name, context=context, callback=listener)
        if prepend:
            hooks.insert(0, binding)
        else:
            hooks.append(binding)

        def dispose() -> bool:
            remove(scope.disposables, dispose)
            return self.off(context, name, listener)

        scope.disposables.append(dispose)
        return dispose

    def once(
        self,
        context: Context,
        name: str,
        listener: Callable[..., Any],
        prepend: bool = False,
    ) -> Disposer:
        """注册只触发一次的钩子 / Register a hook that fires at most once."""

        def wrapper(*args: Any) -> Any:
            dispose()
            return listener(*args)

        dispose = self.on(context, name, wrapper, prepend)
        return dispose

    def before(
        self,
        context: Context,
        name: str,
        listener: Callable[..., Any],
        append: bool = False,
    ) -> Disposer:
        """
        注册 before-<name> 钩子（默认前置）
        Register a ``before-<name>`` hook (prepended unless ``append``).

        "a/b" 对应 "a/before-b"。
        "a/b" maps to "a/before-b".
        """
        segments = name.split("/")
        segments[-1] = "before-" + segments[-1]
        return self.on(context, "/".join(segments), listener, not append)

    def off(self, context: Context, name: str, listener: Callable[..., Any]) -> bool:
        """注销钩子 / Unregister a hook."""
        hooks = self._hooks.get(name, [])
        for index, binding in enumerate(hooks):
            if binding.context is context and binding.callback == listener:
                del hooks[index]
                return True
        return False

    async def _defer(self, listener: Callable[[], Any]) -> None:
        await asyncio.sleep(0)
        result = listener()
        if inspect.isawaitable(result):
            await result

    # ------------------------------------------------------------------
    # 启停 / Start and stop
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        启动总线：触发 ready 钩子并等待所有启动工作完成
        Start the bus: fire ``ready`` hooks and wait for all startup work.
        """
        self.is_active = True
        logger.debug("lifecycle started")
        for callback in self.get_hooks("ready"):
            try:
                result = callback()
            except Exception as exc:
                self._hook_failed("ready", exc)
                continue
            if inspect.isawaitable(result):
                self._tasks.queue(self._settle("ready", result))
        self._hooks.pop("ready", None)
        await self._tasks.flush()

    async def stop(self) -> None:
        """
        停止总线：重置根作用域（销毁所有插件）并等待清理完成
        Stop the bus: reset the root scope (disposing every plugin) and flush.
        """
        self.is_active = False
        logger.debug("lifecycle stopped")
        self.app.scope.reset()
        await self._tasks.flush()
