"""
上下文 - 插件看到的应用视图
Context - the view of the application a plugin sees.

上下文绑定一个作用域，所有通过它注册的副作用（钩子、服务、子插件）
都归属该作用域，作用域重置时自动撤销。
A context is bound to one scope; every effect registered through it (hooks,
services, child plugins) belongs to that scope and is undone when the scope
resets.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from aetherpack.kernel.errors import ServiceError

if TYPE_CHECKING:
    from aetherpack.kernel.lifecycle import Lifecycle
    from aetherpack.kernel.registry import Registry
    from aetherpack.kernel.scope import EffectScope
    from aetherpack.kernel.services import ServiceTable

Filter = Callable[[Any], bool]


def _accept_all(session: Any) -> bool:
    return True


class Context:
    """
    插件上下文

    Attributes:
        root: 应用根上下文 / the application root context
        scope: 所属作用域 / owning scope
        parent: 父上下文（根为 None）/ parent context, None for the root
    """

    def __init__(
        self,
        root: Context | None,
        scope: EffectScope | None,
        parent: Context | None = None,
        *,
        filter: Filter | None = None,
        expose: Iterable[str] | None = None,
    ) -> None:
        self.root = root if root is not None else self
        self.scope = scope
        self.parent = parent
        self._filter = filter
        self._exposed = frozenset(expose) if expose is not None else None
        self._provided: set[str] = set()

    def __repr__(self) -> str:
        scope = self.scope
        if scope is None:
            return "<Context>"
        return f"<Context {scope.uid} {scope.name}>"

    # ========== 共享对象 / Shared objects ==========

    @property
    def services(self) -> ServiceTable:
        return self.root._services

    @property
    def registry(self) -> Registry:
        return self.root._registry

    @property
    def lifecycle(self) -> Lifecycle:
        return self.root._lifecycle

    @property
    def name(self) -> str:
        return self.scope.name

    @property
    def config(self) -> Any:
        return self.scope.config

    @property
    def provided(self) -> frozenset[str]:
        """本上下文声明提供的服务名 / Service names this context declared."""
        return frozenset(self._provided)

    # ========== 会话过滤 / Session filtering ==========

    @property
    def filter(self) -> Filter:
        """未设置过滤器时动态继承父上下文 / Inherited from the parent unless set."""
        if self._filter is not None:
            return self._filter
        if self.parent is not None:
            return self.parent.filter
        return _accept_all

    @property
    def exposed(self) -> frozenset[str] | None:
        """可访问的服务名集合，None 表示不限制 / Accessible service names, None for all."""
        if self._exposed is not None:
            return self._exposed
        if self.parent is not None:
            return self.parent.exposed
        return None

    def match(self, session: Any = None) -> bool:
        """
        判断会话是否与本上下文匹配
        Whether a session matches this context.

        已销毁作用域的上下文从不匹配；没有会话时总是匹配。
        A context of a disposed scope never matches; no session always matches.
        """
        if self.scope is not None and self.scope.disposed:
            return False
        if session is None:
            return True
        return bool(self.filter(session))

    def extend(
        self,
        filter: Filter | None = None,
        expose: Iterable[str] | None = None,
    ) -> Context:
        """
        派生一个共享作用域的子上下文，过滤器与父过滤器取交集
        Derive a child context sharing the scope; its filter is ANDed with
        this context's filter.
        """
        combined = None
        if filter is not None:

            def combined(session: Any) -> bool:
                return self.filter(session) and bool(filter(session))

        exposed = None
        if expose is not None:
            exposed = set(expose)
            if self.exposed is not None:
                exposed &= self.exposed
        return Context(self.root, self.scope, self, filter=combined, expose=exposed)

    # ========== 服务 / Services ==========

    def _check_exposed(self, name: str) -> None:
        exposed = self.exposed
        if exposed is None or name in exposed or name in self._provided:
            return
        meta = self.scope.meta if self.scope is not None else None
        if meta is not None and name in meta.inject:
            return
        raise ServiceError(name)

    def get_service(self, name: str, default: Any = None) -> Any:
        """读取服务 / Read a service."""
        self._check_exposed(name)
        value = self.services.get(name)
        return default if value is None else value

    def set_service(self, name: str, value: Any) -> bool:
        """
        写入服务，值归属本上下文的作用域
        Write a service; the value belongs to this context's scope.
        """
        self._check_exposed(name)
        return self.services.set(name, value, self.scope)

    def provide(self, name: str, value: Any = None) -> None:
        """声明服务，可选地同时写入 / Declare a service and optionally write it."""
        self._provided.add(name)
        self.services.declare(name, self)
        if value is not None:
            self.set_service(name, value)

    def has_service(self, name: str) -> bool:
        return self.services.has(name)

    def logger(self, name: str | None = None) -> logging.Logger:
        """
        获取日志记录器，优先使用 logger 服务
        Get a logger, through the ``logger`` service when present.
        """
        factory = self.services.get("logger")
        if factory is not None:
            return factory(name or self.name)
        return logging.getLogger(f"aetherpack.plugin.{name or self.name}")

    # ========== 插件 / Plugins ==========

    def plugin(self, plugin: Any, config: Any = None, *, error: BaseException | None = None) -> EffectScope:
        """安装插件 / Install a plugin."""
        return self.registry.plugin(self, plugin, config, error)

    def inject(self, inject: Any, callback: Callable[[Context], Any]) -> EffectScope:
        """在依赖满足时执行回调 / Run a callback once its dependencies are available."""
        return self.registry.inject(self, inject, callback)

    def dispose(self, plugin: Any = None) -> bool:
        """
        销毁本作用域，或卸载某个插件的所有实例
        Dispose this scope, or uninstall every instance of a plugin.
        """
        if plugin is None:
            return self.scope.dispose()
        meta = self.registry.delete(plugin)
        if meta is None:
            return False
        for scope in list(meta.scopes):
            scope.dispose()
        return True

    # ========== 钩子 / Hooks ==========

    def on(self, name: str, listener: Callable[..., Any], prepend: bool = False) -> Callable[[], Any]:
        return self.lifecycle.on(self, name, listener, prepend)

    def once(self, name: str, listener: Callable[..., Any], prepend: bool = False) -> Callable[[], Any]:
        return self.lifecycle.once(self, name, listener, prepend)

    def before(self, name: str, listener: Callable[..., Any], append: bool = False) -> Callable[[], Any]:
        return self.lifecycle.before(self, name, listener, append)

    def off(self, name: str, listener: Callable[..., Any]) -> bool:
        return self.lifecycle.off(self, name, listener)

    def emit(self, name: str, *args: Any, session: Any = None) -> None:
        self.lifecycle.emit(name, *args, session=session)

    async def parallel(self, name: str, *args: Any, session: Any = None) -> None:
        await self.lifecycle.parallel(name, *args, session=session)

    async def serial(self, name: str, *args: Any, session: Any = None) -> Any:
        return await self.lifecycle.serial(name, *args, session=session)

    def bail(self, name: str, *args: Any, session: Any = None) -> Any:
        return self.lifecycle.bail(name, *args, session=session)

    async def waterfall(self, name: str, *args: Any, session: Any = None) -> Any:
        return await self.lifecycle.waterfall(name, *args, session=session)

    def chain(self, name: str, *args: Any, session: Any = None) -> Any:
        return self.lifecycle.chain(name, *args, session=session)
