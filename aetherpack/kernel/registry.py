"""
插件注册表 - 将插件映射到其元数据，并负责创建作用域
Plugin registry - maps plugins to their metadata and owns scope creation.

插件的形态（函数 / 类 / 带 apply 的对象）在注册时解析一次，
记录在 PluginMeta 上，激活时不再做鸭子类型判断。
The plugin shape (function / class / object with ``apply``) is resolved once
at registration time and stored on the PluginMeta; activation never
duck-types again.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from aetherpack.kernel.errors import InvalidPluginError
from aetherpack.kernel.scope import EffectScope, ScopeStatus
from aetherpack.kernel.utils import resolve_config

if TYPE_CHECKING:
    from aetherpack.kernel.context import Context

logger = logging.getLogger(__name__)


class PluginKind(str, Enum):
    """插件形态 / Plugin shape."""

    FUNCTION = "function"
    CLASS = "class"
    OBJECT = "object"

    @classmethod
    def of(cls, plugin: Any) -> PluginKind:
        """
        解析插件形态，无效形态立即抛出
        Resolve the plugin shape; an invalid shape raises right away.
        """
        if inspect.isclass(plugin):
            return cls.CLASS
        if callable(plugin):
            return cls.FUNCTION
        if callable(getattr(plugin, "apply", None)):
            return cls.OBJECT
        raise InvalidPluginError(plugin)


@dataclass(frozen=True)
class InjectMeta:
    """单个依赖的描述 / Description of a single dependency."""

    required: bool = True


def resolve_inject(inject: Any) -> dict[str, InjectMeta]:
    """
    将依赖声明规范化为 {服务名: InjectMeta}
    Normalize a dependency declaration into ``{name: InjectMeta}``.

    支持 / Accepts:
    - ["db", "cache"]: 全部为必需 / all required
    - {"required": [...], "optional": [...]}: 结构化声明 / structured form
    - {"db": {"required": False}}: 显式条目 / explicit entries
    """
    if not inject:
        return {}
    if isinstance(inject, str):
        return {inject: InjectMeta(required=True)}
    if not isinstance(inject, Mapping):
        return {name: InjectMeta(required=True) for name in inject}

    result: dict[str, InjectMeta] = {}
    for name, value in inject.items():
        if name in ("required", "optional"):
            continue
        if isinstance(value, InjectMeta):
            result[name] = value
        elif isinstance(value, Mapping):
            result[name] = InjectMeta(required=bool(value.get("required", False)))
        else:
            result[name] = InjectMeta(required=bool(value))
    for name in inject.get("required") or ():
        result[name] = InjectMeta(required=True)
    for name in inject.get("optional") or ():
        result[name] = InjectMeta(required=False)
    return result


def _plugin_name(plugin: Any, kind: PluginKind) -> str | None:
    name = getattr(plugin, "name", None)
    if isinstance(name, str) and name != "apply":
        return name
    if kind is not PluginKind.OBJECT:
        return getattr(plugin, "__name__", None)
    return None


def _as_names(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


@dataclass
class PluginMeta:
    """
    插件元数据 - 注册表中每个插件的记录
    Plugin meta - the registry record of one plugin.

    同一个插件可以以不同的配置或上下文多次实例化，
    scopes 记录所有由它创建且尚未销毁的作用域。
    A plugin may be instantiated several times with different configs or
    contexts; ``scopes`` lists every live scope created from it.
    """

    plugin: Any
    kind: PluginKind
    name: str | None = None
    schema: Any = None
    inject: dict[str, InjectMeta] = field(default_factory=dict)
    reactive: bool = False
    reusable: bool = False
    shared: bool = False
    provide: tuple[str, ...] = ()
    scopes: list[EffectScope] = field(default_factory=list)
    # shared 类插件的存活实例 / live instance of a shared class plugin
    instance: Any = None

    @classmethod
    def resolve(cls, plugin: Any) -> PluginMeta:
        """从插件属性构建元数据 / Build the meta from the plugin's attributes."""
        kind = PluginKind.of(plugin)
        meta = cls(plugin=plugin, kind=kind)
        meta.refresh(plugin)
        return meta

    def refresh(self, plugin: Any) -> None:
        """重新注册时就地更新元数据，保留作用域列表 / Update in place on re-registration, keeping scopes."""
        self.plugin = plugin
        self.kind = PluginKind.of(plugin)
        self.name = _plugin_name(plugin, self.kind)
        self.schema = getattr(plugin, "Config", None) or getattr(plugin, "schema", None)
        inject = getattr(plugin, "inject", None)
        if inject is None:
            inject = getattr(plugin, "using", None)
        self.inject = resolve_inject(inject)
        self.reactive = bool(getattr(plugin, "reactive", False))
        self.reusable = bool(getattr(plugin, "reusable", False))
        self.shared = self.kind is PluginKind.CLASS and bool(getattr(plugin, "shared", False))
        self.provide = _as_names(getattr(plugin, "provide", None))

    def invoke(self, ctx: Context, config: Any) -> Any:
        """
        按形态调用插件主体，返回值可能是可等待对象
        Invoke the plugin body by shape; the result may be awaitable.
        """
        if self.kind is PluginKind.OBJECT:
            return self.plugin.apply(ctx, config)
        if self.kind is PluginKind.CLASS:
            return self._construct(ctx, config)
        return self.plugin(ctx, config)

    def _construct(self, ctx: Context, config: Any) -> Any:
        """构造类插件，shared 类的后续安装只调用 fork / Construct a class plugin; later installs of a shared class only fork."""
        if self.instance is not None:
            return self.instance.fork(ctx, config)

        instance = self.plugin(ctx, config)
        if self.shared:
            self.instance = instance

            def release() -> None:
                if self.instance is instance:
                    self.instance = None

            ctx.on("dispose", release)
            instance.fork(ctx, config)
        setup = getattr(instance, "setup", None)
        if callable(setup):
            return setup()
        return None

    def watches(self, name: str) -> bool:
        """服务变化时是否需要重新评估 / Whether a change of the service re-evaluates this plugin."""
        meta = self.inject.get(name)
        if meta is None:
            return False
        return meta.required or self.reactive


class Registry:
    """
    插件注册表 - 以插件的规范身份为键
    Plugin registry - keyed by the plugin's canonical identity.

    规范身份：函数和类即其自身，对象为其 apply 方法。
    Canonical identity: a function or class is itself, an object is its
    ``apply`` method.
    """

    def __init__(self, app: Context) -> None:
        self.app = app
        self._counter = 0
        self._internal: dict[Any, PluginMeta] = {}

    @property
    def counter(self) -> int:
        """单调递增的作用域编号 / Monotonically increasing scope id."""
        self._counter += 1
        return self._counter

    def __len__(self) -> int:
        return len(self._internal)

    def resolve(self, plugin: Any, assert_valid: bool = False) -> Any:
        """
        获取插件的规范身份
        Get the canonical identity of a plugin.
        """
        if callable(plugin):
            return plugin
        apply = getattr(plugin, "apply", None)
        if callable(apply):
            return apply
        if assert_valid:
            raise InvalidPluginError(plugin)
        return None

    def get(self, plugin: Any) -> PluginMeta | None:
        key = self.resolve(plugin)
        return self._internal.get(key) if key is not None else None

    def has(self, plugin: Any) -> bool:
        key = self.resolve(plugin)
        return key is not None and key in self._internal

    def delete(self, plugin: Any) -> PluginMeta | None:
        """从注册表移除插件并返回其元数据 / Remove a plugin and return its meta."""
        key = self.resolve(plugin)
        if key is None:
            return None
        return self._internal.pop(key, None)

    def keys(self) -> Iterable[Any]:
        return self._internal.keys()

    def values(self) -> Iterable[PluginMeta]:
        return self._internal.values()

    def entries(self) -> Iterable[tuple[Any, PluginMeta]]:
        return self._internal.items()

    def __iter__(self) -> Iterator[Any]:
        return iter(self._internal)

    def dependents(self, name: str) -> list[EffectScope]:
        """依赖（或响应式可选依赖）该服务的所有存活作用域 / Live scopes that watch the service."""
        return [
            scope
            for meta in list(self._internal.values())
            if meta.watches(name)
            for scope in list(meta.scopes)
            if scope.status is not ScopeStatus.DISPOSED
        ]

    def inject(self, context: Context, inject: Any, callback: Callable[..., Any]) -> EffectScope:
        """
        以显式依赖声明安装一个回调
        Install a callback with an explicit dependency descriptor.
        """
        holder = _InjectedPlugin(inject, callback)
        return self.plugin(context, holder)

    def plugin(
        self,
        context: Context,
        plugin: Any,
        config: Any = None,
        error: BaseException | None = None,
    ) -> EffectScope:
        """
        在上下文中安装插件，返回新建的作用域
        Install a plugin into a context and return the new scope.

        配置解析失败不会抛出：作用域被创建后保持 FAILED，直到 update 提供有效配置，
        错误同时通过 internal/error 报告。
        A config resolution failure is not raised: the scope is created and
        held in FAILED with the error attached until ``update()`` supplies a
        valid config, and the error is reported through ``internal/error``.
        """
        key = self.resolve(plugin, assert_valid=True)
        context.scope.assert_active()

        if error is None:
            try:
                config = resolve_config(plugin, config)
            except Exception as exc:
                self.app.lifecycle.report("error", "failed to resolve config of %s: %s", plugin, exc)
                error = exc
                config = None

        meta = self._internal.get(key)
        if meta is None:
            meta = PluginMeta.resolve(plugin)
            self._internal[key] = meta
        else:
            meta.refresh(plugin)

        for name in meta.provide:
            context.provide(name)

        if not meta.reusable and any(
            scope.parent is context and scope.status is not ScopeStatus.DISPOSED
            for scope in meta.scopes
        ):
            self.app.lifecycle.report(
                "warning", "duplicate plugin detected: %s", meta.name or plugin
            )

        scope = EffectScope(context, config, meta)
        meta.scopes.append(scope)
        logger.debug("已创建作用域: %d, 插件=%s", scope.uid, meta.name)

        if error is not None:
            scope.hold(error)
        else:
            scope.start()
        return scope


class _InjectedPlugin:
    """ctx.inject() 使用的对象插件 / Object plugin used by ``ctx.inject()``."""

    def __init__(self, inject: Any, callback: Callable[..., Any]) -> None:
        self.inject = inject
        self.name = getattr(callback, "__name__", None)
        self.reusable = True
        self._callback = callback

    def apply(self, ctx: Context, config: Any) -> Any:
        return self._callback(ctx)
