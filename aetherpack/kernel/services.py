"""
服务表 - 按名称存放共享服务，并驱动依赖它们的作用域
Service table - named shared services that drive the scopes depending on them.

写入服务时，依赖该服务的作用域先被重置，写入完成并广播 internal/service
后再重新启动。整个级联在一次 set 调用内同步完成。
On a write, the scopes depending on the service are reset first, then the
value is stored and ``internal/service`` is emitted, then they are started
again. The whole cascade completes synchronously inside one ``set`` call.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

from aetherpack.kernel.scope import EffectScope, ScopeStatus
from aetherpack.kernel.utils import remove

if TYPE_CHECKING:
    from aetherpack.kernel.context import Context

logger = logging.getLogger(__name__)


class ServiceDescriptor:
    """
    服务描述符 - 记录一个服务名的当前值和提供者
    Service descriptor - the current value and providers of one service name.
    """

    __slots__ = ("name", "value", "declared_by", "owner", "withdraw")

    def __init__(self, name: str) -> None:
        self.name = name
        self.value: Any = None
        # 声明该服务的上下文 / context that declared the service
        self.declared_by: Context | None = None
        # 写入当前值的作用域 / scope that wrote the current value
        self.owner: EffectScope | None = None
        self.withdraw: Callable[[], Any] | None = None


class ServiceTable:
    """
    服务表

    值为 None 表示服务不存在；按引用比较新旧值，
    写入同一个对象不会触发任何级联。
    A None value means absent. Values are compared by reference, so writing
    the same object again triggers nothing.
    """

    def __init__(self, app: Context) -> None:
        self.app = app
        self._registry: dict[str, ServiceDescriptor] = {}

    def declare(self, name: str, context: Context | None = None) -> ServiceDescriptor:
        """
        声明服务名（可选地记录声明者）
        Declare a service name, optionally recording the declaring context.
        """
        descriptor = self._registry.get(name)
        if descriptor is None:
            descriptor = self._registry[name] = ServiceDescriptor(name)
            logger.debug("已声明服务: %s", name)
        if context is not None and descriptor.declared_by is None:
            descriptor.declared_by = context
        return descriptor

    def get(self, name: str) -> Any:
        descriptor = self._registry.get(name)
        return descriptor.value if descriptor is not None else None

    def has(self, name: str) -> bool:
        """服务当前是否可用 / Whether the service is currently available."""
        return self.get(name) is not None

    def is_declared(self, name: str) -> bool:
        return name in self._registry

    def names(self) -> list[str]:
        return list(self._registry)

    def entries(self) -> Iterator[tuple[str, Any]]:
        for name, descriptor in self._registry.items():
            if descriptor.value is not None:
                yield name, descriptor.value

    def set(self, name: str, value: Any, owner: EffectScope | None = None) -> bool:
        """
        写入服务并级联到依赖者
        Write a service and cascade to its dependents.

        Args:
            name: 服务名 / service name
            value: 新值，None 表示撤回 / new value, None withdraws
            owner: 写入者作用域，重置时自动撤回该值 / writer scope; its reset withdraws the value

        Returns:
            值是否发生了变化 / whether the value changed
        """
        descriptor = self.declare(name)
        if descriptor.value is value:
            return False

        # 写入者自身不因自己的写入而重启；配置被拒绝的作用域只等 update
        dependents = [
            scope
            for scope in self.app.registry.dependents(name)
            if scope is not owner and not scope.held
        ]
        for scope in dependents:
            if scope.status in (ScopeStatus.ACTIVE, ScopeStatus.LOADING, ScopeStatus.FAILED):
                scope.reset()

        if descriptor.withdraw is not None:
            remove(descriptor.owner.disposables, descriptor.withdraw)
        descriptor.owner = None
        descriptor.withdraw = None
        descriptor.value = value

        if value is not None and owner is not None and not owner.disposed:
            descriptor.owner = owner
            descriptor.withdraw = owner.collect(
                f"service <{name}>", lambda: self._withdraw(name, value)
            )

        logger.debug("服务已更新: %s (%s)", name, "set" if value is not None else "unset")
        self.app.lifecycle.emit("internal/service", name)

        for scope in dependents:
            scope.start()
        return True

    def _withdraw(self, name: str, value: Any) -> None:
        descriptor = self._registry.get(name)
        if descriptor is None or descriptor.value is not value:
            return
        descriptor.owner = None
        descriptor.withdraw = None
        self.set(name, None)
