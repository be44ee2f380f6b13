"""
内核异常 - 生命周期内核抛出的所有异常
Kernel errors - every exception raised by the lifecycle kernel.

只有调用方可以立即纠正的问题才会抛出；其余失败一律通过
internal/* 通道报告，绝不终止宿主进程。
Only problems the caller can fix on the spot are raised; every other failure
is reported through the internal/* channels and never terminates the host.
"""

from __future__ import annotations


class KernelError(Exception):
    """内核异常基类 / Base class for kernel errors."""


class InvalidPluginError(KernelError, TypeError):
    """插件既不是可调用对象，也没有 apply 方法 / Plugin is neither callable nor has an ``apply`` method."""

    def __init__(self, plugin: object) -> None:
        super().__init__(
            "invalid plugin, expect function or object with an \"apply\" method, "
            f"received {type(plugin).__name__}"
        )
        self.plugin = plugin


class ScopeError(KernelError):
    """在已销毁的作用域上创建副作用 / Effect created on a disposed scope."""


class ServiceError(KernelError):
    """访问了未向当前上下文暴露的服务 / Service not exposed to the context."""

    def __init__(self, name: str) -> None:
        super().__init__(f"service \"{name}\" is not exposed to this context")
        self.name = name


class EntryNotFoundError(KernelError, KeyError):
    """加载器中不存在该条目 / No such loader entry."""

    def __init__(self, entry_id: str) -> None:
        super().__init__(f"entry not found: {entry_id}")
        self.entry_id = entry_id

    def __str__(self) -> str:
        return self.args[0]
