"""
生命周期内核 - 作用域、注册表、服务表和事件总线
Lifecycle kernel - scopes, registry, service table and event bus.
"""

from aetherpack.kernel.bootstrap import App
from aetherpack.kernel.context import Context
from aetherpack.kernel.errors import (
    EntryNotFoundError,
    InvalidPluginError,
    KernelError,
    ScopeError,
    ServiceError,
)
from aetherpack.kernel.lifecycle import Lifecycle, TaskQueue
from aetherpack.kernel.registry import InjectMeta, PluginKind, PluginMeta, Registry
from aetherpack.kernel.scope import EffectScope, ScopeStatus
from aetherpack.kernel.service import Service
from aetherpack.kernel.services import ServiceTable

__all__ = [
    "App",
    "Context",
    "EffectScope",
    "EntryNotFoundError",
    "InjectMeta",
    "InvalidPluginError",
    "KernelError",
    "Lifecycle",
    "PluginKind",
    "PluginMeta",
    "Registry",
    "ScopeError",
    "ScopeStatus",
    "Service",
    "ServiceError",
    "ServiceTable",
    "TaskQueue",
]
