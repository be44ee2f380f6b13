"""
AetherPack - 依赖驱动的插件生命周期内核
AetherPack - a dependency-driven plugin lifecycle kernel.
"""

from aetherpack.config.defaults import VERSION
from aetherpack.kernel import App, Context, EffectScope, ScopeStatus, Service
from aetherpack.pack import PackLoader

__version__ = VERSION

__all__ = ["App", "Context", "EffectScope", "PackLoader", "ScopeStatus", "Service", "__version__"]
