"""
分组与加载器 - 将条目树映射为作用域树
Groups and loader - map the entry tree onto the scope tree.
"""

from aetherpack.pack.group import GroupNode, group
from aetherpack.pack.loader import Entry, LoaderConfig, PackLoader
from aetherpack.pack.manifest import EntryOptions

__all__ = [
    "Entry",
    "EntryOptions",
    "GroupNode",
    "LoaderConfig",
    "PackLoader",
    "group",
]
