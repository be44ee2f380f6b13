"""
分组 - 将一组子条目绑定到同一个上下文
Group - binds a list of child entries to one context.

分组本身也是插件：它的配置是一个 GroupNode，主体把节点绑定到
自己的上下文并刷新每个子条目；作用域重置时解除绑定。
A group is itself a plugin: its config is a GroupNode; the body binds the node
to its own context and refreshes every child entry, and unbinds on reset.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from aetherpack.pack.manifest import EntryOptions

if TYPE_CHECKING:
    from aetherpack.kernel.context import Context
    from aetherpack.pack.loader import Entry, PackLoader

logger = logging.getLogger(__name__)


class GroupNode(Sequence[EntryOptions]):
    """
    分组节点 - 子条目的有序序列
    Group node - an ordered sequence of child entries.

    作为序列时产出子条目的 EntryOptions。
    As a sequence it yields the EntryOptions of its children.
    """

    def __init__(self, loader: PackLoader, entry: Entry | None = None) -> None:
        self.loader = loader
        # 所属条目，根节点为 None
        self.entry = entry
        self.children: list[Entry] = []
        # 绑定的上下文，未激活时为 None
        self.context: Context | None = None

    def __repr__(self) -> str:
        owner = self.entry.id if self.entry is not None else "root"
        return f"<GroupNode {owner} ({len(self.children)} entries)>"

    def __getitem__(self, index: Any) -> Any:
        if isinstance(index, slice):
            return [child.options for child in self.children[index]]
        return self.children[index].options

    def __len__(self) -> int:
        return len(self.children)

    @property
    def disabled(self) -> bool:
        """祖先链上任一分组停用即为停用 / Disabled when any group up the chain is."""
        return self.entry is not None and self.entry.effectively_disabled

    def contains(self, entry: Entry) -> bool:
        """该条目是否位于本节点之上（含自身）/ Whether the entry owns this node or an ancestor."""
        node: GroupNode | None = self
        while node is not None:
            if node.entry is entry:
                return True
            node = node.entry.parent if node.entry is not None else None
        return False

    def bind(self, ctx: Context) -> None:
        """
        绑定上下文并刷新所有子条目
        Bind a context and refresh every child entry.
        """
        self.context = ctx
        for child in list(self.children):
            child.refresh()

    def unbind(self) -> None:
        self.context = None

    def to_list(self) -> list[dict[str, Any]]:
        """导出子条目配置 / Export the child entry configs."""
        return [child.to_dict() for child in self.children]


def group(ctx: Context, node: GroupNode) -> None:
    """分组插件主体 / Group plugin body."""
    node.bind(ctx)
    ctx.on("dispose", node.unbind)
    logger.debug("分组已绑定: %r", node)


group.reusable = True
group.schema = False
