"""
包加载器 - 管理条目树并让它与作用域树保持一致
Pack loader - manages the entry tree and keeps the scope tree in line with it.

外部加载器（配置文件、文件监听等）只通过 create / update / remove / entries
与本模块交互；条目的启停、迁移和重配置都在这里完成。
Outer loaders (config files, file watchers) only talk to this module through
create / update / remove / entries; starting, stopping, moving and
reconfiguring entries all happens here.
"""

from __future__ import annotations

import importlib
import logging
import uuid
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from aetherpack.kernel.errors import EntryNotFoundError, KernelError
from aetherpack.kernel.service import Service
from aetherpack.pack.group import GroupNode, group
from aetherpack.pack.manifest import EntryOptions

if TYPE_CHECKING:
    from aetherpack.kernel.context import Context
    from aetherpack.kernel.scope import EffectScope

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class Entry:
    """
    条目 - 一个子插件配置在加载器中的记录
    Entry - the loader-side record of one child plugin configuration.

    条目编号在其背后的作用域被销毁、重建或迁移时保持不变。
    The entry id stays stable while the scopes backing it are disposed,
    recreated or transferred.
    """

    def __init__(self, loader: PackLoader, options: EntryOptions, parent: GroupNode) -> None:
        self.loader = loader
        self.options = options
        self.parent = parent
        # 分组条目拥有自己的子节点
        self.node = GroupNode(loader, self) if options.group else None
        self._fork: EffectScope | None = None

    def __repr__(self) -> str:
        return f"<Entry {self.id} {self.options.name}>"

    @property
    def id(self) -> str:
        return self.options.id

    @property
    def fork(self) -> EffectScope | None:
        """当前背后的作用域，已销毁时为 None / The backing scope, None once disposed."""
        if self._fork is not None and self._fork.disposed:
            self._fork = None
        return self._fork

    @property
    def effectively_disabled(self) -> bool:
        """自身或任一祖先分组停用 / Disabled itself or by any ancestor group."""
        return self.options.disabled or self.parent.disabled

    def refresh(self) -> None:
        """
        让背后的作用域与期望状态一致：启动、销毁、迁移或保持不变
        Reconcile the backing scope with the desired state: start, dispose,
        transfer, or leave alone.
        """
        ctx = self.parent.context
        fork = self.fork

        if ctx is None or self.effectively_disabled:
            if fork is not None:
                fork.dispose()
                logger.debug("条目已停止: %s", self.id)
            self._fork = None
            return

        if fork is None:
            plugin = group if self.node is not None else self.loader.resolve(self.options.name)
            if plugin is None:
                return
            config = self.node if self.node is not None else self.options.config
            try:
                self._fork = ctx.plugin(plugin, config)
            except KernelError as exc:
                ctx.lifecycle.report("error", "failed to load entry %s: %s", self.id, exc)
                return
            logger.debug("条目已启动: %s (作用域 %d)", self.id, self._fork.uid)
        elif fork.parent is not ctx:
            fork.transfer(ctx)

    def to_dict(self) -> dict[str, Any]:
        data = self.options.to_dict()
        if self.node is not None:
            data["config"] = self.node.to_list()
        return data


class LoaderConfig(BaseModel):
    """加载器配置 / Loader settings."""

    entries: list[dict[str, Any]] = Field(default_factory=list)


class PackLoader(Service):
    """
    包加载器 - 以 loader 服务提供
    Pack loader - provided as the ``loader`` service.

    条目在 ready 时开始运行（也可以手动调用 start）。
    根节点绑定到加载器自身的上下文，因此卸载加载器会销毁所有条目。
    Entries begin running on ``ready`` (or on a manual ``start()``). The root
    node binds to the loader's own context, so uninstalling the loader
    disposes every entry.
    """

    name = "loader"
    Config = LoaderConfig

    def __init__(self, ctx: Context, config: LoaderConfig) -> None:
        super().__init__(ctx, "loader", immediate=True)
        self.config = config
        self.root = GroupNode(self, None)
        self.started = False
        self._entries: dict[str, Entry] = {}
        # 注册名 -> 插件
        self._plugins: dict[str, Any] = {"group": group}

        for data in config.entries:
            self._add(EntryOptions.from_dict(data), self.root)

    def __len__(self) -> int:
        return len(self._entries)

    # ========== 插件解析 / Plugin resolution ==========

    def register(self, name: str, plugin: Any) -> Any:
        """
        以名称注册插件
        Register a plugin under a name.
        """
        self._plugins[name] = plugin
        return plugin

    def resolve(self, name: str) -> Any:
        """
        按注册名或 "module:attr" 导入路径解析插件
        Resolve a plugin by registered name or ``"module:attr"`` import path.
        """
        plugin = self._plugins.get(name)
        if plugin is not None:
            return plugin

        module_name, _, attr = name.partition(":")
        try:
            module = importlib.import_module(module_name)
            plugin = getattr(module, attr) if attr else module
        except (ImportError, AttributeError) as exc:
            self.ctx.lifecycle.report("error", "cannot resolve plugin %s: %s", name, exc)
            return None

        self._plugins[name] = plugin
        logger.debug("已导入插件: %s", name)
        return plugin

    # ========== 条目管理 / Entry management ==========

    def start(self) -> None:
        """
        将根节点绑定到加载器上下文并启动所有条目
        Bind the root node to the loader context and start every entry.
        """
        self.started = True
        self.root.bind(self.ctx)
        logger.info("加载器已启动，共 %d 个条目", len(self._entries))

    def stop(self) -> None:
        """解除根节点绑定，条目随加载器作用域一起销毁 / Unbind the root; entries go with the loader scope."""
        self.started = False
        self.root.unbind()

    async def flush(self) -> None:
        """等待所有条目的异步工作完成 / Wait for the async work of every entry."""
        await self.ctx.lifecycle.flush()

    def get(self, entry_id: str) -> Entry:
        entry = self._entries.get(entry_id)
        if entry is None:
            raise EntryNotFoundError(entry_id)
        return entry

    def entries(self) -> Iterator[tuple[str, Entry]]:
        return iter(list(self._entries.items()))

    def get_scope(self, entry_id: str) -> EffectScope | None:
        """条目当前背后的作用域 / The scope currently backing an entry."""
        return self.get(entry_id).fork

    def create(self, options: EntryOptions | Mapping[str, Any], parent: str | None = None) -> str:
        """
        创建条目并按需启动
        Create an entry and start it when possible.

        Args:
            options: 条目选项 / entry options
            parent: 父分组条目编号，None 为根节点 / parent group id, None for the root

        Returns:
            新条目的编号 / id of the new entry
        """
        if isinstance(options, Mapping):
            options = EntryOptions.from_dict(options)
        entry = self._add(options, self._node(parent))
        entry.refresh()
        return entry.id

    def update(self, entry_id: str, patch: Mapping[str, Any], parent: Any = _UNSET) -> None:
        """
        修改条目（配置、停用标记、名称、父分组）
        Patch an entry (config, disabled flag, name, parent group).

        配置变化在存活作用域上通过 update 完成，作用域编号不变。
        A config change on a live scope goes through ``update`` and keeps the
        scope id.
        """
        entry = self.get(entry_id)
        if parent is not _UNSET:
            self._move(entry, self._node(parent))

        if "name" in patch and patch["name"] != entry.options.name:
            entry.options.name = patch["name"]
            fork = entry.fork
            if fork is not None:
                fork.dispose()

        if "disabled" in patch:
            entry.options.disabled = bool(patch["disabled"])

        fork = entry.fork
        if "config" in patch:
            if entry.node is not None:
                self._reconcile(entry.node, patch["config"] or [])
            else:
                entry.options.config = patch["config"]

        entry.refresh()

        if "config" in patch and entry.node is None and fork is not None and entry.fork is fork:
            fork.update(entry.options.config)
        logger.debug("条目已更新: %s", entry_id)

    def remove(self, entry_id: str) -> None:
        """
        移除条目（分组连同其子条目）
        Remove an entry, a group together with its children.
        """
        entry = self.get(entry_id)
        if entry.node is not None:
            for child in list(entry.node.children):
                self.remove(child.id)
        fork = entry.fork
        if fork is not None:
            fork.dispose()
        entry.parent.children.remove(entry)
        del self._entries[entry_id]
        logger.debug("条目已移除: %s", entry_id)

    def to_list(self) -> list[dict[str, Any]]:
        """导出整棵条目树 / Export the whole entry tree."""
        return self.root.to_list()

    # ========== 内部 / Internals ==========

    def _generate_id(self) -> str:
        while True:
            entry_id = uuid.uuid4().hex[:8]
            if entry_id not in self._entries:
                return entry_id

    def _node(self, parent: str | None) -> GroupNode:
        if parent is None:
            return self.root
        entry = self.get(parent)
        if entry.node is None:
            raise KernelError(f"entry {parent} is not a group")
        return entry.node

    def _add(self, options: EntryOptions, node: GroupNode) -> Entry:
        if not options.id:
            options.id = self._generate_id()
        elif options.id in self._entries:
            raise KernelError(f"duplicate entry id: {options.id}")

        entry = Entry(self, options, node)
        self._entries[options.id] = entry
        node.children.append(entry)

        if entry.node is not None:
            children = options.config or []
            options.config = None
            for child in children:
                if not isinstance(child, EntryOptions):
                    child = EntryOptions.from_dict(child)
                self._add(child, entry.node)
        return entry

    def _move(self, entry: Entry, node: GroupNode) -> None:
        if entry.parent is node:
            return
        if entry.node is not None and node.contains(entry):
            raise KernelError(f"cannot move group {entry.id} into itself")
        entry.parent.children.remove(entry)
        node.children.append(entry)
        entry.parent = node

    def _reconcile(self, node: GroupNode, items: list[Any]) -> None:
        """
        按编号将子条目列表与新配置对齐
        Align the child list with a new config by id.
        """
        kept: list[Entry] = []
        for item in items:
            data = item.to_dict() if isinstance(item, EntryOptions) else dict(item)
            current = self._entries.get(data.get("id") or "")
            if current is not None and not (current.node is not None and node.contains(current)):
                self._move(current, node)
                patch: dict[str, Any] = {
                    "name": data.get("name", current.options.name),
                    "disabled": data.get("disabled", False),
                }
                if current.node is not None:
                    patch["config"] = data.get("config") or []
                elif "config" in data and data["config"] != current.options.config:
                    patch["config"] = data["config"]
                self.update(current.id, patch)
                kept.append(current)
            else:
                child = self._add(EntryOptions.from_dict(data), node)
                child.refresh()
                kept.append(child)

        for child in list(node.children):
            if child not in kept:
                self.remove(child.id)
        node.children[:] = kept
