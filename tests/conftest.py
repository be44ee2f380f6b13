"""Shared fixtures for the aetherpack tests.

Provides a fresh App per test and a small recorder that builds plugin
functions counting their activations and disposals.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest

from aetherpack.kernel import App
from aetherpack.pack import PackLoader


class Recorder:
    """Builds plugins that record what happens to them."""

    def __init__(self) -> None:
        self.started = 0
        self.disposed = 0
        self.configs: list[Any] = []
        self.events: list[str] = []

    def make(self, name: str = "foo", **attrs: Any) -> Callable[..., None]:
        def plugin(ctx, config):
            self.started += 1
            self.configs.append(config)
            self.events.append(f"start {name}")

            def dispose():
                self.disposed += 1
                self.events.append(f"dispose {name}")

            ctx.on("dispose", dispose)

        plugin.name = name
        for key, value in attrs.items():
            setattr(plugin, key, value)
        return plugin


@pytest.fixture()
def app() -> App:
    return App()


@pytest.fixture()
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture()
def run() -> Callable[..., Any]:
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run


@pytest.fixture()
def loader(app: App) -> PackLoader:
    app.plugin(PackLoader)
    loader = app.get_service("loader")
    loader.start()
    return loader
