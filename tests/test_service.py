"""Tests for the Service base class and service-driven restarts."""

from __future__ import annotations

import pytest

from aetherpack.kernel import PluginKind, Service


class Counter:
    def __init__(self) -> None:
        self.start = 0
        self.stop = 0
        self.fork = 0


@pytest.fixture()
def counter() -> Counter:
    return Counter()


# ------------------------------------------------------------------ #
# Publishing
# ------------------------------------------------------------------ #


def test_service_is_published_after_ready(app, run):
    class Foo(Service):
        def __init__(self, ctx, config):
            super().__init__(ctx, "foo")

    app.plugin(Foo)
    assert app.get_service("foo") is None

    run(app.start())
    assert isinstance(app.get_service("foo"), Foo)

    app.dispose(Foo)
    assert app.get_service("foo") is None


def test_immediate_service_is_published_at_once(app):
    class Foo(Service):
        def __init__(self, ctx, config):
            super().__init__(ctx, "foo", immediate=True)

    app.plugin(Foo)

    assert isinstance(app.get_service("foo"), Foo)
    assert app.registry.get(Foo).kind is PluginKind.CLASS


def test_async_start_runs_before_publishing(app, run):
    seen = []

    class Foo(Service):
        def __init__(self, ctx, config):
            super().__init__(ctx, "foo")

        async def start(self):
            seen.append(self.ctx.get_service("foo"))

    app.plugin(Foo)
    run(app.start())

    assert seen == [None]
    assert isinstance(app.get_service("foo"), Foo)


def test_service_logger_is_named_after_service(app):
    class Foo(Service):
        def __init__(self, ctx, config):
            super().__init__(ctx, "foo", immediate=True)

    app.plugin(Foo)
    assert app.get_service("foo").logger.name == "aetherpack.app.foo"


# ------------------------------------------------------------------ #
# Dependents
# ------------------------------------------------------------------ #


def test_dependents_follow_service_writes(app):
    callback = []
    dispose = []

    def plugin(ctx, config):
        callback.append(ctx.get_service("foo"))
        ctx.on("dispose", lambda: dispose.append(True))

    plugin.inject = ["foo"]
    app.plugin(plugin)
    assert callback == []

    first = object()
    app.set_service("foo", first)
    assert callback == [first]
    assert dispose == []

    # same reference, nothing happens
    app.set_service("foo", first)
    assert len(callback) == 1

    second = object()
    app.set_service("foo", second)
    assert callback == [first, second]
    assert len(dispose) == 1

    app.set_service("foo", None)
    assert len(callback) == 2
    assert len(dispose) == 2


# ------------------------------------------------------------------ #
# Lifecycle hooks
# ------------------------------------------------------------------ #


def test_lifecycle_hooks(app, run, counter):
    class Foo(Service):
        def __init__(self, ctx, config):
            super().__init__(ctx, "foo")

        def start(self):
            counter.start += 1

        def stop(self):
            counter.stop += 1

        def fork(self, ctx, config):
            counter.fork += 1

    app.plugin(Foo)
    assert (counter.start, counter.stop, counter.fork) == (0, 0, 1)

    run(app.start())
    assert (counter.start, counter.stop, counter.fork) == (1, 0, 1)

    app.plugin(Foo)
    assert (counter.start, counter.stop, counter.fork) == (1, 0, 2)

    app.dispose(Foo)
    assert (counter.start, counter.stop, counter.fork) == (1, 1, 2)


def test_installs_share_one_instance(app, caplog):
    instances = []

    class Foo(Service):
        def __init__(self, ctx, config):
            super().__init__(ctx, "foo", immediate=True)
            instances.append(self)

    first = app.plugin(Foo)
    second = app.plugin(Foo)

    assert len(instances) == 1
    assert first.is_active and second.is_active
    assert "duplicate" not in caplog.text


def test_instance_is_rebuilt_after_unload(app):
    instances = []

    class Foo(Service):
        def __init__(self, ctx, config):
            super().__init__(ctx, "foo", immediate=True)
            instances.append(self)

    app.plugin(Foo)
    app.dispose(Foo)
    app.plugin(Foo)

    assert len(instances) == 2
    assert app.get_service("foo") is instances[1]
