"""Tests for the plugin registry: shapes, identity, config and dependency resolution."""

from __future__ import annotations

import logging

import pytest
from pydantic import BaseModel, ValidationError

from aetherpack.kernel import InvalidPluginError, PluginKind, ScopeError, ScopeStatus
from aetherpack.kernel.registry import InjectMeta, resolve_inject


class Greeter:
    name = "greeter"

    def __init__(self) -> None:
        self.calls = []

    def apply(self, ctx, config):
        self.calls.append(config)


# ------------------------------------------------------------------ #
# Shapes and identity
# ------------------------------------------------------------------ #


@pytest.mark.parametrize("plugin", [42, "plugin", None, object()])
def test_invalid_plugin_raises(app, plugin):
    with pytest.raises(InvalidPluginError, match="invalid plugin"):
        app.plugin(plugin)


def test_invalid_plugin_is_a_type_error(app):
    with pytest.raises(TypeError):
        app.plugin(3.5)


def test_function_plugin(app, recorder):
    plugin = recorder.make()
    scope = app.plugin(plugin, {"a": 1})

    meta = app.registry.get(plugin)
    assert meta.kind is PluginKind.FUNCTION
    assert meta.name == "foo"
    assert scope in meta.scopes
    assert recorder.configs == [{"a": 1}]


def test_object_plugin_identity_is_its_apply_method(app):
    greeter = Greeter()
    app.plugin(greeter, {"hello": "world"})

    assert app.registry.resolve(greeter) == greeter.apply
    assert app.registry.has(greeter)
    assert app.registry.get(greeter).kind is PluginKind.OBJECT
    assert greeter.calls == [{"hello": "world"}]


def test_class_plugin_is_instantiated_then_set_up(app):
    events = []

    class Server:
        def __init__(self, ctx, config):
            events.append(("init", config))

        def setup(self):
            events.append(("setup", None))

    app.plugin(Server, {"port": 80})

    assert app.registry.get(Server).kind is PluginKind.CLASS
    assert events == [("init", {"port": 80}), ("setup", None)]


def test_registry_views(app, recorder):
    first = recorder.make("first")
    second = recorder.make("second")
    app.plugin(first)
    app.plugin(second)

    assert first in app.registry.keys()
    assert second in list(app.registry)
    assert {meta.name for meta in app.registry.values()} >= {"first", "second"}
    assert dict(app.registry.entries())[first].name == "first"
    # logger service + two plugins
    assert len(app.registry) == 3


def test_disposing_last_scope_unregisters_plugin(app, recorder):
    plugin = recorder.make()
    scope = app.plugin(plugin)
    scope.dispose()

    assert not app.registry.has(plugin)


def test_ctx_dispose_plugin_removes_every_instance(app, recorder):
    plugin = recorder.make(reusable=True)
    scopes = [app.plugin(plugin), app.plugin(plugin)]

    assert app.dispose(plugin) is True
    assert all(scope.status is ScopeStatus.DISPOSED for scope in scopes)
    assert not app.registry.has(plugin)
    assert app.dispose(plugin) is False


def test_reregistration_refreshes_meta_in_place(app, recorder):
    plugin = recorder.make(reusable=True)
    first = app.plugin(plugin)
    meta = app.registry.get(plugin)

    plugin.inject = ["db"]
    second = app.plugin(plugin)

    assert app.registry.get(plugin) is meta
    assert meta.scopes == [first, second]
    assert "db" in meta.inject
    assert second.status is ScopeStatus.PENDING


def test_duplicate_plugin_warns(app, recorder, caplog):
    plugin = recorder.make()
    with caplog.at_level(logging.WARNING):
        app.plugin(plugin)
        app.plugin(plugin)

    assert "duplicate plugin detected: foo" in caplog.text
    assert recorder.started == 2


def test_reusable_plugin_does_not_warn(app, recorder, caplog):
    plugin = recorder.make(reusable=True)
    with caplog.at_level(logging.WARNING):
        app.plugin(plugin)
        app.plugin(plugin)

    assert "duplicate" not in caplog.text


def test_plugin_on_disposed_context_raises(app, recorder):
    scope = app.plugin(recorder.make("host"))
    scope.dispose()

    with pytest.raises(ScopeError):
        scope.ctx.plugin(recorder.make("child"))


def test_child_plugins_are_disposed_with_parent(app, recorder):
    child = recorder.make("child")

    def host(ctx, config):
        ctx.plugin(child)

    scope = app.plugin(host)
    assert recorder.started == 1

    scope.dispose()
    assert recorder.disposed == 1
    assert not app.registry.has(child)


# ------------------------------------------------------------------ #
# Config resolution
# ------------------------------------------------------------------ #


class ServerConfig(BaseModel):
    host: str = "localhost"
    port: int = 8080


def test_pydantic_config_is_validated(app):
    seen = []

    def server(ctx, config):
        seen.append(config)

    server.Config = ServerConfig
    app.plugin(server, {"port": 9000})

    assert isinstance(seen[0], ServerConfig)
    assert seen[0].port == 9000
    assert seen[0].host == "localhost"


def test_invalid_config_holds_scope_and_reports(app, caplog):
    def server(ctx, config):
        raise AssertionError("body must not run")

    server.Config = ServerConfig
    with caplog.at_level(logging.ERROR):
        scope = app.plugin(server, {"port": "not a port"})

    assert scope.status is ScopeStatus.FAILED
    assert isinstance(scope.error, ValidationError)
    assert "failed to resolve config" in caplog.text


def test_rejected_config_is_held_across_dependency_changes(app):
    calls = []

    def server(ctx, config):
        calls.append(config)

    server.Config = ServerConfig
    server.inject = ["db"]
    scope = app.plugin(server, {"port": "not a port"})
    assert scope.held

    app.set_service("db", object())
    app.set_service("db", object())

    assert calls == []
    assert scope.status is ScopeStatus.FAILED
    assert isinstance(scope.error, ValidationError)


def test_rejected_config_is_held_across_restart_and_enable(app):
    calls = []

    def server(ctx, config):
        calls.append(config)

    server.Config = ServerConfig
    scope = app.plugin(server, {"port": "not a port"})

    assert scope.restart() is False
    scope.disable()
    assert scope.enable() is False

    assert calls == []
    assert scope.status is ScopeStatus.FAILED


def test_update_with_valid_config_releases_held_scope(app):
    calls = []

    def server(ctx, config):
        calls.append(config)

    server.Config = ServerConfig
    server.inject = ["db"]
    scope = app.plugin(server, {"port": "not a port"})
    app.set_service("db", object())

    assert scope.update({"port": 9000}) is True

    assert not scope.held
    assert scope.is_active
    assert scope.error is None
    assert isinstance(calls[0], ServerConfig)
    assert calls[0].port == 9000


def test_callable_schema_and_none_config(app):
    seen = []

    def plugin(ctx, config):
        seen.append(config)

    plugin.schema = lambda config: {"wrapped": config}
    app.plugin(plugin, 1)

    def plain(ctx, config):
        seen.append(config)

    app.plugin(plain)

    assert seen == [{"wrapped": 1}, {}]


def test_schema_false_skips_resolution(app):
    seen = []
    marker = object()

    def plugin(ctx, config):
        seen.append(config)

    plugin.schema = False
    app.plugin(plugin, marker)

    assert seen == [marker]


def test_explicit_error_holds_scope(app, recorder):
    error = RuntimeError("from loader")
    scope = app.plugin(recorder.make(), error=error)

    assert scope.status is ScopeStatus.FAILED
    assert scope.error is error
    assert recorder.started == 0

    app.set_service("anything", object())
    assert scope.restart() is False
    assert recorder.started == 0


# ------------------------------------------------------------------ #
# Dependency resolution
# ------------------------------------------------------------------ #


def test_resolve_inject_forms():
    assert resolve_inject(["a", "b"]) == {"a": InjectMeta(True), "b": InjectMeta(True)}
    assert resolve_inject({"required": ["a"], "optional": ["b"]}) == {
        "a": InjectMeta(True),
        "b": InjectMeta(False),
    }
    assert resolve_inject({"c": {"required": False}, "d": {"required": True}}) == {
        "c": InjectMeta(False),
        "d": InjectMeta(True),
    }
    assert resolve_inject(None) == {}


def test_legacy_using_attribute(app, recorder):
    plugin = recorder.make(using=["db"])
    scope = app.plugin(plugin)

    assert app.registry.get(plugin).inject == {"db": InjectMeta(True)}
    assert scope.missing == ["db"]


def test_inject_runs_callback_when_dependencies_exist(app):
    seen = []
    db = object()
    scope = app.inject(["db"], lambda ctx: seen.append(ctx.get_service("db")))

    assert seen == []
    app.set_service("db", db)
    assert seen == [db]
    assert scope.is_active
