"""Tests for the service table and its dependency cascade."""

from __future__ import annotations

import pytest

from aetherpack.kernel import ScopeStatus, ServiceError


def test_plugin_waits_for_required_service(app, recorder):
    scope = app.plugin(recorder.make(inject=["db"]))
    assert scope.status is ScopeStatus.PENDING
    assert scope.missing == ["db"]
    assert recorder.started == 0

    app.set_service("db", object())
    assert scope.status is ScopeStatus.ACTIVE
    assert recorder.started == 1


def test_writing_identical_value_is_a_no_op(app, recorder):
    db = object()
    app.plugin(recorder.make(inject=["db"]))
    app.set_service("db", db)

    assert app.set_service("db", db) is False
    assert recorder.started == 1
    assert recorder.disposed == 0


def test_losing_dependency_disposes_and_regaining_restarts(app, recorder):
    scope = app.plugin(recorder.make(inject=["db"]))
    app.set_service("db", object())

    app.set_service("db", None)
    assert scope.status is ScopeStatus.PENDING
    assert recorder.disposed == 1

    app.set_service("db", object())
    assert scope.status is ScopeStatus.ACTIVE
    assert recorder.started == 2


def test_dependents_are_disposed_before_the_write(app):
    old, new = object(), object()
    seen = []

    def consumer(ctx, config):
        seen.append(("start", ctx.get_service("db")))
        ctx.on("dispose", lambda: seen.append(("dispose", ctx.get_service("db"))))

    consumer.inject = ["db"]
    app.plugin(consumer)
    app.set_service("db", old)
    app.set_service("db", new)

    assert seen == [("start", old), ("dispose", old), ("start", new)]


def test_optional_dependency_only_restarts_reactive_plugins(app, recorder):
    plain = app.plugin(recorder.make("plain", inject={"optional": ["cache"]}))
    reactive = app.plugin(recorder.make("reactive", inject={"optional": ["cache"]}, reactive=True))
    assert plain.is_active and reactive.is_active

    app.set_service("cache", object())

    assert recorder.events == [
        "start plain",
        "start reactive",
        "dispose reactive",
        "start reactive",
    ]


def test_service_is_withdrawn_when_provider_is_disposed(app, recorder):
    db = object()

    def provider(ctx, config):
        ctx.set_service("db", db)

    provider.provide = "db"
    provider_scope = app.plugin(provider)
    consumer_scope = app.plugin(recorder.make(inject=["db"]))
    assert app.get_service("db") is db
    assert consumer_scope.is_active

    provider_scope.dispose()

    assert app.get_service("db") is None
    assert consumer_scope.status is ScopeStatus.PENDING
    assert recorder.disposed == 1


def test_withdrawal_leaves_newer_value_alone(app):
    first, second = object(), object()

    def provider(ctx, config):
        ctx.set_service("db", first)

    scope = app.plugin(provider)
    app.set_service("db", second)
    scope.dispose()

    assert app.get_service("db") is second


def test_service_event_is_emitted_after_write(app):
    names = []
    app.on("internal/service", lambda name: names.append((name, app.get_service(name))))
    value = object()

    app.set_service("db", value)

    assert names == [("db", value)]


def test_provide_declares_the_name(app):
    app.provide("db")
    assert app.services.is_declared("db")
    assert not app.has_service("db")
    assert "db" in app.provided


def test_get_service_returns_default_for_absent_names(app):
    assert app.get_service("missing", 42) == 42


def test_restricted_context_rejects_unexposed_services(app):
    restricted = app.extend(expose=["a"])

    assert restricted.get_service("a") is None
    with pytest.raises(ServiceError, match='service "b" is not exposed'):
        restricted.get_service("b")
    with pytest.raises(ServiceError):
        restricted.set_service("b", object())


def test_declared_dependency_bypasses_expose_restriction(app):
    restricted = app.extend(expose=["a"])
    db = object()
    seen = []

    def consumer(ctx, config):
        seen.append(ctx.get_service("db"))

    consumer.inject = ["db"]
    restricted.plugin(consumer)
    app.set_service("db", db)

    assert seen == [db]
