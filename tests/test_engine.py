from typing import Annotated

import pytest

from beanery.builders import make_engine
from beanery.domain import ParameterSpec, Scope, ScopeContext
from beanery.errors import (
    ConstructionError,
    CycleError,
    InactiveScopeError,
    NotFoundError,
)

from conftest import Handle


def test_singleton_is_constructed_once(registry, engine_for):
    counter = {"calls": 0}

    @registry.bean()
    def make_widget() -> Handle:
        counter["calls"] += 1
        return Handle("widget")

    engine = engine_for(registry)
    first = engine.resolve("widget")
    second = engine.resolve("widget")

    assert counter["calls"] == 1
    assert first is second


def test_transient_is_constructed_on_every_resolve(registry, engine_for):
    @registry.bean(scope=Scope.TRANSIENT)
    def make_widget() -> Handle:
        return Handle()

    engine = engine_for(registry)

    assert engine.resolve("widget") is not engine.resolve("widget")


def test_has_is_a_pure_lookup(registry, engine_for):
    calls = []

    @registry.bean()
    def make_widget() -> Handle:
        calls.append(1)
        return Handle()

    engine = engine_for(registry)

    assert engine.has("widget")
    assert not engine.has("gadget")
    assert calls == []


def test_unknown_id_raises_not_found(registry, engine_for):
    engine = engine_for(registry)

    with pytest.raises(NotFoundError, match="No bean definition with id 'gadget'") as info:
        engine.resolve("gadget")

    assert info.value.bean_id == "gadget"


def test_request_scope_isolates_contexts(registry, engine_for):
    @registry.bean(scope=Scope.REQUEST)
    def make_cart() -> Handle:
        return Handle("cart")

    engine = engine_for(registry)
    engine.begin_request("r1")
    engine.begin_request("r2")

    first = engine.resolve("cart", ScopeContext(request_id="r1"))
    again = engine.resolve("cart", ScopeContext(request_id="r1"))
    other = engine.resolve("cart", ScopeContext(request_id="r2"))

    assert first is again
    assert first is not other


def test_request_scope_without_singleton_builds_per_lookup(registry, engine_for):
    @registry.bean(scope=Scope.REQUEST, singleton=False)
    def make_cart() -> Handle:
        return Handle("cart")

    engine = engine_for(registry)

    with engine.request() as context:
        assert engine.resolve("cart", context) is not engine.resolve("cart", context)


def test_ending_a_request_evicts_its_instances(registry, engine_for):
    @registry.bean(scope=Scope.REQUEST)
    def make_cart() -> Handle:
        return Handle("cart")

    engine = engine_for(registry)
    engine.begin_request("r1")
    cart = engine.resolve("cart", ScopeContext(request_id="r1"))

    assert engine.end_request("r1") == {"cart": cart}
    with pytest.raises(InactiveScopeError):
        engine.resolve("cart", ScopeContext(request_id="r1"))


def test_session_scope_spans_requests(registry, engine_for):
    @registry.bean(scope=Scope.SESSION)
    def make_profile() -> Handle:
        return Handle("profile")

    engine = engine_for(registry)
    engine.begin_session("s1")

    with engine.request(session_id="s1") as first_request:
        first = engine.resolve("profile", first_request)
    with engine.request(session_id="s1") as second_request:
        second = engine.resolve("profile", second_request)

    assert first is second


def test_scoped_bean_without_context_raises(registry, engine_for):
    @registry.bean(scope=Scope.SESSION)
    def make_profile() -> Handle:
        return Handle("profile")

    engine = engine_for(registry)

    with pytest.raises(InactiveScopeError, match="requires an active session context"):
        engine.resolve("profile")
    with pytest.raises(InactiveScopeError, match="No active session context 'nope'"):
        engine.resolve("profile", ScopeContext(session_id="nope"))


def test_beginning_an_active_context_twice_raises(registry, engine_for):
    engine = engine_for(registry)
    engine.begin_session("s1")

    with pytest.raises(ValueError, match="already active"):
        engine.begin_session("s1")


def test_dependencies_are_injected(registry):
    @registry.bean(parameters=[ParameterSpec("prefix")])
    def make_greeter(prefix) -> Handle:
        return Handle(prefix)

    @registry.bean(scope=Scope.TRANSIENT)
    def make_service(greeter: Annotated[Handle, "greeter"]) -> str:
        return greeter.greet("Arthur")

    engine = make_engine(registry, {"prefix": "Martha"})

    assert engine.resolve("service") == "Martha greets Arthur"
    engine.close()


def test_producer_calls_resolve_with_the_same_context(registry, engine_for):
    engine = None

    @registry.bean(scope=Scope.REQUEST)
    def make_cart() -> Handle:
        return Handle("cart")

    @registry.bean(scope=Scope.REQUEST)
    def make_checkout() -> tuple:
        return ("checkout", engine.resolve("cart"))

    engine = engine_for(registry)

    with engine.request() as context:
        _, cart = engine.resolve("checkout", context)
        assert cart is engine.resolve("cart", context)


def test_producer_failure_is_wrapped_and_not_cached(registry, engine_for):
    attempts = []

    @registry.bean()
    def make_flaky() -> Handle:
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("connection refused")
        return Handle()

    engine = engine_for(registry)

    with pytest.raises(ConstructionError, match="connection refused") as info:
        engine.resolve("flaky")

    assert info.value.bean_id == "flaky"
    assert isinstance(info.value.__cause__, RuntimeError)
    assert len(attempts) == 1
    assert isinstance(engine.resolve("flaky"), Handle)


def test_producer_result_must_match_declared_type(registry, engine_for):
    @registry.bean()
    def make_widget() -> Handle:
        return "not a handle"

    engine = engine_for(registry)

    with pytest.raises(ConstructionError, match="not assignable"):
        engine.resolve("widget")


def test_eager_cycle_raises(registry, engine_for):
    engine = None

    @registry.bean()
    def make_a() -> Handle:
        engine.resolve("b")
        return Handle("a")

    @registry.bean()
    def make_b() -> Handle:
        engine.resolve("a")
        return Handle("b")

    engine = engine_for(registry)

    with pytest.raises(CycleError) as info:
        engine.resolve("a")

    assert info.value.chain == ["a", "b", "a"]
    with pytest.raises(CycleError):
        engine.resolve("a")


def test_cycle_through_declared_dependencies_raises(registry, engine_for):
    @registry.bean(scope=Scope.TRANSIENT)
    def make_a(b: Annotated[Handle, "b"]) -> Handle:
        return Handle("a")

    @registry.bean(scope=Scope.TRANSIENT)
    def make_b(a: Annotated[Handle, "a"]) -> Handle:
        return Handle("b")

    engine = engine_for(registry)

    with pytest.raises(CycleError, match="a -> b -> a"):
        engine.resolve("a")


def test_closed_engine_refuses_to_resolve(registry, engine_for):
    @registry.bean()
    def make_widget() -> Handle:
        return Handle()

    engine = engine_for(registry)
    engine.resolve("widget")
    engine.close()

    assert engine.has("widget")
    with pytest.raises(ConstructionError, match="closed"):
        engine.resolve("widget")


def test_widget_scenario(registry, engine_for):
    counter = {"value": 0}

    @registry.bean()
    def make_widget() -> Handle:
        counter["value"] += 1
        return Handle("widget")

    engine = engine_for(registry)

    handles = [engine.resolve("widget"), engine.resolve("widget")]

    assert counter["value"] == 1
    assert handles[0] is handles[1]
