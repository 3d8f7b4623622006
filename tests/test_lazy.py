import asyncio
import math
import operator
from typing import Annotated

import pytest

from beanery.domain import MISSING, Scope, ScopeContext
from beanery.errors import ConstructionError, CycleError
from beanery.lazy import is_lazy_proxy, is_realized, make_lazy_proxy, realized_value

from conftest import Handle


class Inventory:
    def __init__(self):
        self.items = {"apple": 3}

    def __len__(self):
        return len(self.items)

    def __getitem__(self, key):
        return self.items[key]

    def __contains__(self, key):
        return key in self.items

    def __iter__(self):
        return iter(self.items)

    def count(self, key):
        return self.items.get(key, 0)


def test_resolve_does_not_construct_lazy_bean(registry, engine_for):
    flags = []

    @registry.bean(lazy=True)
    def make_widget() -> Handle:
        flags.append("built")
        return Handle("widget")

    engine = engine_for(registry)
    widget = engine.resolve("widget")

    assert flags == []
    assert is_lazy_proxy(widget)
    assert not is_realized(widget)


def test_first_capability_use_constructs_exactly_once(registry, engine_for):
    flags = []

    @registry.bean(lazy=True)
    def make_widget() -> Handle:
        flags.append("built")
        return Handle("widget")

    engine = engine_for(registry)
    widget = engine.resolve("widget")

    assert widget.greet("Arthur") == "widget greets Arthur"
    assert widget.greet("Martha") == "widget greets Martha"
    assert widget.label == "widget"
    assert flags == ["built"]
    assert is_realized(widget)
    assert engine.resolve("widget") is widget


def test_proxy_is_an_instance_of_declared_type_before_realization(registry, engine_for):
    @registry.bean(lazy=True)
    def make_widget() -> Handle:
        return Handle()

    widget = engine_for(registry).resolve("widget")

    assert isinstance(widget, Handle)
    assert not is_realized(widget)


def test_special_methods_are_forwarded():
    proxy = make_lazy_proxy(Inventory, Inventory, "inventory")

    assert len(proxy) == 1
    assert proxy["apple"] == 3
    assert "apple" in proxy
    assert list(proxy) == ["apple"]
    assert proxy.count("pear") == 0


def test_attribute_writes_reach_the_real_instance():
    real = Handle()
    proxy = make_lazy_proxy(Handle, lambda: real)

    proxy.label = "renamed"
    proxy.markers.append("touched")

    assert real.label == "renamed"
    assert real.markers == ["touched"]
    assert realized_value(proxy) is real


def test_callable_proxy_forwards_calls():
    proxy = make_lazy_proxy(object, lambda: (lambda name: f"hello {name}"))

    assert proxy("world") == "hello world"


def test_equality_and_hash_follow_the_real_instance():
    proxy = make_lazy_proxy(str, lambda: "value")

    assert proxy == "value"
    assert hash(proxy) == hash("value")
    assert str(proxy) == "value"


def test_repr_does_not_realize():
    proxy = make_lazy_proxy(Handle, Handle, "widget")

    assert "uninitialized" in repr(proxy)
    assert realized_value(proxy) is MISSING


def test_failed_realization_is_sticky_and_evicted(registry, engine_for):
    attempts = []

    @registry.bean(lazy=True)
    def make_widget() -> Handle:
        attempts.append(1)
        raise RuntimeError("boom")

    engine = engine_for(registry)
    widget = engine.resolve("widget")

    with pytest.raises(ConstructionError, match="boom"):
        widget.greet("Arthur")
    with pytest.raises(ConstructionError, match="boom"):
        widget.greet("Arthur")

    assert attempts == [1]
    assert engine.resolve("widget") is not widget


def test_lazy_side_breaks_eager_cycle(registry, engine_for):
    @registry.bean(lazy=True)
    def make_a(b: Annotated[Handle, "b"]) -> Handle:
        handle = Handle("a")
        handle.markers.append(b.label)
        return handle

    @registry.bean()
    def make_b(a: Annotated[Handle, "a"]) -> Handle:
        handle = Handle("b")
        handle.partner = a
        return handle

    engine = engine_for(registry)
    a = engine.resolve("a")

    assert not is_realized(a)
    assert a.markers == ["b"]
    assert engine.resolve("b").partner is a


def test_using_lazy_bean_during_its_own_realization_raises(registry, engine_for):
    @registry.bean(lazy=True)
    def make_a(b: Annotated[Handle, "b"]) -> Handle:
        return Handle("a")

    @registry.bean()
    def make_b(a: Annotated[Handle, "a"]) -> Handle:
        return Handle(a.label)

    engine = engine_for(registry)
    a = engine.resolve("a")

    with pytest.raises(CycleError):
        a.greet("anyone")


def test_lazy_transient_returns_a_new_stand_in_each_time(registry, engine_for):
    @registry.bean(scope=Scope.TRANSIENT, lazy=True)
    def make_widget() -> Handle:
        return Handle()

    engine = engine_for(registry)

    assert engine.resolve("widget") is not engine.resolve("widget")


def test_lazy_request_bean_realizes_in_its_own_context(registry, engine_for):
    @registry.bean(scope=Scope.REQUEST)
    def make_cart() -> Handle:
        return Handle("cart")

    @registry.bean(scope=Scope.REQUEST, lazy=True)
    def make_checkout(cart: Annotated[Handle, "cart"]) -> Handle:
        handle = Handle("checkout")
        handle.cart = cart
        return handle

    engine = engine_for(registry)
    engine.begin_request("r1")
    context = ScopeContext(request_id="r1")

    checkout = engine.resolve("checkout", context)

    assert checkout.cart is engine.resolve("cart", context)


class Vector:
    def __init__(self, *values):
        self.values = values

    def __matmul__(self, other):
        return sum(a * b for a, b in zip(self.values, other))

    def __rmatmul__(self, other):
        return sum(a * b for a, b in zip(other, self.values))


class Stream:
    def __init__(self):
        self.items = [1, 2]
        self.open = False

    def __aiter__(self):
        self._remaining = iter(self.items)
        return self

    async def __anext__(self):
        try:
            return next(self._remaining)
        except StopIteration:
            raise StopAsyncIteration

    async def __aenter__(self):
        self.open = True
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        self.open = False
        return False

    def __await__(self):
        return asyncio.sleep(0, result="ready").__await__()


def test_arithmetic_operators_are_forwarded_in_both_directions():
    six = make_lazy_proxy(int, lambda: 6)

    assert six + 1 == 7 and 1 + six == 7
    assert six - 1 == 5 and 10 - six == 4
    assert six * 2 == 12 and 2 * six == 12
    assert six / 2 == 3 and 12 / six == 2
    assert six // 4 == 1 and 13 // six == 2
    assert six % 4 == 2 and 13 % six == 1
    assert six ** 2 == 36 and 2 ** six == 64
    assert pow(six, 2, 5) == 1
    assert divmod(six, 4) == (1, 2) and divmod(20, six) == (3, 2)


def test_bitwise_and_matrix_operators_are_forwarded_in_both_directions():
    six = make_lazy_proxy(int, lambda: 6)
    vector = make_lazy_proxy(Vector, lambda: Vector(1, 2))

    assert six << 1 == 12 and 1 << six == 64
    assert six >> 1 == 3 and 64 >> six == 1
    assert six & 3 == 2 and 3 & six == 2
    assert six | 1 == 7 and 1 | six == 7
    assert six ^ 2 == 4 and 2 ^ six == 4
    assert vector @ (3, 4) == 11
    assert (3, 4) @ vector == 11


def test_unary_operators_and_conversions_are_forwarded():
    six = make_lazy_proxy(int, lambda: 6)
    price = make_lazy_proxy(float, lambda: -2.567)

    assert -six == -6 and +six == 6 and ~six == -7
    assert abs(price) == 2.567
    assert int(price) == -2 and float(six) == 6.0 and complex(six) == 6 + 0j
    assert operator.index(six) == 6
    assert round(price) == -3 and round(price, 1) == -2.6
    assert math.trunc(price) == -2
    assert math.floor(price) == -3
    assert math.ceil(price) == -2


def test_format_is_forwarded():
    label = make_lazy_proxy(str, lambda: "ab")
    ratio = make_lazy_proxy(float, lambda: 0.5)

    assert f"{label:>4}" == "  ab"
    assert f"{ratio:.2f}" == "0.50"
    assert format(ratio, "%") == "50.000000%"


def test_in_place_operators_update_the_real_instance():
    real = [1]
    items = make_lazy_proxy(list, lambda: real)

    items += [2]

    assert real == [1, 2]
    assert items is real


def test_context_manager_protocol_is_forwarded():
    events = []

    class Session:
        def __enter__(self):
            events.append("enter")
            return self

        def __exit__(self, exc_type, exc_value, traceback):
            events.append("exit")
            return False

    proxy = make_lazy_proxy(Session, Session)

    with proxy as session:
        assert isinstance(session, Session)

    assert events == ["enter", "exit"]


def test_async_protocols_are_forwarded():
    proxy = make_lazy_proxy(Stream, Stream, "stream")

    async def use():
        outcome = await proxy
        async with proxy as stream:
            opened = stream.open
            values = [value async for value in proxy]
        return outcome, opened, values, proxy.open

    assert asyncio.run(use()) == ("ready", True, [1, 2], False)


def test_anext_is_forwarded():
    proxy = make_lazy_proxy(Stream, Stream, "stream")

    async def first():
        proxy.__aiter__()
        return await proxy.__anext__()

    assert asyncio.run(first()) == 1
    assert is_realized(proxy)
