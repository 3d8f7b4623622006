"""
Deferred-construction stand-ins for lazy beans.

A :class:`LazyProxy` is handed out in place of a lazy bean. It holds a
supplier and builds the real instance the first time any attribute or
special method is used, forwarding that use and every later one to the
real instance. ``isinstance`` checks against the declared type succeed
without realizing the proxy.

Only :func:`is_lazy_proxy`, :func:`is_realized` and :func:`realized_value`
tell a proxy apart from the instance it stands in for. ``repr`` does not
force realization.
"""

import math
import operator
import threading
from typing import Any, Callable, Generic, Optional, TypeVar

from beanery.domain import MISSING
from beanery.errors import CycleError
from beanery.typing_utils import capability_class
from beanery.waits import waiting_for

__all__ = [
    "LazyProxy",
    "make_lazy_proxy",
    "is_lazy_proxy",
    "is_realized",
    "realized_value",
]

T = TypeVar("T")

_UNINITIALIZED = "uninitialized"
_INITIALIZING = "initializing"
_READY = "ready"
_FAILED = "failed"


class LazyProxy(Generic[T]):
    """Virtual proxy realizing its target through ``supplier`` exactly once."""

    __slots__ = (
        "_proxy_bean_id",
        "_proxy_type",
        "_proxy_supplier",
        "_proxy_state",
        "_proxy_instance",
        "_proxy_error",
        "_proxy_owner",
        "_proxy_lock",
        "__weakref__",
    )

    def __init__(self, declared_type: Any, supplier: Callable[[], T], bean_id: str = ""):
        set_slot = object.__setattr__
        set_slot(self, "_proxy_bean_id", bean_id)
        set_slot(self, "_proxy_type", declared_type)
        set_slot(self, "_proxy_supplier", supplier)
        set_slot(self, "_proxy_state", _UNINITIALIZED)
        set_slot(self, "_proxy_instance", None)
        set_slot(self, "_proxy_error", None)
        set_slot(self, "_proxy_owner", None)
        set_slot(self, "_proxy_lock", threading.Lock())

    def _proxy_target(self) -> T:
        if self._proxy_state is _READY:
            return self._proxy_instance
        return self._proxy_initialize()

    def _proxy_initialize(self) -> T:
        if (
            self._proxy_state is _INITIALIZING
            and self._proxy_owner == threading.get_ident()
        ):
            raise CycleError(self._proxy_bean_id, [self._proxy_bean_id] * 2)

        lock = self._proxy_lock
        if not lock.acquire(blocking=False):
            with waiting_for(_Realization(self)):
                lock.acquire()

        set_slot = object.__setattr__
        try:
            if self._proxy_state is _READY:
                return self._proxy_instance
            if self._proxy_state is _FAILED:
                raise self._proxy_error

            set_slot(self, "_proxy_owner", threading.get_ident())
            set_slot(self, "_proxy_state", _INITIALIZING)
            try:
                instance = self._proxy_supplier()
            except BaseException as exc:
                set_slot(self, "_proxy_error", exc)
                set_slot(self, "_proxy_state", _FAILED)
                raise
            finally:
                set_slot(self, "_proxy_owner", None)
                set_slot(self, "_proxy_supplier", None)

            set_slot(self, "_proxy_instance", instance)
            set_slot(self, "_proxy_state", _READY)
            return instance
        finally:
            lock.release()

    @property
    def __class__(self):
        return capability_class(self._proxy_type) or type(self)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._proxy_target(), name)

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._proxy_target(), name, value)

    def __delattr__(self, name: str) -> None:
        delattr(self._proxy_target(), name)

    def __dir__(self):
        return dir(self._proxy_target())

    def __repr__(self) -> str:
        if self._proxy_state is _READY:
            return repr(self._proxy_instance)
        name = getattr(self._proxy_type, "__name__", str(self._proxy_type))
        return f"<LazyProxy[{name}] {self._proxy_bean_id!r} ({self._proxy_state})>"

    def __call__(self, *args, **kwargs):
        return self._proxy_target()(*args, **kwargs)

    def __reduce_ex__(self, protocol):
        return self._proxy_target().__reduce_ex__(protocol)


class _Realization:
    """A proxy's realization in progress, as seen by threads blocked on its lock."""

    def __init__(self, proxy: LazyProxy):
        self._proxy = proxy
        self.bean_id = proxy._proxy_bean_id

    @property
    def owner(self) -> Optional[int]:
        return self._proxy._proxy_owner


def _forwarding(function: Callable) -> Callable:
    def forward(self, *args):
        return function(self._proxy_target(), *args)

    return forward


def _reflected(function: Callable) -> Callable:
    def reflect(target, other):
        return function(other, target)

    return reflect


def _forwarding_method(name: str) -> Callable:
    def forward(self, *args):
        return getattr(self._proxy_target(), name)(*args)

    return forward


_FORWARDED_OPERATORS = {
    "__str__": str,
    "__bytes__": bytes,
    "__format__": format,
    "__bool__": bool,
    "__hash__": hash,
    "__len__": len,
    "__iter__": iter,
    "__next__": next,
    "__reversed__": reversed,
    "__int__": int,
    "__float__": float,
    "__complex__": complex,
    "__index__": operator.index,
    "__round__": round,
    "__trunc__": math.trunc,
    "__floor__": math.floor,
    "__ceil__": math.ceil,
    "__contains__": operator.contains,
    "__getitem__": operator.getitem,
    "__setitem__": operator.setitem,
    "__delitem__": operator.delitem,
    "__eq__": operator.eq,
    "__ne__": operator.ne,
    "__lt__": operator.lt,
    "__le__": operator.le,
    "__gt__": operator.gt,
    "__ge__": operator.ge,
    "__neg__": operator.neg,
    "__pos__": operator.pos,
    "__abs__": abs,
    "__invert__": operator.invert,
    "__pow__": pow,
    "__divmod__": divmod,
}

_BINARY_OPERATORS = {
    "add": operator.add,
    "sub": operator.sub,
    "mul": operator.mul,
    "matmul": operator.matmul,
    "truediv": operator.truediv,
    "floordiv": operator.floordiv,
    "mod": operator.mod,
    "lshift": operator.lshift,
    "rshift": operator.rshift,
    "and": operator.and_,
    "or": operator.or_,
    "xor": operator.xor,
}

_INPLACE_OPERATORS = {
    "iadd": operator.iadd,
    "isub": operator.isub,
    "imul": operator.imul,
    "imatmul": operator.imatmul,
    "itruediv": operator.itruediv,
    "ifloordiv": operator.ifloordiv,
    "imod": operator.imod,
    "ipow": operator.ipow,
    "ilshift": operator.ilshift,
    "irshift": operator.irshift,
    "iand": operator.iand,
    "ior": operator.ior,
    "ixor": operator.ixor,
}

for _name, _function in _BINARY_OPERATORS.items():
    _FORWARDED_OPERATORS[f"__{_name}__"] = _function
    _FORWARDED_OPERATORS[f"__r{_name}__"] = _reflected(_function)
for _name, _function in _INPLACE_OPERATORS.items():
    _FORWARDED_OPERATORS[f"__{_name}__"] = _function
_FORWARDED_OPERATORS["__rpow__"] = _reflected(pow)
_FORWARDED_OPERATORS["__rdivmod__"] = _reflected(divmod)

for _name, _function in _FORWARDED_OPERATORS.items():
    setattr(LazyProxy, _name, _forwarding(_function))

# Context manager and async protocols, forwarded to the target's own methods.
for _name in (
    "__enter__",
    "__exit__",
    "__await__",
    "__aiter__",
    "__anext__",
    "__aenter__",
    "__aexit__",
):
    setattr(LazyProxy, _name, _forwarding_method(_name))


def make_lazy_proxy(
    declared_type: Any, supplier: Callable[[], T], bean_id: str = ""
) -> LazyProxy[T]:
    """Create a stand-in for ``declared_type`` that calls ``supplier`` on first use."""
    return LazyProxy(declared_type, supplier, bean_id)


def is_lazy_proxy(obj: Any) -> bool:
    return type(obj) is LazyProxy


def is_realized(proxy: LazyProxy) -> bool:
    """Whether ``proxy`` has built its real instance. Does not trigger realization."""
    return object.__getattribute__(proxy, "_proxy_state") is _READY


def realized_value(proxy: LazyProxy) -> Any:
    """The real instance behind ``proxy``, or ``MISSING`` if it is not realized."""
    if is_realized(proxy):
        return object.__getattribute__(proxy, "_proxy_instance")
    return MISSING
