"""Helpers for checking declared bean types."""

import inspect
from typing import Any, Optional, get_origin

__all__ = ["capability_class", "is_resolvable_type", "is_assignable"]


def capability_class(declared_type: Any) -> Optional[type]:
    """The runtime class behind ``declared_type``, or None if there is none.

    Example:
        >>> capability_class(Database)                  # Database
        >>> capability_class(Callable[[str], str])      # collections.abc.Callable
        >>> capability_class(Optional[Database])        # None
    """
    if declared_type is Any:
        return None
    origin = get_origin(declared_type) or declared_type
    return origin if inspect.isclass(origin) else None


def is_resolvable_type(declared_type: Any) -> bool:
    return declared_type is Any or capability_class(declared_type) is not None


def is_assignable(instance: Any, declared_type: Any) -> bool:
    """Whether ``instance`` satisfies ``declared_type`` as far as can be checked at runtime.

    ``Any`` and protocols that are not runtime-checkable accept everything.
    """
    cls = capability_class(declared_type)
    if cls is None:
        return True
    if getattr(cls, "_is_protocol", False) and not getattr(
        cls, "_is_runtime_protocol", False
    ):
        return True
    return isinstance(instance, cls)
