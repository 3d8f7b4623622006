"""Binding of externally supplied parameters to producer arguments."""

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Iterable, Optional

from beanery.domain import MISSING, ParameterSpec
from beanery.errors import ConstructionError

__all__ = ["ParameterBinder"]


class ParameterBinder:
    """Resolve named parameters from a map fixed when the binder is created.

    Names are looked up verbatim first. A dotted name that is not itself a key
    walks nested mappings, so ``"database.host"`` finds
    ``{"database": {"host": ...}}``.

    Example:
        >>> binder = ParameterBinder({"database": {"host": "localhost"}})
        >>> binder.bind("db", [ParameterSpec("database.host")])
        ['localhost']
    """

    def __init__(self, parameters: Optional[Mapping[str, Any]] = None):
        self._parameters = MappingProxyType(dict(parameters or {}))

    @property
    def parameters(self) -> Mapping[str, Any]:
        return self._parameters

    def bind(self, bean_id: str, specs: Iterable[ParameterSpec]) -> list[Any]:
        """Return the values for ``specs``, in order.

        Raises:
            ConstructionError: If a required parameter is absent and has no default.
        """
        return [self._bind_one(bean_id, spec) for spec in specs]

    def _bind_one(self, bean_id: str, spec: ParameterSpec) -> Any:
        value = self._lookup(spec.name)
        if value is not MISSING:
            return value
        if spec.has_default:
            return spec.default
        if spec.required:
            raise ConstructionError(
                f"Missing required parameter '{spec.name}' for bean '{bean_id}'",
                bean_id,
            )
        return None

    def _lookup(self, name: str) -> Any:
        if name in self._parameters:
            return self._parameters[name]
        if "." not in name:
            return MISSING

        current: Any = self._parameters
        for part in name.split("."):
            if not isinstance(current, Mapping) or part not in current:
                return MISSING
            current = current[part]
        return current
