"""Domain models used throughout the framework."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Protocol, runtime_checkable

__all__ = [
    "MISSING",
    "Scope",
    "ParameterSpec",
    "Dependency",
    "BeanDefinition",
    "PostProcessorDefinition",
    "Configuration",
    "ScopeContext",
    "EMPTY_CONTEXT",
    "PostProcessor",
    "InitializedBean",
]


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


class Scope(Enum):
    """Lifetime class governing how long a bean instance is cached and shared."""

    TRANSIENT = "transient"
    SINGLETON = "singleton"
    REQUEST = "request"
    SESSION = "session"


@dataclass(frozen=True)
class ParameterSpec:
    """An externally supplied parameter requested by a producer.

    Attributes:
        name: Key in the engine's parameter map. Dotted names walk nested mappings.
        required: Whether binding fails when the parameter is absent and has no default.
        default: Value used when the parameter is absent; ``MISSING`` if there is none.
    """

    name: str
    required: bool = True
    default: Any = MISSING

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING


@dataclass(frozen=True)
class Dependency:
    """A producer argument satisfied by resolving another bean.

    Attributes:
        parameter_name: The keyword under which the resolved bean is passed to the producer.
        bean_id: The id of the bean that fulfils this dependency.
    """

    parameter_name: str
    bean_id: str


@dataclass(frozen=True)
class BeanDefinition:
    """
    Immutable description of how, and under what scope, a bean is produced.

    The producer is invoked with the bound parameter values as positional
    arguments, followed by the resolved dependencies as keyword arguments.

    Attributes:
        id: Unique id of the bean within a configuration.
        producer: Callable building the instance.
        declared_type: The capability the produced instance must satisfy.
        scope: Lifetime of the produced instance.
        lazy: Whether resolution returns a deferred stand-in instead of constructing.
        parameter_specs: External parameters bound positionally, in order.
        singleton: For request and session scope, whether repeated lookups within
            one context share an instance.
        dependencies: Other beans passed to the producer by keyword.
    """

    id: str
    producer: Callable[..., Any]
    declared_type: Any
    scope: Scope = Scope.SINGLETON
    lazy: bool = False
    parameter_specs: tuple[ParameterSpec, ...] = ()
    singleton: bool = True
    dependencies: tuple[Dependency, ...] = ()

    @property
    def is_cached(self) -> bool:
        """Whether resolved instances are kept in the scope store."""
        if self.scope is Scope.TRANSIENT:
            return False
        if self.scope is Scope.SINGLETON:
            return True
        return self.singleton


@dataclass(frozen=True)
class PostProcessorDefinition:
    id: str
    producer: Callable[[], Any]


@dataclass(frozen=True)
class Configuration:
    """A validated set of bean and post-processor definitions."""

    beans: Mapping[str, BeanDefinition]
    post_processors: tuple[PostProcessorDefinition, ...] = ()

    def __contains__(self, bean_id: str) -> bool:
        return bean_id in self.beans


@dataclass(frozen=True)
class ScopeContext:
    """Identifies the active request and session, if any, for a resolution."""

    request_id: Optional[str] = None
    session_id: Optional[str] = None

    def context_id(self, scope: Scope) -> Optional[str]:
        if scope is Scope.REQUEST:
            return self.request_id
        if scope is Scope.SESSION:
            return self.session_id
        return None


EMPTY_CONTEXT = ScopeContext()


@runtime_checkable
class PostProcessor(Protocol):
    """Hook transforming a freshly constructed bean before it is cached."""

    def process(self, bean_id: str, instance: Any) -> Any: ...


@runtime_checkable
class InitializedBean(Protocol):
    """Beans that want a callback once their producer has returned."""

    def post_initialization(self) -> None: ...

