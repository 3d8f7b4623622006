"""Registration and introspection utilities for bean producers."""

import inspect
from typing import (
    Annotated,
    Any,
    Callable,
    Optional,
    Sequence,
    get_args,
    get_origin,
    get_type_hints,
)

from beanery.domain import (
    BeanDefinition,
    Dependency,
    ParameterSpec,
    PostProcessorDefinition,
    Scope,
)
from beanery.errors import DefinitionError

__all__ = [
    "BeanRegistry",
    "inferred_name",
]


def inferred_name(target: Any) -> str:
    """Derive a bean id from a class or function name, removing any 'make_' prefix.

    Args:
        target: The function or class to derive a name from.

    Returns:
        The class name, or the function name with any 'make_' prefix removed.

    Example:
        >>> inferred_name(Database)       # Returns "Database"
        >>> inferred_name(make_database)  # Returns "database"
        >>> inferred_name(my_service)     # Returns "my_service"
    """
    if inspect.isclass(target):
        return target.__name__

    if target.__name__.startswith("make_"):
        return target.__name__[5:]
    else:
        return target.__name__


class BeanRegistry:
    """Collects bean and post-processor definitions declared with decorators.

    Example:
        >>> registry = BeanRegistry()
        >>>
        >>> @registry.bean(parameters=[ParameterSpec("database.dsn")])
        >>> def make_database(dsn) -> Database:
        ...     return Database(dsn)
        >>>
        >>> @registry.bean(scope=Scope.REQUEST)
        >>> def make_repository(db: Annotated[Database, "database"]) -> Repository:
        ...     return Repository(db)
    """

    def __init__(self):
        self._beans: list[BeanDefinition] = []
        self._post_processors: list[PostProcessorDefinition] = []

    def register(self, definition: BeanDefinition):
        """Register a bean definition explicitly.

        Args:
            definition: The BeanDefinition to be registered.
        """
        self._beans.append(definition)

    def register_post_processor(self, definition: PostProcessorDefinition):
        self._post_processors.append(definition)

    def registered_beans(self) -> list[BeanDefinition]:
        return list(self._beans)

    def registered_post_processors(self) -> list[PostProcessorDefinition]:
        return list(self._post_processors)

    def bean(
        self,
        id: Optional[str] = None,
        scope: Scope = Scope.SINGLETON,
        lazy: bool = False,
        singleton: bool = True,
        parameters: Sequence[ParameterSpec] = (),
    ) -> Callable:
        """Decorator to register a function or class as a bean producer.

        The first ``len(parameters)`` arguments of the producer receive the bound
        parameter values. Every other argument is a dependency on another bean,
        named by an ``Annotated`` qualifier or else by the argument name.

        Args:
            id: Optional bean id; defaults to the inferred name of the producer.
            scope: Lifetime of the produced instances.
            lazy: Whether resolution returns a stand-in that constructs on first use.
            singleton: For request and session scope, whether instances are shared
                within one context.
            parameters: External parameters passed to the producer, in order.

        Returns:
            A decorator that registers the producer and returns it unchanged.
        """

        def decorator(obj):
            if inspect.isclass(obj):
                declared_type = obj
                signature_target = obj.__init__
            elif inspect.isfunction(obj):
                declared_type = get_type_hints(obj).get("return", Any)
                signature_target = obj
            else:
                raise DefinitionError(f"{obj} is not a class or function")

            bean_id = id or inferred_name(obj)
            self.register(
                BeanDefinition(
                    bean_id,
                    obj,
                    declared_type,
                    scope,
                    lazy,
                    tuple(parameters),
                    singleton,
                    _get_dependencies(
                        signature_target, len(parameters), skip_self=inspect.isclass(obj)
                    ),
                )
            )
            return obj

        return decorator

    def post_processor(self, id: Optional[str] = None) -> Callable:
        """Decorator to register a post-processor producer.

        Post-processors apply in the order they are registered.
        """

        def decorator(obj):
            self.register_post_processor(
                PostProcessorDefinition(id or inferred_name(obj), obj)
            )
            return obj

        return decorator


def _get_dependencies(
    func: Callable, parameter_count: int, skip_self: bool = False
) -> tuple[Dependency, ...]:
    """Extract bean dependencies from the arguments after the bound parameters.

    Arguments with a default value are left to that default unless they carry
    an ``Annotated`` bean id.

    Example:
        >>> def make_service(timeout, db: Database, cache: Annotated[Cache, "redis"], retries=3) -> Service:
        ...     pass
        >>> _get_dependencies(make_service, 1)
        >>> # Returns:
        >>> # (Dependency("db", "db"), Dependency("cache", "redis"))
    """
    sig = inspect.signature(func)
    hints = get_type_hints(func, include_extras=True)
    params = [
        param
        for param in sig.parameters.values()
        if param.kind not in (param.VAR_POSITIONAL, param.VAR_KEYWORD)
    ]
    if skip_self:
        params = params[1:]

    if len(params) < parameter_count:
        raise DefinitionError(
            f"{func.__qualname__} declares {parameter_count} parameters "
            f"but accepts only {len(params)} arguments"
        )

    dependencies = []
    for param in params[parameter_count:]:
        annotation = hints.get(param.name)
        qualifier = _qualifier(annotation)
        if param.default is not param.empty and qualifier is None:
            continue
        dependencies.append(Dependency(param.name, qualifier or param.name))
    return tuple(dependencies)


def _qualifier(annotation) -> Optional[str]:
    if get_origin(annotation) is Annotated:
        _, *metadata = get_args(annotation)
        return next((m for m in metadata if isinstance(m, str)), None)
    return None
