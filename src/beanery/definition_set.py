"""Validation of bean and post-processor definitions into a Configuration."""

from types import MappingProxyType
from typing import Iterable, Sequence

from beanery.domain import (
    BeanDefinition,
    Configuration,
    ParameterSpec,
    PostProcessorDefinition,
    Scope,
)
from beanery.errors import DefinitionError
from beanery.typing_utils import is_resolvable_type

__all__ = ["make_configuration"]


def make_configuration(
    beans: Iterable[BeanDefinition],
    post_processors: Sequence[PostProcessorDefinition] = (),
) -> Configuration:
    """
    Validate definitions and build an immutable Configuration from them.

    Validates that:
      - Each bean and each post-processor has a unique id.
      - Producers are callable and declared types name a runtime class.
      - Scope, laziness and parameter specs are well formed.
      - Every dependency names a defined bean.

    Raises:
        DefinitionError: On the first violation found. No configuration is produced.

    Args:
        beans: Bean definitions, typically from a BeanRegistry.
        post_processors: Post-processor definitions, in application order.

    Returns:
        A Configuration holding the validated definitions.
    """
    beans_by_id = _beans_by_unique_id(beans)
    for definition in beans_by_id.values():
        _validate_bean(definition, beans_by_id)

    seen = set()
    for post_processor in post_processors:
        if post_processor.id in seen:
            raise DefinitionError(
                f"Duplicate post-processor id '{post_processor.id}'", post_processor.id
            )
        if not callable(post_processor.producer):
            raise DefinitionError(
                f"Producer of post-processor '{post_processor.id}' is not callable",
                post_processor.id,
            )
        seen.add(post_processor.id)

    return Configuration(MappingProxyType(beans_by_id), tuple(post_processors))


def _beans_by_unique_id(beans: Iterable[BeanDefinition]) -> dict[str, BeanDefinition]:
    beans_by_id = {}

    for definition in beans:
        if not isinstance(definition.id, str) or not definition.id:
            raise DefinitionError(f"Invalid bean id {definition.id!r}")
        if definition.id in beans_by_id:
            raise DefinitionError(
                f"Duplicate bean id '{definition.id}'", definition.id
            )
        beans_by_id[definition.id] = definition

    return beans_by_id


def _validate_bean(
    definition: BeanDefinition, beans_by_id: dict[str, BeanDefinition]
) -> None:
    bean_id = definition.id

    if not callable(definition.producer):
        raise DefinitionError(f"Producer of bean '{bean_id}' is not callable", bean_id)
    if not is_resolvable_type(definition.declared_type):
        raise DefinitionError(
            f"Declared type {definition.declared_type!r} of bean '{bean_id}' cannot be resolved",
            bean_id,
        )
    if not isinstance(definition.scope, Scope):
        raise DefinitionError(
            f"Invalid scope {definition.scope!r} for bean '{bean_id}'", bean_id
        )
    if not isinstance(definition.lazy, bool) or not isinstance(definition.singleton, bool):
        raise DefinitionError(
            f"'lazy' and 'singleton' of bean '{bean_id}' must be booleans", bean_id
        )

    _validate_parameter_specs(bean_id, definition.parameter_specs)

    for dependency in definition.dependencies:
        if dependency.bean_id not in beans_by_id:
            raise DefinitionError(
                f"Bean '{bean_id}' depends on undefined bean '{dependency.bean_id}'",
                bean_id,
            )


def _validate_parameter_specs(bean_id: str, specs: Sequence[ParameterSpec]) -> None:
    names = set()
    for spec in specs:
        if not isinstance(spec, ParameterSpec):
            raise DefinitionError(
                f"Invalid parameter spec {spec!r} for bean '{bean_id}'", bean_id
            )
        if not isinstance(spec.name, str) or not spec.name:
            raise DefinitionError(
                f"Parameter of bean '{bean_id}' has an invalid name {spec.name!r}",
                bean_id,
            )
        if not isinstance(spec.required, bool):
            raise DefinitionError(
                f"'required' of parameter '{spec.name}' of bean '{bean_id}' must be a boolean",
                bean_id,
            )
        if spec.name in names:
            raise DefinitionError(
                f"Duplicate parameter '{spec.name}' for bean '{bean_id}'", bean_id
            )
        names.add(spec.name)
