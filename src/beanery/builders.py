from typing import Any, Mapping, Optional

from beanery.definition_set import make_configuration
from beanery.domain import Configuration
from beanery.engine import ResolutionEngine
from beanery.registry import BeanRegistry


def build_configuration(registry: BeanRegistry) -> Configuration:
    """
    Validate the definitions collected by a registry.

    Args:
        registry: The bean registry containing declared producers and post-processors.

    Returns:
        A validated, immutable Configuration.

    Raises:
        DefinitionError: If ids are duplicated, types unresolvable, or specs malformed.
    """
    return make_configuration(
        registry.registered_beans(), registry.registered_post_processors()
    )


def make_engine(
    registry: BeanRegistry,
    parameters: Optional[Mapping[str, Any]] = None,
) -> ResolutionEngine:
    """
    Construct a resolution engine for the beans declared in a registry.

    No bean is constructed here; post-processors are.

    Args:
        registry: The bean registry containing declared producers and post-processors.
        parameters: External parameters made available to producers.

    Returns:
        A ResolutionEngine answering ``resolve(id)`` and ``has(id)``.

    Raises:
        DefinitionError: If the configuration is invalid or a post-processor cannot be created.
    """
    return ResolutionEngine(build_configuration(registry), parameters)
