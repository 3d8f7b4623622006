"""Ordered chain of hooks applied to freshly constructed beans."""

from functools import reduce
from typing import Any, Sequence

import structlog

from beanery.domain import InitializedBean, PostProcessor, PostProcessorDefinition
from beanery.errors import BeanError, ConstructionError, DefinitionError

__all__ = ["PostProcessorPipeline", "make_pipeline"]

LOGGER = structlog.get_logger(__name__)


class PostProcessorPipeline:
    """Apply post-processors to a bean instance, in declaration order.

    Each processor receives the output of the one before it. Instances
    implementing :class:`InitializedBean` get ``post_initialization()`` called
    before the first processor runs.
    """

    def __init__(self, processors: Sequence[tuple[str, PostProcessor]]):
        self._processors = list(processors)

    def __len__(self) -> int:
        return len(self._processors)

    def apply(self, bean_id: str, instance: Any) -> Any:
        """Run the chain for ``instance``.

        Raises:
            ConstructionError: Wrapping the first failure. Nothing after it runs.
        """
        if isinstance(instance, InitializedBean):
            try:
                instance.post_initialization()
            except BeanError:
                raise
            except Exception as exc:
                raise ConstructionError(
                    f"post_initialization of bean '{bean_id}' failed: {exc}", bean_id
                ) from exc

        return reduce(
            lambda current, entry: self._apply_one(entry, bean_id, current),
            self._processors,
            instance,
        )

    @staticmethod
    def _apply_one(entry: tuple[str, PostProcessor], bean_id: str, instance: Any) -> Any:
        processor_id, processor = entry
        try:
            return processor.process(bean_id, instance)
        except BeanError:
            raise
        except Exception as exc:
            LOGGER.debug(
                "post_processor.failed", processor=processor_id, bean_id=bean_id
            )
            raise ConstructionError(
                f"Post-processor '{processor_id}' failed for bean '{bean_id}': {exc}",
                bean_id,
            ) from exc


def make_pipeline(definitions: Sequence[PostProcessorDefinition]) -> PostProcessorPipeline:
    """Invoke each post-processor producer once and build the pipeline.

    Raises:
        DefinitionError: If a producer fails or returns something without ``process``.
    """
    processors = []
    for definition in definitions:
        try:
            processor = definition.producer()
        except Exception as exc:
            raise DefinitionError(
                f"Post-processor '{definition.id}' could not be created: {exc}",
                definition.id,
            ) from exc
        if not isinstance(processor, PostProcessor):
            raise DefinitionError(
                f"Post-processor '{definition.id}' does not implement process(bean_id, instance)",
                definition.id,
            )
        processors.append((definition.id, processor))
    return PostProcessorPipeline(processors)
