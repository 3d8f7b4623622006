"""Errors raised while validating configurations and resolving beans."""

from typing import Optional, Sequence

__all__ = [
    "BeanError",
    "DefinitionError",
    "NotFoundError",
    "ConstructionError",
    "InactiveScopeError",
    "CycleError",
]


class BeanError(Exception):
    """Base class for all errors raised by the framework.

    Attributes:
        bean_id: The id of the bean the error concerns, where one is known.
    """

    def __init__(self, message: str, bean_id: Optional[str] = None):
        super().__init__(message)
        self.bean_id = bean_id


class DefinitionError(BeanError):
    """Raised when a configuration fails validation. No engine is produced."""

    pass


class NotFoundError(BeanError):
    """Raised when an unknown bean id is requested."""

    def __init__(self, bean_id: str):
        super().__init__(f"No bean definition with id '{bean_id}'", bean_id)


class ConstructionError(BeanError):
    """Raised when a producer, parameter binding or post-processor fails."""

    pass


class InactiveScopeError(ConstructionError):
    """Raised when a scoped bean is resolved without an active context for its scope."""

    pass


class CycleError(BeanError):
    """Raised when eager resolution of a bean re-enters itself.

    Attributes:
        chain: Bean ids from the first occurrence of the repeated bean to its re-entry.
    """

    def __init__(self, bean_id: str, chain: Sequence[str]):
        self.chain = list(chain)
        super().__init__(
            f"Circular dependency detected: {' -> '.join(self.chain)}", bean_id
        )
