from typing import Any, Mapping, Optional

import pytest

from beanery.definition_set import make_configuration
from beanery.engine import ResolutionEngine
from beanery.registry import BeanRegistry


class Handle:
    """A bean instance that records what happened to it."""

    def __init__(self, label: str = "handle"):
        self.label = label
        self.markers: list[str] = []

    def greet(self, name: str) -> str:
        return f"{self.label} greets {name}"


@pytest.fixture
def registry() -> BeanRegistry:
    return BeanRegistry()


@pytest.fixture
def engine_for():
    engines = []

    def build(
        registry: BeanRegistry, parameters: Optional[Mapping[str, Any]] = None
    ) -> ResolutionEngine:
        engine = ResolutionEngine(
            make_configuration(
                registry.registered_beans(), registry.registered_post_processors()
            ),
            parameters,
        )
        engines.append(engine)
        return engine

    yield build

    for engine in engines:
        engine.close()
