"""Beanery object-lifecycle and dependency-resolution engine.

Beanery resolves named beans from declared producers. Each bean has a scope
(transient, singleton, request or session) deciding how long its instance is
cached, may be lazy (resolution hands out a stand-in that constructs on first
use), may request external parameters, and passes through an ordered chain of
post-processors before it is cached.

Key Features:
    - Declarative bean registration with decorators
    - Scoped caching with explicit request and session boundaries
    - At-most-once construction under concurrent first resolution
    - Transparent lazy proxies
    - Cycle detection across producer-to-producer calls
    - Session snapshots that skip unrealized lazy beans

Basic Usage:
    >>> from beanery.registry import BeanRegistry
    >>> from beanery.builders import make_engine
    >>> from beanery.domain import ParameterSpec
    >>>
    >>> registry = BeanRegistry()
    >>>
    >>> @registry.bean(parameters=[ParameterSpec("database.dsn")])
    >>> def make_database(dsn) -> Database:
    ...     return Database(dsn)
    >>>
    >>> engine = make_engine(registry, {"database": {"dsn": "sqlite://"}})
    >>> db = engine.resolve("database")

The framework consists of several core modules:
    - registry: Decorator-based bean registration
    - definition_set: Validation of definitions into a Configuration
    - builders: High-level configuration and engine construction
    - engine: Resolution of bean ids into scoped instances
    - scope_store: Per-scope instance caches
    - lazy: Deferred-construction proxies
    - post_processors: The post-processing pipeline
    - parameters: External parameter binding
    - session: Session snapshot and restore
    - domain: Core domain models
    - errors: Framework-specific exceptions
"""
