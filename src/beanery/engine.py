"""
Resolution of bean ids into scoped, post-processed instances.

The :class:`ResolutionEngine` looks up a bean's definition, consults the
:class:`~beanery.scope_store.ScopeStore` bucket selected by the bean's scope
and the active :class:`~beanery.domain.ScopeContext`, and on a miss either
installs a lazy stand-in or runs the producer, binding parameters and
resolving dependencies first and post-processing the result afterwards.

Producers may call :meth:`ResolutionEngine.resolve` themselves. The context
and the chain of in-progress resolutions are tracked in context variables,
so such calls inherit the caller's context and take part in cycle detection.
"""

import threading
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Mapping, Optional

import structlog

from beanery.domain import (
    EMPTY_CONTEXT,
    MISSING,
    BeanDefinition,
    Configuration,
    Scope,
    ScopeContext,
)
from beanery.errors import (
    BeanError,
    ConstructionError,
    CycleError,
    InactiveScopeError,
    NotFoundError,
)
from beanery.lazy import make_lazy_proxy
from beanery.parameters import ParameterBinder
from beanery.post_processors import make_pipeline
from beanery.scope_store import SINGLETON_CONTEXT, BucketKey, Pending, ScopeStore
from beanery.session import SessionSnapshot, restore_snapshot, take_snapshot
from beanery.typing_utils import is_assignable

__all__ = ["ResolutionEngine"]

LOGGER = structlog.get_logger(__name__)


class ResolutionEngine:
    """Resolve bean ids against a validated :class:`Configuration`.

    Post-processor producers are invoked once, here, in declaration order.

    Args:
        configuration: The validated bean and post-processor definitions.
        parameters: External parameters available to producers. Copied and frozen.
        store: The scope store to cache instances in; a fresh one by default.

    Raises:
        DefinitionError: If a post-processor cannot be created.
    """

    def __init__(
        self,
        configuration: Configuration,
        parameters: Optional[Mapping[str, Any]] = None,
        store: Optional[ScopeStore] = None,
    ):
        self._configuration = configuration
        self._binder = ParameterBinder(parameters)
        self._pipeline = make_pipeline(configuration.post_processors)
        self._store = store or ScopeStore()
        self._chain: ContextVar[tuple[BucketKey, ...]] = ContextVar(
            f"beanery_chain_{id(self)}", default=()
        )
        self._active_context: ContextVar[Optional[ScopeContext]] = ContextVar(
            f"beanery_context_{id(self)}", default=None
        )
        self._closed = False

    @property
    def configuration(self) -> Configuration:
        return self._configuration

    def has(self, bean_id: str) -> bool:
        return bean_id in self._configuration.beans

    def resolve(self, bean_id: str, context: Optional[ScopeContext] = None) -> Any:
        """Return the instance of ``bean_id`` for ``context``.

        When ``context`` is omitted, the context of the resolution currently in
        progress on this thread is used, or an empty context outside of one.

        Raises:
            NotFoundError: If no bean has this id.
            CycleError: If eager resolution of the bean re-enters itself, on this
                thread or through threads waiting on each other.
            ConstructionError: If parameter binding, the producer or a post-processor
                fails, or the bean's scope has no active context.
        """
        if self._closed:
            raise ConstructionError(f"Engine is closed; cannot resolve '{bean_id}'", bean_id)
        definition = self._configuration.beans.get(bean_id)
        if definition is None:
            raise NotFoundError(bean_id)
        if context is None:
            context = self._active_context.get() or EMPTY_CONTEXT

        key = self._bucket_key(definition, context)

        if not definition.is_cached:
            self._require_active(key)
            if definition.lazy:
                return self._make_proxy(definition, key, context, cached=False)
            return self._construct(definition, key, context)

        entry = self._store.get(key)
        if entry is MISSING:
            if definition.lazy:
                entry, _ = self._store.claim(
                    key, lambda: self._make_proxy(definition, key, context)
                )
            else:
                entry, owner = self._store.claim(key, lambda: Pending(bean_id))
                if owner:
                    return self._construct_into(definition, key, context, entry)

        if isinstance(entry, Pending):
            if key in self._chain.get() or entry.owner == threading.get_ident():
                raise self._cycle_error(key)
            return entry.wait()
        return entry

    def begin_request(self, request_id: str) -> None:
        self._store.begin_context(Scope.REQUEST, request_id)

    def end_request(self, request_id: str) -> dict[str, Any]:
        return self._store.end_context(Scope.REQUEST, request_id)

    def begin_session(self, session_id: str) -> None:
        self._store.begin_context(Scope.SESSION, session_id)

    def end_session(self, session_id: str) -> dict[str, Any]:
        return self._store.end_context(Scope.SESSION, session_id)

    @contextmanager
    def request(
        self, request_id: Optional[str] = None, session_id: Optional[str] = None
    ) -> Iterator[ScopeContext]:
        """Begin a request, yield its context and end the request on exit.

        Example:
            >>> with engine.request(session_id="s1") as context:
            ...     cart = engine.resolve("cart", context)
        """
        request_id = request_id or str(uuid.uuid4())
        self.begin_request(request_id)
        try:
            yield ScopeContext(request_id, session_id)
        finally:
            self.end_request(request_id)

    def snapshot_session(self, session_id: str) -> SessionSnapshot:
        return take_snapshot(self._store, session_id)

    def restore_session(
        self, snapshot: SessionSnapshot, session_id: Optional[str] = None
    ) -> ScopeContext:
        """Begin a session populated from ``snapshot`` and return a context for it."""
        session_id = session_id or snapshot.session_id
        restore_snapshot(self._store, snapshot, session_id, self._configuration)
        return ScopeContext(session_id=session_id)

    def close(self) -> None:
        """Tear the container down, discarding every cached instance."""
        self._closed = True
        self._store.clear()
        LOGGER.info("engine.closed", beans=len(self._configuration.beans))

    def __enter__(self) -> "ResolutionEngine":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def _bucket_key(self, definition: BeanDefinition, context: ScopeContext) -> BucketKey:
        if definition.scope is Scope.SINGLETON:
            return BucketKey(definition.id, Scope.SINGLETON, SINGLETON_CONTEXT)
        if definition.scope is Scope.TRANSIENT:
            return BucketKey(definition.id, Scope.TRANSIENT, "")

        context_id = context.context_id(definition.scope)
        if context_id is None:
            raise InactiveScopeError(
                f"Bean '{definition.id}' requires an active {definition.scope.value} context",
                definition.id,
            )
        return BucketKey(definition.id, definition.scope, context_id)

    def _require_active(self, key: BucketKey) -> None:
        if key.scope in (Scope.REQUEST, Scope.SESSION) and not self._store.is_active(
            key.scope, key.context_id
        ):
            raise InactiveScopeError(
                f"No active {key.scope.value} context '{key.context_id}' for bean '{key.bean_id}'",
                key.bean_id,
            )

    def _make_proxy(
        self,
        definition: BeanDefinition,
        key: BucketKey,
        context: ScopeContext,
        cached: bool = True,
    ) -> Any:
        proxy = None

        def supplier() -> Any:
            try:
                return self._construct(definition, key, context)
            except BaseException:
                if cached:
                    self._store.discard(key, proxy)
                raise

        proxy = make_lazy_proxy(definition.declared_type, supplier, definition.id)
        return proxy

    def _construct_into(
        self,
        definition: BeanDefinition,
        key: BucketKey,
        context: ScopeContext,
        pending: Pending,
    ) -> Any:
        try:
            instance = self._construct(definition, key, context)
        except BaseException as exc:
            self._store.discard(key, pending)
            pending.fail(exc)
            raise
        self._store.replace(key, pending, instance)
        pending.resolve(instance)
        return instance

    def _construct(
        self, definition: BeanDefinition, key: BucketKey, context: ScopeContext
    ) -> Any:
        chain = self._chain.get()
        if key in chain:
            raise self._cycle_error(key)

        chain_token = self._chain.set(chain + (key,))
        context_token = self._active_context.set(context)
        try:
            arguments = self._binder.bind(definition.id, definition.parameter_specs)
            dependencies = {
                dependency.parameter_name: self.resolve(dependency.bean_id, context)
                for dependency in definition.dependencies
            }
            instance = self._invoke(definition, arguments, dependencies)
            instance = self._pipeline.apply(definition.id, instance)
        finally:
            self._active_context.reset(context_token)
            self._chain.reset(chain_token)

        LOGGER.debug(
            "bean.constructed",
            bean_id=definition.id,
            scope=definition.scope.value,
            context_id=key.context_id,
        )
        return instance

    @staticmethod
    def _invoke(
        definition: BeanDefinition, arguments: list[Any], dependencies: dict[str, Any]
    ) -> Any:
        try:
            instance = definition.producer(*arguments, **dependencies)
        except BeanError:
            raise
        except Exception as exc:
            raise ConstructionError(
                f"Producer of bean '{definition.id}' failed: {exc}", definition.id
            ) from exc

        if not is_assignable(instance, definition.declared_type):
            raise ConstructionError(
                f"Producer of bean '{definition.id}' returned {type(instance).__name__}, "
                f"which is not assignable to {definition.declared_type}",
                definition.id,
            )
        return instance

    def _cycle_error(self, key: BucketKey) -> CycleError:
        chain = self._chain.get()
        start = chain.index(key) if key in chain else 0
        return CycleError(
            key.bean_id, [k.bean_id for k in chain[start:]] + [key.bean_id]
        )
