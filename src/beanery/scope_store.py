"""
Per-scope instance caches with request, session and container lifetimes.

Instances are held in buckets keyed by ``(scope, context_id)``. The singleton
bucket exists for the lifetime of the store; request and session buckets
exist between ``begin_context`` and ``end_context``.

First construction of a bean in a bucket is claimed under a lock private to
``(bean_id, scope, context_id)``. The claimant installs a placeholder (a
:class:`Pending` for eager beans, the stand-in itself for lazy beans) and
releases the lock before the producer runs. Concurrent claimants receive
whatever was installed.
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog

from beanery.domain import MISSING, Scope
from beanery.errors import InactiveScopeError
from beanery.waits import waiting_for

__all__ = ["BucketKey", "Pending", "ScopeStore", "SINGLETON_CONTEXT"]

LOGGER = structlog.get_logger(__name__)

SINGLETON_CONTEXT = "container"


@dataclass(frozen=True)
class BucketKey:
    bean_id: str
    scope: Scope
    context_id: str

    @property
    def bucket(self) -> tuple[Scope, str]:
        return self.scope, self.context_id


class Pending:
    """Placeholder for an instance whose producer is still running.

    ``owner`` is the ident of the thread running the producer, cleared once
    the outcome is known.
    """

    def __init__(self, bean_id: str):
        self.bean_id = bean_id
        self.owner: Optional[int] = threading.get_ident()
        self._done = threading.Event()
        self._value: Any = MISSING
        self._error: Optional[BaseException] = None

    def resolve(self, value: Any) -> None:
        self._value = value
        self.owner = None
        self._done.set()

    def fail(self, error: BaseException) -> None:
        self._error = error
        self.owner = None
        self._done.set()

    def wait(self) -> Any:
        """Block until the owning resolution finishes, then return or re-raise its outcome.

        Raises:
            CycleError: If the owning thread is itself waiting, directly or
                through other threads, on the calling thread.
        """
        if not self._done.is_set():
            with waiting_for(self):
                self._done.wait()
        if self._error is not None:
            raise self._error
        return self._value


class ScopeStore:
    """Cache of resolved bean instances, partitioned by scope context."""

    def __init__(self):
        self._buckets: dict[tuple[Scope, str], dict[str, Any]] = {
            (Scope.SINGLETON, SINGLETON_CONTEXT): {}
        }
        self._creation_locks: dict[BucketKey, threading.Lock] = {}
        self._guard = threading.Lock()

    def is_active(self, scope: Scope, context_id: str) -> bool:
        return (scope, context_id) in self._buckets

    def begin_context(self, scope: Scope, context_id: str) -> None:
        """Open an empty bucket for ``context_id``.

        Raises:
            ValueError: If the context is already active.
        """
        with self._guard:
            if (scope, context_id) in self._buckets:
                raise ValueError(f"{scope.value} context '{context_id}' is already active")
            self._buckets[(scope, context_id)] = {}
        LOGGER.debug("scope.begin", scope=scope.value, context_id=context_id)

    def end_context(self, scope: Scope, context_id: str) -> dict[str, Any]:
        """Evict every entry of ``context_id`` and return what was evicted.

        Producer-level cleanup of the returned instances is left to the caller.
        Ending a context that is not active is a no-op.
        """
        with self._guard:
            evicted = self._buckets.pop((scope, context_id), {})
            for key in [k for k in self._creation_locks if k.bucket == (scope, context_id)]:
                del self._creation_locks[key]
        LOGGER.debug(
            "scope.end", scope=scope.value, context_id=context_id, evicted=len(evicted)
        )
        return evicted

    def entries(self, scope: Scope, context_id: str) -> dict[str, Any]:
        """A copy of the entries currently cached for ``context_id``."""
        return dict(self._bucket(scope, context_id, ""))

    def get(self, key: BucketKey) -> Any:
        """Return the cached entry for ``key``, or ``MISSING``.

        Raises:
            InactiveScopeError: If the key's context is not active.
        """
        return self._bucket(key.scope, key.context_id, key.bean_id).get(key.bean_id, MISSING)

    def put(self, key: BucketKey, instance: Any) -> None:
        bucket = self._bucket(key.scope, key.context_id, key.bean_id)
        with self._creation_lock(key):
            bucket[key.bean_id] = instance

    def claim(self, key: BucketKey, install: Callable[[], Any]) -> tuple[Any, bool]:
        """Return the entry for ``key``, installing ``install()`` if there is none.

        Returns:
            The entry and whether this call installed it.
        """
        bucket = self._bucket(key.scope, key.context_id, key.bean_id)
        with self._creation_lock(key):
            existing = bucket.get(key.bean_id, MISSING)
            if existing is not MISSING:
                return existing, False
            placeholder = install()
            bucket[key.bean_id] = placeholder
            return placeholder, True

    def replace(self, key: BucketKey, expected: Any, instance: Any) -> bool:
        """Swap ``expected`` for ``instance`` if it is still the cached entry.

        Returns False when the entry changed or its context ended meanwhile.
        """
        bucket = self._buckets.get(key.bucket)
        if bucket is None:
            return False
        with self._creation_lock(key):
            if bucket.get(key.bean_id, MISSING) is not expected:
                return False
            bucket[key.bean_id] = instance
            return True

    def discard(self, key: BucketKey, expected: Any) -> None:
        """Remove the entry for ``key`` if it is still ``expected``."""
        bucket = self._buckets.get(key.bucket)
        if bucket is None:
            return
        with self._creation_lock(key):
            if bucket.get(key.bean_id, MISSING) is expected:
                del bucket[key.bean_id]

    def clear(self) -> None:
        """Drop every bucket, including the singleton one, then reopen an empty singleton bucket."""
        with self._guard:
            self._buckets = {(Scope.SINGLETON, SINGLETON_CONTEXT): {}}
            self._creation_locks.clear()

    def _bucket(self, scope: Scope, context_id: str, bean_id: str) -> dict[str, Any]:
        bucket = self._buckets.get((scope, context_id))
        if bucket is None:
            raise InactiveScopeError(
                f"No active {scope.value} context '{context_id}' for bean '{bean_id}'",
                bean_id or None,
            )
        return bucket

    def _creation_lock(self, key: BucketKey) -> threading.Lock:
        with self._guard:
            lock = self._creation_locks.get(key)
            if lock is None:
                lock = self._creation_locks[key] = threading.Lock()
            return lock
