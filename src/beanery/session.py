"""
Snapshot and restore of session-scoped beans.

A snapshot holds the realized values of one session. Lazy stand-ins that were
never used, and constructions still in flight, are recorded by id only; after
a restore they are resolved again on demand. How a snapshot is serialized is
left to the caller.
"""

from dataclasses import dataclass, field
from typing import Any

import structlog

from beanery.domain import MISSING, Configuration, Scope
from beanery.lazy import is_lazy_proxy, realized_value
from beanery.scope_store import BucketKey, Pending, ScopeStore

__all__ = ["SessionSnapshot", "take_snapshot", "restore_snapshot"]

LOGGER = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SessionSnapshot:
    """
    Attributes:
        session_id: The session the snapshot was taken from.
        values: Realized instances by bean id.
        pending: Ids of beans whose instance was not realized when the snapshot was taken.
    """

    session_id: str
    values: dict[str, Any] = field(default_factory=dict)
    pending: frozenset[str] = frozenset()


def take_snapshot(store: ScopeStore, session_id: str) -> SessionSnapshot:
    """Capture the realized beans of ``session_id``.

    Raises:
        InactiveScopeError: If the session is not active.
    """
    values = {}
    pending = set()
    for bean_id, entry in store.entries(Scope.SESSION, session_id).items():
        if isinstance(entry, Pending):
            pending.add(bean_id)
        elif is_lazy_proxy(entry):
            value = realized_value(entry)
            if value is MISSING:
                pending.add(bean_id)
            else:
                values[bean_id] = value
        else:
            values[bean_id] = entry

    LOGGER.debug(
        "session.snapshot", session_id=session_id, values=len(values), pending=len(pending)
    )
    return SessionSnapshot(session_id, values, frozenset(pending))


def restore_snapshot(
    store: ScopeStore,
    snapshot: SessionSnapshot,
    session_id: str,
    configuration: Configuration,
) -> None:
    """Begin ``session_id`` and fill it with the values of ``snapshot``.

    Values for beans the configuration does not know, or that are not
    session-scoped, are skipped.

    Raises:
        ValueError: If the session is already active.
    """
    store.begin_context(Scope.SESSION, session_id)
    for bean_id, value in snapshot.values.items():
        definition = configuration.beans.get(bean_id)
        if (
            definition is None
            or definition.scope is not Scope.SESSION
            or not definition.is_cached
        ):
            LOGGER.warning("session.restore.skipped", session_id=session_id, bean_id=bean_id)
            continue
        store.put(BucketKey(bean_id, Scope.SESSION, session_id), value)

    LOGGER.debug("session.restore", session_id=session_id, values=len(snapshot.values))
