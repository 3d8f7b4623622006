"""
Cross-thread wait tracking for cycle detection.

A thread about to block on a construction owned by another thread records
what it is waiting for. Before blocking, the owners are followed: the owner
of the awaited construction, what that owner is itself waiting for, and so
on. Arriving back at the current thread means the threads wait on each
other, and a :class:`~beanery.errors.CycleError` is raised instead.
"""

import threading
from contextlib import contextmanager
from typing import Iterator, Optional, Protocol

from beanery.errors import CycleError

__all__ = ["Blocker", "waiting_for"]


class Blocker(Protocol):
    """A construction in progress that other threads may wait on.

    Attributes:
        bean_id: The bean being constructed.
        owner: Ident of the constructing thread, or None once construction finished.
    """

    bean_id: str
    owner: Optional[int]


_waiting: dict[int, Blocker] = {}
_guard = threading.Lock()


@contextmanager
def waiting_for(blocker: Blocker) -> Iterator[None]:
    """Record that the current thread blocks on ``blocker`` for the duration of the block.

    Raises:
        CycleError: If the owner of ``blocker`` is, directly or through other
            waiting threads, waiting on the current thread.
    """
    me = threading.get_ident()
    with _guard:
        chain = _cycle_through(blocker, me)
        if chain is not None:
            raise CycleError(blocker.bean_id, chain)
        _waiting[me] = blocker
    try:
        yield
    finally:
        with _guard:
            _waiting.pop(me, None)


def _cycle_through(blocker: Blocker, me: int) -> Optional[list[str]]:
    path = []
    seen = set()
    while blocker is not None:
        path.append(blocker.bean_id)
        owner = blocker.owner
        if owner == me:
            return [path[-1]] + path
        if owner is None or owner in seen:
            return None
        seen.add(owner)
        blocker = _waiting.get(owner)
    return None
