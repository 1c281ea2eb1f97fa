"""
Per-entity mutual exclusion.

Bracket generation, result recording and state transitions are serialized per
tournament; waitlist mutations are serialized per parent (event or tournament).
The registry is process-wide. Row locks (SELECT ... FOR UPDATE) taken inside
the critical section cover multi-process deployments on databases that
support them.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from hockey import settings
from hockey.exceptions import LOCK_TIMEOUT, ConcurrencyError

logger = logging.getLogger(__name__)

SCOPE_TOURNAMENT = "tournament"
SCOPE_EVENT = "event"

_EntityLock = List  # [threading.Lock, holders-or-waiters count]

# Entries live only while some thread holds or waits on them
_registry: Dict[Tuple[str, int], _EntityLock] = {}
_registry_guard = threading.Lock()


def _checkout(key: Tuple[str, int]) -> threading.Lock:
    with _registry_guard:
        entry = _registry.get(key)
        if entry is None:
            entry = [threading.Lock(), 0]
            _registry[key] = entry
        entry[1] += 1
        return entry[0]


def _checkin(key: Tuple[str, int]) -> None:
    with _registry_guard:
        entry = _registry[key]
        entry[1] -= 1
        if entry[1] == 0:
            del _registry[key]


def held_lock_count() -> int:
    """Number of entity locks currently held or waited on."""
    with _registry_guard:
        return len(_registry)


@contextmanager
def entity_lock(scope: str, entity_id: int, timeout: Optional[float] = None) -> Iterator[None]:
    """
    Hold the lock for (scope, entity_id) for the duration of the block.

    Raises:
        ConcurrencyError (LockTimeout): lock not acquired within ``timeout``
            seconds (defaults to LOCK_TIMEOUT_SECONDS)
    """
    if timeout is None:
        timeout = settings.LOCK_TIMEOUT_SECONDS
    key = (scope, entity_id)
    lock = _checkout(key)
    if not lock.acquire(timeout=timeout):
        _checkin(key)
        logger.warning(f"Lock timeout on {scope}:{entity_id} after {timeout}s")
        raise ConcurrencyError(
            f"Another operation on {scope} {entity_id} is in progress; try again",
            code=LOCK_TIMEOUT,
        )
    try:
        yield
    finally:
        lock.release()
        _checkin(key)


def tournament_lock(tournament_id: int, timeout: Optional[float] = None):
    return entity_lock(SCOPE_TOURNAMENT, tournament_id, timeout)
