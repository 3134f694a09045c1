"""
Per-user mutual exclusion for entitlement writes inside one process.

Database-level guarantees (unique constraints, guarded arithmetic updates,
version checks) still apply across processes; these locks keep same-process
writers for one user from racing each other in the first place.
"""
import threading
import weakref
from contextlib import contextmanager

_registry_lock = threading.Lock()
_user_locks: "weakref.WeakValueDictionary[int, threading.RLock]" = weakref.WeakValueDictionary()


def get_user_lock(user_id: int) -> threading.RLock:
    with _registry_lock:
        lock = _user_locks.get(user_id)
        if lock is None:
            lock = threading.RLock()
            _user_locks[user_id] = lock
        return lock


@contextmanager
def user_lock(user_id: int):
    """Hold the lock for user_id for the duration of the block."""
    lock = get_user_lock(user_id)
    with lock:
        yield
