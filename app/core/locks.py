import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, List


_REGISTRY_LOCK = threading.Lock()
# key -> [lock, number of threads holding or waiting on it]
_MATERIAL_LOCKS: Dict[Hashable, List] = {}


def _acquire_entry(key: Hashable) -> threading.RLock:
    with _REGISTRY_LOCK:
        entry = _MATERIAL_LOCKS.get(key)
        if entry is None:
            entry = [threading.RLock(), 0]
            _MATERIAL_LOCKS[key] = entry
        entry[1] += 1
        return entry[0]


def _release_entry(key: Hashable) -> None:
    with _REGISTRY_LOCK:
        entry = _MATERIAL_LOCKS[key]
        entry[1] -= 1
        if entry[1] == 0:
            del _MATERIAL_LOCKS[key]


@contextmanager
def material_lock(material_id: Hashable) -> Iterator[None]:
    """
    Serializes writers and snapshot builds of one material inside this process.

    Re-entrant: a material update holds the lock while it builds its own
    snapshot. Cross-process safety comes from the row lock taken by
    `SELECT ... FOR UPDATE` in the material service. The lock is dropped from
    the registry once no thread holds or waits on it.
    """
    lock = _acquire_entry(material_id)
    try:
        with lock:
            yield
    finally:
        _release_entry(material_id)
