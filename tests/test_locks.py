import threading
import time
import uuid

import pytest

from app.core import locks
from app.core.locks import material_lock


def test_lock_is_reentrant():
    material_id = uuid.uuid4()
    with material_lock(material_id):
        with material_lock(material_id):
            pass


def test_same_material_is_serialized():
    material_id = uuid.uuid4()
    events = []

    def worker(name):
        with material_lock(material_id):
            events.append(f"{name}-in")
            time.sleep(0.05)
            events.append(f"{name}-out")

    threads = [threading.Thread(target=worker, args=(n,)) for n in ("a", "b")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    # no interleaving: every "in" is directly followed by its own "out"
    assert events[0][0] == events[1][0]
    assert events[2][0] == events[3][0]


def test_different_materials_do_not_block():
    first, second = uuid.uuid4(), uuid.uuid4()
    acquired = threading.Event()

    def other():
        with material_lock(second):
            acquired.set()

    with material_lock(first):
        thread = threading.Thread(target=other)
        thread.start()
        assert acquired.wait(timeout=1)
        thread.join()


def test_registry_is_emptied_after_use():
    material_id = uuid.uuid4()
    with material_lock(material_id):
        with material_lock(material_id):
            assert material_id in locks._MATERIAL_LOCKS
        assert material_id in locks._MATERIAL_LOCKS
    assert material_id not in locks._MATERIAL_LOCKS


def test_registry_is_emptied_after_error():
    material_id = uuid.uuid4()
    with pytest.raises(RuntimeError):
        with material_lock(material_id):
            raise RuntimeError("boom")
    assert material_id not in locks._MATERIAL_LOCKS
