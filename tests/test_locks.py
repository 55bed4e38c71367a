import threading
import time

from bookrecommender.locks import KeyedLock


def test_lock_is_released_and_forgotten():
    locks = KeyedLock()
    with locks.hold(("rating", "u1", "", 1)):
        assert locks.active_keys() == [("rating", "u1", "", 1)]
    assert locks.active_keys() == []


def test_same_key_is_serialised():
    locks = KeyedLock()
    inside = []
    overlaps = []

    def work():
        with locks.hold("k"):
            inside.append(1)
            if len(inside) > 1:
                overlaps.append(1)
            time.sleep(0.01)
            inside.pop()

    threads = [threading.Thread(target=work) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert overlaps == []
    assert locks.active_keys() == []


def test_different_keys_do_not_block():
    locks = KeyedLock()
    with locks.hold("a"):
        done = threading.Event()

        def other():
            with locks.hold("b"):
                done.set()

        t = threading.Thread(target=other)
        t.start()
        assert done.wait(timeout=2)
        t.join()
