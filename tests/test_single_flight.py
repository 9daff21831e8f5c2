import threading
import time

import pytest

from client.single_flight import SingleFlight


def test_single_caller_gets_result():
    flight = SingleFlight()
    assert flight.do("k", lambda: 42) == 42
    assert not flight.in_flight("k")


def test_concurrent_callers_share_one_execution():
    flight = SingleFlight()
    release = threading.Event()
    started = threading.Event()
    calls = []

    def slow():
        calls.append(1)
        started.set()
        release.wait(5)
        return "rotated"

    results = []

    def caller():
        results.append(flight.do("refresh", slow, timeout=5))

    leader = threading.Thread(target=caller)
    leader.start()
    assert started.wait(5)

    followers = [threading.Thread(target=caller) for _ in range(4)]
    for t in followers:
        t.start()
    # give the followers time to park on the leader's future
    time.sleep(0.2)
    assert flight.in_flight("refresh")
    release.set()
    for t in [leader, *followers]:
        t.join()

    assert calls == [1]
    assert results == ["rotated"] * 5
    assert not flight.in_flight("refresh")


def test_exception_reaches_every_waiter():
    flight = SingleFlight()
    release = threading.Event()
    started = threading.Event()

    def failing():
        started.set()
        release.wait(5)
        raise RuntimeError("refresh failed")

    errors = []

    def caller():
        try:
            flight.do("refresh", failing, timeout=5)
        except RuntimeError as exc:
            errors.append(str(exc))

    leader = threading.Thread(target=caller)
    leader.start()
    assert started.wait(5)
    follower = threading.Thread(target=caller)
    follower.start()
    release.set()
    leader.join()
    follower.join()

    assert len(errors) == 2
    assert set(errors) == {"refresh failed"}


def test_key_is_released_after_failure():
    flight = SingleFlight()
    with pytest.raises(ValueError):
        flight.do("k", lambda: (_ for _ in ()).throw(ValueError("boom")))
    assert not flight.in_flight("k")
    assert flight.do("k", lambda: "again") == "again"


def test_different_keys_do_not_coalesce():
    flight = SingleFlight()
    assert flight.do("a", lambda: 1) == 1
    assert flight.do("b", lambda: 2) == 2
