from __future__ import annotations

import threading
import time

import pytest

from freightflow.core.exceptions import ConfigurationNotFoundError
from freightflow.router.cache import ActiveCredentialCache
from freightflow.storage.configurations import CredentialView
from tests.factories import credential_view as _view

THREADS = 16


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_snapshot_served_until_ttl_expires():
    clock = FakeClock()
    calls: list[int] = []

    def loader() -> CredentialView:
        calls.append(1)
        return _view(len(calls))

    cache = ActiveCredentialCache(loader, ttl=2.0, clock=clock)

    assert cache.get_active().id == 1
    clock.now += 1.9
    assert cache.get_active().id == 1
    clock.now += 0.1
    assert cache.get_active().id == 2
    assert len(calls) == 2


def test_invalidate_forces_reload():
    calls: list[int] = []

    def loader() -> CredentialView:
        calls.append(1)
        return _view(len(calls))

    cache = ActiveCredentialCache(loader, ttl=60.0, clock=FakeClock())
    cache.get_active()
    cache.invalidate()

    assert cache.get_active().id == 2


def test_missing_configuration_is_not_cached():
    outcomes = [ConfigurationNotFoundError(), _view(5)]

    def loader() -> CredentialView:
        item = outcomes.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    cache = ActiveCredentialCache(loader, ttl=60.0, clock=FakeClock())

    with pytest.raises(ConfigurationNotFoundError):
        cache.get_active()
    assert cache.get_active().id == 5


def test_concurrent_readers_trigger_single_load():
    calls: list[int] = []
    barrier = threading.Barrier(THREADS)
    seen: list[int] = []
    seen_lock = threading.Lock()

    def loader() -> CredentialView:
        calls.append(1)
        time.sleep(0.05)
        return _view(7)

    cache = ActiveCredentialCache(loader, ttl=60.0)

    def reader() -> None:
        barrier.wait()
        credential = cache.get_active()
        with seen_lock:
            seen.append(credential.id)

    threads = [threading.Thread(target=reader) for _ in range(THREADS)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(calls) == 1
    assert seen == [7] * THREADS
