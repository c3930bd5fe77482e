from __future__ import annotations

from datetime import timedelta

import pytest

from fixtures.auth_testkit import FixedClock, MemoryStore, uow_factory_for
from kvr_api.application.services.usage_recorder import UsageRecorder

RAW_KEY = "kvr_" + "b" * 64


def _recorder(store: MemoryStore, clock: FixedClock) -> UsageRecorder:
    return UsageRecorder(uow_factory_for(store), window_seconds=3600, clock=clock)


@pytest.mark.anyio
async def test_first_use_opens_window(store: MemoryStore, clock: FixedClock) -> None:
    key = store.add_api_key(RAW_KEY, store.add_identity("o@example.com"))

    await _recorder(store, clock).record_usage(key.id, "192.0.2.7")

    stored = store.api_keys[key.id]
    assert stored.usage_count == 1
    assert stored.rate_limit_used == 1
    assert stored.last_used_at == clock.now
    assert stored.last_used_ip == "192.0.2.7"
    assert stored.rate_limit_reset == clock.now + timedelta(hours=1)
    assert store.commits == 1


@pytest.mark.anyio
async def test_open_window_is_kept(store: MemoryStore, clock: FixedClock) -> None:
    key = store.add_api_key(RAW_KEY, store.add_identity("o@example.com"))
    recorder = _recorder(store, clock)

    await recorder.record_usage(key.id, None)
    opened = store.api_keys[key.id].rate_limit_reset
    clock.advance(120)
    await recorder.record_usage(key.id, None)

    stored = store.api_keys[key.id]
    assert stored.usage_count == 2
    assert stored.rate_limit_reset == opened


@pytest.mark.anyio
async def test_scheduled_updates_are_drained(store: MemoryStore, clock: FixedClock) -> None:
    key = store.add_api_key(RAW_KEY, store.add_identity("o@example.com"))
    recorder = _recorder(store, clock)

    recorder.schedule(key.id, None)
    recorder.schedule(key.id, None)
    assert recorder.pending == 2
    await recorder.drain()

    assert recorder.pending == 0
    assert store.api_keys[key.id].usage_count == 2


@pytest.mark.anyio
async def test_failed_update_is_swallowed(store: MemoryStore, clock: FixedClock) -> None:
    key = store.add_api_key(RAW_KEY, store.add_identity("o@example.com"))
    store.fail_writes = True
    recorder = _recorder(store, clock)

    task = recorder.schedule(key.id, None)
    await recorder.drain()

    assert task.exception() is None
    assert store.api_keys[key.id].usage_count == 0
