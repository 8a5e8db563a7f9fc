"""Tests for debounced auto-save, cancellable timers and the exit guard.

Debounce intervals are a few milliseconds; tests wait a few multiples
of the interval before asserting.
"""

import asyncio

import pytest
from structlog.testing import capture_logs

from sipandai.errors import PersistenceFailure
from sipandai.persistence.kv_store import MemoryKeyValueStore, draft_key
from sipandai.resilience.autosave import (
    DebouncedAutoSave,
    ExitEventSource,
    UnsavedChangesGuard,
)
from sipandai.resilience.timers import Debouncer, Throttler

DELAY = 0.02
SETTLE = 0.1


class RecordingStore(MemoryKeyValueStore):
    def __init__(self, fail_writes: bool = False) -> None:
        super().__init__()
        self.writes: list[tuple[str, str]] = []
        self.fail_writes = fail_writes

    def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise PersistenceFailure("quota exceeded")
        self.writes.append((key, value))
        super().set(key, value)


# ===================================================================
# Debouncer / Throttler
# ===================================================================

class TestDebouncer:
    @pytest.mark.asyncio
    async def test_last_call_wins(self) -> None:
        calls: list[int] = []
        debouncer = Debouncer(DELAY, calls.append)
        for i in range(5):
            debouncer.trigger(i)
        assert debouncer.pending is True
        await asyncio.sleep(SETTLE)
        assert calls == [4]
        assert debouncer.pending is False

    @pytest.mark.asyncio
    async def test_cancel_prevents_call(self) -> None:
        calls: list[int] = []
        async with Debouncer(DELAY, calls.append) as debouncer:
            debouncer.trigger(1)
        await asyncio.sleep(SETTLE)
        assert calls == []

    @pytest.mark.asyncio
    async def test_flush_runs_now(self) -> None:
        calls: list[str] = []

        async def callback(value: str) -> None:
            calls.append(value)

        debouncer = Debouncer(10.0, callback)
        debouncer.trigger("now")
        await debouncer.flush()
        assert calls == ["now"]
        assert debouncer.pending is False
        await debouncer.flush()
        assert calls == ["now"]


class TestThrottler:
    @pytest.mark.asyncio
    async def test_leading_then_trailing(self) -> None:
        clock_value = [100.0]
        calls: list[int] = []
        throttler = Throttler(DELAY, calls.append, clock=lambda: clock_value[0])

        throttler.trigger(1)
        throttler.trigger(2)
        throttler.trigger(3)
        assert calls == [1]
        assert throttler.pending is True

        await asyncio.sleep(SETTLE)
        assert calls == [1, 3]

    @pytest.mark.asyncio
    async def test_cancel_drops_trailing(self) -> None:
        calls: list[int] = []
        throttler = Throttler(DELAY, calls.append, clock=lambda: 0.0)
        throttler.trigger(1)
        throttler.trigger(2)
        throttler.cancel()
        await asyncio.sleep(SETTLE)
        assert calls == [1]


# ===================================================================
# DebouncedAutoSave
# ===================================================================

class TestDebouncedAutoSave:
    @pytest.mark.asyncio
    async def test_burst_persists_once_with_final_value(self) -> None:
        store = RecordingStore()
        key = draft_key("leave-form")
        async with DebouncedAutoSave(store, key, delay=DELAY) as autosave:
            for i in range(10):
                autosave.set_value({"days": i})
            await asyncio.sleep(SETTLE)

            assert store.writes == [(key, '{"days": 9}')]
            assert autosave.load() == {"days": 9}
            assert autosave.last_saved_utc is not None

    @pytest.mark.asyncio
    async def test_unchanged_value_not_rewritten(self) -> None:
        store = RecordingStore()
        autosave = DebouncedAutoSave(store, "k", delay=DELAY)
        autosave.set_value({"a": 1})
        await asyncio.sleep(SETTLE)
        autosave.set_value({"a": 1})
        assert autosave.has_pending is False
        await asyncio.sleep(SETTLE)
        assert len(store.writes) == 1
        autosave.close()

    @pytest.mark.asyncio
    async def test_write_failure_logged_not_raised(self) -> None:
        store = RecordingStore(fail_writes=True)
        autosave = DebouncedAutoSave(store, "k", delay=DELAY)
        with capture_logs() as logs:
            autosave.set_value({"a": 1})
            await asyncio.sleep(SETTLE)
        assert any(e["event"] == "autosave_write_failed" for e in logs)
        assert autosave.is_saving is False
        assert autosave.load() is None

    @pytest.mark.asyncio
    async def test_quota_failure_logged(self) -> None:
        store = MemoryKeyValueStore(capacity_bytes=10)
        autosave = DebouncedAutoSave(store, "key", delay=DELAY)
        with capture_logs() as logs:
            autosave.set_value({"text": "x" * 100})
            await autosave.flush()
        assert logs[0]["error_type"] == "StorageQuotaExceeded"

    @pytest.mark.asyncio
    async def test_unserializable_value_logged(self) -> None:
        store = RecordingStore()
        autosave = DebouncedAutoSave(store, "k", delay=DELAY)
        with capture_logs() as logs:
            autosave.set_value({"when": object()})
        assert logs[0]["event"] == "autosave_serialize_failed"
        assert autosave.has_pending is False

    @pytest.mark.asyncio
    async def test_remote_save_failure_keeps_local_copy(self) -> None:
        async def on_save(value: dict) -> None:
            raise ConnectionError("offline")

        store = RecordingStore()
        autosave = DebouncedAutoSave(store, "k", delay=DELAY, on_save=on_save)
        with capture_logs() as logs:
            autosave.set_value({"a": 1})
            await autosave.flush()
        assert autosave.load() == {"a": 1}
        assert logs[-1]["event"] == "autosave_remote_failed"

    @pytest.mark.asyncio
    async def test_close_cancels_pending_write(self) -> None:
        store = RecordingStore()
        autosave = DebouncedAutoSave(store, "k", delay=DELAY)
        autosave.set_value({"a": 1})
        autosave.close()
        await asyncio.sleep(SETTLE)
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_disabled_does_nothing(self) -> None:
        store = RecordingStore()
        autosave = DebouncedAutoSave(store, "k", delay=DELAY, enabled=False)
        autosave.set_value({"a": 1})
        await asyncio.sleep(SETTLE)
        assert store.writes == []

    def test_load_missing_and_unparseable(self) -> None:
        store = MemoryKeyValueStore()
        autosave = DebouncedAutoSave(store, "k")
        assert autosave.load() is None
        store.set("k", "{not json")
        assert autosave.load() is None

    def test_clear_is_idempotent(self) -> None:
        store = MemoryKeyValueStore()
        store.set("k", '{"a": 1}')
        autosave = DebouncedAutoSave(store, "k")
        autosave.clear()
        autosave.clear()
        assert store.get("k") is None


# ===================================================================
# UnsavedChangesGuard
# ===================================================================

class TestUnsavedChangesGuard:
    def test_inactive_without_unsaved_changes(self) -> None:
        source = ExitEventSource()
        UnsavedChangesGuard(source)
        assert source.listener_count == 0
        assert source.dispatch().needs_confirmation is False

    def test_requests_confirmation_while_unsaved(self) -> None:
        source = ExitEventSource()
        guard = UnsavedChangesGuard(source, message="Discard draft?")
        guard.set_unsaved(True)
        guard.set_unsaved(True)
        assert source.listener_count == 1

        event = source.dispatch()
        assert event.needs_confirmation is True
        assert event.confirmation_message == "Discard draft?"

    def test_disabled_when_flag_clears(self) -> None:
        source = ExitEventSource()
        guard = UnsavedChangesGuard(source)
        guard.set_unsaved(True)
        guard.set_unsaved(False)
        assert source.listener_count == 0
        assert source.dispatch().needs_confirmation is False

    def test_close_removes_listener(self) -> None:
        source = ExitEventSource()
        with UnsavedChangesGuard(source) as guard:
            guard.set_unsaved(True)
            assert guard.active is True
        assert source.listener_count == 0
        assert guard.active is False
