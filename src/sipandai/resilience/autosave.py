"""Debounced durable auto-save for in-progress forms, plus the
"unsaved changes" exit guard.

Auto-save is best-effort: every write or read failure is logged and
swallowed at this boundary, and the in-memory form state stays
authoritative. Only the value present when the debounce interval
elapses is persisted; intermediate edits never reach the store.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from sipandai.logging_config import get_logger
from sipandai.persistence.kv_store import KeyValueStore
from sipandai.resilience.timers import Debouncer

logger = get_logger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 1.0

RemoteSave = Callable[[Any], Awaitable[None]]


class DebouncedAutoSave:
    """Persist a form value under one key after edits settle.

    Usage:
        async with DebouncedAutoSave(store, draft_key("leave-form")) as autosave:
            autosave.set_value(form_data)   # on every edit
            ...
            restored = autosave.load()

    Leaving the block cancels any pending write.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str,
        delay: float = DEFAULT_DEBOUNCE_SECONDS,
        on_save: Optional[RemoteSave] = None,
        enabled: bool = True,
    ) -> None:
        self._store = store
        self._key = key
        self._on_save = on_save
        self.enabled = enabled
        self._debouncer = Debouncer(delay, self._persist)
        self._pending_serialized: Optional[str] = None
        self._last_persisted: Optional[str] = None
        self._is_saving = False
        self._last_saved_utc: Optional[datetime] = None

    @property
    def key(self) -> str:
        return self._key

    @property
    def is_saving(self) -> bool:
        return self._is_saving

    @property
    def has_pending(self) -> bool:
        return self._debouncer.pending

    @property
    def last_saved_utc(self) -> Optional[datetime]:
        return self._last_saved_utc

    def set_value(self, value: Any) -> None:
        """Record a new form value and restart the debounce timer.

        A value serialising identically to the pending (or last
        persisted) one is not a change and leaves the timer alone.
        """
        if not self.enabled:
            return
        try:
            serialized = json.dumps(value, sort_keys=True, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            logger.error("autosave_serialize_failed", key=self._key, error=str(exc))
            return

        if self.has_pending:
            if serialized == self._pending_serialized:
                return
        elif serialized == self._last_persisted:
            return

        self._pending_serialized = serialized
        self._debouncer.trigger(serialized, value)

    async def flush(self) -> None:
        """Persist the pending value immediately."""
        await self._debouncer.flush()

    def load(self) -> Optional[Any]:
        """Return the last persisted value, or None if absent/unreadable."""
        try:
            raw = self._store.get(self._key)
        except Exception as exc:
            logger.error("autosave_load_failed", key=self._key, error=str(exc))
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            logger.warning("autosave_load_unparseable", key=self._key, error=str(exc))
            return None

    def clear(self) -> None:
        """Drop the pending write and remove the stored value. Idempotent."""
        self._debouncer.cancel()
        self._pending_serialized = None
        self._last_persisted = None
        try:
            self._store.remove(self._key)
        except Exception as exc:
            logger.error("autosave_clear_failed", key=self._key, error=str(exc))

    def close(self) -> None:
        """Cancel the pending write. Nothing fires after this."""
        self._debouncer.cancel()
        self._pending_serialized = None

    async def __aenter__(self) -> DebouncedAutoSave:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    async def _persist(self, serialized: str, value: Any) -> None:
        self._pending_serialized = None
        self._is_saving = True
        try:
            try:
                self._store.set(self._key, serialized)
            except Exception as exc:
                logger.error(
                    "autosave_write_failed",
                    key=self._key,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                return
            self._last_persisted = serialized
            self._last_saved_utc = datetime.now(timezone.utc)

            if self._on_save is not None:
                try:
                    await self._on_save(value)
                except Exception as exc:
                    # Local copy is already written; the draft is not lost.
                    logger.error("autosave_remote_failed", key=self._key, error=str(exc))
        finally:
            self._is_saving = False


# ----------------------------------------------------------------------
# Exit guard
# ----------------------------------------------------------------------

@dataclass
class ExitEvent:
    """A page-exit / shutdown attempt that listeners may ask to confirm."""
    confirmation_message: Optional[str] = None

    @property
    def needs_confirmation(self) -> bool:
        return self.confirmation_message is not None

    def request_confirmation(self, message: str) -> None:
        self.confirmation_message = message


ExitListener = Callable[[ExitEvent], None]


class ExitEventSource:
    """Dispatches exit attempts to registered listeners."""

    def __init__(self) -> None:
        self._listeners: list[ExitListener] = []

    def add_listener(self, listener: ExitListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ExitListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def dispatch(self) -> ExitEvent:
        event = ExitEvent()
        for listener in list(self._listeners):
            listener(event)
        return event


DEFAULT_UNSAVED_MESSAGE = "You have unsaved changes. Leave anyway?"


class UnsavedChangesGuard:
    """Ask for confirmation on exit while there are unsaved changes.

    The listener is attached only while the unsaved flag is set and is
    always detached by close(), so no listener outlives its owner.
    """

    def __init__(
        self,
        source: ExitEventSource,
        message: str = DEFAULT_UNSAVED_MESSAGE,
    ) -> None:
        self._source = source
        self._message = message
        self._unsaved = False

    @property
    def active(self) -> bool:
        return self._unsaved

    def set_unsaved(self, unsaved: bool) -> None:
        if unsaved == self._unsaved:
            return
        self._unsaved = unsaved
        if unsaved:
            self._source.add_listener(self._on_exit)
        else:
            self._source.remove_listener(self._on_exit)

    def close(self) -> None:
        self._unsaved = False
        self._source.remove_listener(self._on_exit)

    def __enter__(self) -> UnsavedChangesGuard:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _on_exit(self, event: ExitEvent) -> None:
        event.request_confirmation(self._message)
