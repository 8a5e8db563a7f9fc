"""Resilience layer: retries, optimistic updates, timers and auto-save."""

from sipandai.resilience.autosave import (
    DebouncedAutoSave,
    ExitEvent,
    ExitEventSource,
    UnsavedChangesGuard,
)
from sipandai.resilience.optimistic import OptimisticUpdater, UpdateResult
from sipandai.resilience.retry import RetryResult, RetryState, RetryingExecutor
from sipandai.resilience.timers import Debouncer, Throttler

__all__ = [
    "DebouncedAutoSave",
    "ExitEvent",
    "ExitEventSource",
    "UnsavedChangesGuard",
    "OptimisticUpdater",
    "UpdateResult",
    "RetryResult",
    "RetryState",
    "RetryingExecutor",
    "Debouncer",
    "Throttler",
]
