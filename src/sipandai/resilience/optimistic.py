"""Optimistic updater: apply a state change locally before the remote
commit confirms it, and restore the prior state if the commit fails.

Ordering within one update:
1. snapshot current state
2. state := candidate, is_updating := True
3. await commit(candidate)
4. success: state := committed value
   failure: state := snapshot
Every failure path (exception, normalised error pair, cancellation) ends with the
snapshot restored. Updates on one updater must not overlap.
"""

from __future__ import annotations

import copy
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from sipandai.logging_config import get_logger
logger = get_logger(__name__)

S = TypeVar("S")

CommitFn = Callable[[Any], Union[Awaitable[Any], Any]]


@dataclass(frozen=True)
class UpdateResult(Generic[S]):
    """Outcome of one optimistic update."""
    success: bool
    data: Optional[S] = None
    error: Optional[BaseException] = None
    rollback: Optional[Callable[[], None]] = None


class OptimisticUpdater(Generic[S]):
    """Holds one observable state cell and updates it optimistically.

    Usage:
        updater = OptimisticUpdater(request, commit=save_remote)
        result = await updater.update(request.with_status(RequestStatus.APPROVED_FINAL))
        if not result.success:
            toast(result.error)   # state is already rolled back
    """

    def __init__(
        self,
        initial: S,
        commit: CommitFn,
        on_success: Optional[Callable[[S], None]] = None,
        on_error: Optional[Callable[[BaseException, Callable[[], None]], None]] = None,
        on_rollback: Optional[Callable[[], None]] = None,
        normalize: Optional[Callable[[Any], Any]] = None,
    ) -> None:
        self._state: S = initial
        self._snapshot: S = copy.deepcopy(initial)
        self._commit = commit
        self._on_success = on_success
        self._on_error = on_error
        self._on_rollback = on_rollback
        self._normalize = normalize
        self._is_updating = False

    @property
    def state(self) -> S:
        return self._state

    @property
    def is_updating(self) -> bool:
        return self._is_updating

    async def update(self, candidate: S) -> UpdateResult[S]:
        if self._is_updating:
            raise RuntimeError("An optimistic update is already in flight")

        self._snapshot = copy.deepcopy(self._state)
        self._state = candidate
        self._is_updating = True

        try:
            committed = self._commit(candidate)
            if inspect.isawaitable(committed):
                committed = await committed
            if self._normalize is not None:
                committed = self._normalize(committed)
        except Exception as exc:
            self._restore()
            logger.warning(
                "optimistic_update_rolled_back",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            rollback = self._make_rollback()
            if self._on_error is not None:
                self._on_error(exc, rollback)
            return UpdateResult(success=False, error=exc, rollback=rollback)
        except BaseException:
            # Cancelled mid-commit: never leave the optimistic value behind.
            self._restore()
            raise

        self._state = committed
        self._is_updating = False
        if self._on_success is not None:
            self._on_success(committed)
        return UpdateResult(success=True, data=committed)

    def rollback(self) -> None:
        """Restore the most recent snapshot. Always safe to call."""
        self._restore()
        if self._on_rollback is not None:
            self._on_rollback()

    def _restore(self) -> None:
        self._state = copy.deepcopy(self._snapshot)
        self._is_updating = False

    def _make_rollback(self) -> Callable[[], None]:
        snapshot = self._snapshot

        def rollback() -> None:
            self._state = copy.deepcopy(snapshot)
            self._is_updating = False
            if self._on_rollback is not None:
                self._on_rollback()

        return rollback
