"""Append-only audit log of workflow transitions.

Every status change the service layer commits produces an event record;
so does every rolled-back attempt. Records are immutable once written
and carry a SHA-256 hash of their canonical JSON, so a JSONL copy on
disk can be verified on load.

Fail-closed on recovery: tampered records (hash mismatch) and
duplicate event ids are rejected, not skipped.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class EventKind(str, enum.Enum):
    """Classification of workflow events."""
    REQUEST_CREATED = "request_created"
    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_REVIEW_STARTED = "request_review_started"
    REQUEST_APPROVED = "request_approved"
    REQUEST_RETURNED = "request_returned"
    REQUEST_REJECTED = "request_rejected"
    REQUEST_RESUBMITTED = "request_resubmitted"
    TRANSITION_ROLLED_BACK = "transition_rolled_back"


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    actor_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "actor_id": actor_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable audit event."""
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create a new event record with computed hash."""
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=ts_str,
            actor_id=actor_id,
            payload=payload,
            event_hash=_canonical_hash(
                event_id, event_kind.value, ts_str, actor_id, payload,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> EventRecord:
        """Rebuild a stored record, verifying its hash.

        Raises ValueError when the stored hash does not match the
        recomputed one.
        """
        record = EventRecord(
            event_id=data["event_id"],
            event_kind=EventKind(data["event_kind"]),
            timestamp_utc=data["timestamp_utc"],
            actor_id=data["actor_id"],
            payload=data["payload"],
            event_hash=data["event_hash"],
        )
        if not record.verify():
            raise ValueError(f"Integrity check failed for event {record.event_id}")
        return record

    def verify(self) -> bool:
        """True if event_hash matches the record's content."""
        return self.event_hash == _canonical_hash(
            self.event_id, self.event_kind.value, self.timestamp_utc,
            self.actor_id, self.payload,
        )


class EventLog:
    """Append-only event log with optional JSONL persistence."""

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._event_ids: set[str] = set()
        self._storage_path = storage_path

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, event: EventRecord) -> None:
        """Append an event.

        Raises ValueError if event_id is a duplicate (replay protection).
        """
        if event.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")

        self._events.append(event)
        self._event_ids.add(event.event_id)

        if self._storage_path:
            self._storage_path.parent.mkdir(parents=True, exist_ok=True)
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_dict(), sort_keys=True, ensure_ascii=False) + "\n")

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        """Return events, optionally filtered by kind."""
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    def events_for_request(self, request_id: str) -> list[EventRecord]:
        """Return the history of one request, oldest first."""
        return [e for e in self._events if e.payload.get("request_id") == request_id]

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _load_from_file(self, path: Path) -> None:
        with path.open("r", encoding="utf-8") as f:
            lines = [line for line in (raw.strip() for raw in f) if line]
        for line_num, line in enumerate(lines, 1):
            try:
                record = EventRecord.from_dict(json.loads(line))
            except (KeyError, ValueError) as exc:
                raise ValueError(f"Unreadable audit record (line {line_num}): {exc}") from exc
            if record.event_id in self._event_ids:
                raise ValueError(
                    f"Duplicate event ID on recovery (line {line_num}): {record.event_id}"
                )
            self._events.append(record)
            self._event_ids.add(record.event_id)
