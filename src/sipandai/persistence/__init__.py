"""Persistence layer: request channel, key-value stores and audit log."""

from sipandai.persistence.channel import InMemoryRequestChannel, RequestChannel
from sipandai.persistence.event_log import EventLog, EventRecord, EventKind
from sipandai.persistence.kv_store import (
    JsonFileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
)

__all__ = [
    "InMemoryRequestChannel",
    "RequestChannel",
    "EventLog",
    "EventRecord",
    "EventKind",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
]
