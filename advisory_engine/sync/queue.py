"""Offline mutation queue, bounded and persisted in the local state store."""

import random
import string
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from advisory_engine.core.logging import get_logger
from advisory_engine.sync.local_store import SYNC_QUEUE_KEY, LocalStateStore

logger = get_logger(__name__)


class OperationType(str, Enum):
    UPSERT_CONVERSATION = "upsertConversation"
    UPSERT_DOCUMENT = "upsertDocument"
    DELETE_DOCUMENT = "deleteDocument"


def _operation_id(op_type: str) -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{op_type}_{int(time.time() * 1000)}_{suffix}"


@dataclass
class QueueEntry:
    """A mutation not yet confirmed by the remote store."""

    type: str
    payload: dict[str, Any]
    operation_id: str = ""
    created_at: float = field(default_factory=time.time)
    attempts: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.type, OperationType):
            self.type = self.type.value
        if not self.operation_id:
            self.operation_id = _operation_id(self.type)


class SyncQueue:
    """Ordered queue; the oldest entries are evicted past ``max_size``."""

    def __init__(self, store: LocalStateStore, max_size: int = 100, key: str = SYNC_QUEUE_KEY):
        self.store = store
        self.max_size = max(1, max_size)
        self.key = key
        self._entries: list[QueueEntry] = self._load()

    def _load(self) -> list[QueueEntry]:
        raw = self.store.get(self.key) or []
        entries = []
        for item in raw:
            try:
                entries.append(QueueEntry(**item))
            except TypeError as e:
                logger.warning(f"Discarding malformed queue entry {item!r}: {e}")
        return entries[-self.max_size :]

    def _persist(self) -> None:
        self.store.set(self.key, [asdict(e) for e in self._entries])

    def _trim(self) -> None:
        overflow = len(self._entries) - self.max_size
        if overflow > 0:
            evicted = self._entries[:overflow]
            self._entries = self._entries[overflow:]
            logger.warning(
                f"Sync queue full; evicted {overflow} oldest operations "
                f"({', '.join(e.operation_id for e in evicted)})"
            )

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[QueueEntry]:
        return list(self._entries)

    def enqueue(self, op_type: OperationType | str, payload: dict[str, Any]) -> QueueEntry:
        entry = QueueEntry(type=op_type, payload=payload)
        self._entries.append(entry)
        self._trim()
        self._persist()
        logger.info(f"Queued {entry.type} ({len(self._entries)} pending)")
        return entry

    def drain(self) -> list[QueueEntry]:
        """Take every entry, oldest first, leaving the queue empty."""
        entries, self._entries = self._entries, []
        self._persist()
        return entries

    def requeue(self, entries: list[QueueEntry]) -> None:
        """Put failed entries back ahead of anything queued since the drain."""
        if not entries:
            return
        for entry in entries:
            entry.attempts += 1
        self._entries = list(entries) + self._entries
        self._trim()
        self._persist()
