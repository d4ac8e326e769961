"""Sync Engine: reconciles the local state cache with the remote store.

One cycle runs at a time. ``sync_in_progress`` is set before the first await
and cleared in ``finally``, so a failed cycle never blocks later ones. Remote
writes that fail, and any mutation made while offline, go to the persisted
SyncQueue and are replayed in order on the next successful cycle.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from advisory_engine.core.config import Settings
from advisory_engine.core.logging import get_logger, log_with_context
from advisory_engine.sync.local_store import STATE_KEY, LocalStateScheduler, LocalStateStore
from advisory_engine.sync.merge import (
    batched,
    merge_records,
    merge_settings,
    messages_to_upload,
)
from advisory_engine.sync.queue import OperationType, QueueEntry, SyncQueue
from advisory_engine.sync.remote import SyncRemote

logger = get_logger(__name__)

SYNC_NOT_AVAILABLE = {"success": False, "reason": "Sync not available"}

CONVERSATIONS = "conversations"
DOCUMENTS = "documents"
SETTINGS = "settings"

_UPSERT_OPS = {
    CONVERSATIONS: OperationType.UPSERT_CONVERSATION,
    DOCUMENTS: OperationType.UPSERT_DOCUMENT,
}


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def empty_state() -> dict[str, Any]:
    return {CONVERSATIONS: [], DOCUMENTS: [], "messages": {}, SETTINGS: {}}


class SyncEngine:
    """Local/remote reconciliation for one user."""

    def __init__(
        self,
        remote: SyncRemote,
        store: LocalStateStore,
        queue: SyncQueue | None = None,
        cloud_enabled: bool = True,
        message_batch_size: int = 10,
        intervals: dict[str, float] | None = None,
        save_debounce: float = 1.0,
    ):
        self.remote = remote
        self.store = store
        self.queue = queue or SyncQueue(store)
        self.cloud_enabled = cloud_enabled
        self.message_batch_size = message_batch_size
        self.intervals = intervals or {CONVERSATIONS: 30.0, DOCUMENTS: 60.0, SETTINGS: 300.0}

        self.is_online = True
        self.sync_in_progress = False
        self.last_sync: dict[str, str] = {}
        self.state: dict[str, Any] = empty_state()

        self.scheduler = LocalStateScheduler(
            store, snapshot=lambda: self.state, key=STATE_KEY, debounce_seconds=save_debounce
        )
        self._tasks: list[asyncio.Task] = []

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        remote: SyncRemote,
        store: LocalStateStore | None = None,
    ) -> "SyncEngine":
        store = store or LocalStateStore(settings.LOCAL_STATE_PATH, settings.LOCAL_STATE_MAX_BYTES)
        return cls(
            remote=remote,
            store=store,
            queue=SyncQueue(store, settings.MAX_OFFLINE_QUEUE_SIZE),
            cloud_enabled=settings.CLOUD_PERSISTENCE,
            message_batch_size=settings.MESSAGE_BATCH_SIZE,
            intervals={
                CONVERSATIONS: settings.CONVERSATION_SYNC_INTERVAL,
                DOCUMENTS: settings.DOCUMENT_SYNC_INTERVAL,
                SETTINGS: settings.SETTINGS_SYNC_INTERVAL,
            },
            save_debounce=settings.LOCAL_SAVE_DEBOUNCE,
        )

    # Local state

    def load_local_state(self) -> dict[str, Any]:
        """Restore the cached state blob written by a previous run."""
        saved = self.store.get(STATE_KEY) or {}
        state = empty_state()
        for key in state:
            if key in saved and isinstance(saved[key], type(state[key])):
                state[key] = saved[key]
        self.state = state
        logger.info(
            f"Loaded local state: {len(state[CONVERSATIONS])} conversations, "
            f"{len(state[DOCUMENTS])} documents, {len(self.queue)} queued operations"
        )
        return self.state

    def _state_changed(self) -> None:
        self.scheduler.notify_change()

    def _replace_local(self, category: str, record: dict[str, Any]) -> None:
        records = [r for r in self.state[category] if r.get("id") != record.get("id")]
        records.append(record)
        self.state[category] = records

    async def save_record(self, category: str, record: dict[str, Any]) -> dict[str, Any]:
        """
        Change a conversation or document locally and push it remotely.

        The record is stamped with a fresh ``updated_at``. If the engine is
        offline or the remote write fails, the write is queued.
        """
        record = {**record, "updated_at": _utc_now()}
        self._replace_local(category, record)
        self._state_changed()
        await self._write_or_queue(_UPSERT_OPS[category], record)
        return record

    async def delete_document(self, document_id: str) -> None:
        self.state[DOCUMENTS] = [d for d in self.state[DOCUMENTS] if d.get("id") != document_id]
        self._state_changed()
        await self._write_or_queue(OperationType.DELETE_DOCUMENT, {"id": document_id})

    def add_message(self, conversation_id: str, message: dict[str, Any]) -> None:
        """Record a message locally; it is uploaded on the next conversation sync."""
        self.state["messages"].setdefault(conversation_id, []).append(message)
        self._state_changed()

    def update_settings(self, values: dict[str, Any]) -> None:
        self.state[SETTINGS] = {**self.state[SETTINGS], **values}
        self._state_changed()

    # Queue

    def queue_operation(self, op_type: OperationType | str, payload: dict[str, Any]) -> QueueEntry:
        return self.queue.enqueue(op_type, payload)

    async def _write_or_queue(self, op_type: OperationType, payload: dict[str, Any]) -> None:
        entry = QueueEntry(type=op_type, payload=payload)
        if not (self.cloud_enabled and self.is_online):
            self.queue_operation(op_type, payload)
            return
        try:
            await self._apply(entry)
        except Exception as e:
            logger.warning(f"Remote {entry.type} failed, queued for retry: {e}")
            self.queue_operation(op_type, payload)

    async def _apply(self, entry: QueueEntry) -> None:
        if entry.type == OperationType.UPSERT_CONVERSATION.value:
            await self.remote.upsert_conversation(entry.payload)
        elif entry.type == OperationType.UPSERT_DOCUMENT.value:
            await self.remote.upsert_document(entry.payload)
        elif entry.type == OperationType.DELETE_DOCUMENT.value:
            await self.remote.delete_document(entry.payload["id"])
        else:
            raise ValueError(f"Unknown sync operation type: {entry.type}")

    async def process_queue(self) -> dict[str, int]:
        """Replay queued operations in order; failures go back on the queue."""
        entries = self.queue.drain()
        failed: list[QueueEntry] = []
        for entry in entries:
            try:
                await self._apply(entry)
            except Exception as e:
                log_with_context(
                    logger,
                    logging.WARNING,
                    f"Queued {entry.type} failed (attempt {entry.attempts + 1}): {e}",
                    operation_id=entry.operation_id,
                )
                failed.append(entry)
        self.queue.requeue(failed)
        if entries:
            logger.info(f"Processed sync queue: {len(entries) - len(failed)} ok, {len(failed)} failed")
        return {"processed": len(entries) - len(failed), "failed": len(failed)}

    # Per-category sync

    async def _upload_winners(self, category: str, records: list[dict[str, Any]]) -> int:
        uploaded = 0
        for record in records:
            entry = QueueEntry(type=_UPSERT_OPS[category], payload=record)
            try:
                await self._apply(entry)
                uploaded += 1
            except Exception as e:
                logger.warning(f"Upload of {category} {record.get('id')} failed, queued: {e}")
                self.queue_operation(entry.type, record)
        return uploaded

    async def sync_conversations(self) -> dict[str, int]:
        remote = await self.remote.fetch_conversations()
        result = merge_records(self.state[CONVERSATIONS], remote)
        self.state[CONVERSATIONS] = result.merged
        uploaded = await self._upload_winners(CONVERSATIONS, result.to_upload)

        messages_uploaded = 0
        message_failures = 0
        for conversation_id, messages in self.state["messages"].items():
            if not messages:
                continue
            try:
                remote_ids = await self.remote.fetch_message_ids(conversation_id)
                missing = messages_to_upload(messages, remote_ids)
                for batch in batched(missing, self.message_batch_size):
                    await self.remote.insert_messages(conversation_id, batch)
                    messages_uploaded += len(batch)
            except Exception as e:
                # Retried on the next cycle; presence diff skips what already landed
                message_failures += 1
                logger.warning(f"Message sync failed for conversation {conversation_id}: {e}")

        self._state_changed()
        self.last_sync[CONVERSATIONS] = _utc_now()
        return {
            "merged": len(result.merged),
            "uploaded": uploaded,
            "messages_uploaded": messages_uploaded,
            "message_failures": message_failures,
        }

    def _pending_deletes(self) -> set[str]:
        return {
            str(e.payload.get("id"))
            for e in self.queue.entries
            if e.type == OperationType.DELETE_DOCUMENT.value
        }

    async def sync_documents(self) -> dict[str, int]:
        remote = await self.remote.fetch_documents()
        # A queued delete is a tombstone: the remote copy must not come back
        deleted = self._pending_deletes()
        remote = [r for r in remote if str(r.get("id")) not in deleted]
        result = merge_records(self.state[DOCUMENTS], remote)
        self.state[DOCUMENTS] = result.merged
        uploaded = await self._upload_winners(DOCUMENTS, result.to_upload)

        self._state_changed()
        self.last_sync[DOCUMENTS] = _utc_now()
        return {"merged": len(result.merged), "uploaded": uploaded}

    async def sync_settings(self) -> dict[str, bool]:
        remote = await self.remote.fetch_preferences()
        merged = merge_settings(self.state[SETTINGS], remote)
        changed = merged != remote
        if changed:
            await self.remote.update_preferences(merged)
        self.state[SETTINGS] = merged

        self._state_changed()
        self.last_sync[SETTINGS] = _utc_now()
        return {"uploaded": changed}

    # Cycles

    def _can_sync(self) -> bool:
        return self.cloud_enabled and self.is_online and not self.sync_in_progress

    async def _guarded(self, name: str, work: Callable[[], Awaitable[dict[str, Any]]]) -> dict[str, Any]:
        if not self._can_sync():
            return dict(SYNC_NOT_AVAILABLE)

        self.sync_in_progress = True
        try:
            results = await work()
            logger.info(f"Sync {name} complete", extra={"extra_data": {"results": results}})
            return {"success": True, "results": results}
        except Exception as e:
            logger.error(f"Sync {name} failed: {e}", exc_info=True)
            return {"success": False, "reason": str(e)}
        finally:
            self.sync_in_progress = False

    async def sync_all(self) -> dict[str, Any]:
        """
        Full cycle: replay the offline queue, then sync every category.

        Queued mutations go first so a merge never resurrects a record the
        user changed or deleted offline. Each category is isolated; one that
        fails is reported and the others still run.
        """
        handlers = {
            CONVERSATIONS: self.sync_conversations,
            DOCUMENTS: self.sync_documents,
            SETTINGS: self.sync_settings,
        }

        async def work() -> dict[str, Any]:
            results: dict[str, Any] = {"queue": await self.process_queue()}
            for category, handler in handlers.items():
                try:
                    results[category] = {"success": True, **await handler()}
                except Exception as e:
                    log_with_context(logger, logging.ERROR, f"Sync failed: {e}", category=category)
                    results[category] = {"success": False, "error": str(e)}
            self.last_sync["all"] = _utc_now()
            return results

        outcome = await self._guarded("all", work)
        results = outcome.get("results")
        if results:
            failures = [
                f"{category}: {results[category]['error']}"
                for category in handlers
                if not results[category]["success"]
            ]
            if failures:
                outcome["success"] = False
                outcome["reason"] = "; ".join(failures)
        return outcome

    async def sync_category(self, category: str) -> dict[str, Any]:
        handlers = {
            CONVERSATIONS: self.sync_conversations,
            DOCUMENTS: self.sync_documents,
            SETTINGS: self.sync_settings,
        }
        return await self._guarded(category, handlers[category])

    async def set_online(self, online: bool) -> dict[str, Any] | None:
        """Record connectivity; coming back online forces a full sync."""
        was_online = self.is_online
        self.is_online = online
        if online and not was_online:
            logger.info("Connection restored; running full sync")
            return await self.sync_all()
        if not online and was_online:
            logger.info("Connection lost; queueing remote writes")
        return None

    def status(self) -> dict[str, Any]:
        return {
            "is_online": self.is_online,
            "is_syncing": self.sync_in_progress,
            "last_sync": dict(self.last_sync),
            "pending_operations": len(self.queue),
            "cloud_enabled": self.cloud_enabled,
        }

    # Timers

    async def _periodic(self, category: str, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.sync_category(category)

    def start(self) -> None:
        """Start one periodic sync task per category."""
        if self._tasks:
            return
        for category, interval in self.intervals.items():
            self._tasks.append(asyncio.create_task(self._periodic(category, interval)))
        logger.info(f"Sync timers started: {self.intervals}")

    async def stop(self) -> None:
        """Cancel timers and flush local state."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.scheduler.shutdown()
        logger.info("Sync engine stopped")
