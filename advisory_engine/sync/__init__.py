"""Local/remote state synchronization."""

from advisory_engine.core.config import Settings
from advisory_engine.sync.engine import SYNC_NOT_AVAILABLE, SyncEngine
from advisory_engine.sync.local_store import LocalStateScheduler, LocalStateStore
from advisory_engine.sync.merge import MergeResult, is_local_newer, merge_records
from advisory_engine.sync.queue import OperationType, QueueEntry, SyncQueue
from advisory_engine.sync.remote import SupabaseSyncRemote, SyncRemote


def build_sync_engine(settings: Settings, client, user_id: str) -> SyncEngine:
    """Sync engine for one user against Supabase, with state restored from disk."""
    engine = SyncEngine.from_settings(settings, SupabaseSyncRemote(client, user_id))
    engine.load_local_state()
    return engine


__all__ = [
    "SYNC_NOT_AVAILABLE",
    "LocalStateScheduler",
    "LocalStateStore",
    "MergeResult",
    "OperationType",
    "QueueEntry",
    "SupabaseSyncRemote",
    "SyncEngine",
    "SyncQueue",
    "SyncRemote",
    "build_sync_engine",
    "is_local_newer",
    "merge_records",
]
