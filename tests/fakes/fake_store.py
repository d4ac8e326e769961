"""In-memory Document Store, storage and sync remote for behavioral tests."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from advisory_engine.core.errors import StorageError
from advisory_engine.core.similarity import rank_matches
from advisory_engine.db.documents import (
    ChunkRecord,
    Document,
    DocumentStatus,
    SimilarChunk,
)
from advisory_engine.sync.remote import SyncRemote

_BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FakeDocumentStore:
    """Same interface as DocumentStore, backed by dicts."""

    def __init__(self):
        self.documents: dict[str, dict[str, Any]] = {}
        self.chunks: list[dict[str, Any]] = []
        self.usage: list[dict[str, Any]] = []
        self.status_updates: list[tuple[str, str, dict[str, Any]]] = []
        self.fail_chunk_insert = False
        self._clock = 0

    def _tick(self) -> str:
        self._clock += 1
        return (_BASE_TIME + timedelta(seconds=self._clock)).isoformat()

    def create_document(self, owner_id, name, mime_type, size_bytes, storage_location) -> Document:
        now = self._tick()
        row = {
            "id": str(uuid.uuid4()),
            "owner_id": str(owner_id),
            "name": name,
            "mime_type": mime_type,
            "size_bytes": size_bytes,
            "storage_location": storage_location,
            "status": DocumentStatus.PENDING.value,
            "created_at": now,
            "updated_at": now,
        }
        self.documents[row["id"]] = row
        return Document.model_validate(row)

    def get_document(self, document_id) -> Document | None:
        row = self.documents.get(str(document_id))
        return Document.model_validate(row) if row else None

    def get_documents(self, document_ids):
        return {
            i: {k: self.documents[i].get(k) for k in ("id", "name", "mime_type", "summary", "status", "created_at")}
            for i in document_ids
            if i in self.documents
        }

    def list_documents(self, owner_id, updated_since=None):
        rows = [r for r in self.documents.values() if r["owner_id"] == str(owner_id)]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        return [Document.model_validate(r) for r in rows]

    def claim_document(self, document_id) -> Document | None:
        row = self.documents.get(str(document_id))
        if not row or row["status"] != DocumentStatus.PENDING.value:
            return None
        row["status"] = DocumentStatus.PROCESSING.value
        row["updated_at"] = self._tick()
        return Document.model_validate(row)

    def update_status(self, document_id, status, fields=None) -> Document:
        row = self.documents.get(str(document_id))
        if row is None:
            raise StorageError(f"Document {document_id} not found for status update")
        status = DocumentStatus(status)
        # Single assignment mirrors the one-row update of the real store
        row.update({**(fields or {}), "status": status.value, "updated_at": self._tick()})
        self.status_updates.append((str(document_id), status.value, dict(fields or {})))
        return Document.model_validate(row)

    def save_chunks(self, document_id, chunks: list[ChunkRecord]) -> int:
        if self.fail_chunk_insert:
            raise StorageError(f"Failed to save chunks for document {document_id}: insert rejected")
        for chunk in chunks:
            self.chunks.append(
                {
                    "id": str(uuid.uuid4()),
                    "document_id": str(document_id),
                    "chunk_index": chunk.chunk_index,
                    "chunk_text": chunk.text,
                    "embedding": chunk.embedding,
                    "token_count": chunk.token_count,
                    "metadata": chunk.metadata,
                    "created_at": self._tick(),
                }
            )
        return len(chunks)

    def chunks_for(self, document_id) -> list[dict[str, Any]]:
        rows = [c for c in self.chunks if c["document_id"] == str(document_id)]
        return sorted(rows, key=lambda c: c["chunk_index"])

    def query_similar(self, query_embedding, owner_id, limit=10, threshold=0.7):
        owned = {i for i, r in self.documents.items() if r["owner_id"] == str(owner_id)}
        rows = [c for c in self.chunks if c["document_id"] in owned]
        return [
            SimilarChunk(
                id=r["id"],
                document_id=r["document_id"],
                chunk_index=r["chunk_index"],
                text=r["chunk_text"],
                similarity=r["similarity"],
                created_at=r["created_at"],
            )
            for r in rank_matches(query_embedding, rows, threshold, limit)
        ]

    def delete_document(self, document_id) -> None:
        self.documents.pop(str(document_id), None)
        self.chunks = [c for c in self.chunks if c["document_id"] != str(document_id)]

    def log_usage(self, owner_id, usage_type, metadata) -> None:
        self.usage.append({"user_id": str(owner_id), "usage_type": usage_type, "metadata": metadata})


class FakeStorage:
    """Blob storage keyed by path."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}

    def upload(self, owner_id: str, filename: str, data: bytes, content_type: str) -> str:
        path = f"{owner_id}/{len(self.blobs)}-{filename}"
        self.blobs[path] = data
        return path

    def download(self, path: str) -> bytes:
        if path not in self.blobs:
            raise StorageError(f"Failed to download {path}: not found")
        return self.blobs[path]


class FakeSyncRemote(SyncRemote):
    """Remote store held in memory, with switchable failures."""

    def __init__(self):
        self.conversations: dict[str, dict[str, Any]] = {}
        self.messages: dict[str, list[dict[str, Any]]] = {}
        self.documents: dict[str, dict[str, Any]] = {}
        self.preferences: dict[str, Any] = {}
        self.fail_writes = False
        self.fail_reads = False
        self.insert_batches: list[int] = []
        self.calls: list[str] = []

    def _read(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_reads:
            raise ConnectionError(f"{name} unavailable")

    def _write(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_writes:
            raise ConnectionError(f"{name} rejected")

    async def fetch_conversations(self):
        self._read("fetch_conversations")
        return [dict(c) for c in self.conversations.values()]

    async def upsert_conversation(self, record):
        self._write("upsert_conversation")
        self.conversations[record["id"]] = dict(record)

    async def fetch_message_ids(self, conversation_id):
        self._read("fetch_message_ids")
        return {m["id"] for m in self.messages.get(conversation_id, [])}

    async def insert_messages(self, conversation_id, messages):
        self._write("insert_messages")
        self.insert_batches.append(len(messages))
        self.messages.setdefault(conversation_id, []).extend(messages)

    async def fetch_documents(self):
        self._read("fetch_documents")
        return [dict(d) for d in self.documents.values()]

    async def upsert_document(self, record):
        self._write("upsert_document")
        self.documents[record["id"]] = dict(record)

    async def delete_document(self, document_id):
        self._write("delete_document")
        self.documents.pop(document_id, None)

    async def fetch_preferences(self):
        self._read("fetch_preferences")
        return dict(self.preferences)

    async def update_preferences(self, preferences):
        self._write("update_preferences")
        self.preferences = dict(preferences)
