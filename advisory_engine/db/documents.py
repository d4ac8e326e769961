"""Document Store: documents, chunk embeddings and similarity search in Supabase.

After creation a document changes only through ``claim_document`` and
``update_status``. Each is a single row update, so readers never see a
``ready`` document without its summary. Chunks are written once per document
as one batch insert.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field
from supabase import Client

from advisory_engine.core.errors import StorageError
from advisory_engine.core.logging import get_logger
from advisory_engine.core.similarity import rank_matches

logger = get_logger(__name__)

DOCUMENTS_TABLE = "documents"
CHUNKS_TABLE = "document_chunks"
USAGE_TABLE = "usage_logs"
MATCH_FUNCTION = "match_document_chunks"

# Columns returned to search callers for each matched document
SEARCH_DOCUMENT_COLUMNS = "id, name, mime_type, summary, status, created_at"


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.READY, DocumentStatus.FAILED)


class Document(BaseModel):
    """A stored document and, once processed, its text and analysis."""

    id: str
    owner_id: str
    name: str
    mime_type: str
    size_bytes: int
    storage_location: str
    status: DocumentStatus = DocumentStatus.PENDING
    extracted_text: str | None = None
    summary: str | None = None
    key_points: list[str] | None = None
    entities: dict[str, list[str]] | None = None
    analysis: dict[str, Any] | None = None
    error_message: str | None = None
    processing_time_ms: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


class ChunkRecord(BaseModel):
    """One embedded chunk of a document."""

    document_id: str
    chunk_index: int
    text: str
    embedding: list[float]
    token_count: int
    metadata: dict[str, Any] = Field(default_factory=dict)


class SimilarChunk(BaseModel):
    """A chunk matched by similarity search."""

    id: str | None = None
    document_id: str
    chunk_index: int
    text: str
    similarity: float
    created_at: str | None = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DocumentStore:
    """Persistence interface used by the pipeline, API and sync engine."""

    def __init__(self, client: Client):
        self.client = client

    def create_document(
        self,
        owner_id: str | UUID,
        name: str,
        mime_type: str,
        size_bytes: int,
        storage_location: str,
    ) -> Document:
        """
        Create a document in ``pending`` state.

        Raises:
            StorageError: If the insert fails
        """
        record = {
            "owner_id": str(owner_id),
            "name": name,
            "mime_type": mime_type,
            "size_bytes": size_bytes,
            "storage_location": storage_location,
            "status": DocumentStatus.PENDING.value,
        }
        try:
            response = self.client.table(DOCUMENTS_TABLE).insert(record).execute()
        except Exception as e:
            raise StorageError(f"Failed to create document {name}: {e}") from e

        if not response.data:
            raise StorageError(f"Failed to create document {name}: no row returned")

        document = Document.model_validate(response.data[0])
        logger.info(f"Created document {document.id} for {name}", extra={"document_id": document.id})
        return document

    def get_document(self, document_id: str | UUID) -> Document | None:
        response = (
            self.client.table(DOCUMENTS_TABLE)
            .select("*")
            .eq("id", str(document_id))
            .maybe_single()
            .execute()
        )
        if response is None or not response.data:
            return None
        return Document.model_validate(response.data)

    def get_documents(self, document_ids: list[str]) -> dict[str, dict[str, Any]]:
        """Fetch search-facing columns for several documents, keyed by id."""
        if not document_ids:
            return {}
        response = (
            self.client.table(DOCUMENTS_TABLE)
            .select(SEARCH_DOCUMENT_COLUMNS)
            .in_("id", list(dict.fromkeys(document_ids)))
            .execute()
        )
        return {row["id"]: row for row in response.data or []}

    def list_documents(
        self,
        owner_id: str | UUID,
        updated_since: str | None = None,
    ) -> list[Document]:
        """
        List an owner's documents, most recent first.

        Args:
            owner_id: Owning user
            updated_since: Only documents updated at or after this ISO timestamp

        Returns:
            Documents without their chunk data
        """
        query = self.client.table(DOCUMENTS_TABLE).select("*").eq("owner_id", str(owner_id))
        if updated_since:
            query = query.gte("updated_at", updated_since)
        response = query.order("created_at", desc=True).execute()
        return [Document.model_validate(row) for row in response.data or []]

    def claim_document(self, document_id: str | UUID) -> Document | None:
        """Atomically move a document from ``pending`` to ``processing``.

        Returns:
            The claimed document, or None if it was not pending
        """
        response = (
            self.client.table(DOCUMENTS_TABLE)
            .update({"status": DocumentStatus.PROCESSING.value, "updated_at": _now()})
            .eq("id", str(document_id))
            .eq("status", DocumentStatus.PENDING.value)
            .execute()
        )

        if response.data:
            logger.info(f"Claimed document {document_id} for processing")
            return Document.model_validate(response.data[0])

        logger.info(f"Document {document_id} already claimed or not pending")
        return None

    def update_status(
        self,
        document_id: str | UUID,
        status: DocumentStatus | str,
        fields: dict[str, Any] | None = None,
    ) -> Document:
        """
        Set status and result fields in one row update.

        Args:
            document_id: Document to update
            status: New status
            fields: Other columns written together with the status

        Raises:
            StorageError: If the update fails or matches no row
        """
        status = DocumentStatus(status)
        payload = dict(fields or {})
        payload["status"] = status.value
        payload["updated_at"] = _now()
        if status is not DocumentStatus.FAILED:
            payload.setdefault("error_message", None)

        try:
            response = (
                self.client.table(DOCUMENTS_TABLE)
                .update(payload)
                .eq("id", str(document_id))
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to update document {document_id}: {e}") from e

        if not response.data:
            raise StorageError(f"Document {document_id} not found for status update")

        logger.info(
            f"Document {document_id} -> {status.value}",
            extra={"document_id": str(document_id)},
        )
        return Document.model_validate(response.data[0])

    def save_chunks(self, document_id: str | UUID, chunks: list[ChunkRecord]) -> int:
        """
        Insert every chunk of a document in one batch.

        Returns:
            Number of chunks written

        Raises:
            StorageError: If the batch insert fails; no chunk is kept
        """
        if not chunks:
            return 0

        rows = [
            {
                "document_id": str(document_id),
                "chunk_index": chunk.chunk_index,
                "chunk_text": chunk.text,
                "embedding": chunk.embedding,
                "token_count": chunk.token_count,
                "metadata": chunk.metadata,
            }
            for chunk in sorted(chunks, key=lambda c: c.chunk_index)
        ]

        try:
            response = self.client.table(CHUNKS_TABLE).insert(rows).execute()
        except Exception as e:
            raise StorageError(f"Failed to save chunks for document {document_id}: {e}") from e

        written = len(response.data or [])
        if written != len(rows):
            raise StorageError(
                f"Chunk insert for document {document_id} wrote {written} of {len(rows)} rows"
            )

        logger.info(
            f"Saved {written} chunks for document {document_id}",
            extra={"document_id": str(document_id)},
        )
        return written

    def query_similar(
        self,
        query_embedding: list[float],
        owner_id: str | UUID,
        limit: int = 10,
        threshold: float = 0.7,
    ) -> list[SimilarChunk]:
        """
        Find an owner's chunks most similar to a query embedding.

        The database function computes cosine similarity over the owner's
        chunks; the result is re-ranked here so that ties go to the most
        recently created chunk.

        Returns:
            Matches with similarity >= threshold, best first, at most ``limit``
        """
        response = self.client.rpc(
            MATCH_FUNCTION,
            {
                "query_embedding": query_embedding,
                "owner_id": str(owner_id),
                "match_count": limit,
                "similarity_threshold": threshold,
            },
        ).execute()

        ranked = rank_matches(query_embedding, response.data or [], threshold, limit)
        return [
            SimilarChunk(
                id=row.get("id"),
                document_id=row["document_id"],
                chunk_index=row["chunk_index"],
                text=row.get("chunk_text", ""),
                similarity=row["similarity"],
                created_at=row.get("created_at"),
            )
            for row in ranked
        ]

    def delete_document(self, document_id: str | UUID) -> None:
        """Delete a document together with its chunks."""
        try:
            self.client.table(CHUNKS_TABLE).delete().eq("document_id", str(document_id)).execute()
            self.client.table(DOCUMENTS_TABLE).delete().eq("id", str(document_id)).execute()
        except Exception as e:
            raise StorageError(f"Failed to delete document {document_id}: {e}") from e
        logger.info(f"Deleted document {document_id}", extra={"document_id": str(document_id)})

    def log_usage(self, owner_id: str | UUID, usage_type: str, metadata: dict[str, Any]) -> None:
        """Record a usage event. Failures are logged, never raised."""
        try:
            self.client.table(USAGE_TABLE).insert(
                {
                    "user_id": str(owner_id),
                    "usage_type": usage_type,
                    "metadata": metadata,
                }
            ).execute()
        except Exception as e:
            logger.warning(f"Failed to record {usage_type} usage for {owner_id}: {e}")
