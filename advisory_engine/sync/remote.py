"""Remote side of the sync engine: the user's rows in Supabase."""

from abc import ABC, abstractmethod
from typing import Any

from supabase import Client

from advisory_engine.core.logging import get_logger

logger = get_logger(__name__)


class SyncRemote(ABC):
    """Operations the sync engine needs from the remote store."""

    @abstractmethod
    async def fetch_conversations(self) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def upsert_conversation(self, record: dict[str, Any]) -> None: ...

    @abstractmethod
    async def fetch_message_ids(self, conversation_id: str) -> set[str]: ...

    @abstractmethod
    async def insert_messages(self, conversation_id: str, messages: list[dict[str, Any]]) -> None: ...

    @abstractmethod
    async def fetch_documents(self) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def upsert_document(self, record: dict[str, Any]) -> None: ...

    @abstractmethod
    async def delete_document(self, document_id: str) -> None: ...

    @abstractmethod
    async def fetch_preferences(self) -> dict[str, Any]: ...

    @abstractmethod
    async def update_preferences(self, preferences: dict[str, Any]) -> None: ...


class SupabaseSyncRemote(SyncRemote):
    """SyncRemote over the conversations, messages, documents and user_profiles tables."""

    def __init__(self, client: Client, user_id: str):
        self.client = client
        self.user_id = str(user_id)

    async def fetch_conversations(self) -> list[dict[str, Any]]:
        response = (
            self.client.table("conversations")
            .select("*")
            .eq("user_id", self.user_id)
            .order("updated_at", desc=True)
            .execute()
        )
        return response.data or []

    async def upsert_conversation(self, record: dict[str, Any]) -> None:
        row = {k: v for k, v in record.items() if k != "messages"}
        row["user_id"] = self.user_id
        self.client.table("conversations").upsert(row).execute()

    async def fetch_message_ids(self, conversation_id: str) -> set[str]:
        response = (
            self.client.table("messages")
            .select("id")
            .eq("conversation_id", conversation_id)
            .execute()
        )
        return {str(row["id"]) for row in response.data or []}

    async def insert_messages(self, conversation_id: str, messages: list[dict[str, Any]]) -> None:
        rows = [{**m, "conversation_id": conversation_id} for m in messages]
        self.client.table("messages").insert(rows).execute()

    async def fetch_documents(self) -> list[dict[str, Any]]:
        response = (
            self.client.table("documents")
            .select("id, name, mime_type, size_bytes, status, summary, key_points, updated_at")
            .eq("owner_id", self.user_id)
            .execute()
        )
        return response.data or []

    async def upsert_document(self, record: dict[str, Any]) -> None:
        self.client.table("documents").upsert({**record, "owner_id": self.user_id}).execute()

    async def delete_document(self, document_id: str) -> None:
        self.client.table("document_chunks").delete().eq("document_id", document_id).execute()
        (
            self.client.table("documents")
            .delete()
            .eq("id", document_id)
            .eq("owner_id", self.user_id)
            .execute()
        )

    async def fetch_preferences(self) -> dict[str, Any]:
        response = (
            self.client.table("user_profiles")
            .select("preferences")
            .eq("user_id", self.user_id)
            .maybe_single()
            .execute()
        )
        if response is None or not response.data:
            return {}
        return response.data.get("preferences") or {}

    async def update_preferences(self, preferences: dict[str, Any]) -> None:
        self.client.table("user_profiles").upsert(
            {"user_id": self.user_id, "preferences": preferences},
            on_conflict="user_id",
        ).execute()
