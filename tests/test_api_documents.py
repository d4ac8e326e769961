"""Tests for the document API endpoints using TestClient and in-memory fakes."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from advisory_engine.core.errors import ProviderError
from advisory_engine.main import create_app

AUTH = {"Authorization": "Bearer test-token"}

NOTES = (
    "Acme wants to pilot the onboarding tool in May. Support tickets doubled in March. "
    "Finance approved a budget of 40k for tooling."
)


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_missing_token_is_unauthorized(client):
    response = client.get("/v1/documents")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_rejected_token_is_unauthorized(client, services):
    services.supabase.auth.get_user.side_effect = RuntimeError("invalid JWT")
    response = client.get("/v1/documents", headers=AUTH)
    assert response.status_code == 401


def test_upload_without_file(client):
    response = client.post("/v1/documents", headers=AUTH)
    assert response.status_code == 400
    assert response.json() == {"error": "No file uploaded"}


def test_upload_too_large(client, services):
    services.settings.MAX_UPLOAD_BYTES = 10
    response = client.post(
        "/v1/documents",
        headers=AUTH,
        files={"file": ("notes.txt", NOTES.encode(), "text/plain")},
    )
    assert response.status_code == 400
    assert response.json()["error"].startswith("File too large")


def test_upload_creates_pending_document_and_processes_it(client, fake_store):
    response = client.post(
        "/v1/documents",
        headers=AUTH,
        files={"file": ("notes.txt", NOTES.encode(), "text/plain")},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"
    assert body["name"] == "notes.txt"
    assert body["mimeType"] == "text/plain"
    assert body["sizeBytes"] == len(NOTES.encode())

    # Background task has run by the time TestClient returns
    doc = fake_store.get_document(body["id"])
    assert doc.status.value == "ready"
    assert doc.owner_id == "user-1"


def test_list_and_get_documents(client, fake_store):
    doc = fake_store.create_document("user-1", "a.txt", "text/plain", 3, "user-1/a")
    fake_store.create_document("someone-else", "b.txt", "text/plain", 3, "other/b")

    listing = client.get("/v1/documents", headers=AUTH).json()
    assert listing["total"] == 1
    assert listing["documents"][0]["id"] == doc.id

    response = client.get(f"/v1/documents/{doc.id}", headers=AUTH)
    assert response.status_code == 200
    assert response.json()["status"] == "pending"


def test_get_unknown_or_foreign_document(client, fake_store):
    foreign = fake_store.create_document("someone-else", "b.txt", "text/plain", 3, "other/b")

    assert client.get("/v1/documents/nope", headers=AUTH).status_code == 404
    response = client.get(f"/v1/documents/{foreign.id}", headers=AUTH)
    assert response.status_code == 404
    assert response.json() == {"error": "Document not found"}


def test_process_endpoint_then_conflict(client, services, fake_store):
    path = services.storage.upload("user-1", "notes.txt", NOTES.encode(), "text/plain")
    doc = fake_store.create_document("user-1", "notes.txt", "text/plain", len(NOTES), path)

    first = client.post("/v1/documents/process", headers=AUTH, json={"documentId": doc.id})
    assert first.status_code == 200
    body = first.json()
    assert body["status"] == "ready"
    assert body["chunkCount"] >= 1

    second = client.post("/v1/documents/process", headers=AUTH, json={"documentId": doc.id})
    assert second.status_code == 409
    assert second.json() == {"error": "Document already processed or in progress"}


def test_process_failure_returns_500_with_error(client, services, fake_store):
    path = services.storage.upload("user-1", "notes.txt", NOTES.encode(), "text/plain")
    doc = fake_store.create_document("user-1", "notes.txt", "text/plain", len(NOTES), path)
    fake_store.fail_chunk_insert = True

    response = client.post("/v1/documents/process", headers=AUTH, json={"documentId": doc.id})

    assert response.status_code == 500
    assert "insert rejected" in response.json()["error"]
    assert fake_store.get_document(doc.id).status.value == "failed"


def test_process_requires_document_id(client):
    response = client.post("/v1/documents/process", headers=AUTH, json={})
    assert response.status_code == 400
    assert "error" in response.json()


def test_search_returns_enriched_results_and_logs_usage(client, fake_store):
    upload = client.post(
        "/v1/documents",
        headers=AUTH,
        files={"file": ("notes.txt", NOTES.encode(), "text/plain")},
    )
    doc_id = upload.json()["id"]

    response = client.post(
        "/v1/documents/search",
        headers=AUTH,
        json={"query": "onboarding budget", "userId": "user-1", "limit": 5},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["query"] == "onboarding budget"
    assert body["total"] == len(body["results"]) >= 1
    first = body["results"][0]
    assert first["chunk"]["documentId"] == doc_id
    assert first["document"]["name"] == "notes.txt"
    assert first["relevanceScore"] == pytest.approx(1.0)

    assert fake_store.usage == [
        {
            "user_id": "user-1",
            "usage_type": "semantic_search",
            "metadata": {"query": "onboarding budget", "results_count": body["total"]},
        }
    ]


def test_search_for_another_user_is_forbidden(client):
    response = client.post(
        "/v1/documents/search",
        headers=AUTH,
        json={"query": "anything", "userId": "someone-else"},
    )
    assert response.status_code == 403


def test_search_with_empty_query_rejected(client):
    response = client.post("/v1/documents/search", headers=AUTH, json={"query": ""})
    assert response.status_code == 400


def test_search_embedding_failure(client, services):
    services.embedder.client.embeddings.create = AsyncMock(
        side_effect=ProviderError("provider down", provider="openai")
    )
    response = client.post("/v1/documents/search", headers=AUTH, json={"query": "budget"})
    assert response.status_code == 502


def test_delete_document(client, fake_store):
    doc = fake_store.create_document("user-1", "a.txt", "text/plain", 3, "user-1/a")

    response = client.delete(f"/v1/documents/{doc.id}", headers=AUTH)

    assert response.status_code == 204
    assert fake_store.get_document(doc.id) is None
