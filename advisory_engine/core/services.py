"""Service container built once by the application entry point.

Routes and the pipeline receive their collaborators from this container
instead of module-level singletons, so tests can swap in fakes.
"""

from dataclasses import dataclass
from typing import Any

from fastapi import Request

from advisory_engine.core.analyzer import DocumentAnalyzer
from advisory_engine.core.chunking import Chunker
from advisory_engine.core.config import Settings
from advisory_engine.core.document_processing import TextExtractor
from advisory_engine.core.embeddings import EmbeddingGenerator
from advisory_engine.core.tokens import TokenCounter
from advisory_engine.db.documents import DocumentStore
from advisory_engine.db.storage import DocumentStorage


@dataclass
class ServiceContainer:
    settings: Settings
    supabase: Any
    extractor: TextExtractor
    chunker: Chunker
    embedder: EmbeddingGenerator
    analyzer: DocumentAnalyzer
    store: DocumentStore
    storage: DocumentStorage


def build_services(settings: Settings, supabase: Any = None) -> ServiceContainer:
    """Wire the production services from settings."""
    if supabase is None:
        from advisory_engine.db.supabase_client import get_supabase

        supabase = get_supabase()

    return ServiceContainer(
        settings=settings,
        supabase=supabase,
        extractor=TextExtractor(),
        chunker=Chunker(TokenCounter(settings.TOKENIZER_ENCODING), settings.CHUNK_MAX_TOKENS),
        embedder=EmbeddingGenerator.from_settings(settings),
        analyzer=DocumentAnalyzer.from_settings(settings),
        store=DocumentStore(supabase),
        storage=DocumentStorage(supabase, settings.STORAGE_BUCKET),
    )


def get_services(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the container stored on app state."""
    return request.app.state.services
