"""Document Processing Graph.

LangGraph workflow for one uploaded document:
1. Load the document record
2. Claim it (pending -> processing); anything not pending is left alone
3. Download the raw file from storage
4. Extract text
5. Analyze (summary, key points, entities) in parallel with
   chunk + embed
6. Persist chunks
7. Finalize: one update to ready with every result field, or to failed
   with the error message
"""

import logging
import operator
import time
from dataclasses import dataclass, field
from typing import Annotated, Any

from langgraph.graph import END, StateGraph

from advisory_engine.core.analyzer import (
    MIN_ANALYSIS_CHARS,
    DocumentAnalysis,
    heuristic_analysis,
)
from advisory_engine.core.chunking import TextChunk
from advisory_engine.core.document_processing import ExtractionResult
from advisory_engine.core.errors import AdvisoryError, StorageError
from advisory_engine.core.logging import get_logger, log_with_context
from advisory_engine.core.services import ServiceContainer
from advisory_engine.db.documents import ChunkRecord, Document, DocumentStatus

logger = get_logger(__name__)

RECURSION_LIMIT = 20

# Outcomes reported by process_document
OUTCOME_READY = "ready"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"
OUTCOME_NOT_FOUND = "not_found"


@dataclass
class DocumentProcessingState:
    """State for document processing graph."""

    # Input
    document_id: str

    # Loaded from DB
    document: Document | None = None
    claimed: bool = False
    outcome: str = ""

    start_time: float = 0.0

    file_bytes: bytes = b""
    extraction: ExtractionResult | None = None

    # Parallel branch outputs; each branch writes its own keys
    analysis: DocumentAnalysis | None = None
    chunks: list[TextChunk] = field(default_factory=list)
    embeddings: list[list[float]] = field(default_factory=list)

    chunk_count: int = 0
    processing_time_ms: int = 0

    # Both branches may report errors in the same step
    errors: Annotated[list[str], operator.add] = field(default_factory=list)


@dataclass
class ProcessingOutcome:
    """Result of one process_document call."""

    document_id: str
    outcome: str
    chunk_count: int = 0
    processing_time_ms: int = 0
    error: str | None = None


def _elapsed_ms(start_time: float) -> int:
    if start_time <= 0:
        return 0
    return int((time.monotonic() - start_time) * 1000)


def build_document_graph(services: ServiceContainer):
    """Compile the processing workflow bound to a service container."""

    store = services.store

    async def load_document(state: DocumentProcessingState) -> dict[str, Any]:
        document = store.get_document(state.document_id)
        if document is None:
            logger.warning(f"Document {state.document_id} not found")
            return {"outcome": OUTCOME_NOT_FOUND, "start_time": time.monotonic()}
        return {"document": document, "start_time": time.monotonic()}

    async def claim_document(state: DocumentProcessingState) -> dict[str, Any]:
        claimed = store.claim_document(state.document_id)
        if claimed is None:
            return {"outcome": OUTCOME_SKIPPED}
        return {"claimed": True, "document": claimed}

    async def download_file(state: DocumentProcessingState) -> dict[str, Any]:
        try:
            data = services.storage.download(state.document.storage_location)
        except StorageError as e:
            return {"errors": [f"Download failed: {e}"]}
        return {"file_bytes": data}

    async def extract_text(state: DocumentProcessingState) -> dict[str, Any]:
        doc = state.document
        result = await services.extractor.extract(state.file_bytes, doc.mime_type, doc.name)

        if len(result.text.strip()) < MIN_ANALYSIS_CHARS:
            return {
                "extraction": result,
                "errors": [f"Extracted text too short to analyze ({result.variant.value})"],
            }
        return {"extraction": result, "file_bytes": b""}

    async def analyze_document(state: DocumentProcessingState) -> dict[str, Any]:
        text = state.extraction.text
        try:
            analysis = await services.analyzer.analyze(text, state.document.name)
        except Exception as e:
            # The analyzer already degrades internally; this only guards its contract
            logger.exception(f"Analyzer raised for {state.document_id}: {e}")
            analysis = heuristic_analysis(text, state.document.name)
        return {"analysis": analysis}

    async def chunk_and_embed(state: DocumentProcessingState) -> dict[str, Any]:
        chunks = services.chunker.chunk(state.extraction.text)
        try:
            embeddings = await services.embedder.embed_many([c.text for c in chunks])
        except AdvisoryError as e:
            return {"chunks": chunks, "errors": [str(e)]}
        return {"chunks": chunks, "embeddings": embeddings}

    async def persist_chunks(state: DocumentProcessingState) -> dict[str, Any]:
        if state.errors:
            return {}
        records = [
            ChunkRecord(
                document_id=state.document_id,
                chunk_index=chunk.chunk_index,
                text=chunk.text,
                embedding=embedding,
                token_count=chunk.token_count,
                metadata={
                    "tokens": chunk.token_count,
                    "start_char": chunk.start_char,
                    "end_char": chunk.end_char,
                },
            )
            for chunk, embedding in zip(state.chunks, state.embeddings)
        ]
        try:
            written = store.save_chunks(state.document_id, records)
        except StorageError as e:
            return {"errors": [str(e)]}
        return {"chunk_count": written}

    async def finalize(state: DocumentProcessingState) -> dict[str, Any]:
        duration_ms = _elapsed_ms(state.start_time)

        if not state.errors:
            analysis = state.analysis
            extraction = state.extraction
            fields = {
                "extracted_text": extraction.text,
                "summary": analysis.summary,
                "key_points": analysis.key_points,
                "entities": analysis.entities.model_dump(),
                "analysis": {
                    "business_relevance": analysis.business_relevance,
                    "keywords": [k.model_dump() for k in analysis.keywords],
                    "insights": [i.model_dump() for i in analysis.insights],
                    "source": analysis.source,
                    "extraction_variant": extraction.variant.value,
                    "word_count": extraction.word_count,
                    "chunk_count": state.chunk_count,
                },
                "processing_time_ms": duration_ms,
            }
            try:
                store.update_status(state.document_id, DocumentStatus.READY, fields)
                return {"outcome": OUTCOME_READY, "processing_time_ms": duration_ms}
            except StorageError as e:
                write_errors = [str(e)]
        else:
            write_errors = []

        message = "; ".join(state.errors + write_errors)
        log_with_context(
            logger,
            logging.ERROR,
            f"Document processing failed: {message}",
            document_id=state.document_id,
        )
        try:
            store.update_status(
                state.document_id,
                DocumentStatus.FAILED,
                {"error_message": message, "processing_time_ms": duration_ms},
            )
        except StorageError as e:
            logger.error(f"Could not mark document {state.document_id} failed: {e}")

        return {
            "outcome": OUTCOME_FAILED,
            "processing_time_ms": duration_ms,
            "errors": write_errors,
        }

    def _after_load(state: DocumentProcessingState) -> str:
        return END if state.outcome else "claim"

    def _after_claim(state: DocumentProcessingState) -> str:
        return END if state.outcome else "download"

    def _continue_or_finalize(next_node: str):
        def route(state: DocumentProcessingState) -> str:
            return "finalize" if state.errors else next_node

        return route

    def _fan_out(state: DocumentProcessingState) -> list[str] | str:
        if state.errors:
            return "finalize"
        return ["analyze", "chunk_embed"]

    graph = StateGraph(DocumentProcessingState)

    graph.add_node("load", load_document)
    graph.add_node("claim", claim_document)
    graph.add_node("download", download_file)
    graph.add_node("extract", extract_text)
    graph.add_node("analyze", analyze_document)
    graph.add_node("chunk_embed", chunk_and_embed)
    graph.add_node("persist", persist_chunks)
    graph.add_node("finalize", finalize)

    graph.set_entry_point("load")
    graph.add_conditional_edges("load", _after_load, ["claim", END])
    graph.add_conditional_edges("claim", _after_claim, ["download", END])
    graph.add_conditional_edges(
        "download", _continue_or_finalize("extract"), ["extract", "finalize"]
    )
    graph.add_conditional_edges("extract", _fan_out, ["analyze", "chunk_embed", "finalize"])
    # persist waits for both parallel branches
    graph.add_edge(["analyze", "chunk_embed"], "persist")
    graph.add_edge("persist", "finalize")
    graph.add_edge("finalize", END)

    return graph.compile()


def _fail_crashed(document_id: str, services: ServiceContainer, message: str) -> ProcessingOutcome:
    """Mark a claimed document failed after the workflow raised."""
    store = services.store
    try:
        document = store.get_document(document_id)
        if document is not None and document.status is DocumentStatus.PROCESSING:
            store.update_status(document_id, DocumentStatus.FAILED, {"error_message": message})
    except Exception as e:
        logger.error(f"Could not mark document {document_id} failed after crash: {e}")
    return ProcessingOutcome(document_id=document_id, outcome=OUTCOME_FAILED, error=message)


async def process_document(document_id: str, services: ServiceContainer) -> ProcessingOutcome:
    """
    Run the processing workflow for one document.

    Safe to call more than once: only a ``pending`` document is processed,
    so a repeated trigger never touches a ``ready`` or ``failed`` document.

    Args:
        document_id: Document to process
        services: Service container

    Returns:
        ProcessingOutcome describing what happened
    """
    log_with_context(logger, logging.INFO, "Starting document processing", document_id=document_id)

    app = build_document_graph(services)
    try:
        final_state = await app.ainvoke(
            DocumentProcessingState(document_id=str(document_id)),
            config={"recursion_limit": RECURSION_LIMIT},
        )
    except Exception as e:
        logger.exception(f"Document processing crashed for {document_id}: {e}")
        return _fail_crashed(str(document_id), services, f"Processing error: {e}")

    errors = final_state.get("errors") or []
    outcome = ProcessingOutcome(
        document_id=str(document_id),
        outcome=final_state.get("outcome") or OUTCOME_FAILED,
        chunk_count=final_state.get("chunk_count", 0),
        processing_time_ms=final_state.get("processing_time_ms", 0),
        error="; ".join(errors) if errors else None,
    )

    log_with_context(
        logger,
        logging.INFO,
        f"Document processing finished: {outcome.outcome}",
        document_id=outcome.document_id,
        chunk_count=outcome.chunk_count,
        processing_time_ms=outcome.processing_time_ms,
    )
    return outcome
