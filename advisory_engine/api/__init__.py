"""API router for v1 endpoints."""

from fastapi import APIRouter

from advisory_engine.api import documents

router = APIRouter()

router.include_router(documents.router, tags=["documents"])
