from __future__ import annotations

import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException

from src.ephemeral_search.api.deps import get_checklist, get_orchestrator
from src.ephemeral_search.api.v1.sessions.schemas import (
    ChecklistRequest,
    ChecklistResponse,
    CleanupSessionRequest,
    CleanupSessionResponse,
    PrepareSessionRequest,
    PrepareSessionResponse,
    VectorSearchRequest,
    VectorSearchResponse,
)
from src.ephemeral_search.domain.errors import (
    IndexingCancelled,
    IndexingFailed,
    IndexingTimeout,
    IngestFailure,
    ProvisionFailure,
    RetrievalFailure,
    SessionBusy,
    SessionSearchError,
)
from src.ephemeral_search.services.checklist.document_checklist import DocumentChecklist
from src.ephemeral_search.services.sessions.orchestrator import SessionOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["v1"])


def _raise_http(e: SessionSearchError) -> NoReturn:
    if isinstance(e, IndexingTimeout):
        raise HTTPException(status_code=504, detail="The documents are still processing; try again shortly.") from e
    if isinstance(e, (IndexingFailed, IndexingCancelled)):
        raise HTTPException(status_code=502, detail="Could not process the documents.") from e
    if isinstance(e, IngestFailure):
        raise HTTPException(status_code=502, detail=f"Could not fetch document {e.source}: {e.reason}") from e
    if isinstance(e, ProvisionFailure):
        raise HTTPException(status_code=502, detail=f"Could not set up the search pipeline: {e.reason}") from e
    if isinstance(e, RetrievalFailure):
        raise HTTPException(status_code=502, detail=f"Search failed: {e.reason}") from e
    if isinstance(e, SessionBusy):
        raise HTTPException(status_code=409, detail=str(e)) from e
    raise HTTPException(status_code=500, detail=str(e)) from e


@router.post("/sessions/prepare", response_model=PrepareSessionResponse)
async def prepare_session(
    req: PrepareSessionRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)
) -> PrepareSessionResponse:
    try:
        names = await orchestrator.prepare_and_index_session(req)
    except SessionSearchError as e:
        _raise_http(e)
    return PrepareSessionResponse(names=names)


@router.post("/sessions/search", response_model=VectorSearchResponse)
async def search_session(
    req: VectorSearchRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)
) -> VectorSearchResponse:
    try:
        hits = await orchestrator.vector_search_top_k(req)
    except SessionSearchError as e:
        _raise_http(e)
    return VectorSearchResponse(results=hits)


@router.post("/sessions/cleanup", response_model=CleanupSessionResponse)
async def cleanup_session(
    req: CleanupSessionRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)
) -> CleanupSessionResponse:
    # Cleanup never raises for individual resources; failures are in the report
    try:
        report = await orchestrator.cleanup_session_resources(req)
    except SessionBusy as e:
        _raise_http(e)
    return CleanupSessionResponse(report=report)


@router.post("/sessions/checklist", response_model=ChecklistResponse)
async def document_checklist(
    req: ChecklistRequest, checklist: DocumentChecklist = Depends(get_checklist)
) -> ChecklistResponse:
    try:
        answers = await checklist.run(req.session_id, req.documents, req.questions, top_n=req.top_n)
    except SessionSearchError as e:
        _raise_http(e)
    return ChecklistResponse(answers=answers)
