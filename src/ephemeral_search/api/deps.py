from __future__ import annotations

from fastapi import HTTPException, Request

from src.ephemeral_search.services.checklist.document_checklist import DocumentChecklist
from src.ephemeral_search.services.sessions.factory import SessionServices
from src.ephemeral_search.services.sessions.orchestrator import SessionOrchestrator


def get_services(request: Request) -> SessionServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="session services are not configured")
    return services


def get_orchestrator(request: Request) -> SessionOrchestrator:
    return get_services(request).orchestrator


def get_checklist(request: Request) -> DocumentChecklist:
    checklist = get_services(request).checklist
    if checklist is None:
        raise HTTPException(status_code=503, detail="no chat model configured")
    return checklist
