from __future__ import annotations

from typing import Optional, List, Annotated

from pydantic import BaseModel, Field

from .common import RunStatus, ResourceKind


# ----- ingest ----- #

class UploadedBlob(BaseModel):
    source: str
    blob_name: str
    blob_path: str  # "<container>/<blob_name>"
    copied: bool = False  # server-side copy instead of fetch + upload


# ----- index content ----- #

class Chunk(BaseModel):
    """One retrievable unit written by the skillset's index projection.

    The core never creates these; they map 1:1 onto the session index fields.
    """
    id: str
    parent_document_id: str
    title: Optional[str] = None
    text: str
    embedding_vector: List[float] = Field(default_factory=list)
    source_url: Optional[str] = None


class PipelineRun(BaseModel):
    runner_name: str
    status: RunStatus
    last_error: Optional[str] = None
    items_processed: int = 0
    items_failed: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in ("success", "error")


class RetrievalHit(BaseModel):
    score: float
    title: Optional[str] = None
    text: str = ""
    source_url: Optional[str] = None
    parent_document_id: Optional[str] = None


# ----- cleanup ----- #

class CleanupStep(BaseModel):
    resource: ResourceKind
    name: str
    ok: bool
    error: Optional[str] = None


class CleanupReport(BaseModel):
    session_id: str
    steps: List[CleanupStep] = Field(default_factory=list)
    blobs_deleted: Annotated[int, Field(ge=0)] = 0

    @property
    def ok(self) -> bool:
        return all(s.ok for s in self.steps)

    @property
    def failures(self) -> List[CleanupStep]:
        return [s for s in self.steps if not s.ok]
