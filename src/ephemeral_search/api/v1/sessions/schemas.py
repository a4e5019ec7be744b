from __future__ import annotations

from typing import List, Optional, Annotated
from urllib.parse import urlparse

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

from src.ephemeral_search.domain.common import ResourceNameSet
from src.ephemeral_search.domain.sessions import CleanupReport, RetrievalHit


def _remote_url(value: str) -> str:
    # Local paths and file:// URIs are for in-process callers only
    parsed = urlparse(value)
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        raise ValueError("documents must be http(s) URLs")
    return value


SessionId = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=512)]
DocumentRef = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=4096), AfterValidator(_remote_url)
]
QuestionText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=4000)]


class _Request(BaseModel):
    # Chat-layer payloads arrive camelCase; both spellings are accepted
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class PrepareSessionRequest(_Request):
    session_id: SessionId
    urls: Annotated[List[DocumentRef], Field(min_length=1, max_length=50)]


class VectorSearchRequest(_Request):
    session_id: SessionId
    text: QuestionText
    k: Annotated[int, Field(ge=1, le=50)] = 3


class CleanupSessionRequest(_Request):
    session_id: SessionId
    delete_index: bool = True
    delete_data_source: bool = True
    delete_blobs: bool = True


class ChecklistRequest(_Request):
    session_id: SessionId
    documents: Annotated[List[DocumentRef], Field(min_length=1, max_length=50)]
    questions: Annotated[List[QuestionText], Field(min_length=1, max_length=50)]
    top_n: Annotated[int, Field(ge=1, le=20)] = 5


class PrepareSessionResponse(BaseModel):
    names: ResourceNameSet


class VectorSearchResponse(BaseModel):
    results: List[RetrievalHit]


class CleanupSessionResponse(BaseModel):
    report: CleanupReport


class ChecklistAnswer(BaseModel):
    question: str
    answer: str
    quote: str = ""
    source_url: Optional[str] = None


class ChecklistResponse(BaseModel):
    answers: List[ChecklistAnswer]
