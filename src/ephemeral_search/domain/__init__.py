from .common import (
    MAX_RESOURCE_NAME_LEN,
    RESOURCE_NAME_RE,
    RunStatus,
    ResourceKind,
    ResourceNameSet,
    is_valid_resource_name,
)
from .sessions import UploadedBlob, Chunk, PipelineRun, RetrievalHit, CleanupStep, CleanupReport
from .errors import (
    SessionSearchError,
    SearchServiceError,
    IngestFailure,
    ProvisionFailure,
    IndexingTimeout,
    IndexingFailed,
    IndexingCancelled,
    RetrievalFailure,
    CleanupFailure,
    SessionBusy,
)

__all__ = [
    # common
    "MAX_RESOURCE_NAME_LEN", "RESOURCE_NAME_RE", "RunStatus", "ResourceKind", "ResourceNameSet",
    "is_valid_resource_name",
    # sessions
    "UploadedBlob", "Chunk", "PipelineRun", "RetrievalHit", "CleanupStep", "CleanupReport",
    # errors
    "SessionSearchError", "SearchServiceError", "IngestFailure", "ProvisionFailure", "IndexingTimeout",
    "IndexingFailed", "IndexingCancelled", "RetrievalFailure", "CleanupFailure", "SessionBusy",
]
