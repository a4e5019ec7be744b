"""Failure taxonomy for the session lifecycle.

Prepare-time failures (ingest, provision, indexing) abort the session and are
re-raised after cleanup. Retrieval failures are per query. Cleanup failures are
logged and only surface through `CleanupFailure` when explicitly requested.
"""

from __future__ import annotations

from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .sessions import CleanupReport


class SessionSearchError(Exception):
    """Base class for everything the session pipeline raises."""


class SearchServiceError(SessionSearchError):
    """Non-2xx answer from the search REST API."""

    def __init__(self, label: str, status_code: int, message: str, body: Any = None) -> None:
        super().__init__(f"{label} failed with HTTP {status_code}: {message}")
        self.label = label
        self.status_code = status_code
        self.message = message
        self.body = body

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class IngestFailure(SessionSearchError):
    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Could not ingest {source}: {reason}")
        self.source = source
        self.reason = reason


class ProvisionFailure(SessionSearchError):
    def __init__(self, resource: str, name: str, reason: str) -> None:
        super().__init__(f"Could not provision {resource} {name!r}: {reason}")
        self.resource = resource
        self.name = name
        self.reason = reason


class IndexingTimeout(SessionSearchError):
    """The run did not finish in time; it may still complete server-side."""

    def __init__(self, runner_name: str, timeout_s: float, last_status: Optional[str] = None) -> None:
        super().__init__(f"Indexer {runner_name} did not finish within {timeout_s:g}s (last status: {last_status})")
        self.runner_name = runner_name
        self.timeout_s = timeout_s
        self.last_status = last_status


class IndexingFailed(SessionSearchError):
    def __init__(self, runner_name: str, last_error: Optional[str]) -> None:
        super().__init__(f"Indexer {runner_name} failed: {last_error or 'unknown error'}")
        self.runner_name = runner_name
        self.last_error = last_error


class IndexingCancelled(SessionSearchError):
    def __init__(self, runner_name: str) -> None:
        super().__init__(f"Waiting for indexer {runner_name} was cancelled")
        self.runner_name = runner_name


class RetrievalFailure(SessionSearchError):
    def __init__(self, index_name: str, reason: str) -> None:
        super().__init__(f"Query against {index_name} failed: {reason}")
        self.index_name = index_name
        self.reason = reason


class CleanupFailure(SessionSearchError):
    def __init__(self, report: "CleanupReport") -> None:
        failed = ", ".join(f"{s.resource}:{s.name}" for s in report.failures) or "unknown"
        super().__init__(f"Cleanup of session {report.session_id!r} incomplete ({failed})")
        self.report = report


class SessionBusy(SessionSearchError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id!r} is already active")
        self.session_id = session_id
