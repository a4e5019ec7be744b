"""Session lifecycle: ingest -> provision -> index -> query* -> cleanup.

`session()` / `with_session()` own the whole lifecycle in one call chain, so
cleanup runs exactly once on every exit path and never overlaps a prepare or
query of the same session. The three caller-facing calls
(`prepare_and_index_session`, `vector_search_top_k`,
`cleanup_session_resources`) validate their payloads before touching any
cloud resource. A session that is being prepared, cleaned up or owned by
`session()` rejects every other prepare, query or cleanup with `SessionBusy`;
cleanup is also refused while queries for that session are in flight.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    TypeVar,
    Union,
)

from src.ephemeral_search.api.v1.sessions.schemas import (
    CleanupSessionRequest,
    PrepareSessionRequest,
    VectorSearchRequest,
)
from src.ephemeral_search.domain.common import ResourceNameSet
from src.ephemeral_search.domain.errors import CleanupFailure, SessionBusy
from src.ephemeral_search.domain.sessions import CleanupReport, RetrievalHit
from src.ephemeral_search.services.naming import derive_names
from src.ephemeral_search.services.search.indexer_wait import IndexRunWaiter
from src.ephemeral_search.services.search.provisioner import PipelineProvisioner
from src.ephemeral_search.services.search.retrieval import RetrievalClient
from src.ephemeral_search.services.storage.blob_ingest import BlobIngestor
from src.ephemeral_search.settings import IndexWaitDefaults
from .reaper import SessionReaper

logger = logging.getLogger(__name__)

T = TypeVar("T")
AskFn = Callable[..., Awaitable[List[RetrievalHit]]]


@dataclass(frozen=True)
class SessionHandle:
    """A prepared session; `ask` is the top-k query bound to its index."""
    session_id: str
    names: ResourceNameSet
    ask: AskFn


class SessionOrchestrator:
    def __init__(
        self,
        *,
        ingestor: BlobIngestor,
        provisioner: PipelineProvisioner,
        waiter: IndexRunWaiter,
        retrieval: RetrievalClient,
        reaper: SessionReaper,
        prefix_root: str = "runs",
        default_k: int = 3,
        index_wait: Optional[IndexWaitDefaults] = None,
    ) -> None:
        self._ingestor = ingestor
        self._provisioner = provisioner
        self._waiter = waiter
        self._retrieval = retrieval
        self._reaper = reaper
        self._prefix_root = prefix_root
        self._default_k = default_k
        self._index_wait = index_wait or IndexWaitDefaults()
        self._active: Set[str] = set()
        # session id -> queries in flight through the caller surface
        self._readers: Dict[str, int] = {}

    def names_for(self, session_id: str) -> ResourceNameSet:
        return derive_names(session_id, prefix_root=self._prefix_root)

    @contextmanager
    def _claim(self, session_id: str) -> Iterator[None]:
        """Exclusive use of a session id for the duration of the block."""
        if session_id in self._active or self._readers.get(session_id):
            raise SessionBusy(session_id)
        self._active.add(session_id)
        try:
            yield
        finally:
            self._active.discard(session_id)

    @contextmanager
    def _reading(self, session_id: str) -> Iterator[None]:
        if session_id in self._active:
            raise SessionBusy(session_id)
        self._readers[session_id] = self._readers.get(session_id, 0) + 1
        try:
            yield
        finally:
            remaining = self._readers[session_id] - 1
            if remaining:
                self._readers[session_id] = remaining
            else:
                del self._readers[session_id]

    # ---------------- Lifecycle steps ---------------- #

    async def prepare(
        self,
        session_id: str,
        documents: Sequence[str],
        *,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ResourceNameSet:
        """Upload, provision and index. Does not clean up on failure; callers do."""
        names = self.names_for(session_id)
        logger.debug("Session %s resource names: %s", session_id, names.model_dump())

        await self._ingestor.ingest(names, documents)
        await self._provisioner.provision(names, names.index_name)
        await self._waiter.run_and_wait(
            names.runner_name,
            timeout=self._index_wait.timeout_s if timeout is None else timeout,
            poll_interval=self._index_wait.poll_interval_s if poll_interval is None else poll_interval,
            cancel_event=cancel_event,
        )
        logger.info("Session %s ready (%d document(s))", session_id, len(documents))
        return names

    async def query(self, session_id: str, question: str, k: Optional[int] = None) -> List[RetrievalHit]:
        names = self.names_for(session_id)
        return await self._retrieval.top_k(names.index_name, question, self._default_k if k is None else k)

    async def cleanup(
        self,
        session_id: str,
        *,
        delete_index: bool = True,
        delete_connector: bool = True,
        delete_blobs: bool = True,
    ) -> CleanupReport:
        return await self._reaper.cleanup(
            session_id,
            self.names_for(session_id),
            delete_index=delete_index,
            delete_connector=delete_connector,
            delete_blobs=delete_blobs,
        )

    # ---------------- Scoped lifecycle ---------------- #

    @asynccontextmanager
    async def session(
        self,
        session_id: str,
        documents: Sequence[str],
        *,
        strict_cleanup: bool = False,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[SessionHandle]:
        with self._claim(session_id):
            try:
                names = await self.prepare(
                    session_id,
                    documents,
                    timeout=timeout,
                    poll_interval=poll_interval,
                    cancel_event=cancel_event,
                )

                async def ask(question: str, k: Optional[int] = None) -> List[RetrievalHit]:
                    return await self._retrieval.top_k(
                        names.index_name, question, self._default_k if k is None else k
                    )

                yield SessionHandle(session_id=session_id, names=names, ask=ask)
            except BaseException:
                # The original error wins; cleanup problems are only logged
                await self.cleanup(session_id)
                raise
            report = await self.cleanup(session_id)
            if strict_cleanup and not report.ok:
                raise CleanupFailure(report)

    async def with_session(
        self,
        session_id: str,
        documents: Sequence[str],
        body: Callable[[AskFn], Awaitable[T]],
        **options: Any,
    ) -> T:
        async with self.session(session_id, documents, **options) as handle:
            return await body(handle.ask)

    # ---------------- Caller-facing surface ---------------- #

    async def prepare_and_index_session(
        self,
        payload: Union[PrepareSessionRequest, Mapping[str, Any]],
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ResourceNameSet:
        req = payload if isinstance(payload, PrepareSessionRequest) else PrepareSessionRequest.model_validate(payload)
        with self._claim(req.session_id):
            try:
                return await self.prepare(req.session_id, req.urls, cancel_event=cancel_event)
            except BaseException:
                await self.cleanup(req.session_id)
                raise

    async def vector_search_top_k(
        self, payload: Union[VectorSearchRequest, Mapping[str, Any]]
    ) -> List[RetrievalHit]:
        req = payload if isinstance(payload, VectorSearchRequest) else VectorSearchRequest.model_validate(payload)
        with self._reading(req.session_id):
            return await self.query(req.session_id, req.text, req.k)

    async def cleanup_session_resources(
        self, payload: Union[CleanupSessionRequest, Mapping[str, Any]]
    ) -> CleanupReport:
        req = payload if isinstance(payload, CleanupSessionRequest) else CleanupSessionRequest.model_validate(payload)
        with self._claim(req.session_id):
            return await self.cleanup(
                req.session_id,
                delete_index=req.delete_index,
                delete_connector=req.delete_data_source,
                delete_blobs=req.delete_blobs,
            )
