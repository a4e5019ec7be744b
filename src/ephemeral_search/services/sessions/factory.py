from __future__ import annotations

import logging
from typing import Optional

import httpx
from azure.storage.blob.aio import ContainerClient

from src.ephemeral_search.services.checklist.document_checklist import DocumentChecklist
from src.ephemeral_search.services.llm.oai_chat import ChatCompleter
from src.ephemeral_search.services.search.client import SearchClient
from src.ephemeral_search.services.search.definitions import EmbeddingTarget
from src.ephemeral_search.services.search.indexer_wait import IndexRunWaiter
from src.ephemeral_search.services.search.provisioner import PipelineProvisioner
from src.ephemeral_search.services.search.retrieval import RetrievalClient
from src.ephemeral_search.services.storage.blob_ingest import BlobIngestor
from src.ephemeral_search.services.storage.client import container_client_from_settings
from src.ephemeral_search.services.tools.registry import ToolRegistry
from src.ephemeral_search.settings import Settings
from .orchestrator import SessionOrchestrator
from .reaper import SessionReaper

logger = logging.getLogger(__name__)


class SessionServices:
    """Owns every network client of the process and the components built on them."""

    def __init__(
        self,
        *,
        settings: Settings,
        search: SearchClient,
        container: ContainerClient,
        fetch_http: httpx.AsyncClient,
        chat: Optional[ChatCompleter] = None,
    ) -> None:
        self.settings = settings
        self.search = search
        self.container = container
        self.fetch_http = fetch_http
        self.chat = chat

        self.orchestrator = SessionOrchestrator(
            ingestor=BlobIngestor(
                container,
                fetch_http,
                max_document_bytes=settings.ingest_max_document_bytes,
                allowed_local_roots=settings.ingest_allowed_local_roots,
            ),
            provisioner=PipelineProvisioner(
                search,
                container=settings.blob_container,
                connection_string=settings.storage_connection_string or "",
                embedding=EmbeddingTarget.from_settings(settings),
                chunking=settings.chunking,
            ),
            waiter=IndexRunWaiter(search, settings.index_wait),
            retrieval=RetrievalClient(search),
            reaper=SessionReaper(search, container),
            prefix_root=settings.blob_prefix_root,
            default_k=settings.retrieval_default_k,
            index_wait=settings.index_wait,
        )
        self.checklist: Optional[DocumentChecklist] = (
            DocumentChecklist(self.orchestrator, chat) if chat is not None else None
        )
        self.tools: Optional[ToolRegistry] = ToolRegistry(self.checklist) if self.checklist is not None else None

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionServices":
        search = SearchClient.from_settings(settings)
        container = container_client_from_settings(settings)
        fetch_http = httpx.AsyncClient(timeout=settings.ingest_fetch_timeout_s, follow_redirects=True)
        return cls(
            settings=settings,
            search=search,
            container=container,
            fetch_http=fetch_http,
            chat=ChatCompleter.from_settings(settings),
        )

    async def aclose(self) -> None:
        await self.search.aclose()
        await self.fetch_http.aclose()
        await self.container.close()
        if self.chat is not None:
            await self.chat.aclose()
        logger.debug("Session services closed")
