from __future__ import annotations

import logging
from typing import List, Optional

from azure.core.exceptions import ResourceNotFoundError
from azure.storage.blob.aio import ContainerClient

from src.ephemeral_search.domain.common import ResourceNameSet
from src.ephemeral_search.domain.sessions import CleanupReport
from src.ephemeral_search.services.search.client import SearchClient
from .best_effort import best_effort

logger = logging.getLogger(__name__)


class SessionReaper:
    """Delete everything a session provisioned or uploaded.

    Runner and pipeline go first so nothing is left referencing a deleted
    index or data source. Every deletion is attempted regardless of how the
    previous ones went; "not found" counts as deleted.
    """

    def __init__(self, search: SearchClient, container: Optional[ContainerClient]) -> None:
        self._search = search
        self._container = container

    async def cleanup(
        self,
        session_id: str,
        names: ResourceNameSet,
        *,
        delete_index: bool = True,
        delete_connector: bool = True,
        delete_blobs: bool = True,
    ) -> CleanupReport:
        report = CleanupReport(session_id=session_id)

        await best_effort(report, "runner", names.runner_name,
                          lambda: self._search.delete_resource("indexers", names.runner_name))
        await best_effort(report, "pipeline", names.pipeline_name,
                          lambda: self._search.delete_resource("skillsets", names.pipeline_name))
        if delete_index:
            await best_effort(report, "index", names.index_name,
                              lambda: self._search.delete_resource("indexes", names.index_name))
        if delete_connector:
            await best_effort(report, "connector", names.connector_name,
                              lambda: self._search.delete_resource("datasources", names.connector_name))
        if delete_blobs:
            await self._delete_blobs(report, names.blob_prefix)

        if report.ok:
            logger.info("Cleaned up session %s (%d blob(s))", session_id, report.blobs_deleted)
        else:
            logger.warning(
                "Cleanup of session %s left %d failed step(s): %s",
                session_id, len(report.failures), ", ".join(f"{s.resource}:{s.name}" for s in report.failures),
            )
        return report

    async def _delete_blobs(self, report: CleanupReport, prefix: str) -> None:
        container = self._container
        if container is None:
            async def _missing() -> None:
                raise RuntimeError("blob storage is not configured")
            await best_effort(report, "blob", prefix, _missing)
            return

        # The prefix may hold more than was tracked (partial uploads), so list it
        blob_names: List[str] = []

        async def _list() -> None:
            async for props in container.list_blobs(name_starts_with=prefix):
                blob_names.append(props.name)

        # A listing that fails midway still yields the names seen so far
        await best_effort(report, "blob", prefix, _list, record_success=False)

        for blob_name in blob_names:
            if await best_effort(report, "blob", blob_name, lambda n=blob_name: self._delete_blob(container, n)):
                report.blobs_deleted += 1

        marker = prefix.rstrip("/")
        if marker and marker not in blob_names:
            await best_effort(report, "marker", marker, lambda: self._delete_blob(container, marker))

    @staticmethod
    async def _delete_blob(container: ContainerClient, blob_name: str) -> None:
        try:
            await container.delete_blob(blob_name)
        except ResourceNotFoundError:
            pass
