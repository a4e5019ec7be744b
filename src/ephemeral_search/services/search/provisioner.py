from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from src.ephemeral_search.domain.common import ResourceNameSet
from src.ephemeral_search.domain.errors import ProvisionFailure, SearchServiceError
from src.ephemeral_search.settings import ChunkingDefaults
from .client import Collection, SearchClient
from .definitions import (
    EmbeddingTarget,
    VECTOR_FIELD,
    data_source_definition,
    index_definition,
    indexer_definition,
    skillset_definition,
)

logger = logging.getLogger(__name__)


class PipelineProvisioner:
    """Create-or-replace the connector, index, skillset and indexer of a session.

    Every step is a PUT, so provisioning the same session twice (e.g. a retry
    after a partial failure) converges on the same definitions.
    """

    def __init__(
        self,
        search: SearchClient,
        *,
        container: str,
        connection_string: str,
        embedding: EmbeddingTarget,
        chunking: Optional[ChunkingDefaults] = None,
    ) -> None:
        self._search = search
        self._container = container
        self._connection_string = connection_string
        self._embedding = embedding
        self._chunking = chunking or ChunkingDefaults()

    async def provision(self, names: ResourceNameSet, target_index_name: Optional[str] = None) -> None:
        if target_index_name and target_index_name != names.index_name:
            names = names.model_copy(update={"index_name": target_index_name})

        await self.ensure_data_source(names)
        await self.ensure_index(names)
        await self.ensure_skillset(names)
        await self.ensure_indexer(names)
        logger.info(
            "Provisioned session pipeline ds=%s idx=%s ss=%s idxr=%s",
            names.connector_name, names.index_name, names.pipeline_name, names.runner_name,
        )

    async def ensure_data_source(self, names: ResourceNameSet) -> None:
        body = data_source_definition(
            names, container=self._container, connection_string=self._connection_string
        )
        await self._put("datasources", "connector", names.connector_name, body)

    async def ensure_index(self, names: ResourceNameSet) -> None:
        await self._put("indexes", "index", names.index_name, index_definition(names, self._embedding))
        await self.verify_index_dimensions(names.index_name)

    async def ensure_skillset(self, names: ResourceNameSet) -> None:
        body = skillset_definition(names, self._embedding, self._chunking)
        await self._put("skillsets", "pipeline", names.pipeline_name, body)

    async def ensure_indexer(self, names: ResourceNameSet) -> None:
        await self._put("indexers", "runner", names.runner_name, indexer_definition(names))

    async def verify_index_dimensions(self, index_name: str) -> None:
        """Read the stored index back; a vector size other than the model's is fatal."""
        try:
            stored = await self._search.get_resource("indexes", index_name)
        except SearchServiceError as e:
            raise ProvisionFailure("index", index_name, e.message) from e
        except httpx.HTTPError as e:
            raise ProvisionFailure("index", index_name, str(e)) from e
        field = next((f for f in stored.get("fields", []) if f.get("name") == VECTOR_FIELD), None)
        actual = field.get("dimensions") if field else None
        if actual != self._embedding.dimensions:
            raise ProvisionFailure(
                "index",
                index_name,
                f"vector field {VECTOR_FIELD} has {actual} dimensions, "
                f"embedding model {self._embedding.model_name} produces {self._embedding.dimensions}",
            )

    async def _put(self, collection: Collection, resource: str, name: str, body: Dict[str, Any]) -> None:
        try:
            await self._search.put_resource(collection, name, body)
        except SearchServiceError as e:
            raise ProvisionFailure(resource, name, e.message) from e
        except httpx.HTTPError as e:
            raise ProvisionFailure(resource, name, str(e)) from e
        logger.debug("PUT %s/%s ok", collection, name)
