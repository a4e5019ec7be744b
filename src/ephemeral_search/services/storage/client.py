from __future__ import annotations

import logging
from urllib.parse import urlparse

from azure.core.exceptions import ResourceExistsError
from azure.storage.blob.aio import ContainerClient

from src.ephemeral_search.settings import Settings

logger = logging.getLogger(__name__)


def container_client_from_settings(settings: Settings) -> ContainerClient:
    if not settings.storage_connection_string:
        raise RuntimeError("AZURE_STORAGE_CONNECTION_STRING is not configured")
    return ContainerClient.from_connection_string(
        settings.storage_connection_string, container_name=settings.blob_container
    )


async def ensure_container(container: ContainerClient) -> None:
    """Create the container if absent; losing a creation race is fine."""
    try:
        await container.create_container()
        logger.info("Created blob container %s", container.container_name)
    except ResourceExistsError:
        pass


def account_host(container: ContainerClient) -> str:
    return urlparse(container.url).netloc.lower()


def blob_path(container: ContainerClient, blob_name: str) -> str:
    return f"{container.container_name}/{blob_name}"
