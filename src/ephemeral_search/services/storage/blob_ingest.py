"""Session document ingest into blob storage.

Resolve each source (remote URL, same-account blob URL, or a local path or
file:// URI under an allowed root) to bytes or a server-side copy, then place
it under the session's blob prefix. One bad document aborts the whole call.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import List, Optional, Sequence, Set, Union
from urllib.parse import unquote, urlparse

import httpx
from azure.core.exceptions import AzureError
from azure.storage.blob import ContentSettings
from azure.storage.blob.aio import ContainerClient

from src.ephemeral_search.domain.common import ResourceNameSet
from src.ephemeral_search.domain.errors import IngestFailure
from src.ephemeral_search.domain.sessions import UploadedBlob
from .client import account_host, blob_path, ensure_container

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
MAX_FILE_NAME_LEN = 120


def source_file_name(source: str) -> str:
    """Unquoted basename of a URL path or filesystem path ('' if none)."""
    parsed = urlparse(source)
    raw = parsed.path if parsed.scheme and len(parsed.scheme) > 1 else source
    name = unquote(raw.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]).strip()
    return name[:MAX_FILE_NAME_LEN]


def guess_content_type(name: str, header: Optional[str] = None) -> str:
    if header:
        return header
    return mimetypes.guess_type(name)[0] or DEFAULT_CONTENT_TYPE


def local_path(source: str) -> Optional[Path]:
    parsed = urlparse(source)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    # "" for plain paths, one letter for Windows drives
    if len(parsed.scheme) <= 1:
        return Path(source).expanduser()
    return None


class BlobIngestor:
    def __init__(
        self,
        container: ContainerClient,
        http: httpx.AsyncClient,
        *,
        max_document_bytes: int = 64 * 1024 * 1024,
        copy_poll_interval: float = 0.5,
        copy_timeout: float = 60.0,
        allowed_local_roots: Sequence[Union[str, Path]] = (),
    ) -> None:
        self._container = container
        self._http = http
        self._max_bytes = max_document_bytes
        # Empty: local paths are refused
        self._local_roots = tuple(Path(r).expanduser().resolve() for r in allowed_local_roots)
        self._copy_poll_interval = copy_poll_interval
        self._copy_timeout = copy_timeout

    async def ingest(self, names: ResourceNameSet, documents: Sequence[str]) -> List[UploadedBlob]:
        await ensure_container(self._container)

        used: Set[str] = set()
        uploaded: List[UploadedBlob] = []
        for ordinal, source in enumerate(documents, start=1):
            file_name = self._unique_name(source_file_name(source), ordinal, used)
            blob_name = f"{names.blob_prefix}{file_name}"
            try:
                copied = await self._ingest_one(source, blob_name, file_name)
            except IngestFailure:
                raise
            except (httpx.HTTPError, AzureError, OSError) as e:
                logger.error("Ingest of %s failed: %s", source, e)
                raise IngestFailure(source, str(e)) from e
            uploaded.append(
                UploadedBlob(
                    source=source,
                    blob_name=blob_name,
                    blob_path=blob_path(self._container, blob_name),
                    copied=copied,
                )
            )
            logger.debug("Ingested %s -> %s (copied=%s)", source, blob_name, copied)

        logger.info("Ingested %d document(s) under %s", len(uploaded), names.blob_prefix)
        return uploaded

    @staticmethod
    def _unique_name(name: str, ordinal: int, used: Set[str]) -> str:
        if not name:
            name = f"document-{ordinal}"
        elif name in used:
            name = f"{ordinal}-{name}"
        used.add(name)
        return name

    async def _ingest_one(self, source: str, blob_name: str, file_name: str) -> bool:
        parsed = urlparse(source)
        if parsed.scheme in ("http", "https"):
            if parsed.netloc.lower() == account_host(self._container):
                await self._copy(source, blob_name)
                return True
            data, content_type = await self._fetch(source)
        else:
            path = local_path(source)
            if path is None:
                raise IngestFailure(source, f"unsupported scheme {parsed.scheme!r}")
            data, content_type = await self._read(source, path)

        blob = self._container.get_blob_client(blob_name)
        await blob.upload_blob(
            data,
            overwrite=True,
            content_settings=ContentSettings(content_type=guess_content_type(file_name, content_type)),
        )
        return False

    async def _fetch(self, url: str) -> tuple[bytes, Optional[str]]:
        buf = bytearray()
        async with self._http.stream("GET", url) as resp:
            resp.raise_for_status()
            async for part in resp.aiter_bytes():
                buf.extend(part)
                if len(buf) > self._max_bytes:
                    raise IngestFailure(url, f"document exceeds {self._max_bytes} bytes")
            return bytes(buf), resp.headers.get("content-type")

    async def _read(self, source: str, path: Path) -> tuple[bytes, Optional[str]]:
        if not self._local_roots:
            raise IngestFailure(source, "local files are not enabled")
        data = await asyncio.to_thread(self._read_local, source, path)
        return data, None

    def _read_local(self, source: str, path: Path) -> bytes:
        resolved = path.resolve()
        if not any(resolved.is_relative_to(root) for root in self._local_roots):
            raise IngestFailure(source, "path is outside the allowed local roots")
        if not resolved.is_file():
            raise IngestFailure(source, f"no such file: {path}")
        if resolved.stat().st_size > self._max_bytes:
            raise IngestFailure(source, f"document exceeds {self._max_bytes} bytes")
        return resolved.read_bytes()

    async def _copy(self, url: str, blob_name: str) -> None:
        """Server-side copy within the account; waits briefly for pending copies."""
        blob = self._container.get_blob_client(blob_name)
        result = await blob.start_copy_from_url(url)
        status = result.get("copy_status")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._copy_timeout
        while status == "pending":
            if loop.time() >= deadline:
                raise IngestFailure(url, "server-side copy still pending")
            await asyncio.sleep(self._copy_poll_interval)
            props = await blob.get_blob_properties()
            status = props.copy.status
        if status != "success":
            raise IngestFailure(url, f"server-side copy ended with status {status}")
