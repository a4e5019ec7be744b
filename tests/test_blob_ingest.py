"""Tests for ingesting session documents into blob storage."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from src.ephemeral_search.domain.errors import IngestFailure
from src.ephemeral_search.services.naming import derive_names
from src.ephemeral_search.services.storage.blob_ingest import BlobIngestor, local_path, source_file_name
from tests.common.fakes import ACCOUNT_URL, CONTAINER_NAME, FakeContainerClient, document_server


def test_source_file_name() -> None:
    assert source_file_name("https://example.com/docs/Plan%20A.pdf?x=1") == "Plan A.pdf"
    assert source_file_name("https://example.com/") == ""
    assert source_file_name("/tmp/reports/q3.docx") == "q3.docx"
    assert source_file_name("C:\\docs\\memo.txt") == "memo.txt"


def test_local_path() -> None:
    assert local_path("file:///tmp/a%20b.txt") == Path("/tmp/a b.txt")
    assert local_path("/tmp/x.pdf") == Path("/tmp/x.pdf")
    assert local_path("https://example.com/x.pdf") is None


@pytest.mark.asyncio
class TestBlobIngestor:
    async def test_fetches_and_uploads_under_prefix(self) -> None:
        container = FakeContainerClient()
        http = document_server({"https://example.com/a.pdf": b"%PDF-1.4 a", "https://example.com/b.pdf": b"%PDF b"})
        ingestor = BlobIngestor(container, http)  # type: ignore[arg-type]
        names = derive_names("conv-1")

        uploaded = await ingestor.ingest(names, ["https://example.com/a.pdf", "https://example.com/b.pdf"])

        assert [u.blob_name for u in uploaded] == ["runs/conv-1/a.pdf", "runs/conv-1/b.pdf"]
        assert container.blobs["runs/conv-1/a.pdf"] == b"%PDF-1.4 a"
        assert container.content_types["runs/conv-1/a.pdf"] == "application/pdf"
        assert uploaded[0].blob_path == f"{CONTAINER_NAME}/runs/conv-1/a.pdf"
        assert not any(u.copied for u in uploaded)
        assert container.exists

    async def test_duplicate_and_missing_file_names(self) -> None:
        container = FakeContainerClient()
        http = document_server(
            {
                "https://one.example/report.pdf": b"1",
                "https://two.example/report.pdf": b"2",
                "https://three.example/": b"3",
            }
        )
        ingestor = BlobIngestor(container, http)  # type: ignore[arg-type]
        names = derive_names("dup")

        uploaded = await ingestor.ingest(
            names, ["https://one.example/report.pdf", "https://two.example/report.pdf", "https://three.example/"]
        )

        blob_names = [u.blob_name for u in uploaded]
        assert len(set(blob_names)) == 3
        assert blob_names[0] == "runs/dup/report.pdf"
        assert blob_names[1] == "runs/dup/2-report.pdf"
        assert all(n.startswith(names.blob_prefix) for n in blob_names)

    async def test_reads_local_files(self, tmp_path: Path) -> None:
        doc = tmp_path / "notes.txt"
        doc.write_bytes(b"hello")
        container = FakeContainerClient()
        ingestor = BlobIngestor(container, document_server({}), allowed_local_roots=[tmp_path])  # type: ignore[arg-type]

        uploaded = await ingestor.ingest(derive_names("local"), [str(doc), doc.as_uri()])

        assert container.blobs[uploaded[0].blob_name] == b"hello"
        assert container.blobs[uploaded[1].blob_name] == b"hello"
        assert container.content_types[uploaded[0].blob_name] == "text/plain"

    async def test_same_account_url_is_copied_server_side(self) -> None:
        container = FakeContainerClient()
        ingestor = BlobIngestor(container, document_server({}))  # type: ignore[arg-type]
        source = f"{ACCOUNT_URL}/uploads/contract.pdf"

        uploaded = await ingestor.ingest(derive_names("copy"), [source])

        assert uploaded[0].copied
        assert container.copied_from == {"runs/copy/contract.pdf": source}

    async def test_failed_copy_is_an_ingest_failure(self) -> None:
        container = FakeContainerClient()
        container.copy_status = "failed"
        ingestor = BlobIngestor(container, document_server({}))  # type: ignore[arg-type]

        with pytest.raises(IngestFailure):
            await ingestor.ingest(derive_names("copy"), [f"{ACCOUNT_URL}/uploads/contract.pdf"])

    async def test_unreachable_document_aborts(self) -> None:
        container = FakeContainerClient()
        http = document_server({"https://example.com/ok.pdf": b"ok"})
        ingestor = BlobIngestor(container, http)  # type: ignore[arg-type]

        with pytest.raises(IngestFailure) as exc_info:
            await ingestor.ingest(derive_names("s1"), ["https://example.com/ok.pdf", "https://example.com/missing.pdf"])

        assert exc_info.value.source == "https://example.com/missing.pdf"
        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    async def test_missing_local_file(self, tmp_path: Path) -> None:
        ingestor = BlobIngestor(
            FakeContainerClient(), document_server({}), allowed_local_roots=[tmp_path]
        )  # type: ignore[arg-type]
        with pytest.raises(IngestFailure, match="no such file"):
            await ingestor.ingest(derive_names("s2"), [str(tmp_path / "nope.pdf")])

    async def test_local_files_are_refused_by_default(self, tmp_path: Path) -> None:
        doc = tmp_path / ".env"
        doc.write_bytes(b"AZURE_SEARCH_API_KEY=secret")
        container = FakeContainerClient()
        ingestor = BlobIngestor(container, document_server({}))  # type: ignore[arg-type]

        for source in (str(doc), doc.as_uri()):
            with pytest.raises(IngestFailure, match="not enabled"):
                await ingestor.ingest(derive_names("s6"), [source])
        assert container.blobs == {}

    async def test_paths_outside_allowed_roots_are_refused(self, tmp_path: Path) -> None:
        allowed = tmp_path / "docs"
        allowed.mkdir()
        secret = tmp_path / "secret.txt"
        secret.write_bytes(b"secret")
        container = FakeContainerClient()
        ingestor = BlobIngestor(container, document_server({}), allowed_local_roots=[allowed])  # type: ignore[arg-type]

        for source in (str(secret), str(allowed / ".." / "secret.txt")):
            with pytest.raises(IngestFailure, match="outside the allowed local roots"):
                await ingestor.ingest(derive_names("s7"), [source])
        assert container.blobs == {}

    async def test_oversized_document(self) -> None:
        http = document_server({"https://example.com/big.bin": b"x" * 2048})
        ingestor = BlobIngestor(FakeContainerClient(), http, max_document_bytes=1024)  # type: ignore[arg-type]
        with pytest.raises(IngestFailure, match="exceeds"):
            await ingestor.ingest(derive_names("s3"), ["https://example.com/big.bin"])

    async def test_unsupported_scheme(self) -> None:
        ingestor = BlobIngestor(FakeContainerClient(), document_server({}))  # type: ignore[arg-type]
        with pytest.raises(IngestFailure, match="unsupported scheme"):
            await ingestor.ingest(derive_names("s4"), ["ftp://example.com/a.pdf"])

    async def test_existing_container_is_reused(self) -> None:
        container = FakeContainerClient()
        container.exists = True
        http = document_server({"https://example.com/a.pdf": b"a"})
        ingestor = BlobIngestor(container, http)  # type: ignore[arg-type]

        uploaded = await ingestor.ingest(derive_names("s5"), ["https://example.com/a.pdf"])
        assert len(uploaded) == 1
