"""Tests for best-effort teardown of a session's resources."""

from __future__ import annotations

import pytest

from src.ephemeral_search.services.naming import derive_names
from src.ephemeral_search.services.search.provisioner import PipelineProvisioner
from src.ephemeral_search.services.sessions.reaper import SessionReaper
from tests.common.fakes import CONTAINER_NAME, EMBEDDING, FakeContainerClient, FakeSearchService

SESSION = "conv-cleanup"


async def _provisioned() -> tuple[FakeSearchService, FakeContainerClient]:
    search = FakeSearchService()
    names = derive_names(SESSION)
    await PipelineProvisioner(
        search.client(), container=CONTAINER_NAME, connection_string="x", embedding=EMBEDDING
    ).provision(names)

    container = FakeContainerClient()
    container.blobs = {
        f"{names.blob_prefix}a.pdf": b"a",
        f"{names.blob_prefix}b.pdf": b"b",
        names.blob_prefix.rstrip("/"): b"",
        "runs/other-session/keep.pdf": b"keep",
    }
    return search, container


@pytest.mark.asyncio
class TestSessionReaper:
    async def test_deletes_everything_in_order(self) -> None:
        search, container = await _provisioned()
        names = derive_names(SESSION)

        report = await SessionReaper(search.client(), container).cleanup(SESSION, names)  # type: ignore[arg-type]

        assert report.ok
        assert report.blobs_deleted == 2
        assert all(not v for v in search.resources.values())
        assert list(container.blobs) == ["runs/other-session/keep.pdf"]
        deletes = [p.split("/")[1] for m, p in search.requests if m == "DELETE"]
        assert deletes == ["indexers", "skillsets", "indexes", "datasources"]

    async def test_failed_step_does_not_stop_the_rest(self) -> None:
        search, container = await _provisioned()
        names = derive_names(SESSION)
        search.fail_deletes.add(("skillsets", names.pipeline_name))

        report = await SessionReaper(search.client(), container).cleanup(SESSION, names)  # type: ignore[arg-type]

        assert not report.ok
        assert [(s.resource, s.name) for s in report.failures] == [("pipeline", names.pipeline_name)]
        assert names.index_name not in search.resources["indexes"]
        assert names.connector_name not in search.resources["datasources"]
        assert names.runner_name not in search.resources["indexers"]
        assert report.blobs_deleted == 2

    async def test_missing_resources_count_as_deleted(self) -> None:
        search = FakeSearchService()
        container = FakeContainerClient()

        report = await SessionReaper(search.client(), container).cleanup(  # type: ignore[arg-type]
            "never-prepared", derive_names("never-prepared")
        )

        assert report.ok
        assert report.blobs_deleted == 0

    async def test_cleanup_twice_is_harmless(self) -> None:
        search, container = await _provisioned()
        names = derive_names(SESSION)
        reaper = SessionReaper(search.client(), container)  # type: ignore[arg-type]

        await reaper.cleanup(SESSION, names)
        second = await reaper.cleanup(SESSION, names)

        assert second.ok
        assert second.blobs_deleted == 0

    async def test_flags_keep_index_connector_and_blobs(self) -> None:
        search, container = await _provisioned()
        names = derive_names(SESSION)

        report = await SessionReaper(search.client(), container).cleanup(  # type: ignore[arg-type]
            SESSION, names, delete_index=False, delete_connector=False, delete_blobs=False
        )

        assert report.ok
        assert names.index_name in search.resources["indexes"]
        assert names.connector_name in search.resources["datasources"]
        assert names.runner_name not in search.resources["indexers"]
        assert names.pipeline_name not in search.resources["skillsets"]
        assert len(container.blobs) == 4

    async def test_failed_blob_delete_is_reported(self) -> None:
        search, container = await _provisioned()
        names = derive_names(SESSION)
        container.fail_deletes.add(f"{names.blob_prefix}a.pdf")

        report = await SessionReaper(search.client(), container).cleanup(SESSION, names)  # type: ignore[arg-type]

        assert [s.name for s in report.failures] == [f"{names.blob_prefix}a.pdf"]
        assert report.blobs_deleted == 1
        assert f"{names.blob_prefix}b.pdf" not in container.blobs

    async def test_interrupted_listing_still_deletes_what_was_seen(self) -> None:
        search, container = await _provisioned()
        names = derive_names(SESSION)
        container.fail_listing = True

        report = await SessionReaper(search.client(), container).cleanup(SESSION, names)  # type: ignore[arg-type]

        assert not report.ok
        assert [s.resource for s in report.failures] == ["blob"]
        assert report.blobs_deleted == 2
        assert list(container.blobs) == ["runs/other-session/keep.pdf"]

    async def test_missing_container_is_reported(self) -> None:
        search, _ = await _provisioned()
        report = await SessionReaper(search.client(), None).cleanup(SESSION, derive_names(SESSION))

        assert [s.resource for s in report.failures] == ["blob"]
        assert not search.resources["indexes"]
