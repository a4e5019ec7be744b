from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx

from src.ephemeral_search.domain.common import RunStatus
from src.ephemeral_search.domain.errors import (
    IndexingCancelled,
    IndexingFailed,
    IndexingTimeout,
    SearchServiceError,
)
from src.ephemeral_search.domain.sessions import PipelineRun
from src.ephemeral_search.settings import IndexWaitDefaults
from .client import SearchClient

logger = logging.getLogger(__name__)

_LAST_RESULT_STATUS: Dict[str, RunStatus] = {
    "success": "success",
    "inProgress": "running",
    "transientFailure": "transientFailure",
    "reset": "queued",
}

# Allowed drift between this host and the service when comparing run start times
CLOCK_SKEW = timedelta(seconds=1)

_TIMESTAMP = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})?$"
)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Service timestamps carry up to seven fractional digits; None if unparseable."""
    if not value:
        return None
    m = _TIMESTAMP.match(str(value).strip())
    if m is None:
        return None
    frac = (m.group("frac") or "0")[:6].ljust(6, "0")
    tz = m.group("tz") or "Z"
    offset = "+00:00" if tz == "Z" else tz
    try:
        return datetime.fromisoformat(f"{m.group('base')}.{frac}{offset}")
    except ValueError:
        return None


def parse_run_status(
    runner_name: str, data: Dict[str, Any], *, not_before: Optional[datetime] = None
) -> PipelineRun:
    """Map an indexer status payload onto the session run state.

    A last result that started before `not_before` belongs to an earlier run and
    is treated as if the triggered run had not reported yet.
    """
    last = data.get("lastResult") or {}
    if last and not_before is not None:
        started = parse_timestamp(last.get("startTime"))
        if started is not None and started < not_before:
            last = {}
    errors = last.get("errors") or []
    last_error = last.get("errorMessage") or "; ".join(
        str(e.get("errorMessage") or e.get("message")) for e in errors[:3]
    ) or None

    if data.get("status") == "error":
        status: RunStatus = "error"
    elif not last:
        status = "queued"
    else:
        status = _LAST_RESULT_STATUS.get(str(last.get("status")), "running")

    return PipelineRun(
        runner_name=runner_name,
        status=status,
        last_error=last_error,
        items_processed=int(last.get("itemsProcessed") or 0),
        items_failed=int(last.get("itemsFailed") or 0),
    )


class IndexRunWaiter:
    """Trigger the session indexer once and poll until it settles or the deadline passes.

    `transientFailure` keeps polling while time remains; if it is still the last
    status at the deadline the run counts as failed rather than timed out.
    """

    def __init__(self, search: SearchClient, defaults: Optional[IndexWaitDefaults] = None) -> None:
        self._search = search
        self._defaults = defaults or IndexWaitDefaults()

    async def run_and_wait(
        self,
        runner_name: str,
        *,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PipelineRun:
        timeout = self._defaults.timeout_s if timeout is None else timeout
        poll_interval = self._defaults.poll_interval_s if poll_interval is None else poll_interval

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        not_before = datetime.now(timezone.utc) - CLOCK_SKEW
        await self._trigger(runner_name)

        last: Optional[PipelineRun] = None
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise IndexingCancelled(runner_name)

            run = await self._poll(runner_name, not_before)
            if run is not None:
                if last is None or run.status != last.status:
                    logger.info("Indexer %s status: %s", runner_name, run.status)
                last = run
                if run.status == "success":
                    return run
                if run.status == "error":
                    raise IndexingFailed(runner_name, run.last_error)

            remaining = deadline - loop.time()
            if remaining <= 0:
                if last is not None and last.status == "transientFailure":
                    raise IndexingFailed(runner_name, last.last_error or "transientFailure persisted past deadline")
                raise IndexingTimeout(runner_name, timeout, last.status if last else None)
            await self._sleep(min(poll_interval, remaining), cancel_event)

    async def _trigger(self, runner_name: str) -> None:
        try:
            await self._search.run_indexer(runner_name)
        except SearchServiceError as e:
            raise IndexingFailed(runner_name, e.message) from e
        except httpx.HTTPError as e:
            raise IndexingFailed(runner_name, str(e)) from e

    async def _poll(self, runner_name: str, not_before: datetime) -> Optional[PipelineRun]:
        try:
            data = await self._search.get_indexer_status(runner_name)
        except SearchServiceError as e:
            raise IndexingFailed(runner_name, e.message) from e
        except httpx.TransportError as e:
            # Network blips are retried until the deadline
            logger.warning("Indexer %s status poll failed: %s", runner_name, e)
            return None
        return parse_run_status(runner_name, data, not_before=not_before)

    @staticmethod
    async def _sleep(delay: float, cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
