from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from src.ephemeral_search.domain.common import ResourceKind
from src.ephemeral_search.domain.sessions import CleanupReport, CleanupStep

logger = logging.getLogger(__name__)


async def best_effort(
    report: CleanupReport,
    resource: ResourceKind,
    name: str,
    action: Callable[[], Awaitable[Any]],
    *,
    record_success: bool = True,
) -> bool:
    """Run one teardown step; record the outcome and never propagate its failure.

    Cancellation is the only thing that escapes.
    """
    try:
        await action()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning("Cleanup of %s %s failed: %s", resource, name, e)
        report.steps.append(CleanupStep(resource=resource, name=name, ok=False, error=str(e) or type(e).__name__))
        return False
    if record_success:
        report.steps.append(CleanupStep(resource=resource, name=name, ok=True))
    return True
