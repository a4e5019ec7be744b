from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from dotenv import load_dotenv
from fastapi import FastAPI

from src.ephemeral_search.api.health.health import router as health_router
from src.ephemeral_search.api.v1.sessions.sessions import router as sessions_router
from src.ephemeral_search.services.sessions.factory import SessionServices
from src.ephemeral_search.settings import Settings, get_settings


def create_app(services: Optional[SessionServices] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the app; pass `services` to run against pre-built (e.g. fake) clients."""
    settings = settings or (services.settings if services is not None else get_settings())
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = services is None
        app.state.services = services if services is not None else SessionServices.from_settings(settings)
        try:
            yield
        finally:
            if owned:
                await app.state.services.aclose()

    app = FastAPI(title="ephemeral-search", version="0.1.0", lifespan=lifespan)
    app.include_router(health_router)
    app.include_router(sessions_router)
    return app


load_dotenv()
app = create_app()

# If you prefer running directly: `uvicorn src.ephemeral_search.main:app --reload`
