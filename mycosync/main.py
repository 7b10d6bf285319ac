from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .core.config import settings
from .core.log import configure_logging

from .api.routes import router as api_router
import mycosync.api.routes as routes_module

from .domain.interfaces import RemoteStore
from .drivers.firebase_auth import FirebaseIdentityProvider
from .drivers.firebase_store import FirebaseStore
from .services.engine import TelemetryEngine


logger = logging.getLogger(__name__)


identity = FirebaseIdentityProvider(
    settings.firebase_api_key, timeout=settings.request_timeout_seconds
)


def build_store() -> Optional[RemoteStore]:
    if not settings.firebase_database_url:
        # No backend configured: the engine falls back to the simulated source
        return None
    return FirebaseStore(
        settings.firebase_database_url,
        token_provider=identity.id_token,
        timeout=settings.request_timeout_seconds,
    )


# --- Singletons ---
store = build_store()
engine = TelemetryEngine(store=store, identity=identity)


def get_engine() -> TelemetryEngine:
    return engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting %s (remote=%s)", settings.app_name, bool(store))

    await engine.start()

    try:
        yield
    finally:
        await engine.stop()

        if store is not None:
            await store.close()
        await identity.aclose()

        logger.info("Shutdown complete")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# Make the dependency functions in routes resolve to the real ones
app.dependency_overrides[routes_module.get_engine] = get_engine

app.include_router(api_router, prefix="/api")
