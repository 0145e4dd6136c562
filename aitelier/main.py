# @TASK P0-T0.3 - FastAPI app entrypoint

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from aitelier.config import get_settings
from aitelier.database import engine
from aitelier.errors import AitelierError
from aitelier.providers import ProviderError

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan: startup and shutdown events."""
    # Startup: create all database tables if they don't exist
    from aitelier.database import Base
    from aitelier import models  # noqa: F401 - Import models to register them with Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield
    # Shutdown: dispose the async engine connection pool
    await engine.dispose()


app = FastAPI(
    title="aitelier",
    description="Dataset curation, fine-tuning and blind evaluation for small teams",
    version="0.1.0",
    lifespan=lifespan,
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error mapping ---
@app.exception_handler(AitelierError)
async def aitelier_error_handler(request: Request, exc: AitelierError) -> JSONResponse:
    logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.reason)
    content = {"detail": exc.reason, "error": exc.kind}
    if getattr(exc, "ids", None):
        content["ids"] = exc.ids
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
    logger.error("%s %s -> provider error: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": exc.message, "error": "provider_error"})


# --- Router includes ---
from aitelier.api.evaluation import router as evaluation_router
from aitelier.api.examples import router as examples_router
from aitelier.api.splits import router as splits_router
from aitelier.api.training import router as training_router

app.include_router(examples_router, prefix="/api")
app.include_router(splits_router, prefix="/api")
app.include_router(training_router, prefix="/api")
app.include_router(evaluation_router, prefix="/api")


@app.get("/api/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns a simple status response to verify the API is running.
    """
    return {"status": "ok"}
