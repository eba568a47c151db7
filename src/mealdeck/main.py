"""FastAPI application entry point."""

import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from mealdeck.config import get_settings
from mealdeck.database import Base, async_engine
from mealdeck.logging_config import LoggingContext, configure_logging, get_logger
from mealdeck.routers import recipes_router, shopping_router

# Configure logging on module load
configure_logging()
logger = get_logger(__name__)
settings = get_settings()

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    logger.info("Starting Mealdeck API")

    # Create database tables if they don't exist
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")

    Path(settings.media_dir).mkdir(parents=True, exist_ok=True)
    if not settings.llm_enabled:
        logger.warning("No LLM API key configured; recipe import is disabled")

    yield

    logger.info("Shutting down Mealdeck API")
    await async_engine.dispose()


app = FastAPI(
    title="Mealdeck API",
    description="Recipe import and shopping-list normalization",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Tag every log line of a request with its id and write one access line."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
    started = time.perf_counter()

    with LoggingContext(request_id=request_id):
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        message = (
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({elapsed_ms:.1f} ms)"
        )
        if response.status_code >= 400:
            logger.error(message)
        else:
            logger.info(message)

    response.headers[REQUEST_ID_HEADER] = request_id
    return response


# Include routers
app.include_router(recipes_router)
app.include_router(shopping_router)

# Hero images: /media/recipes/{id}/thumb.webp and full.webp
app.mount("/media", StaticFiles(directory=settings.media_dir, check_dir=False), name="media")


@app.get("/health")
async def health_check() -> dict:
    """Basic health check endpoint."""
    return {"status": "ok", "service": "mealdeck-api"}


@app.get("/")
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": "Mealdeck API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
