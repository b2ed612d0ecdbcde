"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api import feed_router
from .config import Settings, settings
from .core.cache import FileStore, ResponseCache
from .core.http_client import AsyncHTTPClient, close_http_client, get_http_client
from .core.tasks import BackgroundTasks
from .services.article_fetcher import ArticleFetcher
from .services.listing_source import HatenaListingSource
from .services.pipeline import FeedPipeline, PipelineConfig
from .services.summarizer import AISummarizer
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def build_pipeline(settings: Settings, http_client: AsyncHTTPClient, tasks: BackgroundTasks) -> FeedPipeline:
    """Wire the pipeline from settings; cache backends are chosen here once."""
    store = None
    if settings.cache_dir:
        store = FileStore(
            settings.cache_dir,
            default_ttl=settings.cache_ttl,
            max_size_mb=settings.cache_max_size_mb,
            max_entries=settings.cache_max_entries,
        )

    response_cache = None
    if settings.edge_cache_enabled:
        response_cache = ResponseCache(max_entries=settings.edge_cache_max_entries)

    return FeedPipeline(
        config=PipelineConfig.from_settings(settings),
        listing_source=HatenaListingSource(http_client, settings.listing_base_url),
        tasks=tasks,
        store=store,
        response_cache=response_cache,
        article_fetcher=ArticleFetcher(
            http_client,
            settings.browser_rendering_account_id or "",
            settings.browser_rendering_api_token or "",
            max_body_length=settings.max_body_length,
        ),
        summarizer=AISummarizer(
            http_client,
            settings.google_ai_api_key or "",
            settings.summary_model,
            settings.gemini_api_endpoint,
        ),
        missing_summary_settings=settings.get_missing_summary_settings(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    setup_logging(settings.log_level)
    app.state.started_at = datetime.now(timezone.utc)
    app.state.tasks = BackgroundTasks()

    async with get_http_client() as http_client:
        app.state.pipeline = build_pipeline(settings, http_client, app.state.tasks)
        logger.info(
            "hinichi started (durable store: %s, edge cache: %s)",
            settings.cache_dir or "disabled",
            "enabled" if settings.edge_cache_enabled else "disabled",
        )
        missing = settings.get_missing_summary_settings()
        if missing:
            logger.warning("AI summaries unavailable, missing: %s", ", ".join(missing))

        yield

    # Shutdown: let pending cache writes finish before the session goes away
    await app.state.tasks.drain()
    await close_http_client()


app = FastAPI(
    title="hinichi",
    description="Daily Hatena Bookmark hotentry feeds with AI summaries",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Invalid path or query parameters are a client error, not 422."""
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/health/app")
async def health_app():
    """Application health info with version, start time and cache state."""
    started_at = getattr(app.state, "started_at", None)
    pipeline = getattr(app.state, "pipeline", None)
    tasks = getattr(app.state, "tasks", None)
    info = {
        "version": app.version,
        "started_at": started_at.isoformat() if started_at else None,
        "uptime_seconds": (datetime.now(timezone.utc) - started_at).total_seconds() if started_at else None,
        "pending_cache_writes": len(tasks) if tasks is not None else 0,
    }
    if pipeline is not None and pipeline.response_cache is not None:
        info["edge_cache_entries"] = len(pipeline.response_cache)
    if pipeline is not None and pipeline.store is not None:
        info["durable_store"] = await pipeline.store.get_stats()
    return info


# Registered after /health so the category route does not shadow it
app.include_router(feed_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "hinichi.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.development,
    )
