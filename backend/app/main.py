import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from app.config import settings
from app.routers import meta_router
from app.background_tasks import CacheSweepTask
from app.services.cache import ResponseCache
from app.services.orchestrator import InsightsOrchestrator

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    # Startup: one cache per process, shared by every request
    cache = ResponseCache(max_entries=settings.cache_max_entries)
    app.state.cache = cache
    app.state.orchestrator = InsightsOrchestrator(
        cache, deadline=settings.meta_request_deadline_seconds
    )
    sweep_task = CacheSweepTask(cache, interval_seconds=settings.cache_sweep_interval_seconds)
    sweep_task.start()
    logger.info(f"Meta API {settings.meta_api_version}, cache capacity {cache.max_entries}")
    yield
    # Shutdown: Stop background tasks
    await sweep_task.stop()
    cache.clear()


app = FastAPI(
    title="Meta Ads Insights API",
    description="Meta ad entities with merged performance insights, cached under Graph API rate limits",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(meta_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "message": "Meta Ads Insights API",
        "version": "0.1.0"
    }


@app.get("/health")
async def health():
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True
    )
