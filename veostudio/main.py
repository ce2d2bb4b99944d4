import logging
import os
import time
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Query

from .logs import LogBuffer, install
from .pipeline import pipeline_router, project_router
from .pipeline.orchestrator import VideoGenerationService
from .pipeline.routes import get_service

load_dotenv()

logger = logging.getLogger(__name__)

log_buffer = install(LogBuffer())


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Worker starting up...")
    service = get_service()
    service.metrics.set_gauge("start_time", time.time())
    yield
    logger.info("Worker shutting down...")
    await service.transport.aclose()


app = FastAPI(title="veostudio", lifespan=lifespan)
app.include_router(pipeline_router)
app.include_router(project_router)


@app.get("/health")
def health_check(service: VideoGenerationService = Depends(get_service)):
    """Verify the worker is running and credentials are configured."""
    settings = service.settings
    credentials = service.projects.credentials_info() or {}
    return {
        "status": "ok",
        "api_key_set": bool(settings.api_key) or credentials.get("has_key", False),
        "cookies_set": credentials.get("has_cookies", False),
        "supabase_url_set": bool(settings.supabase_url),
    }


@app.get("/metrics")
def metrics_endpoint(service: VideoGenerationService = Depends(get_service)):
    """Return a snapshot of all worker metrics."""
    return service.metrics.get_snapshot()


@app.get("/logs")
def logs_endpoint(limit: int = Query(200, ge=1, le=1000)):
    """Most recent structured log entries."""
    entries = log_buffer.entries()
    return [e.model_dump() for e in entries[-limit:]]


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("httpx").setLevel(logging.WARNING)
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run("veostudio.main:app", host="0.0.0.0", port=port)
