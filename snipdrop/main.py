from contextlib import asynccontextmanager
import logging
from typing import Annotated

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from snipdrop.config import CDNConfig, get_config, settings
from snipdrop.core.errors import CDNError
from snipdrop.routers import reader, uploads
from snipdrop.services.scheduler import create_scheduler
from snipdrop.storage import LocalStorage, metadata_store
from snipdrop.templating import render_index

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Check configuration, connect to Redis and run the purge scheduler."""
    problems = settings.verify()
    if problems:
        for problem in problems:
            logger.error("Configuration: %s", problem)
        raise RuntimeError("Configuration is invalid")

    await metadata_store.ping()
    logger.info("Connected to Redis")

    scheduler = create_scheduler(settings, metadata_store, LocalStorage(settings.upload_root))
    scheduler.start()
    yield
    logger.info("Shutting down task scheduler...")
    scheduler.shutdown(wait=False)
    await metadata_store.close()


app = FastAPI(
    title="snipdrop",
    description="Self-hosted file, paste and short link server",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "HEAD", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(CDNError)
async def handle_cdn_error(request: Request, exc: CDNError) -> PlainTextResponse:
    return PlainTextResponse(exc.message, status_code=exc.status_code)


@app.get("/")
async def root(request: Request, config: Annotated[CDNConfig, Depends(get_config)]):
    return render_index(request, config)


@app.get("/_/health", response_class=PlainTextResponse)
async def health():
    return "OK"


# Include routers; the reader's catch-all /{id_path} goes last
app.include_router(uploads.router)
app.include_router(reader.router)


def run() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port)
