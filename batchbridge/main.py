from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api import health, tools
from .config import settings
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware

setup_logging()
logger = structlog.stdlib.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("batchbridge_started", relay=settings.relay_base_url, referrer=settings.relay_referrer)
    yield
    # The RPC client keeps a pooled connection; only close it if it was ever built
    if tools.get_chain_data.cache_info().currsize:
        await tools.get_chain_data().rpc.close()


app = FastAPI(
    title="Batch Bridge API",
    description="Quote, route and settlement tools for multi-token batch bridging over Relay",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
    expose_headers=["x-request-id"],
)

app.include_router(health.router, tags=["Health"])
app.include_router(tools.router, tags=["Tools"])


@app.get("/")
async def root():
    return {
        "name": app.title,
        "version": app.version,
        "docs": app.docs_url,
        "health": "/healthz",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("batchbridge.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
