"""
ETF DataService HTTP entry point

    uvicorn etf_data_service.main:app --port 8001
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from etf_data_service import __version__
from etf_data_service.config import get_settings
from etf_data_service.container import build_container
from etf_data_service.db import DatabaseConnections
from etf_data_service.routers import analysis, cache, cron, etf, health

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "ETF DataService"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"🚀 {SERVICE_NAME} v{__version__} | market {settings.MARKET_TIMEZONE} "
        f"{settings.MARKET_OPEN_HOUR}:00-{settings.MARKET_CLOSE_HOUR}:00 | Polygon pacing "
        f"{settings.RATE_LIMIT_DELAY_SECONDS}s"
    )

    connections = DatabaseConnections(settings)
    connected = await connections.connect()
    if not connected["redis"]:
        logger.warning("⚠️ No Redis, tier locks only cover this process")

    container = await build_container(settings, connections)
    app.state.container = container
    try:
        yield
    finally:
        logger.info(f"🔄 {SERVICE_NAME} stopping")
        await container.aclose()


app = FastAPI(
    title=SERVICE_NAME,
    description=(
        "Cached ETF quotes, daily bars and a ranked top-picks board, filled by "
        "cron-triggered Polygon.io fetch tiers and scored by whichever AI "
        "provider is configured."
    ),
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.middleware("http")
async def timing_header(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    response.headers["X-Process-Time"] = f"{elapsed_ms:.1f}ms"
    if elapsed_ms > 5000:
        logger.warning(f"🐢 {request.method} {request.url.path} took {elapsed_ms:.0f}ms")
    return response


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.error(f"❌ {request.method} {request.url.path} failed: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "message": str(exc)},
    )


for module in (health, cron, etf, analysis, cache):
    app.include_router(module.router)


@app.get("/", include_in_schema=False)
async def root():
    return {"service": SERVICE_NAME, "version": __version__, "docs": "/docs", "health": "/health"}


if __name__ == "__main__":
    uvicorn.run(
        "etf_data_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
