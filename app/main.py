"""
FastAPI application entry point.
Configures routes, middleware, and lifecycle events.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import init_db, close_db
from app.logging_config import configure_logging
from app.redis import RedisClient
from app.services.metrics import get_metrics

from app.api.webhooks.mercadopago import router as mercadopago_router
from app.api.downloads import router as downloads_router
from app.api.orders import router as orders_router
from app.api.monitoring import router as monitoring_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifecycle manager."""
    configure_logging()
    logging.info(f"Starting up {settings.app_name} ({settings.app_env})...")

    if RedisClient.is_configured():
        try:
            RedisClient.get_client()
        except Exception as e:
            logging.warning(f"Failed to initialize Redis: {e}")

    await init_db()

    yield

    await RedisClient.close()
    await close_db()
    logging.info("Shutting down...")


app = FastAPI(
    title="Fotos Escolares",
    description="School photo store: checkout, payment webhooks and protected downloads",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logging.error(f"Global exception: {exc}", exc_info=True)
    get_metrics().record_error(type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal Server Error"},
    )


@app.middleware("http")
async def record_request_metrics(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    route = request.scope.get("route")
    path = getattr(route, "path", request.url.path)
    get_metrics().record_request(path, response.status_code, elapsed_ms)
    return response


origins = [settings.frontend_url]
if settings.is_development:
    origins.append("*")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "env": settings.app_env,
    }


app.include_router(
    mercadopago_router,
    prefix="/webhooks",
    tags=["webhooks"],
)
app.include_router(
    orders_router,
    tags=["orders"],
)
app.include_router(
    downloads_router,
    tags=["downloads"],
)
app.include_router(
    monitoring_router,
    prefix="/api/monitoring",
    tags=["monitoring"],
)
