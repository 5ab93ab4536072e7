import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from coredna.core.config import settings, validate_config
from coredna.core.database import dispose_engine
from coredna.core.logging import configure_logging
from coredna.core.middleware.request_id import RequestIdMiddleware
from coredna.core.middleware.metrics import MetricsMiddleware
from coredna.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from coredna.core.tracing import setup_tracing
from coredna.api import credits, generation, health, metrics, providers, state, tiers, usage

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))
setup_tracing(enabled=settings.OTEL_ENABLED)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("coredna")
    logger.info("Starting CoreDNA generation engine...")
    app.state.startup_time = time.time()
    try:
        yield
    finally:
        dispose_engine()
        logging.getLogger("coredna").info("Stopping CoreDNA generation engine...")


app = FastAPI(title="CoreDNA - Generation Engine", version="0.1.0", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(MetricsMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(generation.router)
app.include_router(providers.router)
app.include_router(credits.router)
app.include_router(usage.router)
app.include_router(state.router)
app.include_router(tiers.router)
app.include_router(health.router)
app.include_router(metrics.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("coredna.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
