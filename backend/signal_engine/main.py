"""
Signal Engine - FastAPI Application

Main entry point for the HTTP API.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from signal_engine.api.v1 import router as api_v1_router
from signal_engine.core.config import settings
from signal_engine.core.log import setup_logging
from signal_engine.services.indicators import REGISTRY

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    setup_logging()
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Registered indicators: {len(REGISTRY)}")

    yield

    logger.info("Shutting down...")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Signal Engine API

    ## Architecture
    - **Primitives**: SMA, EMA, WMA, SMMA and rolling windows (NumPy)
    - **Indicators**: Trend, momentum, volatility, volume, levels, breadth, derivatives
    - **Parameter Resolver**: Shrinks periods to fit short series
    - **Aggregator**: Failure-isolated evaluation with diagnostics
    - **Classifier**: Declarative threshold tables for labels and signals
    """,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_v1_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Signal Engine API",
        "docs": "/docs",
        "health": "/health",
    }
