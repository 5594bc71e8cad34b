"""
collector/main.py

FastAPI application entry point for the on-device collector.
Owns the DataCollector lifecycle and registers the host control router.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI

from collector.app import DataCollector
from collector.routers.control import router as control_router
from config import settings

logger = structlog.get_logger(__name__)


def configure_logging(level: str) -> None:
    """Filter structlog output at the configured level."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle: startup and shutdown."""
    configure_logging(settings.log_level)
    collector = DataCollector()
    await collector.start()
    app.state.collector = collector
    logger.info("collector_api_starting", port=settings.control_port)
    yield
    logger.info("collector_api_shutting_down")
    await collector.shutdown()


app = FastAPI(
    title="Wearable Collector",
    description="Periodic sensor sampling with durable batch upload",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(control_router)
