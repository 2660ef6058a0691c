"""
Slide Copilot Service - Main FastAPI application.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from copilot_shared.config import debug_settings, get_settings
from copilot_shared.models import HealthCheck

from .api import get_router
from .session import session_manager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Slide Copilot Service starting up...")
    yield
    # In-flight generations are discarded, never applied after shutdown
    await session_manager.close_all()
    logger.info("Slide Copilot Service shutting down...")


app = FastAPI(
    title="Slide Copilot Service",
    description="Action-mediation layer between an AI agent and a slide presentation",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(get_router())


@app.get("/health", response_model=HealthCheck)
async def health_check():
    """Health check endpoint."""
    settings = get_settings()
    return HealthCheck(service=settings.service_name, status="healthy")


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s:%(name)s:%(message)s",
    )
    debug_settings()
    logger.info(f"🚀 Starting {settings.service_name} on port {settings.service_port}")
    uvicorn.run(
        "slide_copilot.api_server:app",
        host="0.0.0.0",
        port=settings.service_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
