"""
FastAPI application entry point.
"""

import logging
from typing import Optional

from fastapi import FastAPI

from fraud_triage.api.router import router
from fraud_triage.config import settings
from fraud_triage.services import TriageServices, build_services

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def create_app(services: Optional[TriageServices] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        services: Pre-built services; seeded demo services when omitted

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Fraud triage orchestration over synthetic demo data",
        debug=settings.debug,
    )
    app.state.services = services if services is not None else build_services()
    app.include_router(router, prefix="/api/v1")

    @app.get("/")
    async def root():
        return {
            "project": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "disclaimer": "Demo project. All data is synthetic; do not use with real customer data.",
        }

    logger.info(f"{settings.app_name} v{settings.app_version} ready")
    return app


app = create_app()
