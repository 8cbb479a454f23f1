"""
Equity Settlement Service - Main Application Entry Point

Runs tender offers: bidding, clearing price discovery, cap table
settlement and buyback payouts.
"""

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from equity_settlement.core.config import settings
from equity_settlement.core.scheduler import start_scheduler, stop_scheduler

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Import module routers
from equity_settlement.modules.tender_offers.router import router as tender_offers_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Tender offer bidding, buyback settlement and payouts",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    # Use ["*"] if CORS_ALLOW_ALL is True (development), otherwise use explicit origins
    cors_origins = ["*"] if settings.CORS_ALLOW_ALL else settings.CORS_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register module routers
    app.include_router(tender_offers_router, prefix="/api/v1/tender-offers", tags=["Tender Offers"])

    @app.get("/", tags=["Health"])
    async def root():
        """Root endpoint - health check."""
        return {
            "application": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "status": "running"
        }

    @app.get("/api/health", tags=["Health"])
    async def health_check():
        """API health check endpoint."""
        return {"status": "healthy"}

    @app.on_event("startup")
    async def startup_event():
        """Start the payout job queue."""
        if not settings.SCHEDULER_ENABLED:
            logger.info("Scheduler disabled; payout jobs will not run in this process")
            return
        try:
            start_scheduler()
        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}", exc_info=True)

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop the payout job queue."""
        try:
            stop_scheduler()
        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("equity_settlement.main:app", host="0.0.0.0", port=8000, reload=True)
