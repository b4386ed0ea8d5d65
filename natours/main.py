from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from natours.config import Settings, get_settings
from natours.errors import register_exception_handlers
from natours.logging_config import configure_logging
from natours.pipeline.middleware import PipelineMiddleware
from natours.pipeline.rate_limit import RequestRateLimiter
from natours.pipeline.stages import build_stages
from natours.routes import bookings, reviews, tours, users, views

logger = structlog.get_logger(__name__)

API_V1 = "/api/v1"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application.

    Request flow, outermost first:

        CORS -> pipeline stages (see natours.pipeline.stages.build_stages)
             -> gzip -> routes -> error controller
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Tour booking service: tours, users, reviews, bookings and Stripe checkout",
        version="1.0.0",
        debug=False,
    )
    app.dependency_overrides[get_settings] = lambda: settings

    limiter = RequestRateLimiter(
        max_requests=settings.rate_limit_max,
        window_seconds=settings.rate_limit_window_seconds,
        storage_uri=settings.rate_limit_storage_uri,
    )
    app.state.settings = settings
    app.state.rate_limiter = limiter
    app.state.stages = build_stages(settings, limiter)

    # added innermost first
    app.add_middleware(GZipMiddleware, minimum_size=settings.compression_minimum_size)
    app.add_middleware(PipelineMiddleware, stages=app.state.stages, settings=settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(views.router)
    app.include_router(bookings.webhook_router)
    app.include_router(tours.router, prefix=API_V1)
    app.include_router(reviews.tour_reviews_router, prefix=API_V1)
    app.include_router(users.router, prefix=API_V1)
    app.include_router(reviews.router, prefix=API_V1)
    app.include_router(bookings.router, prefix=API_V1)

    register_exception_handlers(app, settings)

    logger.info(
        "application_configured",
        environment=settings.environment,
        stages=[stage.name for stage in app.state.stages],
    )
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("natours.main:app", host="0.0.0.0", port=8000, reload=True)
