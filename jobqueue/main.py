from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from jobqueue.config.logging import setup_logging
from jobqueue.config.settings import settings
from jobqueue.v1.core.exceptions import (
    JobQueueException,
    RequestContextMiddleware,
    general_exception_handler,
    http_exception_handler,
    job_queue_exception_handler,
)
from jobqueue.v1.healthz import router as health_router
from jobqueue.v1.jobs.routes import router as jobs_router
from jobqueue.v1.scheduler.routes import router as schedules_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    # Initialize structured logging
    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        description="Database-backed job queue with recurring scheduling",
        version=settings.version,
        debug=settings.debug,
        # All endpoints are under the /v1/ prefix
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
    )

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Add CORS middleware for development
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Add exception handlers
    app.add_exception_handler(JobQueueException, job_queue_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(jobs_router, prefix="/v1")
    app.include_router(schedules_router, prefix="/v1")

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "jobqueue.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
