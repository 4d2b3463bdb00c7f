"""
Application factory for the proposal pricing and approval API.

Run locally with ``uvicorn msp_proposals.main:app --reload``.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from msp_proposals.api import approvals, proposals
from msp_proposals.core.config import settings
from msp_proposals.core.exception_handlers import register_exception_handlers
from msp_proposals.middleware import RequestContextMiddleware


def configure_logging() -> None:
    """
    Root logger setup for the API process.

    Log lines are prefixed with the request ID by the code that writes them,
    so the format only adds time, level and logger name.
    """
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Line item pricing, proposal totals and sequential approval workflows",
        version=settings.VERSION,
        docs_url=f"{settings.API_V1_PREFIX}/docs",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    )

    register_exception_handlers(app)

    # Added first so it sits inside CORS and every routed request has a context
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    @app.get("/health", tags=["health"])
    async def health_check() -> dict:
        """Liveness check; does not touch the database."""
        return {"status": "healthy", "version": settings.VERSION}

    app.include_router(proposals.router, prefix=settings.API_V1_PREFIX)
    app.include_router(approvals.router, prefix=settings.API_V1_PREFIX)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "msp_proposals.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
