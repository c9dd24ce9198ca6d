"""
trustport/app.py

FastAPI application entrypoint for the TrustPort transfer engine.

This module wires together:
- Logging configuration (file-based under logs/)
- CORS and request logging middleware
- The engine services (store, directory, verification gate, notifier,
  settlement, history) kept on app.state
- Domain routers under trustport/api/ (accounts & transfers)
"""

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.requests import Request

from .api.accounts import router as accounts_router
from .api.transfers import router as transfers_router
from .config import get_settings
from .container import Services, build_services, build_store
from .logging_config import get_logger, setup_logging

logger = get_logger("trustport")


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the app. When no services are given they are created from the
    environment on startup and closed on shutdown.
    """
    app = FastAPI(title="TrustPort Transfer API", version="1.0.0")

    # CORS (open for demo)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        Lightweight request logger; bodies are not logged since they carry PINs and OTPs.
        """
        logger.info(
            "HTTP %s %s from %s",
            request.method,
            request.url.path,
            request.client.host if request.client else "?",
        )
        response = await call_next(request)
        return response

    @app.get("/api/health")
    async def health():
        """
        Simple health check endpoint.
        """
        return {"status": "healthy"}

    app.include_router(accounts_router, prefix="/api")
    app.include_router(transfers_router, prefix="/api")

    app.state.services = services
    owns_services = services is None

    @app.on_event("startup")
    async def on_startup():
        if owns_services:
            settings = get_settings()
            store = await build_store(settings)
            app.state.services = build_services(settings, store)
        logger.info("TrustPort starting up")

    @app.on_event("shutdown")
    async def on_shutdown():
        if owns_services and app.state.services is not None:
            try:
                await app.state.services.close()
            except Exception:
                logger.exception("Error closing services on shutdown")
        logger.info("TrustPort shutting down")

    return app


def main() -> None:
    import uvicorn

    setup_logging(get_settings().log_level)
    uvicorn.run(create_app(), host="0.0.0.0", port=8000, log_level="info")


if __name__ == "__main__":
    main()
