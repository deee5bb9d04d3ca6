"""
FastAPI Session Proxy Application Factory
=========================================

Entry point for the session proxy that answers the session handshake on
behalf of sessionserver.mojang.com.

Architecture:
    Game client / server → Session Proxy (this service) → sessionserver.mojang.com
                                     ↘ local account backend

Routers:
    - /session/minecraft/join       : Join a server (local credential or relay)
    - /session/minecraft/hasJoined  : Verify a join (local record or relay)
    - /health                       : Health check endpoint

Environment Variables:
    - ACCOUNT_BACKEND: 'file' or 'api' (default: file)
    - ACCOUNTS_FILE: Static credential table (default: accounts.json)
    - ACCOUNTS_ENDPOINT / ACCOUNTS_SECRET: Remote account lookup
    - SESSIONS_FILE: Persisted session table (default: sessions.json)
    - TRUSTED_NAMESERVERS: Resolvers for the real authority (default: 1.1.1.1,1.0.0.1)
    - UPSTREAM_TIMEOUT_SECONDS: Network timeout (default: 5)
    - YGG_BIND_ADDRESS: host:port to listen on (default: 0.0.0.0:3000)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn sessionproxy.app.main:app --reload --port 3000

    Production:
        python -m sessionproxy.app.main

    The session table lives in process memory, so run a single worker.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn

from sessionproxy.app.accounts import AccountResolver, build_account_resolver
from sessionproxy.app.config import Settings, get_settings
from sessionproxy.app.handshake import HandshakeService, handshake_router
from sessionproxy.app.sessions import SessionStore
from sessionproxy.app.upstream import UpstreamConnector, UpstreamUnavailableError

SERVICE_NAME = "session-proxy"
SERVICE_VERSION = "1.0.0"


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    # httpx logs full request URLs at INFO, and account lookups carry the
    # credential in the query string
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


class AppState:
    """
    Application state container.

    Holds the shared resources handed to request handlers: the account
    backend, the session store, the upstream connector and the handshake
    service built on top of them.
    """
    def __init__(self):
        self.settings: Optional[Settings] = None
        self.accounts: Optional[AccountResolver] = None
        self.session_store: Optional[SessionStore] = None
        self.upstream: Optional[UpstreamConnector] = None
        self.handshake_service: Optional[HandshakeService] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Load configuration from environment
        - Build the account backend (fails startup on a bad account file)
        - Load the persisted session table
        - Create the upstream connector and handshake service

    Shutdown tasks:
        - Close HTTP clients
    """
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("sessionproxy.main")

    logger.info(
        "Starting session proxy",
        extra={
            "account_backend": settings.ACCOUNT_BACKEND,
            "sessions_file": settings.SESSIONS_FILE,
            "bind_address": settings.YGG_BIND_ADDRESS,
        }
    )

    app_state: AppState = app.state.app_state
    app_state.settings = settings
    app_state.accounts = build_account_resolver(settings)
    app_state.session_store = SessionStore.load(settings.SESSIONS_FILE)
    app_state.upstream = UpstreamConnector(
        settings.trusted_nameservers_list,
        timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
    )
    app_state.handshake_service = HandshakeService(
        accounts=app_state.accounts,
        store=app_state.session_store,
        upstream=app_state.upstream,
    )

    logger.info(
        "Session proxy started",
        extra={"service": SERVICE_NAME, "version": SERVICE_VERSION}
    )

    yield

    logger.info("Shutting down session proxy")

    await app_state.upstream.aclose()
    await app_state.accounts.aclose()
    app_state.handshake_service = None

    logger.info("Session proxy shutdown complete")


def create_app() -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management
        - Handshake routes
        - Exception handlers

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    app = FastAPI(
        title="Session Proxy",
        description="Session authority proxy with local account backends",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.app_state = AppState()

    app.include_router(handshake_router, tags=["Session Handshake"])

    @app.get("/health", tags=["System"])
    async def health_check(request: Request) -> Dict[str, Any]:
        """
        Health check endpoint.

        Returns:
            dict: Service status, session count and account backend
        """
        app_state: AppState = request.app.state.app_state
        store = app_state.session_store
        accounts = app_state.accounts
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "sessions": len(store) if store is not None else 0,
            "account_backend": accounts.backend_name if accounts is not None else None,
        }

    @app.exception_handler(UpstreamUnavailableError)
    async def upstream_unavailable_handler(
        request: Request,
        exc: UpstreamUnavailableError
    ) -> JSONResponse:
        """Map every upstream failure to 503 instead of failing the process."""
        logging.getLogger("sessionproxy.main").error(
            f"Upstream unavailable: {exc}",
            extra={"path": request.url.path, "method": request.method}
        )
        return JSONResponse(
            status_code=503,
            content={"detail": "Upstream authority unavailable"}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger = logging.getLogger("sessionproxy.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "detail": str(exc) if settings.LOG_LEVEL == "DEBUG" else None
            }
        )

    return app


# Create app instance for uvicorn
app = create_app()


def run() -> None:
    """Run the proxy on YGG_BIND_ADDRESS."""
    settings = get_settings()

    uvicorn.run(
        "sessionproxy.app.main:app",
        host=settings.bind_host,
        port=settings.bind_port,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
