"""
FastAPI application entry point for LabPortal.

This module configures and creates the FastAPI application with:
- Server-rendered pages: Jinja2 templates posting plain HTML forms
- Cookie sessions: the provider session, toasts and wizard state live in a
  signed cookie (Starlette SessionMiddleware)
- Structured JSON Logging with request ID propagation
- Dependency Injection: services and the provider client injected via Depends()
- Exception Handling: JSON for API callers, login redirect / error pages for browsers
- Lifespan Management: logging setup and provider client cleanup

Architecture Overview:
    ┌─────────────────────────────────────────────────────────────┐
    │                     FastAPI Application                      │
    ├─────────────────────────────────────────────────────────────┤
    │  Middleware Stack (order matters!)                          │
    │    ├── LoggingMiddleware  - Request logging & request ids   │
    │    └── SessionMiddleware  - Signed cookie session           │
    ├─────────────────────────────────────────────────────────────┤
    │  Routers (api/routers/)                                     │
    │    ├── health.py    - /health, /ready                       │
    │    ├── auth.py      - login, logout, password reset         │
    │    ├── pages.py     - home                                  │
    │    ├── account.py   - profile, avatar, password change      │
    │    ├── patients.py  - patient view & update (admin)         │
    │    └── invite.py    - /functions/v1/invite-user (CORS)      │
    ├─────────────────────────────────────────────────────────────┤
    │  Services (services/)     ← Injected via Depends()          │
    ├─────────────────────────────────────────────────────────────┤
    │  SupabaseClient (httpx)   ← shared, closed on shutdown      │
    └─────────────────────────────────────────────────────────────┘

There is no app-wide CORS middleware: only the invite function is called
cross-origin, and it answers its own preflight.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware
import uvicorn

from labportal import __version__
from labportal.core.config import API_HOST, API_PORT, API_RELOAD, SECRET_KEY, SESSION_COOKIE, settings
from labportal.core.dependencies import close_supabase_client
from labportal.core.exceptions import setup_exception_handlers
from labportal.core.logging_config import setup_logging
from labportal.core.middleware import LoggingMiddleware
from labportal.api.routers import (
    account_router,
    auth_router,
    health_router,
    invite_router,
    pages_router,
    patients_router,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application.

    Startup:
        - Configures structured JSON logging

    Shutdown:
        - Closes the shared provider HTTP client
    """
    # Configure structured logging FIRST (before any other logging)
    setup_logging(level=settings.log_level, log_format=settings.log_format)

    logger = logging.getLogger(__name__)
    logger.info("Starting LabPortal...")

    yield  # Application runs here

    await close_supabase_client()
    logger.info("LabPortal shutting down...")


def create_app() -> FastAPI:
    """Build the application with handlers, middleware and routers."""
    app = FastAPI(
        title="LabPortal",
        description="Patient management portal on a hosted Supabase backend.",
        version=__version__,
        docs_url="/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    # =========================================================================
    # EXCEPTION HANDLERS
    # =========================================================================
    setup_exception_handlers(app)

    # =========================================================================
    # MIDDLEWARE
    # =========================================================================
    # Executed in REVERSE order of registration.

    # 1. Session Middleware (innermost - routes read request.session)
    app.add_middleware(
        SessionMiddleware,
        secret_key=SECRET_KEY,
        session_cookie=SESSION_COOKIE,
        same_site="lax",
    )

    # 2. Logging Middleware (outermost - captures all requests)
    app.add_middleware(LoggingMiddleware)

    # =========================================================================
    # ROUTERS
    # =========================================================================
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(pages_router)
    app.include_router(account_router)
    app.include_router(patients_router)
    app.include_router(invite_router)

    return app


app = create_app()


def run() -> None:
    """Console entry point."""
    uvicorn.run(
        "labportal.main:app",
        host=API_HOST,
        port=API_PORT,
        reload=API_RELOAD
    )


if __name__ == "__main__":
    run()
