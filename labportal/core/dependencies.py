"""
FastAPI Dependency Injection configuration for LabPortal.

This module provides the dependency injection (DI) infrastructure. It enables:
- Clean separation between page routers, services, and the provider client
- Easy testing with a fake provider transport
- One shared HTTP client per process, closed in the app lifespan

Architecture Flow:
    API Layer (Routers)
         ↓ Depends()
    Service Layer (Business Logic)
         ↓ Injected
    SupabaseClient (httpx)
         ↓
    Hosted provider (auth, tables, storage)

Usage in Routers:
    @router.get("/patients/{patient_id}")
    async def view_patient(
        patient_id: str,
        patient_service: PatientService = Depends(get_patient_service)
    ):
        ...

Testing:
    # Override dependencies in tests
    app.dependency_overrides[get_supabase_client] = lambda: fake_client
"""
import logging
from typing import Optional

from fastapi import Depends, Request

from labportal.clients.supabase_client import SupabaseClient
from labportal.core.config import settings
from labportal.services import (
    AuthService,
    InviteService,
    PatientService,
    ProfileService,
    SessionCache,
)
from labportal.services.notifications import Notifier
from labportal.services.password_change import PasswordChangeWizard

logger = logging.getLogger(__name__)


# =============================================================================
# PROVIDER CLIENT
# =============================================================================

_client_instance: Optional[SupabaseClient] = None
_session_cache_instance: Optional[SessionCache] = None


def get_supabase_client() -> SupabaseClient:
    """
    Get the provider client (singleton).

    Created on first use with the anon key. The lifespan handler closes it
    on shutdown via close_supabase_client().
    """
    global _client_instance

    if _client_instance is None:
        logger.info(f"Initializing provider client: {settings.supabase_url}")
        _client_instance = SupabaseClient(
            url=settings.supabase_url,
            key=settings.supabase_anon_key,
            timeout=settings.labportal_http_timeout,
        )
    return _client_instance


async def close_supabase_client() -> None:
    """
    Close the shared client, if one was created.

    The session cache is dropped with it since it holds the closed client.
    """
    global _client_instance, _session_cache_instance

    _session_cache_instance = None
    if _client_instance is not None:
        await _client_instance.aclose()
        _client_instance = None
        logger.info("Provider client closed")


def get_session_cache(
    client: SupabaseClient = Depends(get_supabase_client),
) -> SessionCache:
    """
    Get the process-wide session cache (singleton).

    The cache holds on to the client it was first created with.
    """
    global _session_cache_instance

    if _session_cache_instance is None:
        _session_cache_instance = SessionCache(client, ttl=settings.labportal_session_cache_ttl)
    return _session_cache_instance


def reset_dependencies() -> None:
    """
    Forget the shared client and cache (for testing only).

    The client is not closed; tests own the transports they inject.
    """
    global _client_instance, _session_cache_instance
    _client_instance = None
    _session_cache_instance = None


# =============================================================================
# REQUEST-SCOPED DEPENDENCIES
# =============================================================================

def get_notifier(request: Request) -> Notifier:
    """Toast queue for the caller's browser session."""
    return Notifier(request.session)


def get_password_wizard(
    request: Request,
    client: SupabaseClient = Depends(get_supabase_client),
    notifier: Notifier = Depends(get_notifier),
) -> PasswordChangeWizard:
    """Password change wizard bound to the caller's browser session."""
    return PasswordChangeWizard(client, request.session, notifier)


# =============================================================================
# SERVICE DEPENDENCIES
# =============================================================================

def get_auth_service(
    client: SupabaseClient = Depends(get_supabase_client),
    session_cache: SessionCache = Depends(get_session_cache),
) -> AuthService:
    """
    Get an AuthService with the client and session cache injected.

    Returns:
        AuthService: Service for sign-in, sign-out and password reset.
    """
    return AuthService(
        client=client,
        session_cache=session_cache,
        reset_redirect_url=settings.reset_password_url,
    )


def get_profile_service(
    client: SupabaseClient = Depends(get_supabase_client),
) -> ProfileService:
    """
    Get a ProfileService configured with the avatar bucket and size limit.
    """
    return ProfileService(
        client=client,
        bucket=settings.labportal_avatar_bucket,
        max_avatar_size=settings.labportal_avatar_max_size,
    )


def get_patient_service(
    client: SupabaseClient = Depends(get_supabase_client),
) -> PatientService:
    return PatientService(client=client)


def get_invite_service() -> InviteService:
    """
    Get an InviteService holding the service role key.

    A missing key is reported by the service at call time, not here, so
    the function can answer with its own error body.
    """
    return InviteService(
        supabase_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        timeout=settings.labportal_http_timeout,
    )
