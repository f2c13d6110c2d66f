"""
Authentication module for LabPortal pages.

The provider session is kept in the signed cookie session. Page routes
declare what they need through dependencies:

    require_session  - any signed-in user; anonymous browsers go to /login
    require_admin    - signed-in user whose profile role is "admin";
                       others get the Unauthorized page

A password-recovery session is stored under its own key so it never
counts as being signed in.
"""
import logging
from typing import Optional

from fastapi import Depends, Request
from pydantic import ValidationError as PydanticValidationError

from labportal.core.dependencies import get_profile_service, get_session_cache
from labportal.core.exceptions import LoginRequiredError, RoleRequiredError
from labportal.core.logging_config import bind_log_context
from labportal.schemas.auth import AuthSession
from labportal.schemas.profile import UserProfile
from labportal.services import ProfileService, SessionCache

logger = logging.getLogger(__name__)

AUTH_KEY = "auth"
RECOVERY_KEY = "recovery"


def _read(request: Request, key: str) -> Optional[AuthSession]:
    data = request.session.get(key)
    if not data:
        return None
    try:
        return AuthSession.model_validate(data)
    except PydanticValidationError:
        logger.warning("Discarding malformed session cookie", extra={"key": key})
        request.session.pop(key, None)
        return None


def read_stored_session(request: Request) -> Optional[AuthSession]:
    """Session as stored in the cookie, not yet verified."""
    return _read(request, AUTH_KEY)


def store_session(request: Request, session: AuthSession) -> None:
    request.session[AUTH_KEY] = session.model_dump(mode="json")


def clear_session(request: Request) -> None:
    """Forget the signed-in session and any page state tied to it."""
    request.session.pop(AUTH_KEY, None)
    request.session.pop("password_change", None)


def read_recovery_session(request: Request) -> Optional[AuthSession]:
    return _read(request, RECOVERY_KEY)


def store_recovery_session(request: Request, session: AuthSession) -> None:
    request.session[RECOVERY_KEY] = session.model_dump(mode="json")


def clear_recovery_session(request: Request) -> None:
    request.session.pop(RECOVERY_KEY, None)


async def get_current_session(
    request: Request,
    session_cache: SessionCache = Depends(get_session_cache),
) -> Optional[AuthSession]:
    """
    Verified session for the request, or None.

    Refreshed tokens are written back to the cookie; a session the
    provider no longer accepts is removed from it. When the provider is
    unreachable the cookie is left alone and ServiceUnavailableError
    propagates to the 503 page.
    """
    stored = read_stored_session(request)
    if stored is None:
        return None

    session = await session_cache.get_session(stored)
    if session is None:
        logger.info("Stored session rejected, clearing cookie", extra={"user_id": stored.user.id})
        clear_session(request)
        return None

    bind_log_context(user_id=session.user.id)
    if session.access_token != stored.access_token:
        store_session(request, session)
    return session


async def require_session(
    session: Optional[AuthSession] = Depends(get_current_session),
) -> AuthSession:
    """
    Verify the request carries a usable session.

    Raises:
        LoginRequiredError: No session; browsers are redirected to /login.
    """
    if session is None:
        raise LoginRequiredError()
    return session


async def require_admin(
    session: AuthSession = Depends(require_session),
    profile_service: ProfileService = Depends(get_profile_service),
) -> UserProfile:
    """
    Verify the signed-in user has the admin role.

    Returns:
        UserProfile: The admin's profile row.

    Raises:
        RoleRequiredError: Not an admin; the Unauthorized page is rendered.
    """
    profile = await profile_service.get_user_details(session)
    if profile is None or not profile.is_admin:
        logger.warning("Admin page requested by non-admin", extra={"user_id": session.user.id})
        raise RoleRequiredError()
    return profile
