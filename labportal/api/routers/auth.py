"""
Authentication pages: login, logout, password reset, email verification.

These pages are public. Login and forgot-password send signed-in users
home; the reset page works from a recovery session instead.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import RedirectResponse

from labportal.api.templating import flash, pop_flash, render
from labportal.core.auth import (
    clear_recovery_session,
    clear_session,
    get_current_session,
    read_recovery_session,
    read_stored_session,
    store_recovery_session,
    store_session,
)
from labportal.core.dependencies import get_auth_service
from labportal.core.exceptions import AuthenticationError, LabPortalError, ValidationError
from labportal.schemas.auth import AuthSession
from labportal.services import AuthService
from labportal.services.auth_service import INVALID_RESET_LINK

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"], include_in_schema=False)


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================

@router.get("/login")
async def login_page(
    request: Request,
    session: Optional[AuthSession] = Depends(get_current_session),
):
    if session is not None:
        return _redirect("/")
    return render(request, "login.html", {"message": pop_flash(request), "error": None, "email": ""})


@router.post("/login")
async def login(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Sign in and go to the dashboard; errors are shown on the form."""
    try:
        session = await auth_service.login(email.strip(), password)
    except (ValidationError, AuthenticationError) as e:
        return render(
            request,
            "login.html",
            {"message": None, "error": e.detail, "email": email},
            status_code=e.status_code,
        )
    except LabPortalError as e:
        logger.error("Login error", extra={"error": e.detail})
        return render(
            request,
            "login.html",
            {"message": None, "error": "An unexpected error occurred. Please try again.", "email": email},
            status_code=e.status_code,
        )

    store_session(request, session)
    return _redirect("/")


@router.post("/logout")
async def logout(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
):
    await auth_service.logout(read_stored_session(request))
    clear_session(request)
    return _redirect("/login")


# =============================================================================
# FORGOT / RESET PASSWORD
# =============================================================================

@router.get("/forgot-password")
async def forgot_password_page(
    request: Request,
    session: Optional[AuthSession] = Depends(get_current_session),
):
    if session is not None:
        return _redirect("/")
    return render(request, "forgot_password.html", {"message": None, "error": None, "email": ""})


@router.post("/forgot-password")
async def forgot_password(
    request: Request,
    email: str = Form(""),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Send the recovery email; the field is cleared on success."""
    try:
        message = await auth_service.request_password_reset(email.strip())
    except LabPortalError as e:
        return render(
            request,
            "forgot_password.html",
            {"message": None, "error": e.detail, "email": email},
            status_code=e.status_code,
        )
    return render(request, "forgot_password.html", {"message": message, "error": None, "email": ""})


@router.get("/reset-password")
async def reset_password_page(
    request: Request,
    token_hash: Optional[str] = None,
    type: Optional[str] = None,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Landing page of the recovery email.

    The token in the link is exchanged for a recovery session once; reloads
    reuse the stored session.
    """
    if token_hash and type == "recovery":
        try:
            session = await auth_service.exchange_recovery_token(token_hash)
        except AuthenticationError as e:
            clear_recovery_session(request)
            return render(request, "reset_password.html", {"valid": False, "error": e.detail})
        store_recovery_session(request, session)

    if read_recovery_session(request) is None:
        return render(request, "reset_password.html", {"valid": False, "error": INVALID_RESET_LINK})
    return render(request, "reset_password.html", {"valid": True, "error": None})


@router.post("/reset-password")
async def reset_password(
    request: Request,
    password: str = Form(""),
    confirm_password: str = Form(""),
    auth_service: AuthService = Depends(get_auth_service),
):
    session = read_recovery_session(request)
    try:
        message = await auth_service.reset_password(session, password, confirm_password)
    except LabPortalError as e:
        logger.warning("Password reset failed", extra={"error": e.detail})
        return render(
            request,
            "reset_password.html",
            {"valid": session is not None, "error": e.detail},
            status_code=e.status_code,
        )

    clear_recovery_session(request)
    clear_session(request)
    flash(request, message)
    return _redirect("/login")


# =============================================================================
# EMAIL CHANGE CALLBACK
# =============================================================================

@router.get("/auth/callback")
async def email_callback(
    request: Request,
    message: Optional[str] = None,
    type: Optional[str] = None,
    token_hash: Optional[str] = None,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Both links of an email change land here."""
    try:
        result = await auth_service.handle_email_callback(
            read_stored_session(request), message=message, type=type, token_hash=token_hash
        )
    except LabPortalError as e:
        logger.error("Verification error", extra={"error": e.detail})
        return render(
            request,
            "email_callback.html",
            {"status": "error", "message": e.detail},
            status_code=e.status_code,
        )

    if result is None:
        return render(request, "email_callback.html", {"status": "verifying", "message": None})

    if result.step == 1:
        return render(request, "email_callback.html", {"status": "first_step", "message": result.message})

    if result.session is not None:
        store_session(request, result.session)
    flash(request, result.message)
    return _redirect("/account")
