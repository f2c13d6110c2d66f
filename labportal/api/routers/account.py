"""
Account pages: profile details, avatar, and the password change wizard.

All routes require a signed-in user. Successful form posts redirect back
(POST-redirect-GET) with a toast; failures re-render the form with it.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from fastapi.responses import RedirectResponse

from labportal.api.templating import pop_flash, render
from labportal.core.auth import require_session, store_session
from labportal.core.dependencies import get_notifier, get_password_wizard, get_profile_service
from labportal.core.exceptions import LabPortalError, NotFoundError
from labportal.schemas.auth import AuthSession
from labportal.schemas.profile import ProfileUpdate
from labportal.services import ProfileService
from labportal.services.notifications import Notifier
from labportal.services.password_change import PasswordChangeWizard

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/account", tags=["Account"], include_in_schema=False)


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


async def _render_profile(
    request: Request,
    session: AuthSession,
    profile_service: ProfileService,
    editing: bool = False,
    form: Optional[ProfileUpdate] = None,
    status_code: int = status.HTTP_200_OK,
):
    try:
        profile = await profile_service.get_profile(session)
    except NotFoundError as e:
        return render(request, "profile.html", {"error": e.detail, "user": None}, status_code=status_code)

    if form is None:
        form = ProfileUpdate(name=profile.name or "", email=profile.email or "")
    return render(
        request,
        "profile.html",
        {
            "error": None,
            "user": profile,
            "avatar": profile_service.avatar_url(profile.avatar_url),
            "form": form,
            "editing": editing,
            "message": pop_flash(request),
        },
        status_code=status_code,
    )


# =============================================================================
# PROFILE
# =============================================================================

@router.get("")
async def profile_page(
    request: Request,
    edit: bool = False,
    session: AuthSession = Depends(require_session),
    profile_service: ProfileService = Depends(get_profile_service),
):
    return await _render_profile(request, session, profile_service, editing=edit)


@router.post("")
async def update_profile(
    request: Request,
    name: str = Form(""),
    email: str = Form(""),
    new_password: str = Form(""),
    confirm_password: str = Form(""),
    session: AuthSession = Depends(require_session),
    profile_service: ProfileService = Depends(get_profile_service),
    notifier: Notifier = Depends(get_notifier),
):
    """Save name, email and optional new password."""
    form = ProfileUpdate(
        name=name.strip(),
        email=email.strip(),
        new_password=new_password,
        confirm_password=confirm_password,
    )
    try:
        await profile_service.update_profile(session, form)
    except LabPortalError as e:
        logger.error("Update error", extra={"error": e.detail})
        notifier.error(e.detail or "Failed to update profile")
        form = form.model_copy(update={"new_password": "", "confirm_password": ""})
        return await _render_profile(
            request, session, profile_service, editing=True, form=form, status_code=e.status_code
        )

    notifier.success("Profile updated successfully")
    return _redirect("/account")


@router.post("/avatar")
async def upload_avatar(
    request: Request,
    avatar: UploadFile = File(...),
    session: AuthSession = Depends(require_session),
    profile_service: ProfileService = Depends(get_profile_service),
    notifier: Notifier = Depends(get_notifier),
):
    content = await avatar.read()
    try:
        await profile_service.upload_avatar(session, avatar.filename, avatar.content_type, content)
    except LabPortalError as e:
        logger.error("Avatar update error", extra={"error": e.detail})
        notifier.error(e.detail or "Failed to update avatar")
    else:
        notifier.success("Avatar updated successfully")
    finally:
        await avatar.close()
    return _redirect("/account")


# =============================================================================
# PASSWORD CHANGE WIZARD
# =============================================================================

def _render_wizard(request: Request, wizard: PasswordChangeWizard, status_code: int = status.HTTP_200_OK):
    return render(
        request,
        "password_change.html",
        {"step": wizard.step, "errors": wizard.errors},
        status_code=status_code,
    )


@router.get("/password")
async def password_page(
    request: Request,
    session: AuthSession = Depends(require_session),
    wizard: PasswordChangeWizard = Depends(get_password_wizard),
):
    return _render_wizard(request, wizard)


@router.post("/password/verify")
async def verify_current_password(
    request: Request,
    current_password: str = Form(""),
    session: AuthSession = Depends(require_session),
    wizard: PasswordChangeWizard = Depends(get_password_wizard),
):
    """Step 1: check the current password."""
    try:
        verified = await wizard.verify_current_password(session, current_password)
    except LabPortalError as e:
        return _render_wizard(request, wizard, status_code=e.status_code)
    store_session(request, verified)
    return _redirect("/account/password")


@router.post("/password/change")
async def change_password(
    request: Request,
    new_password: str = Form(""),
    confirm_password: str = Form(""),
    session: AuthSession = Depends(require_session),
    wizard: PasswordChangeWizard = Depends(get_password_wizard),
):
    """Step 2: set the new password."""
    try:
        await wizard.change_password(session, new_password, confirm_password)
    except LabPortalError as e:
        return _render_wizard(request, wizard, status_code=e.status_code)
    return _redirect("/account")


@router.post("/password/back")
async def password_back(
    session: AuthSession = Depends(require_session),
    wizard: PasswordChangeWizard = Depends(get_password_wizard),
):
    wizard.back()
    return _redirect("/account/password")
