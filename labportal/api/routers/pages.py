"""
Home page for signed-in users.
"""
import logging

from fastapi import APIRouter, Depends, Request

from labportal.api.templating import render
from labportal.core.auth import require_session
from labportal.core.dependencies import get_profile_service
from labportal.schemas.auth import AuthSession
from labportal.services import ProfileService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Pages"], include_in_schema=False)


@router.get("/")
async def home(
    request: Request,
    session: AuthSession = Depends(require_session),
    profile_service: ProfileService = Depends(get_profile_service),
):
    user = await profile_service.get_user_details(session)
    return render(
        request,
        "home.html",
        {
            "user": user,
            "email": session.user.email,
            "avatar": profile_service.avatar_url(user.avatar_url) if user else None,
        },
    )
