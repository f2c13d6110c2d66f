"""
Invite-user function.

A JSON endpoint called cross-origin by the admin UI, so it answers CORS
preflights itself and puts the CORS headers on every response, errors
included.

Responses:
    204  OPTIONS preflight
    200  {"message": "User invited successfully", "user": {...}}
    400  {"error": "Email is required"}
    401  {"error": "Missing authorization header" | "Invalid or expired token" | "Only administrators can invite users"}
    405  {"error": "Only POST requests allowed"}
    500  {"error": "Server configuration error" | "Internal server error", "details": ...}
    4xx/5xx from the provider when user creation is rejected
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from labportal.core.dependencies import get_invite_service
from labportal.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ProviderConnectionError,
    ProviderError,
    ValidationError,
)
from labportal.schemas.invite import InviteRequest
from labportal.services import InviteService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions/v1", tags=["Functions"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Max-Age": "86400",
}

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _json(content: Any, status_code: int) -> JSONResponse:
    return JSONResponse(content=content, status_code=status_code, headers=CORS_HEADERS)


@router.api_route(
    "/invite-user",
    methods=ALL_METHODS,
    summary="Create a user and send an invitation email",
)
async def invite_user(
    request: Request,
    invite_service: InviteService = Depends(get_invite_service),
):
    if request.method == "OPTIONS":
        return Response(status_code=status.HTTP_204_NO_CONTENT, headers=CORS_HEADERS)

    if request.method != "POST":
        return _json({"error": "Only POST requests allowed"}, status.HTTP_405_METHOD_NOT_ALLOWED)

    try:
        invite_service.check_configuration()
        caller = await invite_service.authorize(request.headers.get("Authorization"))
        payload = InviteRequest.model_validate(await request.json())
        logger.info(
            "Invite requested",
            extra={"caller": caller, "clinic_id": payload.clinic_id, "has_redirect": bool(payload.redirect_to)},
        )
        user = await invite_service.invite(payload)

    except ConfigurationError as e:
        return _json(
            {"error": "Server configuration error", "details": e.detail},
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    except AuthenticationError as e:
        return _json({"error": e.detail}, status.HTTP_401_UNAUTHORIZED)
    except ValidationError as e:
        return _json({"error": e.detail}, status.HTTP_400_BAD_REQUEST)
    except ProviderConnectionError as e:
        logger.error("Unexpected error", extra={"error": e.detail})
        return _json(
            {"error": "Internal server error", "details": e.detail},
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    except ProviderError as e:
        return _json(
            {"error": "Failed to create user", "details": e.body},
            e.provider_status or status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    except ValueError as e:
        # Malformed JSON or a body that is not an object
        logger.error("Unexpected error", extra={"error": str(e)})
        return _json(
            {"error": "Internal server error", "details": str(e)},
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return _json({"message": "User invited successfully", "user": user}, status.HTTP_200_OK)
