"""
Service layer for inviting a new clinic user.

Runs with the service role key, so it is only ever called from the
invite-user function route. Callers must present a bearer token: either
the service role key itself or the access token of a signed-in admin.

Flow:
    0. GET  /auth/v1/user          resolve the caller (skipped for the service key)
       GET  /rest/v1/users         caller must have role "admin"
    1. POST /auth/v1/admin/users   create the user with clinic metadata
    2. POST /auth/v1/invite        send the invitation email (failure tolerated)
"""
import hmac
import logging
from typing import Any, Dict, Optional

import httpx

from labportal.clients.supabase_client import SupabaseClient
from labportal.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ProviderConnectionError,
    ProviderError,
    ValidationError,
)
from labportal.schemas.invite import InviteRequest

logger = logging.getLogger(__name__)

MISSING_ENV = "Missing required environment variables"
MISSING_AUTH = "Missing authorization header"
INVALID_TOKEN = "Invalid or expired token"
ADMIN_REQUIRED = "Only administrators can invite users"

SERVICE_ROLE = "service_role"


class InviteService:
    """Creates and invites users through the provider's admin API."""

    def __init__(
        self,
        supabase_url: str,
        service_role_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = (supabase_url or "").rstrip("/")
        self._key = service_role_key or ""
        self._timeout = timeout
        self._transport = transport

    def check_configuration(self) -> None:
        """
        Raises:
            ConfigurationError: URL or service role key is missing.
        """
        logger.info(
            "Invite function configuration",
            extra={"has_url": bool(self._url), "has_key": bool(self._key), "key_length": len(self._key)},
        )
        if not self._url or not self._key:
            logger.error("Missing environment variables", extra={"has_url": bool(self._url), "has_key": bool(self._key)})
            raise ConfigurationError(MISSING_ENV)

    async def authorize(self, authorization: Optional[str]) -> str:
        """
        Check the caller's `Authorization` header.

        Args:
            authorization: Raw header value, expected as "Bearer <token>".

        Returns:
            "service_role" for the service key, otherwise the admin's user id.

        Raises:
            AuthenticationError: No bearer token, an invalid token, or a
                caller who is not an admin.
            ProviderConnectionError: The provider could not be reached.
        """
        scheme, _, token = (authorization or "").partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token:
            logger.warning("Invite rejected: no bearer token")
            raise AuthenticationError(MISSING_AUTH)

        if hmac.compare_digest(token.encode(), self._key.encode()):
            return SERVICE_ROLE

        async with SupabaseClient(self._url, self._key, timeout=self._timeout, transport=self._transport) as client:
            try:
                user = await client.auth.get_user(token)
                row = await (
                    client.table("users", token)
                    .select("role")
                    .eq("user_id", user.id)
                    .maybe_single()
                )
            except ProviderConnectionError:
                raise
            except ProviderError as e:
                logger.warning("Invite rejected: token not accepted", extra={"error": e.detail})
                raise AuthenticationError(INVALID_TOKEN) from e

        if (row or {}).get("role") != "admin":
            logger.warning("Invite rejected: caller is not an admin", extra={"user_id": user.id})
            raise AuthenticationError(ADMIN_REQUIRED)
        return user.id

    def redirect_for(self, request: InviteRequest) -> str:
        return request.redirect_to or f"{self._url}/auth/callback"

    async def invite(self, request: InviteRequest) -> Dict[str, Any]:
        """
        Create the user, then send the invitation.

        Returns:
            The provider's created-user payload.

        Raises:
            ConfigurationError: Service not configured.
            ValidationError: No email given.
            ProviderError: User creation was rejected; carries status and body.
            ProviderConnectionError: The provider could not be reached.
        """
        self.check_configuration()
        if not request.email:
            raise ValidationError("Email is required")

        metadata = request.metadata()
        redirect_to = self.redirect_for(request)
        logger.info("Creating user", extra={"clinic_id": request.clinic_id, "clinic_name": request.clinic_name})

        async with SupabaseClient(self._url, self._key, timeout=self._timeout, transport=self._transport) as client:
            try:
                created = await client.admin.create_user({
                    "email": request.email,
                    "user_metadata": metadata,
                    "email_confirm": False,
                    "should_create_user": True,
                    "email_redirect_to": redirect_to,
                    "data": metadata,
                })
            except ProviderError as e:
                logger.error("Error creating user", extra={"status_code": e.provider_status, "error": e.detail})
                raise

            try:
                await client.admin.invite_user_by_email({
                    "email": request.email,
                    "data": metadata,
                    "redirect_to": redirect_to,
                })
            except ProviderConnectionError:
                raise
            except ProviderError as e:
                # The user exists; the invitation can be resent later
                logger.error("Error sending invitation", extra={"error": e.detail})

        logger.info("User created and invited successfully", extra={"user_id": (created or {}).get("id")})
        return created
