"""
Service layer for sign-in, sign-out and the password reset flow.

Architecture:
    Page router → AuthService → SupabaseClient.auth → provider

The service never touches the cookie; routers store whatever session it
returns. Provider messages are mapped to friendlier text where the login
form has a specific message for them.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from labportal.clients.supabase_client import SupabaseClient
from labportal.core.exceptions import (
    AuthenticationError,
    LabPortalError,
    ProviderError,
    ValidationError,
)
from labportal.schemas.auth import AuthSession
from labportal.services.session_cache import SIGNED_IN, SIGNED_OUT, SessionCache
from labportal.core.datetime_utils import utc_timestamp

logger = logging.getLogger(__name__)

INVALID_RESET_LINK = "Invalid or expired reset link. Please request a new one."
RESET_EMAIL_SENT = "Check your email for a password reset link. Click the link to set your new password."
PASSWORD_UPDATED = "Password updated successfully. Please login with your new password."
RATE_LIMITED = "Too many attempts. Please wait a moment before trying again."

FIRST_EMAIL_STEP = "First verification successful! Please check your new email to complete the process."
EMAIL_UPDATED = "Email updated successfully!"


def login_error_message(provider_message: str) -> str:
    """Map a provider sign-in error to the text shown on the login form."""
    if "Invalid login credentials" in provider_message:
        return "Invalid email or password. Please try again."
    if "Email not confirmed" in provider_message:
        return "Please verify your email address before logging in."
    if "rate limit" in provider_message:
        return RATE_LIMITED
    return provider_message


@dataclass
class EmailCallbackResult:
    """Outcome of an email verification link."""

    step: int
    message: str
    session: Optional[AuthSession] = None


class AuthService:
    """Authentication flows against the provider."""

    def __init__(self, client: SupabaseClient, session_cache: SessionCache, reset_redirect_url: str):
        """
        Args:
            client: Provider client (anon key).
            session_cache: Cache notified of sign-in / sign-out events.
            reset_redirect_url: Page the recovery email links back to.
        """
        self._client = client
        self._cache = session_cache
        self._reset_redirect_url = reset_redirect_url

    async def login(self, email: str, password: str) -> AuthSession:
        """
        Sign in with email and password.

        Raises:
            ValidationError: Missing email or password.
            AuthenticationError: The provider rejected the sign-in.
        """
        if not email or not password:
            raise ValidationError("Please enter both email and password")

        try:
            session = await self._client.auth.sign_in_with_password(email, password)
        except ProviderError as e:
            logger.warning("Login failed", extra={"error": e.detail})
            raise AuthenticationError(login_error_message(e.detail)) from e

        self._cache.on_auth_state_change(SIGNED_IN, session)
        logger.info("User signed in", extra={"user_id": session.user.id})
        return session

    async def logout(self, session: Optional[AuthSession]) -> None:
        """
        Sign out at the provider.

        A provider failure is logged; the caller clears the local session either way.
        """
        if session is None:
            return
        try:
            await self._client.auth.sign_out(session.access_token)
            logger.info("User signed out", extra={"user_id": session.user.id})
        except LabPortalError as e:
            logger.error("Error logging out", extra={"error": e.detail})
        finally:
            self._cache.on_auth_state_change(SIGNED_OUT, session)

    async def request_password_reset(self, email: str) -> str:
        """
        Ask the provider to email a recovery link.

        Returns:
            The confirmation message for the form.
        """
        if not email:
            raise ValidationError("Please enter your email")
        await self._client.auth.reset_password_for_email(email, redirect_to=self._reset_redirect_url)
        logger.info("Password reset requested")
        return RESET_EMAIL_SENT

    async def exchange_recovery_token(self, token_hash: str) -> AuthSession:
        """
        Turn the token hash from a recovery link into a session.

        Raises:
            AuthenticationError: The link is invalid or expired.
        """
        try:
            session = await self._client.auth.verify_otp(token_hash, "recovery")
        except ProviderError as e:
            logger.warning("Reset state check error", extra={"error": e.detail})
            raise AuthenticationError(INVALID_RESET_LINK) from e
        self._cache.on_auth_state_change(SIGNED_IN, session)
        return session

    async def reset_password(
        self,
        session: Optional[AuthSession],
        password: str,
        confirm_password: str,
    ) -> str:
        """
        Set a new password from a recovery session, then sign out.

        Returns:
            The message shown on the login page afterwards.

        Raises:
            ValidationError: No reset session, or the passwords differ.
            ProviderError: The provider refused the update.
        """
        if session is None:
            raise ValidationError("Please use a valid reset link")
        if password != confirm_password:
            raise ValidationError("Passwords do not match")

        await self._client.auth.update_user(session.access_token, password=password)
        logger.info("Password reset completed", extra={"user_id": session.user.id})
        await self.logout(session)
        return PASSWORD_UPDATED

    async def handle_email_callback(
        self,
        stored: Optional[AuthSession],
        message: Optional[str] = None,
        type: Optional[str] = None,
        token_hash: Optional[str] = None,
    ) -> Optional[EmailCallbackResult]:
        """
        Handle the links sent when a user changes their email.

        The provider sends two links: one to the old address (confirmation
        accepted) and one to the new address (type=email_change). After the
        second, the `users` row is brought in line with the auth email.

        Returns:
            The result to display, or None when the link matches neither step.
        """
        if message and "Confirmation link accepted" in message:
            return EmailCallbackResult(step=1, message=FIRST_EMAIL_STEP)

        if type != "email_change":
            return None

        session = stored
        if token_hash:
            try:
                session = await self._client.auth.verify_otp(token_hash, "email_change")
            except ProviderError as e:
                raise AuthenticationError(e.detail) from e
            self._cache.on_auth_state_change(SIGNED_IN, session)
        if session is None:
            raise AuthenticationError("No session found after email verification")

        user = await self._client.auth.get_user(session.access_token)
        current = await (
            self._client.table("users", session.access_token)
            .select("*")
            .eq("user_id", session.user.id)
            .single()
        )
        if current.get("email") != user.email:
            await (
                self._client.table("users", session.access_token)
                .update({"email": user.email, "last_modified": utc_timestamp()})
                .eq("user_id", session.user.id)
                .execute()
            )
            logger.info("Profile email synced", extra={"user_id": session.user.id})

        return EmailCallbackResult(
            step=2,
            message=EMAIL_UPDATED,
            session=session.model_copy(update={"user": user}),
        )
