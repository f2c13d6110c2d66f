"""
Two-step password change for a signed-in user.

Step 1 proves the user knows the current password by signing in with it.
Step 2 sets the new password. Wizard state (current step and field errors)
lives in the browser session so it survives the POST-redirect-GET cycle.

Architecture:
    Account router → PasswordChangeWizard → SupabaseClient.auth
"""
import logging
from typing import Any, Dict, MutableMapping, Optional

from labportal.clients.supabase_client import SupabaseClient
from labportal.core.exceptions import LabPortalError, ProviderError, ValidationError
from labportal.schemas.auth import AuthSession
from labportal.services.auth_service import RATE_LIMITED
from labportal.services.notifications import Notifier

logger = logging.getLogger(__name__)

STATE_KEY = "password_change"

VERIFY_STEP = 1
CHANGE_STEP = 2
MIN_PASSWORD_LENGTH = 6

CURRENT_REQUIRED = "Please enter your current password to continue"
ACCOUNT_UNVERIFIABLE = "Unable to verify your account. Please try again."
CURRENT_INCORRECT = "The current password you entered is incorrect"
NEW_REQUIRED = "Please enter a new password"
NEW_TOO_SHORT = "Password must be at least 6 characters long for security"
CONFIRM_REQUIRED = "Please confirm your new password"
CONFIRM_MISMATCH = "The passwords you entered don't match. Please try again"

FIX_BEFORE_CONTINUING = "Please fix the errors before continuing"
FIX_BEFORE_UPDATING = "Please fix the errors before updating your password"


def validate_new_password(new_password: str, confirm_password: str) -> Dict[str, str]:
    """Field errors for the second step; empty when the input is acceptable."""
    errors: Dict[str, str] = {}
    if not new_password:
        errors["new_password"] = NEW_REQUIRED
    elif len(new_password) < MIN_PASSWORD_LENGTH:
        errors["new_password"] = NEW_TOO_SHORT

    if not confirm_password:
        errors["confirm_password"] = CONFIRM_REQUIRED
    elif new_password != confirm_password:
        errors["confirm_password"] = CONFIRM_MISMATCH
    return errors


class PasswordChangeWizard:
    """Password change wizard bound to one browser session."""

    def __init__(
        self,
        client: SupabaseClient,
        state: MutableMapping[str, Any],
        notifier: Notifier,
    ):
        """
        Args:
            client: Provider client (anon key).
            state: Mapping the wizard state is kept in (the cookie session).
            notifier: Toast queue for the same session.
        """
        self._client = client
        self._state = state
        self._notifier = notifier

    @property
    def step(self) -> int:
        return self._load().get("step", VERIFY_STEP)

    @property
    def errors(self) -> Dict[str, str]:
        return dict(self._load().get("errors", {}))

    def _load(self) -> Dict[str, Any]:
        return dict(self._state.get(STATE_KEY) or {"step": VERIFY_STEP, "errors": {}})

    def _save(self, step: int, errors: Optional[Dict[str, str]] = None) -> None:
        self._state[STATE_KEY] = {"step": step, "errors": errors or {}}

    def _fail(self, step: int, errors: Dict[str, str], toast: str) -> ValidationError:
        self._save(step, errors)
        self._notifier.error(toast)
        return ValidationError(toast, errors=errors)

    async def verify_current_password(self, session: AuthSession, current_password: str) -> AuthSession:
        """
        Step 1: sign in with the current password.

        Returns:
            The session issued by the verifying sign-in.

        Raises:
            ValidationError: Empty or wrong password, or the account could not be loaded.
        """
        if not current_password:
            raise self._fail(VERIFY_STEP, {"current_password": CURRENT_REQUIRED}, FIX_BEFORE_CONTINUING)

        toast_id = self._notifier.loading("Verifying your current password...")
        try:
            try:
                user = await self._client.auth.get_user(session.access_token)
            except LabPortalError as e:
                logger.error("Password verification error", extra={"error": e.detail})
                raise self._fail(VERIFY_STEP, {"current_password": ACCOUNT_UNVERIFIABLE}, ACCOUNT_UNVERIFIABLE) from e

            try:
                verified = await self._client.auth.sign_in_with_password(user.email or "", current_password)
            except ProviderError as e:
                message = e.detail
                if "Invalid login credentials" in message:
                    message = CURRENT_INCORRECT
                logger.warning("Password verification error", extra={"error": e.detail})
                raise self._fail(VERIFY_STEP, {"current_password": message}, message) from e
        finally:
            self._notifier.dismiss(toast_id)

        self._notifier.success("Current password verified successfully")
        self._save(CHANGE_STEP)
        logger.info("Current password verified", extra={"user_id": user.id})
        return verified

    async def change_password(self, session: AuthSession, new_password: str, confirm_password: str) -> None:
        """
        Step 2: set the new password, then return to step 1.

        Raises:
            ValidationError: Not on step 2, invalid input, or the provider refused.
        """
        if self.step != CHANGE_STEP:
            raise self._fail(VERIFY_STEP, {"current_password": CURRENT_REQUIRED}, FIX_BEFORE_CONTINUING)

        errors = validate_new_password(new_password, confirm_password)
        if errors:
            raise self._fail(CHANGE_STEP, errors, FIX_BEFORE_UPDATING)

        toast_id = self._notifier.loading("Updating your password...")
        try:
            await self._client.auth.update_user(session.access_token, password=new_password)
        except LabPortalError as e:
            message = RATE_LIMITED if "rate limit" in e.detail else e.detail
            logger.error("Password update error", extra={"error": e.detail})
            raise self._fail(CHANGE_STEP, {"new_password": message}, message) from e
        finally:
            self._notifier.dismiss(toast_id)

        self._notifier.success("Your password has been updated successfully")
        self.reset()
        logger.info("Password changed", extra={"user_id": session.user.id})

    def back(self) -> None:
        """Return to step 1 and clear errors."""
        self._save(VERIFY_STEP)

    def reset(self) -> None:
        self._state.pop(STATE_KEY, None)
