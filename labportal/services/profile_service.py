"""
Service layer for the signed-in user's profile.

Architecture:
    Account router → ProfileService → SupabaseClient (auth, users table, avatars bucket)

Dependency Injection:
    Use core.dependencies.get_profile_service() in routers with Depends().
"""
import logging
import uuid
from typing import Optional

from labportal.clients.supabase_client import SupabaseClient
from labportal.core.datetime_utils import utc_timestamp
from labportal.core.exceptions import (
    AuthenticationError,
    LabPortalError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from labportal.schemas.auth import AuthSession, AuthUser
from labportal.schemas.profile import ProfileUpdate, UserProfile
from labportal.services.validators import DEFAULT_MAX_SIZE, validate_avatar

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = "id, name, email, avatar_url, role, created_at"

LOAD_FAILED = "Failed to load user details."
NO_CURRENT_USER = "Unable to get current user"


def initials(name: Optional[str], email: Optional[str] = None) -> str:
    """
    Avatar fallback text: first letter of each word of the name.

    Falls back to the upper-cased first letter of the email, then "U".
    """
    if name:
        return "".join(word[0] for word in name.split(" ") if word)
    if email:
        return email[0].upper()
    return "U"


class ProfileService:
    """
    Service layer for profile operations.

    Every method acts as the user of the given session so row-level
    security on `users` and the avatars bucket applies.
    """

    def __init__(
        self,
        client: SupabaseClient,
        bucket: str = "avatars",
        max_avatar_size: int = DEFAULT_MAX_SIZE,
    ):
        """
        Initialize the profile service.

        Args:
            client: Provider client (anon key).
            bucket: Storage bucket holding avatars.
            max_avatar_size: Largest accepted avatar in bytes.
        """
        self._client = client
        self._bucket = bucket
        self._max_avatar_size = max_avatar_size

    def avatar_url(self, path: Optional[str]) -> Optional[str]:
        """Public URL for a stored avatar path; absolute URLs pass through."""
        if not path:
            return None
        if path.startswith("http"):
            return path
        return self._client.storage.get_public_url(self._bucket, path)

    def _users(self, session: AuthSession):
        return self._client.table("users", session.access_token)

    async def _current_user(self, session: AuthSession) -> AuthUser:
        try:
            return await self._client.auth.get_user(session.access_token)
        except LabPortalError as e:
            logger.error("Unable to get current user", extra={"error": e.detail})
            raise AuthenticationError(NO_CURRENT_USER) from e

    async def get_profile(self, session: AuthSession) -> UserProfile:
        """
        Load the profile row for the signed-in user.

        Raises:
            NotFoundError: The user or the row could not be loaded.
        """
        try:
            user = await self._client.auth.get_user(session.access_token)
            row = await (
                self._client.table("users", session.access_token)
                .select(PROFILE_COLUMNS)
                .eq("user_id", user.id)
                .single()
            )
        except LabPortalError as e:
            logger.error("Fetch error", extra={"error": e.detail})
            raise NotFoundError(LOAD_FAILED) from e
        return UserProfile.model_validate(row)

    async def get_user_details(self, session: AuthSession) -> Optional[UserProfile]:
        """Full profile row for navigation chrome; None when it cannot be read."""
        try:
            row = await (
                self._client.table("users", session.access_token)
                .select("*")
                .eq("user_id", session.user.id)
                .maybe_single()
            )
        except LabPortalError as e:
            logger.warning("Error fetching user details", extra={"error": e.detail})
            return None
        return UserProfile.model_validate(row) if row else None

    async def update_profile(self, session: AuthSession, form: ProfileUpdate) -> UserProfile:
        """
        Save the profile form.

        Order: name (table row), then email, then password (provider), then
        the row is re-read.

        Raises:
            ValidationError: Password confirmation mismatch.
            AuthenticationError: No current user.
            NotFoundError: No profile row.
            ProviderError: Any provider call failed.
        """
        if form.new_password and form.new_password != form.confirm_password:
            raise ValidationError("Passwords do not match", errors={"confirm_password": "Passwords do not match"})

        user = await self._current_user(session)
        try:
            record = await self._users(session).select("id, email").eq("user_id", user.id).maybe_single()
        except ProviderError as e:
            logger.error("Error fetching user record", extra={"error": e.detail})
            raise ProviderError("Failed to verify user record", provider_status=e.provider_status) from e
        if record is None:
            raise NotFoundError("User record not found")

        row_id = record["id"]
        logger.info("Updating user record", extra={"user_id": user.id, "row_id": row_id})
        await self._users(session).update({"name": form.name, "last_modified": utc_timestamp()}).eq("id", row_id).execute()

        if form.email != record.get("email"):
            await self._client.auth.update_user(session.access_token, email=form.email)
            logger.info("Email change requested", extra={"user_id": user.id})

        if form.new_password:
            await self._client.auth.update_user(session.access_token, password=form.new_password)
            logger.info("Password updated from profile", extra={"user_id": user.id})

        fresh = await self._users(session).select("*").eq("id", row_id).maybe_single()
        if fresh is None:
            raise NotFoundError("Failed to fetch updated user data")
        return UserProfile.model_validate(fresh)

    async def upload_avatar(
        self,
        session: AuthSession,
        filename: Optional[str],
        content_type: Optional[str],
        content: bytes,
    ) -> UserProfile:
        """
        Replace the user's avatar.

        Existing objects under the user's folder are removed first; failures
        there are logged and ignored.

        Raises:
            InvalidFileTypeError: Not an image.
            FileTooLargeError: Over the size limit.
            AuthenticationError: No current user.
            ProviderError: Upload or row update failed.
        """
        content_type, extension = validate_avatar(
            content_type, filename, len(content), self._max_avatar_size
        )
        user = await self._current_user(session)
        token = session.access_token
        file_path = f"{user.id}/{uuid.uuid4()}.{extension}"

        try:
            existing = await self._client.storage.list(self._bucket, user.id, access_token=token)
            if existing:
                await self._client.storage.remove(
                    self._bucket,
                    [f"{user.id}/{item['name']}" for item in existing],
                    access_token=token,
                )
        except LabPortalError as e:
            logger.info("No existing avatar to delete or delete failed", extra={"error": e.detail})

        await self._client.storage.upload(
            self._bucket,
            file_path,
            content,
            content_type,
            access_token=token,
            cache_control="3600",
            upsert=True,
        )
        public_url = self._client.storage.get_public_url(self._bucket, file_path)

        rows = await (
            self._client.table("users", token)
            .update({"avatar_url": public_url, "last_modified": utc_timestamp()})
            .eq("user_id", user.id)
            .execute()
        )
        if not rows:
            raise NotFoundError("User record not found")

        logger.info("Avatar updated", extra={"user_id": user.id, "path": file_path})
        return UserProfile.model_validate(rows[0])
