"""
Pydantic schemas for provider authentication payloads.
"""
import time
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class AuthUser(BaseModel):
    """The authenticated user as returned by the provider's auth API."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Provider user id (UUID)")
    email: Optional[str] = Field(None, description="Current sign-in email")
    user_metadata: Dict[str, Any] = Field(default_factory=dict)


class AuthSession(BaseModel):
    """
    A provider session.

    Stored in the signed session cookie between requests.
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    expires_at: Optional[int] = Field(None, description="Expiry as epoch seconds")
    user: AuthUser

    def model_post_init(self, __context: Any) -> None:
        # Token responses carry expires_in only
        if self.expires_at is None and self.expires_in is not None:
            self.expires_at = int(time.time()) + self.expires_in

    def is_expired(self, now: Optional[float] = None) -> bool:
        """True once the access token's expiry has passed."""
        if self.expires_at is None:
            return False
        now = time.time() if now is None else now
        return now >= self.expires_at
