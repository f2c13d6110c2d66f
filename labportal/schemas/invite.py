"""
Pydantic schemas for the invite-user function.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class InviteRequest(BaseModel):
    """Body of a POST to the invite-user function.

    Only `email` is required; the rest is copied into the new user's metadata.
    """

    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None
    name: Optional[str] = None
    clinic_id: Optional[Any] = None
    clinic_name: Optional[str] = None
    user_id: Optional[str] = None
    redirect_to: Optional[str] = None

    def metadata(self) -> dict:
        """User metadata sent with both the create and invite calls."""
        return {
            "name": self.name or "",
            "clinic_id": self.clinic_id,
            "clinic_name": self.clinic_name,
        }
