"""
Pydantic schemas for the `users` profile table.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UserProfile(BaseModel):
    """Row of the `users` table.

    `user_id` links the row to the provider's auth user. The profile page
    selects a subset of columns, so everything but `id` is optional.
    """

    model_config = ConfigDict(extra="ignore")

    id: int = Field(..., description="Row id", examples=[1])
    user_id: Optional[str] = Field(None, description="Provider auth user id")
    name: Optional[str] = Field(None, examples=["Jane Doe"])
    email: Optional[str] = Field(None, examples=["jane@example.com"])
    avatar_url: Optional[str] = None
    role: Optional[str] = Field(None, examples=["admin"])
    created_at: Optional[str] = None
    last_modified: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class ProfileUpdate(BaseModel):
    """Fields submitted by the profile edit form."""

    name: str = ""
    email: str = ""
    new_password: str = ""
    confirm_password: str = ""
