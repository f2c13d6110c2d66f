"""
Pydantic schema for toast notifications.
"""
from typing import Literal, Optional

from pydantic import BaseModel, Field

ToastKind = Literal["success", "error", "loading"]


class Toast(BaseModel):
    """A transient notification rendered at the top of the page."""

    id: str
    kind: ToastKind
    message: str
    description: str = ""
    duration: Optional[int] = Field(None, description="Milliseconds before auto-dismiss; None stays until dismissed")
    position: str = "top-center"
