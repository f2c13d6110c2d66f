"""
Toast notifications.

Toasts are queued in the browser session, so a toast raised before a
redirect is shown on the page the browser lands on. Rendering a page
consumes the queue.

Usage:
    notifier = Notifier(request.session)
    notifier.success("Profile updated successfully")

    toast_id = notifier.loading("Verifying your current password...")
    ...
    notifier.dismiss(toast_id)
"""
import logging
import uuid
from typing import Any, Awaitable, List, MutableMapping, Optional, TypeVar

from labportal.schemas.toast import Toast, ToastKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

SESSION_KEY = "toasts"
POSITION = "top-center"

SUCCESS_DURATION_MS = 3000
ERROR_DURATION_MS = 4000


class Notifier:
    """Toast queue bound to one browser session."""

    def __init__(self, session: MutableMapping[str, Any]):
        self._session = session

    def _queue(self) -> List[dict]:
        return list(self._session.get(SESSION_KEY, []))

    def _push(self, kind: ToastKind, message: str, description: str = "", duration: Optional[int] = None) -> str:
        toast = Toast(
            id=uuid.uuid4().hex[:12],
            kind=kind,
            message=message,
            description=description,
            duration=duration,
            position=POSITION,
        )
        queue = self._queue()
        queue.append(toast.model_dump())
        # Reassign so the session middleware sees the change
        self._session[SESSION_KEY] = queue
        return toast.id

    def success(self, message: str, description: str = "") -> str:
        return self._push("success", message, description, SUCCESS_DURATION_MS)

    def error(self, message: str, description: str = "") -> str:
        return self._push("error", message, description, ERROR_DURATION_MS)

    def loading(self, message: str) -> str:
        """Show a toast that stays until dismissed; returns its id."""
        return self._push("loading", message)

    def dismiss(self, toast_id: Optional[str] = None) -> None:
        """Remove one toast, or all of them when no id is given."""
        if toast_id is None:
            self._session[SESSION_KEY] = []
            return
        self._session[SESSION_KEY] = [t for t in self._queue() if t["id"] != toast_id]

    async def promise(
        self,
        awaitable: Awaitable[T],
        loading: str = "Loading...",
        success: str = "Success!",
        error: str = "Something went wrong",
    ) -> T:
        """
        Show `loading` while awaiting, then replace it with `success` or `error`.

        The awaitable's exception is re-raised after the error toast.
        """
        toast_id = self.loading(loading)
        try:
            result = await awaitable
        except Exception:
            self.dismiss(toast_id)
            self.error(error)
            raise
        self.dismiss(toast_id)
        self.success(success)
        return result

    def pending(self) -> List[Toast]:
        """Queued toasts, without consuming them."""
        return [Toast.model_validate(t) for t in self._queue()]

    def consume(self) -> List[Toast]:
        """Return and clear the queued toasts."""
        toasts = self.pending()
        if toasts:
            self._session[SESSION_KEY] = []
        return toasts
