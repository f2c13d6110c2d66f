"""
Jinja2 rendering for the server-rendered pages.

Every page gets the pending toasts of the browser session; rendering a
page consumes them.
"""
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.templating import Jinja2Templates

from labportal.core.datetime_utils import format_long_date
from labportal.schemas.patient import GENDERS
from labportal.services.notifications import Notifier
from labportal.services.profile_service import initials

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.globals["initials"] = initials
templates.env.globals["genders"] = GENDERS
templates.env.filters["long_date"] = format_long_date


def render(
    request: Request,
    name: str,
    context: Optional[Dict[str, Any]] = None,
    status_code: int = 200,
):
    """Render a template with the session's queued toasts."""
    context = dict(context or {})
    toasts = []
    if "session" in request.scope:
        toasts = Notifier(request.session).consume()
    context.setdefault("toasts", toasts)
    return templates.TemplateResponse(request, name, context, status_code=status_code)


FLASH_KEY = "flash"


def flash(request: Request, message: str) -> None:
    """Keep a one-off message for the next page rendered."""
    request.session[FLASH_KEY] = message


def pop_flash(request: Request) -> Optional[str]:
    return request.session.pop(FLASH_KEY, None)
