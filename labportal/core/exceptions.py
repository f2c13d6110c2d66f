"""
Shared exception classes and error handling utilities for LabPortal.

This module provides:
- Custom exception hierarchy for domain-specific errors
- Consistent error response formatting
- Exception handlers for FastAPI integration (JSON for API callers,
  redirects and HTML pages for browsers)

Usage:
    from labportal.core.exceptions import NotFoundError, ProviderError

    # In service layer - raise domain exceptions
    raise NotFoundError("Patient not found", patient_id=patient_id)

    # In FastAPI - register handlers via setup_exception_handlers(app)
"""
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


# =============================================================================
# BASE EXCEPTION CLASSES
# =============================================================================

class LabPortalError(Exception):
    """
    Base exception for all LabPortal domain errors.

    Provides consistent error structure with status code and detail message.
    The detail is safe to show to the user.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: str = "An unexpected error occurred"

    def __init__(
        self,
        detail: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs: Any
    ):
        """
        Initialize the exception.

        Args:
            detail: Human-readable error message. Uses class default if not provided.
            status_code: HTTP status code. Uses class default if not provided.
            **kwargs: Additional context to include in error response.
        """
        self.detail = detail or self.__class__.detail
        self.status_code = status_code or self.__class__.status_code
        self.context = kwargs
        super().__init__(self.detail)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        result: Dict[str, Any] = {"detail": self.detail}
        if self.context:
            result["context"] = self.context
        return result


# =============================================================================
# AUTHENTICATION / AUTHORIZATION
# =============================================================================

class AuthenticationError(LabPortalError):
    """Raised when the caller's identity cannot be established."""

    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Authentication required"


class LoginRequiredError(AuthenticationError):
    """Raised by page dependencies when there is no usable session."""

    detail = "Please log in to continue"


class RoleRequiredError(AuthenticationError):
    """Raised when a page requires a role the user does not have."""

    detail = "You don't have permission to access this page"


class PermissionDeniedError(LabPortalError):
    """Raised by services when an operation is not allowed for the user."""

    status_code = status.HTTP_403_FORBIDDEN
    detail = "Permission denied"


# =============================================================================
# DATA EXCEPTIONS
# =============================================================================

class NotFoundError(LabPortalError):
    """Raised when a record does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    detail = "Not found"


class ValidationError(LabPortalError):
    """
    Raised when form input fails validation.

    `errors` maps form field names to messages.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Please fix the errors in the form"

    def __init__(
        self,
        detail: Optional[str] = None,
        errors: Optional[Dict[str, str]] = None,
        **kwargs: Any
    ):
        self.errors = errors or {}
        super().__init__(detail=detail, errors=self.errors, **kwargs)


# =============================================================================
# UPLOAD EXCEPTIONS
# =============================================================================

class UploadError(LabPortalError):
    """Base exception for upload-related errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Upload failed"


class InvalidFileTypeError(UploadError):
    """Raised when uploaded file has invalid type."""

    status_code = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE
    detail = "Unsupported file type"


class FileTooLargeError(UploadError):
    """Raised when uploaded file exceeds size limit."""

    status_code = status.HTTP_413_CONTENT_TOO_LARGE
    detail = "File size exceeds maximum allowed"


# =============================================================================
# PROVIDER EXCEPTIONS
# =============================================================================

class ProviderError(LabPortalError):
    """
    Raised when the hosted backend rejects a call.

    `detail` is the provider's own message; `provider_status` and `body`
    keep the raw response for callers that pass it through.
    """

    status_code = status.HTTP_502_BAD_GATEWAY
    detail = "Backend service error"

    def __init__(
        self,
        detail: Optional[str] = None,
        provider_status: Optional[int] = None,
        body: Any = None,
        **kwargs: Any
    ):
        self.provider_status = provider_status
        self.body = body
        super().__init__(detail=detail, provider_status=provider_status, **kwargs)


class ProviderConnectionError(ProviderError):
    """Raised when the hosted backend cannot be reached."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "Backend service unavailable"


class ServiceUnavailableError(LabPortalError):
    """
    Raised when a page cannot be served because the provider is down.

    Unlike a rejected session, the stored session is kept so the user is
    still signed in once the provider recovers.
    """

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "The service is temporarily unavailable. Please try again in a moment."


class ConfigurationError(LabPortalError):
    """Raised when required configuration is missing at call time."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Server configuration error"


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

def wants_html(request: Request) -> bool:
    """True when the caller is a browser rather than an API client."""
    accept = request.headers.get("accept", "")
    return "text/html" in accept or "application/json" not in accept


async def labportal_exception_handler(
    request: Request,
    exc: LabPortalError
) -> JSONResponse:
    """
    Handle LabPortalError exceptions that escaped a route.

    Page routes catch the errors they can surface as toasts; anything left
    ends up here and is returned as JSON.
    """
    logger.warning(
        f"LabPortalError: {exc.detail}",
        extra={
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def login_required_handler(
    request: Request,
    exc: LoginRequiredError
):
    """Send browsers to the login page, API callers get a 401."""
    if not wants_html(request):
        return await labportal_exception_handler(request, exc)
    logger.info("Redirecting anonymous request to login", extra={"path": request.url.path})
    return RedirectResponse("/login", status_code=status.HTTP_303_SEE_OTHER)


async def role_required_handler(
    request: Request,
    exc: RoleRequiredError
):
    """Render the Unauthorized page."""
    if not wants_html(request):
        return await labportal_exception_handler(request, exc)
    from labportal.api.templating import render

    logger.warning("Role check failed", extra={"path": request.url.path})
    return render(request, "unauthorized.html", {}, status_code=exc.status_code)


async def service_unavailable_handler(
    request: Request,
    exc: ServiceUnavailableError
):
    """Render the error page for browsers, JSON for API callers."""
    if not wants_html(request):
        return await labportal_exception_handler(request, exc)
    from labportal.api.templating import render

    logger.warning("Provider unavailable", extra={"path": request.url.path})
    return render(
        request,
        "error.html",
        {"title": "Service Unavailable", "message": exc.detail},
        status_code=exc.status_code,
    )


async def not_found_handler(
    request: Request,
    exc: StarletteHTTPException
):
    """
    Render the 404 page for browsers.

    Other HTTP errors keep FastAPI's default JSON body.
    """
    if exc.status_code == status.HTTP_404_NOT_FOUND and wants_html(request):
        from labportal.api.templating import render

        return render(request, "not_found.html", {}, status_code=status.HTTP_404_NOT_FOUND)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(LabPortalError, labportal_exception_handler)
    app.add_exception_handler(LoginRequiredError, login_required_handler)
    app.add_exception_handler(RoleRequiredError, role_required_handler)
    app.add_exception_handler(ServiceUnavailableError, service_unavailable_handler)
    app.add_exception_handler(StarletteHTTPException, not_found_handler)
