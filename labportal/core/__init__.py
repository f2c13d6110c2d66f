"""
Core module for application configuration, logging, and shared plumbing.

This module provides:
- Settings: Application configuration via pydantic-settings
- Exceptions: Domain-specific exception classes with HTTP status codes
- Datetime utilities: UTC-first datetime handling

Dependency injection (core.dependencies) and the page guards (core.auth)
import the service layer and are not re-exported here. Import them
directly from their modules.
"""
from labportal.core.config import settings, Settings

# Exception classes for consistent error handling
from labportal.core.exceptions import (
    LabPortalError,
    AuthenticationError,
    LoginRequiredError,
    RoleRequiredError,
    PermissionDeniedError,
    NotFoundError,
    ValidationError,
    UploadError,
    InvalidFileTypeError,
    FileTooLargeError,
    ProviderError,
    ProviderConnectionError,
    ServiceUnavailableError,
    ConfigurationError,
    setup_exception_handlers,
)

# UTC datetime utilities
from labportal.core.datetime_utils import (
    utc_now,
    to_utc,
    utc_timestamp,
    parse_datetime,
    format_iso,
    format_long_date,
)

__all__ = [
    # Settings
    "settings",
    "Settings",
    # Exceptions
    "LabPortalError",
    "AuthenticationError",
    "LoginRequiredError",
    "RoleRequiredError",
    "PermissionDeniedError",
    "NotFoundError",
    "ValidationError",
    "UploadError",
    "InvalidFileTypeError",
    "FileTooLargeError",
    "ProviderError",
    "ProviderConnectionError",
    "ServiceUnavailableError",
    "ConfigurationError",
    "setup_exception_handlers",
    # Datetime utilities
    "utc_now",
    "to_utc",
    "utc_timestamp",
    "parse_datetime",
    "format_iso",
    "format_long_date",
]
