"""
Validation utilities for services.
"""
from labportal.services.validators.avatar_validator import (
    DEFAULT_MAX_SIZE,
    file_extension,
    validate_avatar,
    validate_content_type,
    validate_file_size,
)

__all__ = [
    "DEFAULT_MAX_SIZE",
    "file_extension",
    "validate_avatar",
    "validate_content_type",
    "validate_file_size",
]
