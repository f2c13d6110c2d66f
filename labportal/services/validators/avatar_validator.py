"""
Validation utilities for avatar uploads.

Any image type is accepted; the browser-reported content type decides.
"""
import logging
from typing import Optional, Tuple

from labportal.core.exceptions import FileTooLargeError, InvalidFileTypeError

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 5 * 1024 * 1024

NOT_AN_IMAGE = "Please select an image file"
TOO_LARGE = "Image size should be less than 5MB"


def validate_content_type(content_type: Optional[str]) -> str:
    """
    Validate that the upload is an image.

    Returns:
        str: The validated content type.

    Raises:
        InvalidFileTypeError: If the content type is missing or not image/*.
    """
    if not content_type or not content_type.startswith("image/"):
        logger.warning(f"Rejected avatar content type: {content_type}")
        raise InvalidFileTypeError(NOT_AN_IMAGE)
    return content_type


def validate_file_size(file_size: int, max_size: int = DEFAULT_MAX_SIZE) -> None:
    """
    Validate that the file is within the size limit.

    Raises:
        FileTooLargeError: If the file exceeds `max_size` bytes.
    """
    if file_size > max_size:
        logger.warning(f"Avatar size {file_size} exceeds maximum {max_size}")
        raise FileTooLargeError(TOO_LARGE)


def file_extension(filename: Optional[str]) -> str:
    """Text after the last '.' of the filename, or the whole name when there is none."""
    name = filename or ""
    return name.rsplit(".", 1)[-1]


def validate_avatar(
    content_type: Optional[str],
    filename: Optional[str],
    file_size: int,
    max_size: int = DEFAULT_MAX_SIZE,
) -> Tuple[str, str]:
    """
    Run every avatar check in order: type, then size.

    Returns:
        Tuple[str, str]: (content_type, file_extension)
    """
    validated_type = validate_content_type(content_type)
    validate_file_size(file_size, max_size)
    return validated_type, file_extension(filename)
