"""
Input validation utilities for the backend API.
"""
import math
import re
from typing import Tuple

from app.utils.image_compression import CompressionOptions


ALLOWED_IMAGE_TYPES = ('image/jpeg', 'image/png', 'image/webp', 'image/gif', 'image/avif')

# CJK Unified Ideographs
_CHINESE_CHARS_RE = re.compile(r'[\u4e00-\u9fa5]')


def validate_image_file(file) -> Tuple[bool, str]:
    """
    Validates an image before compression and upload.

    Args:
        file: FileStorage from a Flask request, or a SourceImage

    Returns:
        Tuple of (is_valid, error_message)
    """
    if file.content_type not in ALLOWED_IMAGE_TYPES:
        return False, "Invalid file type. Please upload a JPEG, PNG, WEBP, GIF, or AVIF image."

    if _CHINESE_CHARS_RE.search(file.filename or ''):
        return False, "Filename must not contain Chinese characters. Please rename the file."

    return True, ""


def parse_compression_options(form, defaults: CompressionOptions) -> Tuple[bool, CompressionOptions, str]:
    """
    Builds CompressionOptions from optional request form fields.

    Args:
        form: Mapping of form fields (max_size_mb, max_width_or_height, quality, file_type)
        defaults: Options used for any field not supplied

    Returns:
        Tuple of (is_valid, options, error_message)
    """
    try:
        max_size_mb = float(form.get('max_size_mb') or defaults.max_size_mb)
        quality = float(form.get('quality') or defaults.quality)
    except (TypeError, ValueError) as e:
        return False, defaults, f"Compression options must be numeric: {str(e)}"

    try:
        max_width_or_height = int(form.get('max_width_or_height') or defaults.max_width_or_height)
    except (TypeError, ValueError):
        return False, defaults, "max_width_or_height must be a whole number of pixels"

    file_type = form.get('file_type') or defaults.file_type

    if not math.isfinite(max_size_mb) or max_size_mb <= 0:
        return False, defaults, "max_size_mb must be a finite number greater than 0"

    if max_width_or_height <= 0:
        return False, defaults, "max_width_or_height must be greater than 0"

    if not 0 < quality <= 1:
        return False, defaults, "quality must be between 0 and 1"

    if file_type not in ALLOWED_IMAGE_TYPES:
        return False, defaults, f"Unsupported file_type: {file_type}"

    return True, CompressionOptions(
        max_size_mb=max_size_mb,
        max_width_or_height=max_width_or_height,
        quality=quality,
        file_type=file_type
    ), ""


def sanitize_string(input_str: str) -> str:
    """
    Sanitize string input to prevent injection attacks.

    Args:
        input_str: String to sanitize

    Returns:
        Sanitized string
    """
    if not input_str:
        return ""

    # Remove any null bytes
    sanitized = input_str.replace('\x00', '')

    # Strip whitespace
    sanitized = sanitized.strip()

    # Limit length to prevent DoS
    max_length = 256
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized
