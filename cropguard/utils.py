# =============================================================================
# CropGuard API
# utils.py - Utility Functions
#
# Common utility functions used across the application including
# response helpers, file naming, and defensive parsing of provider output.
# =============================================================================

import re
import json
import base64
import binascii
import random
import string
from datetime import datetime
from flask import jsonify
from werkzeug.utils import secure_filename

from cropguard.errors import InputValidationError

_FENCE_PATTERN = re.compile(r'^```[a-zA-Z]*\s*|\s*```$')
_JSON_OBJECT_PATTERN = re.compile(r'\{[\s\S]*\}')
_DATA_URI_PATTERN = re.compile(r'^data:[\w/+.-]+;base64,')


# =============================================================================
# Provider Output Parsing
# =============================================================================

def strip_code_fences(text: str) -> str:
    """
    Remove markdown code-fence wrapping from a model reply.

    Args:
        text: Raw reply, possibly wrapped in ```json ... ```

    Returns:
        str: Reply without the surrounding fences
    """
    return _FENCE_PATTERN.sub('', (text or '').strip()).strip()


def parse_json_reply(text: str) -> dict:
    """
    Parse the JSON object contained in a model reply.

    Strips code fences first; if the reply still carries prose around the
    object, the outermost {...} span is parsed instead.

    Raises:
        ValueError: No JSON object could be parsed
    """
    cleaned = strip_code_fences(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        match = _JSON_OBJECT_PATTERN.search(cleaned)
        if not match:
            raise ValueError('Reply does not contain a JSON object')
        data = json.loads(match.group(0))

    if not isinstance(data, dict):
        raise ValueError('Reply JSON is not an object')
    return data


def snippet(text, length=200) -> str:
    """Shorten raw provider output for log messages."""
    if text is None:
        return ''
    text = str(text)
    return text if len(text) <= length else text[:length] + '...'


# =============================================================================
# File Handling Functions
# =============================================================================

def allowed_file(filename: str, allowed_extensions) -> bool:
    """
    Check if uploaded file has an allowed extension.

    Args:
        filename: Name of the uploaded file
        allowed_extensions: Set of lower-case extensions

    Returns:
        bool: True if extension is allowed, False otherwise
    """
    return bool(filename) and '.' in filename and \
        filename.rsplit('.', 1)[1].lower() in allowed_extensions


def generate_unique_filename(prefix: str = '') -> str:
    """
    Generate a unique file stem with timestamp and random suffix.

    Args:
        prefix: Optional prefix (e.g. owner id), sanitized

    Returns:
        str: Unique, filesystem-safe name without extension
    """
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    random_suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=8))
    stem = f"{timestamp}_{random_suffix}"

    if prefix:
        safe_prefix = secure_filename(prefix)
        if safe_prefix:
            stem = f"{safe_prefix}_{stem}"
    return stem


def decode_base64_image(image_base64: str) -> bytes:
    """
    Decode a base64 image string, accepting an optional data URI prefix.

    Raises:
        InputValidationError: The string is not valid base64
    """
    if not isinstance(image_base64, str):
        raise InputValidationError('Image base64 data must be a string')

    payload = _DATA_URI_PATTERN.sub('', image_base64.strip())
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise InputValidationError('Image base64 data is invalid')


# =============================================================================
# Response Helpers
# =============================================================================

def success_response(data=None, message=None, status_code=200):
    """
    Create a standardized success response.

    Args:
        data: Response data (dict or list)
        message: Success message
        status_code: HTTP status code (default 200)

    Returns:
        tuple: (response, status_code)
    """
    response = {
        'success': True,
        'status': 'success'
    }

    if data is not None:
        response['data'] = data
    if message:
        response['message'] = message

    return jsonify(response), status_code


def error_response(error, details=None, status_code=400, error_type=None):
    """
    Create a standardized error response.

    Args:
        error: Error message
        details: Additional error details
        status_code: HTTP status code (default 400)
        error_type: Coarse error category

    Returns:
        tuple: (response, status_code)
    """
    response = {
        'success': False,
        'status': 'error',
        'error': error
    }

    if error_type:
        response['type'] = error_type
    if details:
        response['details'] = details

    return jsonify(response), status_code
