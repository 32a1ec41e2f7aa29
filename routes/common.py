"""
Helpers shared by the JSON blueprints.
"""

from typing import Any, Dict

import bleach
from flask import current_app, request

from core.exceptions import ValidationError


MAX_TEXT_LENGTH = 2000


def _sanitize_text(text: str, max_length: int = MAX_TEXT_LENGTH) -> str:
    """
    Sanitize user input text to prevent XSS and injection attacks.

    Args:
        text: Raw input text
        max_length: Maximum length to enforce

    Returns:
        Sanitized text safe for storage and display
    """
    if not text:
        return ""

    # Strip whitespace
    text = text.strip()

    # Bleach HTML tags and attributes
    text = bleach.clean(text, tags=[], strip=True)

    # Truncate if needed
    if max_length and len(text) > max_length:
        text = text[:max_length]

    return text


def sanitize(value: Any) -> Any:
    """Sanitize every string inside a JSON value."""
    if isinstance(value, str):
        return _sanitize_text(value)
    if isinstance(value, dict):
        return {key: sanitize(item) for key, item in value.items()}
    if isinstance(value, list):
        return [sanitize(item) for item in value]
    return value


def json_body() -> Dict[str, Any]:
    """Request JSON object, or ValidationError when the body is not one."""
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def require_field(body: Dict[str, Any], name: str, kind: type = str) -> Any:
    value = body.get(name)
    if value is None or (kind is str and not str(value).strip()):
        raise ValidationError(f"{name} is required", field=name)
    if not isinstance(value, kind):
        raise ValidationError(f"{name} must be a {kind.__name__}", field=name)
    return value


def service(key: str) -> Any:
    """Engine registered on the app in create_app()."""
    return current_app.config[key]
