"""Parsing helpers for HTTP error responses.

This module provides:
- extract_resource_info(): Resource type/id from a request URL (for 404s)
- parse_error_response(): Human-readable message from an error body
- extract_api_code(): Machine code from an error body, if present
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import urlsplit

from jobnik.core.constants import MAX_ERROR_TEXT_LENGTH


def extract_resource_info(url: str) -> tuple[str, str]:
    """Extract the resource type and id from the last two URL path segments.

    ``http://svc/api/tasks/abc`` yields ``("Task", "abc")``. A plural type
    segment is singularized by dropping the trailing ``s``.

    Args:
        url: Absolute request URL.

    Returns:
        ``(resource_type, resource_id)``, defaulting to ``("Resource", "unknown")``
        when the path has fewer than two segments.
    """
    segments = [segment for segment in urlsplit(url).path.split("/") if segment]
    if len(segments) < 2:
        return "Resource", "unknown"

    type_segment, id_segment = segments[-2], segments[-1]
    if type_segment.endswith("s"):
        type_segment = type_segment[:-1]
    resource_type = type_segment[:1].upper() + type_segment[1:] or "Resource"
    return resource_type, id_segment


def _load_json_body(body_text: str) -> Any:
    try:
        return json.loads(body_text)
    except ValueError:
        return None


def parse_error_response(status: int, body_text: str | None, method: str, url: str) -> str:
    """Build an error message from a response status and body.

    The base message is ``HTTP {status} error for {method} {url}``. A JSON
    body with a string ``message`` field appends that message. A non-JSON
    body is appended verbatim only when it is at most 200 characters.

    Args:
        status: HTTP status code.
        body_text: Decoded response body, or None if it could not be read.
        method: Request method.
        url: Request URL.

    Returns:
        The error message.
    """
    message = f"HTTP {status} error for {method} {url}"
    if not body_text:
        return message

    try:
        body = json.loads(body_text)
    except ValueError:
        if len(body_text) <= MAX_ERROR_TEXT_LENGTH:
            return f"{message}: {body_text}"
        return message

    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return f"{message}: {body['message']}"
    return message


def extract_api_code(body_text: str | None) -> str | None:
    """Return the string ``code`` field of a JSON error body, if any."""
    if not body_text:
        return None
    body = _load_json_body(body_text)
    if isinstance(body, dict) and isinstance(body.get("code"), str):
        return body["code"]
    return None
