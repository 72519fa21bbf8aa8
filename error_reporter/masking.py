# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""
Filtering for outgoing notices

Redacts sensitive parameters, headers and URL credentials before anything
leaves the process.
"""

import re
from typing import Any, Iterable

FILTERED = "[FILTERED]"

_URL_AUTH_PATTERN = re.compile(r"(https?://)([^:/@]+):([^@]+)@")


def _is_filtered(key: str, filters: Iterable[str]) -> bool:
    key_lower = str(key).lower()
    return any(pattern.lower() in key_lower for pattern in filters)


def filter_params(
    params: dict[str, Any],
    filters: Iterable[str],
    depth: int = 0,
    max_depth: int = 5,
) -> tuple[dict[str, Any], list[str]]:
    """
    Redact values whose key matches any filter pattern.

    Returns:
        Tuple of (filtered_params, list_of_filtered_keys)
    """
    filters = list(filters)
    filtered: dict[str, Any] = {}
    filtered_keys: list[str] = []

    for key, value in params.items():
        if _is_filtered(key, filters):
            filtered[key] = FILTERED
            filtered_keys.append(str(key))
        elif isinstance(value, dict):
            if depth >= max_depth:
                filtered[key] = FILTERED
                filtered_keys.append(str(key))
                continue
            nested, nested_keys = filter_params(value, filters, depth + 1, max_depth)
            filtered[key] = nested
            filtered_keys.extend(f"{key}.{k}" for k in nested_keys)
        elif isinstance(value, list):
            filtered[key] = [
                filter_params(item, filters, depth + 1, max_depth)[0] if isinstance(item, dict) else item
                for item in value
            ]
        else:
            filtered[key] = value

    return filtered, filtered_keys


def filter_headers(
    headers: dict[str, str],
    sensitive_headers: Iterable[str],
) -> tuple[dict[str, str], list[str]]:
    """
    Redact sensitive HTTP headers.

    Returns:
        Tuple of (filtered_headers, list_of_filtered_keys)
    """
    sensitive_lower = {h.lower() for h in sensitive_headers}
    filtered: dict[str, str] = {}
    filtered_keys: list[str] = []

    for key, value in headers.items():
        if key.lower() in sensitive_lower:
            filtered[key] = FILTERED
            filtered_keys.append(f"headers.{key}")
        else:
            filtered[key] = value

    return filtered, filtered_keys


def filter_url(url: str) -> str:
    """Mask credentials embedded in URLs"""
    return _URL_AUTH_PATTERN.sub(r"\1***:***@", url)


def headers_to_cgi_data(headers: dict[str, str]) -> dict[str, str]:
    """Rename headers to CGI-style keys (``user-agent`` -> ``HTTP_USER_AGENT``)."""
    cgi: dict[str, str] = {}
    for key, value in headers.items():
        name = key.upper().replace("-", "_")
        if name not in ("CONTENT_TYPE", "CONTENT_LENGTH"):
            name = f"HTTP_{name}"
        cgi[name] = value
    return cgi
