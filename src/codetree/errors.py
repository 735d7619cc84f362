"""Error kinds raised across the provider adapter boundary.

Every HTTP or payload problem is mapped onto one of these before it leaves a
provider, so callers never need to know about ``httpx`` or provider-specific
status codes.
"""

import json
from typing import Optional

import httpx


class CodeTreeError(Exception):
    """Base class for all codetree errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotApplicable(CodeTreeError):
    """The page is not a repository view. Not a failure."""


class RefNotFound(CodeTreeError):
    """The requested ref (or repository) does not exist."""


class NetworkFailure(CodeTreeError):
    """Transport error or server-side failure."""


class AuthRequired(CodeTreeError):
    """The API refused the request; an access token is needed or invalid."""


class MalformedResponse(CodeTreeError):
    """The API answered with an unexpected shape."""


class TreeTooLarge(CodeTreeError):
    """The provider truncated a recursive tree listing."""


def raise_for_status(response: httpx.Response) -> None:
    """Map an unsuccessful response onto a codetree error."""
    status = response.status_code
    if status < 400:
        return

    url = response.request.url if response.request is not None else ""
    message = f"HTTP {status} for {url}"

    if status in (401, 403):
        raise AuthRequired(message, status)
    if status in (404, 422):
        raise RefNotFound(message, status)
    raise NetworkFailure(message, status)


def decode_json(response: httpx.Response):
    """Decode a JSON body, raising MalformedResponse on garbage."""
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedResponse(f"Invalid JSON from {response.request.url}: {e}") from e
