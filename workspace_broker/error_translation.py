"""Translate Google API and broker failures into operator-facing messages.

`classify_error` maps every failure onto the broker error taxonomy: upstream
errors by HTTP status, local errors by type and by the `invalid_grant` marker.
`translate_error` words the classified error and never raises.
"""

from __future__ import annotations

import json
from typing import Any

from google.auth.exceptions import TransportError as AuthTransportError
from googleapiclient.errors import HttpError

from workspace_broker.accounts import AuthStrategy
from workspace_broker.exceptions import (
    BrokerError,
    CredentialRevokedError,
    UpstreamRateLimitedError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)

REVOKED_MESSAGE = (
    "Refresh token revoked or expired. Visit /setup on the server to authorize the account again."
)


def upstream_status(error: BaseException) -> int | None:
    """Return the HTTP status carried by an upstream error, if any."""
    if isinstance(error, HttpError):
        try:
            return int(error.resp.status)
        except (AttributeError, TypeError, ValueError):
            return None
    status = getattr(error, "status_code", None)
    return status if isinstance(status, int) else None


def upstream_message(error: BaseException) -> str:
    """Extract the most useful message from an upstream error body."""
    if not isinstance(error, HttpError):
        return str(error)

    content: Any = error.content
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    try:
        data = json.loads(content)
    except (TypeError, ValueError):
        return str(content) if content else str(error)

    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            description = data.get("error_description")
            return f"{err}: {description}" if description else err
    return json.dumps(data)


def _is_revoked(error: BaseException) -> bool:
    return isinstance(error, CredentialRevokedError) or "invalid_grant" in str(error)


def classify_error(error: BaseException) -> BrokerError:
    """Map any failure onto the broker error taxonomy."""
    if isinstance(error, BrokerError):
        return error

    status = upstream_status(error)
    if status is not None:
        message = upstream_message(error)
        if status == 401:
            return CredentialRevokedError(message, status_code=status)
        if status == 429:
            return UpstreamRateLimitedError(message, status_code=status)
        if status >= 500:
            return UpstreamUnavailableError(message, status_code=status)
        return UpstreamRejectedError(message, status_code=status)

    # google-auth RefreshError on refresh, oauthlib InvalidGrantError on code exchange
    if _is_revoked(error):
        return CredentialRevokedError(str(error))
    if isinstance(error, (AuthTransportError, ConnectionError, TimeoutError)):
        return UpstreamUnavailableError(str(error))
    return BrokerError(str(error))


def _unauthorized_message(strategy: AuthStrategy | None, message: str) -> str:
    if strategy is AuthStrategy.DELEGATED:
        return (
            "Auth failed for the delegated account. Verify domain-wide delegation for the "
            f"service account and its scopes. {message}"
        )
    if strategy is AuthStrategy.OAUTH:
        return (
            "Auth failed for the OAuth account. The refresh token may be revoked; "
            f"visit /setup on the server to authorize again. {message}"
        )
    return (
        "Auth failed. For the delegated account verify domain-wide delegation; for OAuth "
        f"accounts visit /setup to authorize again. {message}"
    )


def _translate_status(status: int, message: str, strategy: AuthStrategy | None) -> str:
    if status == 400:
        return f"Bad request: {message}"
    if status == 401:
        return _unauthorized_message(strategy, message)
    if status == 403:
        return f"Forbidden. Ensure the required API scope is granted. {message}"
    if status == 404:
        return f"Not found: {message}"
    if status == 429:
        return "Rate limited. Wait and try again."
    return f"Google API error {status}: {message}"


def translate_error(error: object, strategy: AuthStrategy | None = None) -> str:
    """Return a human-readable message for any failure.

    Args:
        error: The exception (or any other object) that was raised.
        strategy: Strategy of the account involved, used to tailor 401 advice.
    """
    try:
        if not isinstance(error, BaseException):
            return f"Unexpected error: {error!r}"

        classified = classify_error(error)

        status = getattr(classified, "status_code", None)
        if status is not None:
            return _translate_status(status, str(classified), strategy)
        if isinstance(classified, CredentialRevokedError):
            return REVOKED_MESSAGE
        if classified is error:
            # Raised by the broker itself (e.g. MissingCredentialError); already worded
            return str(error)
        if "No refresh token" in str(error):
            return f"{error}. Visit /setup on the server to authorize."
        return f"Error: {error}"
    except Exception as e:  # noqa: BLE001 - translation must always produce a message
        return f"Unexpected error: {type(error).__name__} ({type(e).__name__} while translating)"
