"""Exceptions raised by the workspace broker."""

from __future__ import annotations


class BrokerError(Exception):
    """Base exception for all broker errors."""

    pass


class AccountNotAllowedError(BrokerError):
    """Raised when an account is not on the allow-list."""

    def __init__(self, account: str) -> None:
        self.account = account
        super().__init__(f"Account not allowed: {account}")


class MissingCredentialError(BrokerError):
    """Raised when an OAuth account has no stored refresh token."""

    def __init__(self, account: str) -> None:
        self.account = account
        super().__init__(
            f"No refresh token for {account}. Visit /setup on the server to authorize."
        )


class CredentialRevokedError(BrokerError):
    """Raised when a stored credential was rejected (revoked or expired)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class UpstreamError(BrokerError):
    """Base exception for failures reported by a Google API."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class UpstreamRateLimitedError(UpstreamError):
    """Raised when a Google API returns 429."""


class UpstreamRejectedError(UpstreamError):
    """Raised for 4xx responses other than auth and rate-limit failures."""


class UpstreamUnavailableError(UpstreamError):
    """Raised for 5xx responses and network failures."""


class AuthorizationError(BrokerError):
    """Base exception for authorization flow failures."""

    pass


class AuthorizationStateInvalidError(AuthorizationError):
    """Raised when the OAuth state parameter cannot be decoded."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid authorization state: {reason}")


class AuthorizationSecretMismatchError(AuthorizationError):
    """Raised when a setup secret does not match the configured one."""

    def __init__(self) -> None:
        super().__init__("Invalid or missing setup token")


class NoRefreshTokenIssuedError(AuthorizationError):
    """Raised when the token exchange succeeds without a refresh token."""

    def __init__(self) -> None:
        super().__init__(
            "No refresh token received. This usually means the app already has access. "
            "Revoke it at https://myaccount.google.com/permissions, then try again."
        )


class TokenStoreError(BrokerError):
    """Raised when the token file exists but cannot be parsed."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid token file {path}: {reason}")
