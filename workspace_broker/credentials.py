"""Credential construction for both authentication strategies.

The resolver only builds credential objects. Access tokens are fetched
lazily by google-auth on the first API request made with them.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from google.auth.credentials import Credentials as GoogleCredentials
from google.oauth2 import credentials as oauth2_credentials
from google.oauth2 import service_account

from workspace_broker.accounts import AccountRegistry, AuthStrategy, normalize_account
from workspace_broker.exceptions import MissingCredentialError
from workspace_broker.token_store import TokenStore

# Full scope set for mail, calendar, drive and contacts
SCOPES = [
    "https://mail.google.com/",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/contacts",
]

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


@dataclass(frozen=True)
class CredentialHandle:
    """Credentials for one account, tagged with the strategy that built them."""

    account: str
    strategy: AuthStrategy
    credentials: GoogleCredentials


class CredentialResolver:
    """Builds credentials for an account according to its AuthStrategy.

    Args:
        registry: Allow-list and strategy binding.
        token_store: Source of OAuth refresh tokens.
        key_file: Service account JSON key used for the delegated account.
        scopes: Scopes requested for every credential.
        service_account_loader: Callable with the signature of
            ``service_account.Credentials.from_service_account_file``
            (injectable for testing).
        oauth_credentials_class: Class used for OAuth credentials
            (injectable for testing).
    """

    def __init__(
        self,
        registry: AccountRegistry,
        token_store: TokenStore,
        key_file: str | Path,
        scopes: list[str] | None = None,
        service_account_loader: Callable[..., Any] = (
            service_account.Credentials.from_service_account_file
        ),
        oauth_credentials_class: type = oauth2_credentials.Credentials,
    ) -> None:
        self._registry = registry
        self._token_store = token_store
        self._key_file = Path(key_file)
        self._scopes = list(scopes or SCOPES)
        self._service_account_loader = service_account_loader
        self._oauth_credentials_class = oauth_credentials_class

    @property
    def registry(self) -> AccountRegistry:
        return self._registry

    def build(self, account: str) -> CredentialHandle:
        """Build a fresh credential for an allowed account.

        Raises:
            AccountNotAllowedError: If the account is not on the allow-list.
            MissingCredentialError: If an OAuth account has no stored token.
        """
        strategy = self._registry.classify(account)
        account = normalize_account(account)

        if strategy is AuthStrategy.DELEGATED:
            # Service account with domain-wide delegation
            creds = self._service_account_loader(
                str(self._key_file),
                scopes=self._scopes,
                subject=account,
            )
        else:
            record = self._token_store.get(account)
            if record is None:
                raise MissingCredentialError(account)
            creds = self._oauth_credentials_class(
                token=None,
                refresh_token=record.refresh_token,
                token_uri=GOOGLE_TOKEN_URI,
                client_id=record.client_id,
                client_secret=record.client_secret,
                scopes=self._scopes,
            )

        return CredentialHandle(account=account, strategy=strategy, credentials=creds)
