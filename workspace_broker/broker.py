"""Credential broker handing out per-account Google API clients.

The broker ties together the account registry, the token store, the
credential resolver and the client cache. Each broker owns its own caches,
so several brokers (e.g. in tests) can coexist without sharing state.
"""

from __future__ import annotations

from typing import Any

from workspace_broker.accounts import AccountRegistry, AuthStrategy
from workspace_broker.clients import ClientCache, ServiceKind
from workspace_broker.config import Settings
from workspace_broker.credentials import CredentialHandle, CredentialResolver
from workspace_broker.token_store import TokenRecord, TokenStore


class WorkspaceBroker:
    """Entry point for obtaining credentials and service clients.

    Example:
        broker = WorkspaceBroker.from_settings(get_settings())
        messages = broker.gmail("me@example.com").users().messages().list(userId="me")
    """

    def __init__(
        self,
        registry: AccountRegistry,
        token_store: TokenStore,
        resolver: CredentialResolver,
        clients: ClientCache,
    ) -> None:
        self._registry = registry
        self._token_store = token_store
        self._resolver = resolver
        self._clients = clients
        # Any change to the token file supersedes credentials built from it
        self._token_store.set_on_change(self._clients.invalidate_all)

    @classmethod
    def from_settings(cls, settings: Settings, *, load: bool = True) -> WorkspaceBroker:
        """Build a broker from settings and load the token file.

        Raises:
            TokenStoreError: If the token file exists but is corrupt.
        """
        registry = AccountRegistry.from_settings(settings)
        token_store = TokenStore(settings.tokens_path)
        resolver = CredentialResolver(registry, token_store, settings.google_sa_key_file)
        broker = cls(registry, token_store, resolver, ClientCache(resolver))
        if load:
            token_store.load()
        return broker

    @property
    def registry(self) -> AccountRegistry:
        return self._registry

    @property
    def token_store(self) -> TokenStore:
        return self._token_store

    def classify(self, account: str) -> AuthStrategy:
        return self._registry.classify(account)

    def credentials(self, account: str) -> CredentialHandle:
        return self._clients.credential(account)

    def client(self, account: str, kind: ServiceKind) -> Any:
        return self._clients.get(account, kind)

    def gmail(self, account: str) -> Any:
        return self.client(account, ServiceKind.GMAIL)

    def calendar(self, account: str) -> Any:
        return self.client(account, ServiceKind.CALENDAR)

    def drive(self, account: str) -> Any:
        return self.client(account, ServiceKind.DRIVE)

    def people(self, account: str) -> Any:
        return self.client(account, ServiceKind.CONTACTS)

    def save_token(self, account: str, record: TokenRecord) -> None:
        """Persist a token; cached clients are dropped before this returns."""
        self._token_store.upsert(account, record)

    def reload_tokens(self) -> None:
        self._token_store.reload()

    def invalidate_all(self) -> None:
        self._clients.invalidate_all()

    def configured_accounts(self) -> list[str]:
        """Delegated account first, then every account with a stored token."""
        return self._token_store.snapshot(self._registry.delegated_account)
