"""Shared test fixtures for the workspace broker."""

from __future__ import annotations

from pathlib import Path

import pytest

from tests.fakes import (
    CLIENT_ID,
    CLIENT_SECRET,
    DELEGATED,
    OAUTH_ONE,
    OAUTH_TWO,
    SETUP_SECRET,
    FakeFlowFactory,
    FakeIdentityLookup,
    FakeServiceAccountLoader,
    FakeServiceBuilder,
)
from workspace_broker.accounts import AccountRegistry
from workspace_broker.authorization import AuthorizationFlow
from workspace_broker.broker import WorkspaceBroker
from workspace_broker.clients import ClientCache
from workspace_broker.config import Settings
from workspace_broker.credentials import CredentialResolver
from workspace_broker.token_store import TokenStore


@pytest.fixture
def registry() -> AccountRegistry:
    return AccountRegistry(delegated_account=DELEGATED, oauth_accounts=(OAUTH_ONE, OAUTH_TWO))


@pytest.fixture
def key_file(tmp_path: Path) -> Path:
    path = tmp_path / "credentials" / "google-sa.json"
    path.parent.mkdir(parents=True)
    path.write_text("{}")
    return path


@pytest.fixture
def token_path(tmp_path: Path) -> Path:
    return tmp_path / "credentials" / "gmail-tokens.json"


@pytest.fixture
def token_store(token_path: Path) -> TokenStore:
    store = TokenStore(token_path)
    store.load()
    return store


@pytest.fixture
def sa_loader() -> FakeServiceAccountLoader:
    return FakeServiceAccountLoader()


@pytest.fixture
def service_builder() -> FakeServiceBuilder:
    return FakeServiceBuilder()


@pytest.fixture
def resolver(
    registry: AccountRegistry,
    token_store: TokenStore,
    key_file: Path,
    sa_loader: FakeServiceAccountLoader,
) -> CredentialResolver:
    return CredentialResolver(
        registry, token_store, key_file, service_account_loader=sa_loader
    )


@pytest.fixture
def broker(
    registry: AccountRegistry,
    token_store: TokenStore,
    resolver: CredentialResolver,
    service_builder: FakeServiceBuilder,
) -> WorkspaceBroker:
    return WorkspaceBroker(
        registry, token_store, resolver, ClientCache(resolver, build_fn=service_builder)
    )


@pytest.fixture
def flow_factory() -> FakeFlowFactory:
    return FakeFlowFactory()


@pytest.fixture
def identity_lookup() -> FakeIdentityLookup:
    return FakeIdentityLookup(OAUTH_ONE)


@pytest.fixture
def authorization_flow(
    broker: WorkspaceBroker,
    flow_factory: FakeFlowFactory,
    identity_lookup: FakeIdentityLookup,
) -> AuthorizationFlow:
    return AuthorizationFlow(
        broker=broker,
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        redirect_uri="https://broker.example.com/oauth2callback",
        setup_secret=SETUP_SECRET,
        flow_factory=flow_factory,
        identity_lookup=identity_lookup,
    )


@pytest.fixture
def settings(key_file: Path, token_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        google_sa_key_file=str(key_file),
        google_tokens_file=str(token_path),
        public_url="https://broker.example.com/",
        google_oauth_client_id=CLIENT_ID,
        google_oauth_client_secret=CLIENT_SECRET,
        setup_token=SETUP_SECRET,
        mcp_auth_token="mcp-token",
        delegated_account=DELEGATED,
        oauth_accounts=f"{OAUTH_ONE},{OAUTH_TWO}",
    )
