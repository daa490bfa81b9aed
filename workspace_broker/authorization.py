"""OAuth authorization-code flow that provisions refresh tokens.

Two steps:
1. ``start``: check the setup secret and build the Google consent URL. The
   account and setup secret are packed into the ``state`` parameter.
2. ``complete``: check the returned state, exchange the code, confirm which
   account actually consented, and store its refresh token.

The account named in ``state`` is advisory only. Tokens are stored under the
address Gmail reports for the freshly issued credentials.
"""

from __future__ import annotations

import base64
import binascii
import json
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from google_auth_oauthlib.flow import Flow
from loguru import logger

from workspace_broker.accounts import AuthStrategy, normalize_account
from workspace_broker.broker import WorkspaceBroker
from workspace_broker.clients import ServiceKind, build_service
from workspace_broker.credentials import GOOGLE_TOKEN_URI, SCOPES
from workspace_broker.exceptions import (
    AccountNotAllowedError,
    AuthorizationSecretMismatchError,
    AuthorizationStateInvalidError,
    NoRefreshTokenIssuedError,
)
from workspace_broker.logging import (
    audit_account_rejected,
    audit_authorization_failed,
    audit_authorization_started,
    audit_authorization_success,
)
from workspace_broker.token_store import TokenRecord

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"


@dataclass(frozen=True)
class AuthorizationState:
    """Values round-tripped through the provider in the ``state`` parameter."""

    account: str
    secret: str

    def encode(self) -> str:
        payload = json.dumps(
            {"account": self.account, "secret": self.secret}, separators=(",", ":")
        )
        return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")

    @classmethod
    def decode(cls, raw: str) -> AuthorizationState:
        """Parse a state parameter.

        Raises:
            AuthorizationStateInvalidError: If the value is not a state we issued.
        """
        if not raw:
            raise AuthorizationStateInvalidError("empty state")
        try:
            payload = base64.urlsafe_b64decode(raw.encode("ascii"))
            data = json.loads(payload.decode("utf-8"))
        except (binascii.Error, ValueError) as e:
            raise AuthorizationStateInvalidError("state is not valid encoded JSON") from e

        if not isinstance(data, dict):
            raise AuthorizationStateInvalidError("state is not an object")
        account = data.get("account")
        secret = data.get("secret")
        if not isinstance(account, str) or not isinstance(secret, str):
            raise AuthorizationStateInvalidError("state is missing account or secret")
        return cls(account=account, secret=secret)


def create_oauth_flow(
    client_id: str, client_secret: str, redirect_uri: str, scopes: list[str]
) -> Flow:
    """Create Google OAuth flow for a web client."""
    client_config = {
        "web": {
            "client_id": client_id,
            "client_secret": client_secret,
            "auth_uri": GOOGLE_AUTH_URI,
            "token_uri": GOOGLE_TOKEN_URI,
            "redirect_uris": [redirect_uri],
        }
    }

    # start and complete run on different Flow instances, so no PKCE verifier
    return Flow.from_client_config(
        client_config,
        scopes=scopes,
        redirect_uri=redirect_uri,
        autogenerate_code_verifier=False,
    )


def fetch_account_email(credentials: Any) -> str:
    """Ask Gmail which account the credentials belong to."""
    gmail = build_service(ServiceKind.GMAIL, credentials)
    profile = gmail.users().getProfile(userId="me").execute()
    return profile["emailAddress"]


class AuthorizationFlow:
    """Drives the consent and callback steps for OAuth accounts.

    Args:
        broker: Broker whose token store receives new tokens.
        client_id: OAuth client ID used for consent and stored with the token.
        client_secret: OAuth client secret.
        redirect_uri: Callback URL registered with Google.
        setup_secret: Shared secret required to start and complete the flow.
        flow_factory: Callable with the signature of `create_oauth_flow`
            (injectable for testing).
        identity_lookup: Callable returning the e-mail of the account that
            owns the given credentials (injectable for testing).
    """

    def __init__(
        self,
        broker: WorkspaceBroker,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        setup_secret: str,
        flow_factory: Callable[[str, str, str, list[str]], Any] = create_oauth_flow,
        identity_lookup: Callable[[Any], str] = fetch_account_email,
        scopes: list[str] | None = None,
    ) -> None:
        self._broker = broker
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._setup_secret = setup_secret
        self._flow_factory = flow_factory
        self._identity_lookup = identity_lookup
        self._scopes = list(scopes or SCOPES)

    @property
    def setup_secret(self) -> str:
        return self._setup_secret

    def verify_setup_secret(self, candidate: str | None) -> None:
        """Check a caller-supplied setup secret.

        Fails closed when no setup secret is configured.

        Raises:
            AuthorizationSecretMismatchError: If the secret does not match.
        """
        if not self._setup_secret or not candidate:
            raise AuthorizationSecretMismatchError()
        expected = self._setup_secret.encode("utf-8")
        if not secrets.compare_digest(candidate.encode("utf-8"), expected):
            raise AuthorizationSecretMismatchError()

    def start(self, setup_secret: str | None, account: str) -> str:
        """Return the Google consent URL for an OAuth account.

        Raises:
            AuthorizationSecretMismatchError: If the setup secret is wrong.
            AccountNotAllowedError: If the account is not an OAuth account.
        """
        self.verify_setup_secret(setup_secret)

        if self._broker.classify(account) is not AuthStrategy.OAUTH:
            audit_account_rejected(account, "not_oauth_account")
            raise AccountNotAllowedError(account)
        account = normalize_account(account)

        state = AuthorizationState(account=account, secret=self._setup_secret).encode()
        flow = self._flow_factory(
            self._client_id, self._client_secret, self._redirect_uri, self._scopes
        )
        authorization_url, _ = flow.authorization_url(
            access_type="offline",
            prompt="consent",
            login_hint=account,
            state=state,
        )

        audit_authorization_started(account)
        return authorization_url

    def complete(self, code: str, state: str) -> str:
        """Exchange an authorization code and store the refresh token.

        Returns:
            The account the token was stored under.

        Raises:
            AuthorizationStateInvalidError: If ``state`` cannot be parsed.
            AuthorizationSecretMismatchError: If the embedded secret is wrong.
            NoRefreshTokenIssuedError: If Google did not issue a refresh token.
            AccountNotAllowedError: If the consenting account is not an OAuth account.
        """
        try:
            parsed = AuthorizationState.decode(state)
        except AuthorizationStateInvalidError as e:
            audit_authorization_failed(None, e.reason)
            raise

        try:
            self.verify_setup_secret(parsed.secret)
        except AuthorizationSecretMismatchError:
            audit_authorization_failed(parsed.account, "setup_secret_mismatch")
            raise

        flow = self._flow_factory(
            self._client_id, self._client_secret, self._redirect_uri, self._scopes
        )
        flow.fetch_token(code=code)
        credentials = flow.credentials

        refresh_token = getattr(credentials, "refresh_token", None)
        if not refresh_token:
            audit_authorization_failed(parsed.account, "no_refresh_token")
            raise NoRefreshTokenIssuedError()

        confirmed = normalize_account(self._identity_lookup(credentials))
        if confirmed != normalize_account(parsed.account):
            logger.info(
                "Authorized account differs from requested account",
                extra={"requested_account": parsed.account, "account": confirmed},
            )

        if not self._broker.registry.is_allowed(confirmed) or (
            self._broker.classify(confirmed) is not AuthStrategy.OAUTH
        ):
            audit_account_rejected(confirmed, "not_oauth_account")
            raise AccountNotAllowedError(confirmed)

        self._broker.save_token(
            confirmed,
            TokenRecord(
                client_id=self._client_id,
                client_secret=self._client_secret,
                refresh_token=refresh_token,
            ),
        )

        audit_authorization_success(parsed.account, confirmed)
        return confirmed
