"""Account allow-list and authentication strategy binding.

Exactly one account authenticates through the service account with
domain-wide delegation. Every other allowed account authenticates with a
stored OAuth refresh token. The binding comes from configuration only and is
never derived from the token file.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Protocol

from workspace_broker.exceptions import AccountNotAllowedError


class AuthStrategy(enum.Enum):
    """How an account obtains access tokens."""

    DELEGATED = "delegated"
    OAUTH = "oauth"


class AccountSettingsProtocol(Protocol):
    """Settings needed to build an AccountRegistry."""

    delegated_account: str

    def get_oauth_accounts(self) -> list[str]: ...


def normalize_account(account: str) -> str:
    """Normalize an e-mail address for allow-list comparison."""
    return account.strip().lower()


@dataclass(frozen=True)
class AccountRegistry:
    """Fixed allow-list of accounts, each bound to one AuthStrategy."""

    delegated_account: str
    oauth_accounts: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        delegated = normalize_account(self.delegated_account)
        if not delegated:
            raise ValueError("delegated_account must not be empty")

        oauth: list[str] = []
        for account in self.oauth_accounts:
            normalized = normalize_account(account)
            if not normalized:
                continue
            if normalized == delegated:
                raise ValueError(f"{normalized} cannot be both the delegated and an OAuth account")
            if normalized not in oauth:
                oauth.append(normalized)

        object.__setattr__(self, "delegated_account", delegated)
        object.__setattr__(self, "oauth_accounts", tuple(oauth))

    @classmethod
    def from_settings(cls, settings: AccountSettingsProtocol) -> AccountRegistry:
        return cls(
            delegated_account=settings.delegated_account,
            oauth_accounts=tuple(settings.get_oauth_accounts()),
        )

    @property
    def allowed_accounts(self) -> list[str]:
        """All allowed accounts, delegated account first."""
        return [self.delegated_account, *self.oauth_accounts]

    def is_allowed(self, account: str) -> bool:
        return normalize_account(account) in self.allowed_accounts

    def classify(self, account: str) -> AuthStrategy:
        """Return the strategy bound to an account.

        Raises:
            AccountNotAllowedError: If the account is not on the allow-list.
        """
        normalized = normalize_account(account)
        if normalized == self.delegated_account:
            return AuthStrategy.DELEGATED
        if normalized in self.oauth_accounts:
            return AuthStrategy.OAUTH
        raise AccountNotAllowedError(account)
