"""Credential broker for Google Workspace accounts.

Hands out per-account Gmail, Calendar, Drive and People clients for one
domain-wide-delegated account and any number of OAuth accounts.
"""

from workspace_broker.accounts import AccountRegistry, AuthStrategy
from workspace_broker.broker import WorkspaceBroker
from workspace_broker.clients import ServiceKind
from workspace_broker.error_translation import translate_error
from workspace_broker.token_store import TokenRecord, TokenStore

__all__ = [
    "AccountRegistry",
    "AuthStrategy",
    "ServiceKind",
    "TokenRecord",
    "TokenStore",
    "WorkspaceBroker",
    "translate_error",
]
