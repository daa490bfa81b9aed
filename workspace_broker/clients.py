"""Lazily built, cached Google API clients per account and service."""

from __future__ import annotations

import enum
import threading
from collections.abc import Callable
from typing import Any

from googleapiclient.discovery import build
from loguru import logger

from workspace_broker.accounts import normalize_account
from workspace_broker.credentials import CredentialHandle, CredentialResolver


class ServiceKind(enum.Enum):
    """Google API surfaces a credential can be bound to."""

    GMAIL = ("gmail", "v1")
    CALENDAR = ("calendar", "v3")
    DRIVE = ("drive", "v3")
    CONTACTS = ("people", "v1")

    @property
    def api_name(self) -> str:
        return self.value[0]

    @property
    def api_version(self) -> str:
        return self.value[1]


def build_service(kind: ServiceKind, credentials: Any) -> Any:
    """Build a discovery client from the bundled static discovery document."""
    return build(
        kind.api_name,
        kind.api_version,
        credentials=credentials,
        cache_discovery=False,
    )


class ClientCache:
    """Caches credentials per account and clients per (account, ServiceKind).

    Construction does no network I/O, so building under the lock is cheap and
    guarantees one live client per key.
    """

    def __init__(
        self,
        resolver: CredentialResolver,
        build_fn: Callable[[ServiceKind, Any], Any] = build_service,
    ) -> None:
        self._resolver = resolver
        self._build_fn = build_fn
        self._credentials: dict[str, CredentialHandle] = {}
        self._clients: dict[tuple[str, ServiceKind], Any] = {}
        self._lock = threading.RLock()

    def credential(self, account: str) -> CredentialHandle:
        """Return the cached credential for an account, building it if needed."""
        # Allow-list check before touching the cache
        self._resolver.registry.classify(account)
        key = normalize_account(account)

        with self._lock:
            handle = self._credentials.get(key)
            if handle is None:
                handle = self._resolver.build(key)
                self._credentials[key] = handle
                logger.debug(
                    "Credential built",
                    extra={"account": key, "strategy": handle.strategy.value},
                )
            return handle

    def get(self, account: str, kind: ServiceKind) -> Any:
        """Return the cached client for (account, kind), building it if needed."""
        self._resolver.registry.classify(account)
        key = (normalize_account(account), kind)

        with self._lock:
            client = self._clients.get(key)
            if client is None:
                handle = self.credential(key[0])
                client = self._build_fn(kind, handle.credentials)
                self._clients[key] = client
                logger.debug(
                    "Service client built",
                    extra={"account": key[0], "service": kind.api_name},
                )
            return client

    def invalidate_all(self) -> None:
        """Drop every cached credential and client."""
        with self._lock:
            self._credentials.clear()
            self._clients.clear()
        logger.debug("Client cache invalidated")
