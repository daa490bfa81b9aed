"""File-backed store for OAuth refresh tokens.

The token file is a JSON object mapping account e-mail to a record with
``client_id``, ``client_secret`` and ``refresh_token``. The file is the
single source of truth; the in-memory map is a cache of it and is rewritten
wholesale on every upsert.
"""

from __future__ import annotations

import json
import os
import stat
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

from workspace_broker.accounts import normalize_account
from workspace_broker.exceptions import TokenStoreError

_RECORD_FIELDS = ("client_id", "client_secret", "refresh_token")


@dataclass(frozen=True)
class TokenRecord:
    """OAuth client credentials plus the refresh token issued for one account."""

    client_id: str
    client_secret: str
    refresh_token: str

    def to_dict(self) -> dict[str, str]:
        return {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": self.refresh_token,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenRecord:
        """Create a TokenRecord from its JSON form.

        Raises:
            KeyError: If a field is missing.
            TypeError: If a field is not a string.
        """
        values = {}
        for field in _RECORD_FIELDS:
            value = data[field]
            if not isinstance(value, str):
                raise TypeError(f"{field} must be a string")
            values[field] = value
        return cls(**values)


class TokenStore:
    """Loads and persists per-account OAuth token records.

    ``on_change`` is called synchronously after every load and upsert so that
    caches built from older tokens can be dropped before the call returns. It
    runs after the store lock is released.
    """

    def __init__(self, path: str | Path, on_change: Callable[[], None] | None = None) -> None:
        self._path = Path(path)
        self._on_change = on_change
        self._tokens: dict[str, TokenRecord] = {}
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def set_on_change(self, callback: Callable[[], None] | None) -> None:
        self._on_change = callback

    def load(self) -> None:
        """Read the token file into memory.

        A missing or unreadable file yields an empty store. A file that exists
        but does not hold valid token records raises TokenStoreError instead,
        so a damaged file never silently drops provisioned accounts.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise TokenStoreError(str(self._path), "not valid UTF-8") from e
        except FileNotFoundError:
            logger.info("Token file not found, starting empty", extra={"path": str(self._path)})
            raw = None
        except OSError as e:
            logger.warning(
                "Token file unreadable, starting empty",
                extra={"path": str(self._path), "error": str(e)},
            )
            raw = None

        tokens = self._parse(raw) if raw is not None else {}

        with self._lock:
            self._tokens = tokens
        logger.info("Token store loaded", extra={"accounts": list(tokens)})
        self._notify()

    def reload(self) -> None:
        """Re-read the token file, dropping any cached clients."""
        self.load()

    def get(self, account: str) -> TokenRecord | None:
        with self._lock:
            return self._tokens.get(normalize_account(account))

    @property
    def accounts(self) -> list[str]:
        """Accounts with a stored token, in file order."""
        with self._lock:
            return list(self._tokens)

    def snapshot(self, delegated_account: str) -> list[str]:
        """Return configured accounts: the delegated account, then every stored one."""
        configured = [delegated_account]
        for account in self.accounts:
            if account not in configured:
                configured.append(account)
        return configured

    def upsert(self, account: str, record: TokenRecord) -> None:
        """Store a record and persist the whole map atomically."""
        key = normalize_account(account)
        with self._lock:
            tokens = dict(self._tokens)
            tokens[key] = record
            self._write(tokens)
            self._tokens = tokens
        logger.info("Token saved", extra={"account": key, "path": str(self._path)})
        # Outside the store lock: listeners take their own locks and may read the store
        self._notify()

    def _parse(self, raw: str) -> dict[str, TokenRecord]:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise TokenStoreError(str(self._path), f"invalid JSON ({e})") from e

        if not isinstance(data, dict):
            raise TokenStoreError(str(self._path), "expected a JSON object")

        tokens: dict[str, TokenRecord] = {}
        for account, entry in data.items():
            if not isinstance(entry, dict):
                raise TokenStoreError(str(self._path), f"record for {account} is not an object")
            try:
                tokens[normalize_account(account)] = TokenRecord.from_dict(entry)
            except (KeyError, TypeError) as e:
                raise TokenStoreError(
                    str(self._path), f"record for {account} is incomplete ({e})"
                ) from e
        return tokens

    def _write(self, tokens: dict[str, TokenRecord]) -> None:
        # Create parent directory with owner-only permissions (0700)
        parent = self._path.parent
        if not parent.exists():
            parent.mkdir(parents=True, exist_ok=True)
            parent.chmod(stat.S_IRWXU)

        payload = json.dumps({k: v.to_dict() for k, v in tokens.items()}, indent=2)

        # Write to temp file, set permissions, then rename atomically
        temp_path = self._path.with_name(f".{self._path.name}.tmp")
        temp_path.write_text(payload + "\n", encoding="utf-8")
        temp_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0600
        os.replace(temp_path, self._path)

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()
