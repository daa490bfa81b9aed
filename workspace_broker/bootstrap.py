"""Write credential files from environment variables.

Lets a deployment platform manage the service account key and the token file
as base64-encoded env vars instead of bind-mounted files.
"""

import base64
import binascii
import stat
from pathlib import Path

from loguru import logger

from workspace_broker.config import Settings


def _write_secret_file(path: Path, encoded: str, label: str) -> None:
    try:
        data = base64.b64decode("".join(encoded.split()), validate=True)
    except binascii.Error as e:
        raise ValueError(f"{label} is not valid base64") from e

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0600
    logger.info(f"Wrote {label} to {path}")


def write_credentials_from_env(settings: Settings) -> None:
    """Materialize GOOGLE_SA_KEY_BASE64 and GOOGLE_TOKENS_BASE64 if set.

    Raises:
        ValueError: If a value is not valid base64.
    """
    if settings.google_sa_key_base64:
        _write_secret_file(
            Path(settings.google_sa_key_file), settings.google_sa_key_base64, "service account key"
        )

    if settings.google_tokens_base64:
        _write_secret_file(settings.tokens_path, settings.google_tokens_base64, "OAuth token file")
