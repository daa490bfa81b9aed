"""Application configuration using pydantic-settings.

All sensitive configuration must come from environment variables.
The application will fail to start if required configuration is missing.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TOKENS_FILENAME = "gmail-tokens.json"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Required environment variables:
    - GOOGLE_SA_KEY_FILE: Service account key for the delegated account
    - DELEGATED_ACCOUNT: Account impersonated through domain-wide delegation
    - PUBLIC_URL: Externally reachable base URL (OAuth redirect target)
    - MCP_AUTH_TOKEN: Bearer token for the tool endpoint
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars not defined in Settings
    )

    # Server
    port: int = 8080
    environment: str = "development"
    log_level: str = "INFO"
    public_url: str = ""

    # Service account (delegated account)
    google_sa_key_file: str = ""
    google_sa_key_base64: str = ""

    # OAuth token file; defaults to gmail-tokens.json beside the key file
    google_tokens_file: str = ""
    google_tokens_base64: str = ""

    # Google OAuth client used to provision refresh tokens
    google_oauth_client_id: str = ""
    google_oauth_client_secret: str = ""

    # Shared secret gating /setup and /oauth2callback
    setup_token: str = ""

    # Bearer token for /mcp
    mcp_auth_token: str = ""

    # Allow-list: one delegated account plus comma-separated OAuth accounts
    delegated_account: str = ""
    oauth_accounts: str = ""

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def tokens_path(self) -> Path:
        """Path of the OAuth token file."""
        if self.google_tokens_file:
            return Path(self.google_tokens_file)
        return Path(self.google_sa_key_file).parent / DEFAULT_TOKENS_FILENAME

    @property
    def redirect_uri(self) -> str:
        return f"{self.public_url}/oauth2callback"

    @property
    def oauth_enabled(self) -> bool:
        """Whether the account setup routes can run."""
        return bool(self.google_oauth_client_id and self.google_oauth_client_secret)

    def get_oauth_accounts(self) -> list[str]:
        """Get list of OAuth accounts.

        Returns empty list if none are configured.
        """
        if not self.oauth_accounts:
            return []
        return [a.strip().lower() for a in self.oauth_accounts.split(",") if a.strip()]

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Validate that required settings are configured."""
        errors = []

        if not self.google_sa_key_file:
            errors.append("GOOGLE_SA_KEY_FILE must be set")

        if not self.delegated_account:
            errors.append("DELEGATED_ACCOUNT must be set")
        elif self.delegated_account.strip().lower() in self.get_oauth_accounts():
            errors.append("DELEGATED_ACCOUNT must not also be listed in OAUTH_ACCOUNTS")

        if not self.public_url:
            errors.append("PUBLIC_URL must be set")

        if not self.mcp_auth_token:
            errors.append("MCP_AUTH_TOKEN must be set")

        # OAuth client id and secret only make sense together
        if bool(self.google_oauth_client_id) != bool(self.google_oauth_client_secret):
            errors.append(
                "GOOGLE_OAUTH_CLIENT_ID and GOOGLE_OAUTH_CLIENT_SECRET must be set together"
            )

        if errors:
            raise ValueError("Configuration errors:\n  - " + "\n  - ".join(errors))

        return self

    @field_validator("public_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is a known value."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of: {allowed}")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known value."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of: {allowed}")
        return v_upper


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded once and cached for the lifetime of the application.
    """
    return Settings()
