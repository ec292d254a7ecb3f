"""
ClearNode client configuration.

Values come from YELLOW_* environment variables (and a .env file when
present). The account private key is mandatory: without it the client
cannot sign auth challenges, so loading fails with ConfigurationError.
"""

from typing import Optional

from eth_utils import is_address, to_checksum_address
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from paywiser.core.errors import ConfigurationError

DEFAULT_CLEARNODE_URL = "wss://clearnet.yellow.com/ws"


class ClearNodeSettings(BaseSettings):
    """Connection, identity and bookkeeping settings for the ClearNode client."""

    model_config = SettingsConfigDict(
        env_prefix="YELLOW_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    clearnode_url: str = DEFAULT_CLEARNODE_URL
    app_name: str = "PayWiser"
    auth_scope: str = "paywiser.com"
    application_address: Optional[str] = None
    wallet_private_key: str = Field(default="", repr=False)
    channel_id: Optional[str] = None

    session_duration_seconds: int = Field(default=3600, gt=0)
    connect_timeout_seconds: float = Field(default=10.0, gt=0)
    request_timeout_seconds: float = Field(default=60.0, gt=0)
    keepalive_interval_seconds: float = Field(default=30.0, gt=0)

    session_open_ttl_seconds: float = Field(default=3600.0, gt=0)
    session_retention_seconds: float = Field(default=86400.0, gt=0)
    max_sessions: int = Field(default=10000, gt=0)

    # Resolve the only pending request when nothing else matches. Off unless asked for.
    single_pending_fallback: bool = False

    @field_validator("clearnode_url")
    @classmethod
    def valid_url(cls, v: str) -> str:
        if not v.startswith(("ws://", "wss://")):
            raise ValueError("ClearNode URL must use ws:// or wss://")
        return v

    @field_validator("application_address")
    @classmethod
    def checksum_application(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        if not is_address(v):
            raise ValueError(f"Invalid application address: {v}")
        return to_checksum_address(v)

    def require_private_key(self) -> str:
        """Return the account private key or fail if it is not configured."""
        if not self.wallet_private_key:
            raise ConfigurationError("YELLOW_WALLET_PRIVATE_KEY environment variable is required")
        return self.wallet_private_key


def load_settings(**overrides) -> ClearNodeSettings:
    """
    Load settings from the environment.

    Args:
        **overrides: Explicit values taking precedence over the environment

    Returns:
        Validated settings with a private key present

    Raises:
        ConfigurationError: If validation fails or the private key is missing
    """
    try:
        settings = ClearNodeSettings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid ClearNode configuration: {e}") from e
    settings.require_private_key()
    return settings
