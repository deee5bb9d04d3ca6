"""
Configuration module for the Session Proxy.

This module uses Pydantic Settings to load and validate environment variables
for the account backend, the session store, the upstream authority connector
and the listening address.

Environment variables are loaded from .env file or system environment.
"""

import ipaddress
from functools import lru_cache
from typing import List, Optional, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ACCOUNT_BACKENDS = ("file", "api")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The account backend is chosen once at startup and never switched while
    the service runs.
    """

    # =========================================================================
    # Account Backend Configuration
    # =========================================================================

    ACCOUNT_BACKEND: str = Field(
        default="file",
        description="Account backend: 'file' (static JSON table) or 'api' (remote lookup)",
    )

    ACCOUNTS_FILE: str = Field(
        default="accounts.json",
        description="Path to the JSON object mapping credential tokens to profile names",
    )

    ACCOUNTS_ENDPOINT: Optional[str] = Field(
        None,
        description="Remote account lookup URL, queried as GET <endpoint>?token=<credential>",
    )

    ACCOUNTS_SECRET: Optional[str] = Field(
        None,
        description="Optional bearer token sent to the remote account lookup",
    )

    # =========================================================================
    # Session Store Configuration
    # =========================================================================

    SESSIONS_FILE: str = Field(
        default="sessions.json",
        description="Path of the persisted session table (rewritten on every join)",
    )

    # =========================================================================
    # Upstream Authority Configuration
    # =========================================================================

    TRUSTED_NAMESERVERS: str = Field(
        default="1.1.1.1,1.0.0.1",
        description="Comma-separated resolver IPs used to find the real authority",
    )

    UPSTREAM_TIMEOUT_SECONDS: float = Field(
        default=5.0,
        description="Timeout for DNS lookups and upstream HTTP calls",
        ge=0.5,
        le=60.0,
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    YGG_BIND_ADDRESS: str = Field(
        default="0.0.0.0:3000",
        description="host:port the proxy listens on",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def trusted_nameservers_list(self) -> List[str]:
        """Return TRUSTED_NAMESERVERS as a clean list."""
        return [
            server.strip()
            for server in self.TRUSTED_NAMESERVERS.split(",")
            if server.strip()
        ]

    @property
    def bind_host(self) -> str:
        return _split_bind_address(self.YGG_BIND_ADDRESS)[0]

    @property
    def bind_port(self) -> int:
        return _split_bind_address(self.YGG_BIND_ADDRESS)[1]

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("ACCOUNT_BACKEND")
    @classmethod
    def validate_account_backend(cls, v: str) -> str:
        """
        Validate the account backend name.

        Raises:
            ValueError: If the backend is not one of 'file' or 'api'
        """
        v = v.strip().lower()
        if v not in ACCOUNT_BACKENDS:
            raise ValueError(
                f"ACCOUNT_BACKEND must be one of {list(ACCOUNT_BACKENDS)}, got: {v}"
            )
        return v

    @field_validator("TRUSTED_NAMESERVERS")
    @classmethod
    def validate_nameservers(cls, v: str) -> str:
        """
        Validate that every trusted nameserver is a literal IP address.

        Raises:
            ValueError: If the list is empty or an entry is not an IP address
        """
        servers = [s.strip() for s in v.split(",") if s.strip()]
        if not servers:
            raise ValueError("TRUSTED_NAMESERVERS must contain at least one address")

        for server in servers:
            try:
                ipaddress.ip_address(server)
            except ValueError:
                raise ValueError(
                    f"Invalid nameserver address: '{server}'. "
                    "Expected an IPv4 or IPv6 literal"
                )
        return v

    @field_validator("YGG_BIND_ADDRESS")
    @classmethod
    def validate_bind_address(cls, v: str) -> str:
        _split_bind_address(v)
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown LOG_LEVEL: {v}")
        return v

    @model_validator(mode="after")
    def validate_api_backend(self) -> "Settings":
        if self.ACCOUNT_BACKEND == "api" and not self.ACCOUNTS_ENDPOINT:
            raise ValueError("ACCOUNTS_ENDPOINT is required when ACCOUNT_BACKEND=api")
        return self


def _split_bind_address(address: str) -> Tuple[str, int]:
    """
    Split a 'host:port' (or '[v6]:port') bind address.

    Raises:
        ValueError: If the address has no port or the port is out of range
    """
    host, sep, port = address.strip().rpartition(":")
    if not sep or not host:
        raise ValueError(
            f"Invalid bind address: '{address}'. Expected format: 'host:port'"
        )

    try:
        port_number = int(port)
    except ValueError:
        raise ValueError(f"Invalid port in bind address: '{address}'")

    if not 1 <= port_number <= 65535:
        raise ValueError(f"Port out of range in bind address: '{address}'")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    return host, port_number


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Raises:
        ValidationError: If environment variables are invalid.
    """
    return Settings()
