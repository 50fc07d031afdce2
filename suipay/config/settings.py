"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Credential Configuration
    jwt_secret: str = Field(..., description="HMAC secret used to sign bearer credentials")
    jwt_algorithm: str = Field(default="HS256", description="Bearer credential signing algorithm")
    jwt_ttl_seconds: int = Field(
        default=86400, gt=0, description="Bearer credential lifetime (seconds)"
    )

    # Database Configuration
    database_url: str = Field(..., description="Database connection URL (async driver)")
    database_pool_size: int = Field(default=5, description="Database connection pool size")
    database_max_overflow: int = Field(default=10, description="Max database connection overflow")
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Sui Node Configuration
    sui_rpc_url: str = Field(
        default="https://fullnode.testnet.sui.io:443", description="Sui JSON-RPC endpoint"
    )
    sui_rpc_timeout_seconds: float = Field(default=10.0, description="Sui RPC request timeout")
    sui_rpc_max_attempts: int = Field(
        default=3, ge=1, description="Attempts per RPC call on transport errors"
    )

    # Indexer Configuration
    suipay_package_id: Optional[str] = Field(
        default=None, description="On-chain package id to index (unset disables indexing)"
    )
    indexer_module: str = Field(default="payment", description="Move module emitting payments")
    indexer_page_size: int = Field(default=50, ge=1, le=1000, description="Events per page")
    indexer_poll_interval_seconds: float = Field(
        default=2.0, gt=0, description="Delay between indexer cycles (seconds)"
    )

    # Orders
    default_currency: str = Field(default="USDC", description="Currency used when none is given")

    # zkLogin
    zklogin_auto_provision_salt: bool = Field(
        default=True, description="Create a salt on first zkLogin for a new identity"
    )
    zklogin_jwks_url: Optional[str] = Field(
        default=None, description="JWKS endpoint used to verify identity provider tokens"
    )

    # Application Configuration
    app_name: str = Field(default="suipay-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=3002, description="API port")
    allowed_origins: str = Field(
        default="http://localhost:3000", description="CORS allowed origins (comma-separated)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("suipay_package_id")
    @classmethod
    def normalize_package_id(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank values and the zero address as "not configured"."""
        if v is None:
            return None
        v = v.strip()
        if not v or v.lower() in ("0x0", "0x"):
            return None
        return v

    @field_validator("default_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Currencies are stored upper-case."""
        return v.strip().upper()

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"

    @property
    def indexing_enabled(self) -> bool:
        """The indexer only runs when a package id is configured."""
        return self.suipay_package_id is not None


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
