from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="auto", description="Log renderer: json, console, or auto (console at DEBUG)")

    # Relay (routing service)
    relay_base_url: str = Field(
        default="https://api.relay.link",
        description="Base URL of the Relay routing API",
    )
    relay_referrer: str = Field(
        default="relay.link",
        description="Referrer identifier attached to every Relay request",
    )
    relay_timeout_seconds: float = Field(default=20.0, description="Default Relay request timeout")
    multi_input_timeout_seconds: float = Field(
        default=30.0,
        description="Abort a multi-input quote request after this many seconds",
    )

    # Holdings indexer
    routescan_api_key: str = Field(default="", description="Routescan API key")
    routescan_base_url: str = Field(
        default="https://api.routescan.io",
        description="Routescan API base URL (or a proxy that injects the key)",
    )
    holdings_page_limit: int = Field(default=100, ge=1, description="Holdings page size")
    holdings_max_pages: int = Field(default=10, ge=1, description="Maximum holdings pages to fetch")

    # RPC
    alchemy_api_key: str = Field(default="", description="Alchemy API key for RPC reads")
    rpc_timeout_seconds: float = Field(default=15.0, description="JSON-RPC request timeout")

    # Cache Settings
    cache_ttl_seconds: int = Field(default=300, description="Route and price cache TTL in seconds")
    transfer_fee_cache_size: int = Field(default=500, description="Maximum transfer-fee cache entries")

    # Concurrency
    max_concurrent_requests: int = Field(default=10, ge=1, description="Max concurrent per-origin requests")

    # Routing policy
    max_price_impact_percent: float = Field(
        default=15.0,
        description="Quotes whose absolute total price impact exceeds this are rejected",
    )
    fee_on_transfer_ratio_bps: int = Field(
        default=9999,
        description="Received/needed ratio (bps) below which a revert is treated as a transfer fee",
    )
    unreliable_router: str = Field(
        default="magpie",
        description="Same-chain router whose liquidity source is excluded after a revert",
    )
    max_batch_tokens: int = Field(default=10, ge=1, description="Maximum tokens per batch")

    # Settlement polling
    status_poll_attempts: int = Field(default=60, ge=1, description="Status polls per endpoint")
    status_poll_interval_seconds: float = Field(default=2.0, ge=0, description="Delay between status polls")

    @property
    def has_alchemy_key(self) -> bool:
        return bool(self.alchemy_api_key)

    @property
    def has_routescan_key(self) -> bool:
        return bool(self.routescan_api_key)


# Global settings instance
settings = Settings()
