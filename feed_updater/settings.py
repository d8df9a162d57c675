"""Environment-backed settings for the feed updater."""

from decimal import Decimal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_RPC_URL = "https://westend-asset-hub-eth-rpc.polkadot.io"

# Tracked symbols and their CoinGecko ids, in submission order
DEFAULT_SYMBOL_SOURCE_IDS = {
    "BTC": "bitcoin",
    "DOT": "polkadot",
    "ETH": "ethereum",
    "SOL": "solana",
    "USDT": "tether",
    "USDC": "usd-coin",
}


class Settings(BaseSettings):
    """Application settings loaded from environment and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    signer_private_key: SecretStr | None = Field(default=None, alias="SIGNER_PRIVATE_KEY")
    oracle_address: str | None = Field(default=None, alias="ORACLE_ADDRESS")
    rpc_url: str = Field(default=DEFAULT_RPC_URL, alias="RPC_URL")
    chain_id: int | None = Field(default=None, alias="CHAIN_ID")

    price_api_url: str = Field(default="https://api.coingecko.com/api/v3", alias="PRICE_API_URL")
    price_api_key: SecretStr | None = Field(default=None, alias="PRICE_API_KEY")
    symbol_source_ids: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_SYMBOL_SOURCE_IDS), alias="SYMBOL_SOURCE_IDS"
    )
    symbols: str | None = Field(default=None, alias="SYMBOLS")

    source_timeout_seconds: float = Field(default=10.0, alias="SOURCE_TIMEOUT_SECONDS")
    rpc_timeout_seconds: float = Field(default=30.0, alias="RPC_TIMEOUT_SECONDS")
    confirmation_timeout_seconds: float = Field(default=120.0, alias="CONFIRMATION_TIMEOUT_SECONDS")
    confirmation_poll_seconds: float = Field(default=2.0, alias="CONFIRMATION_POLL_SECONDS")
    transient_backoff_seconds: float = Field(default=10.0, alias="TRANSIENT_BACKOFF_SECONDS")
    nonce_backoff_seconds: float = Field(default=5.0, alias="NONCE_BACKOFF_SECONDS")
    inter_tx_delay_seconds: float = Field(default=5.0, alias="INTER_TX_DELAY_SECONDS")
    update_interval_seconds: int = Field(default=300, alias="UPDATE_INTERVAL_SECONDS")
    min_change_bps: Decimal | None = Field(default=None, alias="MIN_CHANGE_BPS")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
