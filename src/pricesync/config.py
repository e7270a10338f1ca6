from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PRELOAD_COINS = [
    "bitcoin",
    "ethereum",
    "ripple",
    "binancecoin",
    "solana",
    "tron",
    "dogecoin",
    "avalanche-2",
    "uniswap",
    "crypto-com-chain",
    "aave",
    "matic-network",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PRICESYNC_", env_file=".env", extra="ignore")

    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key: str = ""
    vs_currency: str = "usd"

    # Upstream pacing (seconds)
    throttle_interval: float = 3.0
    snapshot_timeout: float = 15.0
    series_timeout: float = 20.0
    retry_attempts: int = 30

    # Cache lifetimes (seconds)
    snapshot_ttl: float = 15 * 60
    pair_ttl: float = 60

    # Background jobs (seconds)
    background_jobs: bool = True
    reconcile_interval: float = 15
    reconcile_max_attempts: int = 30
    preload_coins: list[str] = DEFAULT_PRELOAD_COINS
    prewarm_pairs: list[tuple[str, str]] = [("bitcoin", "ethereum")]
    warmup_delay: float = 30
    warmup_attempts: int = 12
    warmup_retry_delay: float = 60
    preload_start_delay: float = 10
    preload_spacing: float = 2.5
    preload_interval: float = 3 * 60 * 60
    prewarm_interval: float = 60 * 60
    prewarm_spacing: float = 3
    cache_check_interval: float = 30 * 60

    log_level: str = "INFO"

