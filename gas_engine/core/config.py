# /gas_engine/core/config.py
import sys
from pydantic_settings import BaseSettings
from pydantic import SecretStr
from typing import Any, Dict, List

class Settings(BaseSettings):
    # Node provider
    ALCHEMY_API_KEY: SecretStr | None = None
    # chainId -> URL, replaces the built-in primary endpoint for that chain
    RPC_URL_OVERRIDES: Dict[int, str] = {}
    # Custom networks, same shape as the entries in gas_engine.core.registry.NETWORKS
    EXTRA_CHAINS: List[Dict[str, Any]] = []

    # Outbound JSON-RPC
    RPC_TIMEOUT_SECONDS: float = 10.0
    RPC_RETRY_ATTEMPTS: int = 2
    # Upper bound on one chain's whole poll (all strategies and fallback endpoints)
    CHAIN_POLL_BUDGET_SECONDS: float = 15.0

    # Fee estimation
    FEE_HISTORY_BLOCKS: int = 5
    FEE_HISTORY_PERCENTILES: List[int] = [10, 50, 90]

    # Rolling history, 48 x 30 minutes = 24h of chart data
    HISTORY_SIZE: int = 48
    HISTORY_INTERVAL_MINUTES: int = 30

    # Operational Settings
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: SecretStr | None = None
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 3001
    CORS_ORIGINS: List[str] = ["*"]

    @property
    def history_interval_ms(self) -> int:
        return self.HISTORY_INTERVAL_MINUTES * 60 * 1000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

try:
    settings = Settings()
except Exception as e:
    # Late import to avoid circular dependency only for logging the failure
    try:
        from gas_engine.core.logger import get_logger, configure_logging
        configure_logging()
        log = get_logger("GasEngine.Config")
        log.critical("FAILED_TO_LOAD_SETTINGS", error=str(e))
    except Exception:
        print("FAILED_TO_LOAD_SETTINGS", e)
    sys.exit(1)
