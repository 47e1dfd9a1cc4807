# /gas_engine/core/config_validator.py
# Run at startup: the chain table must load before the service takes traffic.
from gas_engine.core.config import settings, Settings
from gas_engine.core.logger import log
from gas_engine.core.registry import ChainRegistry, ConfigurationError

def validate(config: Settings | None = None) -> ChainRegistry:
    config = config or settings
    log.info("--- CONFIG VALIDATION START ---")
    errors = []
    if config.RPC_TIMEOUT_SECONDS <= 0:
        errors.append("RPC_TIMEOUT_SECONDS must be positive")
    if config.CHAIN_POLL_BUDGET_SECONDS <= 0:
        errors.append("CHAIN_POLL_BUDGET_SECONDS must be positive")
    if config.HISTORY_SIZE < 1:
        errors.append("HISTORY_SIZE must be at least 1")
    if config.HISTORY_INTERVAL_MINUTES < 1:
        errors.append("HISTORY_INTERVAL_MINUTES must be at least 1")
    if len(config.FEE_HISTORY_PERCENTILES) != 3:
        errors.append("FEE_HISTORY_PERCENTILES needs exactly three values")

    registry = None
    try:
        registry = ChainRegistry.from_settings(config)
    except ConfigurationError as e:
        errors.append(str(e))

    if errors:
        for error in errors:
            log.critical(error)
        raise ConfigurationError("System configuration is incomplete. Halting.")

    log.info("--- CONFIG VALIDATION PASSED ---", chains=len(registry))
    return registry

if __name__ == "__main__":
    validate()
