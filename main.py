# /main.py
# Startup: validate the chain table, then serve the gas price API.
import uvicorn

from gas_engine.core.config import settings
from gas_engine.core.logger import configure_logging, get_logger
from gas_engine.core.registry import ConfigurationError

def main():
    configure_logging()
    log = get_logger("GasEngine.System")

    from gas_engine.core.gas_api import app, build_aggregator
    try:
        app.state.aggregator = build_aggregator()
    except ConfigurationError as e:
        log.critical("STARTUP_ABORTED", error=str(e))
        raise SystemExit(1)

    log.info("GAS_ENGINE_STARTING", host=settings.API_HOST, port=settings.API_PORT)
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT, log_level=settings.LOG_LEVEL.lower())

if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        pass
