# /gas_engine/core/logger.py
import logging
import structlog
from structlog.contextvars import bind_contextvars
import sentry_sdk
from prometheus_client import Counter
from gas_engine.core.config import settings

# --- Prometheus Metrics ---
FEE_FETCHES = Counter("gas_engine_fee_fetches_total", "Fee fetch attempts per chain", ["chain", "outcome"])
FEE_MODEL_FALLBACKS = Counter("gas_engine_fee_model_fallbacks_total", "EIP-1559 fetches that fell back to eth_gasPrice", ["chain"])
RPC_ERRORS = Counter("gas_engine_rpc_errors_total", "Failed JSON-RPC calls", ["method"])
CYCLES_COMPLETED = Counter("gas_engine_cycles_completed_total", "Aggregation cycles run to completion")

def configure_logging():
    if settings.SENTRY_DSN:
        sentry_sdk.init(dsn=settings.SENTRY_DSN.get_secret_value(), traces_sample_rate=1.0)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(settings.LOG_LEVEL)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

def get_logger(name: str):
    return structlog.get_logger(name)

def set_cycle_id(cycle_id: str):
    bind_contextvars(cycle_id=cycle_id)

configure_logging()
log = get_logger("GasEngine.System")
