# /gas_engine/core/decorators.py
# Reusable decorators for operational resilience.
import asyncio
import logging
import aiohttp
from tenacity import retry, retry_if_exception_type, retry_if_not_exception_type, stop_after_attempt, wait_exponential, before_sleep_log
from gas_engine.core.config import settings
from gas_engine.core.logger import get_logger

log = get_logger(__name__)

# Connection failures only. A timeout already cost the full per-call budget and is not retried;
# HTTP status and JSON-RPC errors are answers, not outages.
retriable_network_call = retry(
    # aiohttp timeout errors subclass ClientConnectionError, so exclude them explicitly
    retry=retry_if_exception_type(aiohttp.ClientConnectionError) & retry_if_not_exception_type(asyncio.TimeoutError),
    stop=stop_after_attempt(max(1, settings.RPC_RETRY_ATTEMPTS)),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=3),
    before_sleep=before_sleep_log(log, logging.WARNING),
    reraise=True # Re-raise the last exception after retries are exhausted
)
