# /gas_engine/adapters/rpc.py
# Minimal async JSON-RPC 2.0 client shared by every fee strategy.

import asyncio
import itertools
from typing import Any, List, Optional
from urllib.parse import urlparse

import aiohttp

from gas_engine.core.config import settings
from gas_engine.core.logger import get_logger, RPC_ERRORS
from gas_engine.core.decorators import retriable_network_call

log = get_logger(__name__)

class FetchError(Exception):
    """A single JSON-RPC call failed: transport, HTTP status or RPC-level error."""
    pass

def endpoint_host(endpoint: str) -> str:
    """Host part of an endpoint; provider URLs carry API keys in the path."""
    return urlparse(endpoint).netloc or endpoint

class JsonRpcClient:
    """
    POSTs `{jsonrpc, id, method, params}` envelopes over a shared aiohttp
    session. Every request is bounded by `timeout_seconds`.
    """
    def __init__(self, timeout_seconds: Optional[float] = None, session: Optional[aiohttp.ClientSession] = None):
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds or settings.RPC_TIMEOUT_SECONDS)
        self._session = session
        self._ids = itertools.count(1)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    @retriable_network_call
    async def _post(self, endpoint: str, payload: dict) -> dict:
        async with self._get_session().post(endpoint, json=payload, timeout=self.timeout) as resp:
            if resp.status < 200 or resp.status >= 300:
                raise FetchError(f"HTTP {resp.status} {resp.reason or ''}".strip())
            try:
                return await resp.json(content_type=None)
            except ValueError as e:
                raise FetchError(f"Invalid JSON response: {e}") from e

    async def call(self, endpoint: str, method: str, params: Optional[List[Any]] = None) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        host = endpoint_host(endpoint)
        try:
            body = await self._post(endpoint, payload)
        except FetchError as e:
            RPC_ERRORS.labels(method).inc()
            raise FetchError(f"{method} via {host} failed: {e}") from e
        except asyncio.TimeoutError as e:
            RPC_ERRORS.labels(method).inc()
            raise FetchError(f"{method} via {host} timed out after {self.timeout.total}s") from e
        except aiohttp.ClientError as e:
            RPC_ERRORS.labels(method).inc()
            raise FetchError(f"{method} via {host} failed: {e}") from e

        if not isinstance(body, dict):
            RPC_ERRORS.labels(method).inc()
            raise FetchError(f"{method} via {host} returned a non-object response")
        if body.get("error"):
            RPC_ERRORS.labels(method).inc()
            error = body["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise FetchError(f"{method} via {host} returned RPC error: {message}")
        if "result" not in body:
            RPC_ERRORS.labels(method).inc()
            raise FetchError(f"{method} via {host} returned no result")
        return body["result"]

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
            log.info("JSON_RPC_SESSION_CLOSED")
