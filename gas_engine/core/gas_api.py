# /gas_engine/core/gas_api.py
from contextlib import asynccontextmanager
from enum import Enum

from fastapi import FastAPI, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from gas_engine.adapters.fee_fetcher import FeeFetcher
from gas_engine.adapters.rpc import JsonRpcClient
from gas_engine.core.config import settings
from gas_engine.core.config_validator import validate
from gas_engine.core.history import HistoryStore
from gas_engine.core.logger import get_logger
from gas_engine.core.orchestrator import GasAggregator
from gas_engine.core.registry import ChainKind
from gas_engine.core.snapshot import now_ms

log = get_logger(__name__)

class Speed(str, Enum):
    SLOW = "slow"
    STANDARD = "standard"
    FAST = "fast"

def build_aggregator() -> GasAggregator:
    registry = validate()
    return GasAggregator(registry, FeeFetcher(JsonRpcClient()), HistoryStore())

@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    aggregator = getattr(app.state, "aggregator", None)
    if aggregator is not None:
        await aggregator.fetcher.rpc.close()

app = FastAPI(title="Gas Aggregation Engine", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=settings.CORS_ORIGINS, allow_methods=["GET"], allow_headers=["*"])
app.mount("/metrics", make_asgi_app())

async def get_aggregator(request: Request) -> GasAggregator:
    # Runs on the event loop, so the check-then-build below cannot interleave.
    # History lives as long as the app, so the aggregator is built once.
    if getattr(request.app.state, "aggregator", None) is None:
        request.app.state.aggregator = build_aggregator()
    return request.app.state.aggregator

def failure(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error, "message": message})

@app.get("/api/health")
async def health(aggregator: GasAggregator = Depends(get_aggregator)):
    return {"status": "ok", "message": "Gas price API is running", "chains": len(aggregator.registry)}

@app.get("/api/gas-prices")
async def gas_prices(mode: str | None = None, aggregator: GasAggregator = Depends(get_aggregator)):
    try:
        kind = ChainKind(mode.lower()) if mode else None
    except ValueError:
        return failure(400, "Invalid network mode", 'mode must be "mainnet" or "testnet"')
    try:
        results = await aggregator.run_cycle(kind)
    except Exception as e:
        log.error("GAS_PRICES_REQUEST_FAILED", error=str(e), exc_info=True)
        return failure(500, "Failed to fetch gas prices", str(e))
    return {
        "success": True,
        "data": {key: report.to_response() for key, report in results.items()},
        "timestamp": now_ms(),
    }

@app.get("/api/gas-prices/{chain_id}")
async def chain_gas_price(chain_id: int, aggregator: GasAggregator = Depends(get_aggregator)):
    descriptor = aggregator.registry.get(chain_id)
    if descriptor is None:
        return failure(404, "Unknown chain", f"Chain {chain_id} is not monitored")
    report = await aggregator.poll_chain(descriptor)
    return {"success": True, "data": report.to_response(), "timestamp": now_ms()}

@app.get("/api/gas-prices/{chain_id}/estimate")
async def estimate_cost(
    chain_id: int,
    gas_limit: int = Query(21000, alias="gasLimit", gt=0),
    speed: str = "standard",
    native_price_usd: float | None = Query(None, alias="nativePriceUsd", gt=0),
    aggregator: GasAggregator = Depends(get_aggregator),
):
    try:
        speed = Speed(speed)
    except ValueError:
        return failure(400, "Invalid speed", 'speed must be "slow", "standard" or "fast"')
    descriptor = aggregator.registry.get(chain_id)
    if descriptor is None:
        return failure(404, "Unknown chain", f"Chain {chain_id} is not monitored")

    report = await aggregator.poll_chain(descriptor)
    if report.error:
        return failure(503, "Gas price temporarily unavailable", report.error)

    price_gwei = getattr(report, speed.value)
    gas_cost = round(price_gwei * gas_limit / 1e9, 8)
    data = {
        "chainId": descriptor.id,
        "symbol": descriptor.symbol,
        "gasLimit": gas_limit,
        "speed": speed.value,
        "gasPriceGwei": price_gwei,
        "gasCost": gas_cost,
    }
    if native_price_usd is not None:
        data["nativePriceUsd"] = native_price_usd
        data["gasCostUsd"] = round(gas_cost * native_price_usd, 2)
    return {
        "success": True,
        "data": data,
        "timestamp": now_ms(),
    }
