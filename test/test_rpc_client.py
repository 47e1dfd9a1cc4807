import asyncio
import pytest
from aiohttp import web
from aiohttp import test_utils

from gas_engine.adapters.rpc import FetchError, JsonRpcClient, endpoint_host

def node_app(handler):
    app = web.Application()
    app.router.add_post("/v2/secret-key", handler)
    return app

async def start(handler):
    server = test_utils.TestServer(node_app(handler))
    await server.start_server()
    return server, str(server.make_url("/v2/secret-key"))

@pytest.mark.asyncio
async def test_posts_json_rpc_envelope_and_returns_result():
    seen = []

    async def handler(request):
        body = await request.json()
        seen.append(body)
        return web.json_response({"jsonrpc": "2.0", "id": body["id"], "result": "0x12a05f200"})

    server, url = await start(handler)
    client = JsonRpcClient(timeout_seconds=2)
    try:
        assert await client.call(url, "eth_gasPrice") == "0x12a05f200"
    finally:
        await client.close()
        await server.close()
    assert seen[0]["jsonrpc"] == "2.0"
    assert seen[0]["method"] == "eth_gasPrice"
    assert seen[0]["params"] == []
    assert isinstance(seen[0]["id"], int)

@pytest.mark.asyncio
async def test_rpc_error_field_fails_the_call():
    async def handler(request):
        return web.json_response({"jsonrpc": "2.0", "id": 1, "error": {"code": -32601, "message": "method not found"}})

    server, url = await start(handler)
    client = JsonRpcClient(timeout_seconds=2)
    try:
        with pytest.raises(FetchError, match="method not found"):
            await client.call(url, "eth_feeHistory", ["0x5", "latest", [10, 50, 90]])
    finally:
        await client.close()
        await server.close()

@pytest.mark.asyncio
async def test_non_2xx_status_fails_the_call_without_leaking_key():
    async def handler(request):
        return web.Response(status=429, text="slow down")

    server, url = await start(handler)
    client = JsonRpcClient(timeout_seconds=2)
    try:
        with pytest.raises(FetchError) as excinfo:
            await client.call(url, "eth_gasPrice")
    finally:
        await client.close()
        await server.close()
    assert "HTTP 429" in str(excinfo.value)
    assert "secret-key" not in str(excinfo.value)

@pytest.mark.asyncio
async def test_unresponsive_node_times_out():
    async def handler(request):
        await asyncio.sleep(2)
        return web.json_response({"jsonrpc": "2.0", "id": 1, "result": "0x1"})

    server, url = await start(handler)
    client = JsonRpcClient(timeout_seconds=0.2)
    try:
        with pytest.raises(FetchError, match="timed out"):
            await client.call(url, "eth_gasPrice")
    finally:
        await client.close()
        await server.close()

@pytest.mark.asyncio
async def test_unreachable_endpoint_is_a_fetch_error():
    client = JsonRpcClient(timeout_seconds=1)
    try:
        with pytest.raises(FetchError):
            await client.call("http://127.0.0.1:9/", "eth_gasPrice")
    finally:
        await client.close()

def test_endpoint_host_strips_path():
    assert endpoint_host("https://eth-mainnet.g.alchemy.com/v2/abc") == "eth-mainnet.g.alchemy.com"
