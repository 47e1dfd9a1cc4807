import asyncio
import pytest

from gas_engine.adapters.fee_fetcher import FeeFetcher
from gas_engine.core.history import HistoryStore
from gas_engine.core.orchestrator import GasAggregator, OrchestrationError
from gas_engine.core.registry import ChainKind, ChainRegistry
from gas_engine.core.snapshot import FeeSnapshot
from conftest import ETH_RPC, BSC_RPC, make_chain

GWEI = 10**9
SEED_END = 1_000_000

def seed(chain_id, end_ms, count):
    return [FeeSnapshot(chain_id=chain_id, timestamp=end_ms - (count - 1 - i), slow=1.0, standard=1.0, fast=1.0)
            for i in range(count)]

class Clock:
    def __init__(self):
        self.now = SEED_END

    def __call__(self):
        self.now += 1000
        return self.now

@pytest.fixture
def aggregator(rpc, eth_chain, bsc_chain):
    registry = ChainRegistry([eth_chain, bsc_chain])
    fetcher = FeeFetcher(rpc, clock=Clock())
    history = HistoryStore(size=4, seed=seed, clock=lambda: SEED_END)
    return GasAggregator(registry, fetcher, history)

@pytest.mark.asyncio
async def test_failing_chain_does_not_affect_others(rpc, aggregator):
    rpc.set_failure(ETH_RPC, "eth_feeHistory", "unreachable")
    rpc.set_failure(ETH_RPC, "eth_gasPrice", "unreachable")
    rpc.set_response(BSC_RPC, "eth_gasPrice", hex(5 * GWEI))

    results = await aggregator.run_cycle()

    bnb = results["bnb"]
    assert bnb.error is None and bnb.standard == 5.0 and bnb.supported
    eth = results["ethereum"]
    assert eth.supported is True
    assert "unreachable" in eth.error
    assert (eth.slow, eth.standard, eth.fast, eth.suggest_base_fee) == (0.0, 0.0, 0.0, 0.0)

@pytest.mark.asyncio
async def test_success_appends_and_attaches_updated_history(rpc, aggregator):
    rpc.set_response(BSC_RPC, "eth_gasPrice", hex(5 * GWEI))
    results = await aggregator.run_cycle()
    history = results["bnb"].history
    assert len(history) == 4
    assert history[-1]["standard"] == 5.0
    assert history[-1]["suggestBaseFee"] == 0.0

@pytest.mark.asyncio
async def test_failed_poll_keeps_previous_history(rpc, aggregator):
    rpc.set_response(BSC_RPC, "eth_gasPrice", hex(5 * GWEI))
    first = await aggregator.run_cycle()
    rpc.set_failure(BSC_RPC, "eth_gasPrice", "timeout")
    second = await aggregator.run_cycle()
    assert second["bnb"].error
    assert second["bnb"].history == first["bnb"].history

@pytest.mark.asyncio
async def test_placeholders_always_present(rpc, aggregator):
    results = await aggregator.run_cycle()
    for key in ("solana", "bitcoin"):
        entry = results[key].to_response()
        assert entry["supported"] is False
        assert entry["status"] == "not-supported"
        for field in ("slow", "standard", "fast", "suggestBaseFee", "chainId"):
            assert field not in entry

@pytest.mark.asyncio
async def test_unexpected_fetcher_crash_is_captured(rpc, aggregator, monkeypatch):
    async def explode(descriptor):
        if descriptor.key == "ethereum":
            raise RuntimeError("kaboom")
        return await FeeFetcher.fetch_fees(aggregator.fetcher, descriptor)

    monkeypatch.setattr(aggregator.fetcher, "fetch_fees", explode)
    rpc.set_response(BSC_RPC, "eth_gasPrice", hex(5 * GWEI))
    results = await aggregator.run_cycle()
    assert "kaboom" in results["ethereum"].error
    assert len(results["ethereum"].history) == 4
    assert results["bnb"].standard == 5.0

@pytest.mark.asyncio
async def test_chains_are_fetched_concurrently(rpc, eth_chain, bsc_chain):
    started = []
    release = asyncio.Event()

    class SlowRpc:
        async def call(self, endpoint, method, params=None):
            started.append(endpoint)
            if len(started) == 2:
                release.set()
            await asyncio.wait_for(release.wait(), timeout=1)
            return hex(GWEI)

    registry = ChainRegistry([make_chain(fee_model="legacy"), bsc_chain])
    aggregator = GasAggregator(registry, FeeFetcher(SlowRpc()), HistoryStore(size=4, seed=seed, clock=lambda: SEED_END))
    results = await aggregator.run_cycle()
    assert results["ethereum"].standard == 1.0
    assert results["bnb"].standard == 1.0
    assert sorted(started) == sorted([ETH_RPC, BSC_RPC])

@pytest.mark.asyncio
async def test_mode_filter(rpc):
    sepolia = make_chain(id=11155111, key="sepolia", kind="testnet", fee_model="legacy", endpoint="https://sep.test")
    registry = ChainRegistry([make_chain(), sepolia])
    rpc.set_response("https://sep.test", "eth_gasPrice", hex(GWEI))
    aggregator = GasAggregator(registry, FeeFetcher(rpc), HistoryStore(size=4, seed=seed, clock=lambda: SEED_END))
    results = await aggregator.run_cycle(ChainKind.TESTNET)
    assert "ethereum" not in results
    assert results["sepolia"].standard == 1.0
    assert "solana" in results

@pytest.mark.asyncio
async def test_unreadable_registry_raises_orchestration_error(rpc, aggregator, monkeypatch):
    def broken(kind=None):
        raise OSError("registry gone")

    monkeypatch.setattr(aggregator.registry, "list_chains", broken)
    with pytest.raises(OrchestrationError):
        await aggregator.run_cycle()

@pytest.mark.asyncio
async def test_dead_node_is_bounded_by_poll_budget(bsc_chain):
    from aiohttp import web, test_utils
    from gas_engine.adapters.rpc import JsonRpcClient

    release = asyncio.Event()

    async def sleeping_node(request):
        await release.wait()
        return web.json_response({"jsonrpc": "2.0", "id": 1, "result": "0x1"})

    node = web.Application()
    node.router.add_post("/{path}", sleeping_node)
    server = test_utils.TestServer(node)
    await server.start_server()
    urls = [str(server.make_url(f"/{name}")) for name in ("primary", "backup1", "backup2")]
    chain = make_chain(endpoint=urls[0], fallback_endpoints=tuple(urls[1:]))

    client = JsonRpcClient(timeout_seconds=0.2)
    history = HistoryStore(size=4, seed=seed, clock=lambda: SEED_END)
    aggregator = GasAggregator(ChainRegistry([chain]), FeeFetcher(client), history, poll_budget_seconds=0.5)
    loop = asyncio.get_running_loop()
    try:
        started = loop.time()
        results = await aggregator.run_cycle()
        elapsed = loop.time() - started
    finally:
        release.set()
        await client.close()
        await server.close()

    # Six sequential 0.2s calls would take 1.2s without the budget.
    assert elapsed < 1.0
    eth = results["ethereum"]
    assert "Timed out" in eth.error
    assert eth.standard == 0.0
    assert len(eth.history) == 4

@pytest.mark.asyncio
async def test_overlapping_cycles_keep_history_bounded_and_sorted(rpc):
    import random

    rng = random.Random(3)

    class JitteryRpc:
        async def call(self, endpoint, method, params=None):
            await asyncio.sleep(rng.uniform(0, 0.01))
            return await rpc.call(endpoint, method, params)

    rpc.set_response(ETH_RPC, "eth_feeHistory", {"baseFeePerGas": [hex(GWEI)] * 6, "reward": [[hex(GWEI)] * 3] * 5})
    rpc.set_response(BSC_RPC, "eth_gasPrice", hex(5 * GWEI))
    registry = ChainRegistry([make_chain(), make_chain(id=56, key="bnb", fee_model="legacy", endpoint=BSC_RPC)])
    history = HistoryStore(size=4, seed=seed, clock=lambda: SEED_END)
    aggregator = GasAggregator(registry, FeeFetcher(JitteryRpc(), clock=Clock()), history)

    cycles = await asyncio.gather(*(aggregator.run_cycle() for _ in range(20)))

    for chain_id in (1, 56):
        snapshots = history.get(chain_id)
        assert 1 <= len(snapshots) <= 4
        timestamps = [s.timestamp for s in snapshots]
        assert timestamps == sorted(timestamps)
        assert timestamps[-1] > SEED_END
    for results in cycles:
        for key in ("ethereum", "bnb"):
            assert results[key].error is None
            assert 1 <= len(results[key].history) <= 4
