import os

# Settings are read once at import; keep retries and network config test-friendly.
os.environ.setdefault("RPC_RETRY_ATTEMPTS", "1")
os.environ.setdefault("RPC_TIMEOUT_SECONDS", "2")
os.environ.setdefault("ALCHEMY_API_KEY", "test-key")

import pytest

from gas_engine.adapters.mock import MockRpcClient
from gas_engine.core.registry import ChainDescriptor

ETH_RPC = "https://eth.test/v2/key"
BSC_RPC = "https://bsc.test"

def make_chain(**overrides) -> ChainDescriptor:
    fields = {
        "id": 1,
        "key": "ethereum",
        "display_name": "Ethereum Mainnet",
        "symbol": "ETH",
        "kind": "mainnet",
        "fee_model": "eip1559",
        "endpoint": ETH_RPC,
    }
    fields.update(overrides)
    return ChainDescriptor.model_validate(fields)

@pytest.fixture
def eth_chain():
    return make_chain()

@pytest.fixture
def bsc_chain():
    return make_chain(id=56, key="bnb", display_name="BNB Chain", symbol="BNB", fee_model="legacy", endpoint=BSC_RPC)

@pytest.fixture
def rpc():
    return MockRpcClient()
