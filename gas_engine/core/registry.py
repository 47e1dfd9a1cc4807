# /gas_engine/core/registry.py
# Load-time-fixed table of monitored chains and their node endpoints.

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from gas_engine.core.config import Settings, settings as default_settings
from gas_engine.core.logger import get_logger

log = get_logger(__name__)

ALCHEMY_URL_TEMPLATE = "https://{slug}.g.alchemy.com/v2/{api_key}"

class ConfigurationError(Exception):
    """Raised when the chain table cannot be loaded. Fatal to startup."""
    pass

class FeeModel(str, Enum):
    EIP1559 = "eip1559"
    LEGACY = "legacy"

class ChainKind(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"

class ChainDescriptor(BaseModel):
    id: int
    key: str = Field(min_length=1)
    display_name: str
    symbol: str
    kind: ChainKind
    fee_model: FeeModel
    endpoint: str = Field(min_length=1)
    fallback_endpoints: Tuple[str, ...] = ()

    class Config:
        frozen = True

    @property
    def endpoints(self) -> Tuple[str, ...]:
        """Primary endpoint first, then the fallbacks in configured order."""
        return (self.endpoint, *self.fallback_endpoints)

# Built-in networks. `alchemy` is the provider subdomain; `fallbacks` are public nodes.
NETWORKS: List[Dict[str, Any]] = [
    # ===== MAINNET =====
    {"id": 1, "key": "ethereum", "display_name": "Ethereum Mainnet", "symbol": "ETH", "kind": "mainnet",
     "fee_model": "eip1559", "alchemy": "eth-mainnet",
     "fallbacks": ["https://ethereum-rpc.publicnode.com", "https://eth.llamarpc.com"]},
    {"id": 137, "key": "polygon", "display_name": "Polygon", "symbol": "MATIC", "kind": "mainnet",
     "fee_model": "eip1559", "alchemy": "polygon-mainnet",
     "fallbacks": ["https://polygon-rpc.com", "https://polygon-bor-rpc.publicnode.com"]},
    {"id": 56, "key": "bnb", "display_name": "BNB Chain", "symbol": "BNB", "kind": "mainnet",
     "fee_model": "legacy", "alchemy": "bnb-mainnet",
     "fallbacks": ["https://bsc-dataseed.binance.org", "https://bsc-rpc.publicnode.com"]},
    {"id": 42161, "key": "arbitrum", "display_name": "Arbitrum One", "symbol": "ETH", "kind": "mainnet",
     "fee_model": "eip1559", "alchemy": "arb-mainnet",
     "fallbacks": ["https://arbitrum-one-rpc.publicnode.com", "https://arb1.arbitrum.io/rpc"]},
    {"id": 10, "key": "optimism", "display_name": "Optimism", "symbol": "ETH", "kind": "mainnet",
     "fee_model": "eip1559", "alchemy": "opt-mainnet",
     "fallbacks": ["https://optimism-rpc.publicnode.com", "https://mainnet.optimism.io"]},
    {"id": 8453, "key": "base", "display_name": "Base", "symbol": "ETH", "kind": "mainnet",
     "fee_model": "eip1559", "alchemy": "base-mainnet",
     "fallbacks": ["https://base-rpc.publicnode.com", "https://mainnet.base.org"]},
    {"id": 43114, "key": "avalanche", "display_name": "Avalanche C-Chain", "symbol": "AVAX", "kind": "mainnet",
     "fee_model": "eip1559", "alchemy": "avax-mainnet",
     "fallbacks": ["https://avalanche-c-chain-rpc.publicnode.com", "https://api.avax.network/ext/bc/C/rpc"]},
    # ===== TESTNET =====
    {"id": 11155111, "key": "sepolia", "display_name": "Ethereum Sepolia", "symbol": "ETH", "kind": "testnet",
     "fee_model": "eip1559", "alchemy": "eth-sepolia",
     "fallbacks": ["https://ethereum-sepolia-rpc.publicnode.com", "https://rpc.sepolia.org"]},
    {"id": 17000, "key": "holesky", "display_name": "Ethereum Holesky", "symbol": "ETH", "kind": "testnet",
     "fee_model": "eip1559", "alchemy": "eth-holesky",
     "fallbacks": ["https://ethereum-holesky-rpc.publicnode.com", "https://rpc.holesky.ethpandaops.io"]},
    {"id": 80002, "key": "polygonAmoy", "display_name": "Polygon Amoy", "symbol": "MATIC", "kind": "testnet",
     "fee_model": "eip1559", "alchemy": "polygon-amoy",
     "fallbacks": ["https://rpc-amoy.polygon.technology", "https://polygon-amoy-bor-rpc.publicnode.com"]},
    {"id": 97, "key": "bnbTestnet", "display_name": "BNB Testnet", "symbol": "tBNB", "kind": "testnet",
     "fee_model": "legacy", "alchemy": "bnb-testnet",
     "fallbacks": ["https://bsc-testnet-rpc.publicnode.com", "https://data-seed-prebsc-1-s1.binance.org:8545"]},
    {"id": 421614, "key": "arbitrumSepolia", "display_name": "Arbitrum Sepolia", "symbol": "ETH", "kind": "testnet",
     "fee_model": "eip1559", "alchemy": "arb-sepolia",
     "fallbacks": ["https://arbitrum-sepolia-rpc.publicnode.com", "https://sepolia-rollup.arbitrum.io/rpc"]},
    {"id": 11155420, "key": "optimismSepolia", "display_name": "Optimism Sepolia", "symbol": "ETH", "kind": "testnet",
     "fee_model": "eip1559", "alchemy": "opt-sepolia",
     "fallbacks": ["https://optimism-sepolia-rpc.publicnode.com", "https://sepolia.optimism.io"]},
    {"id": 84532, "key": "baseSepolia", "display_name": "Base Sepolia", "symbol": "ETH", "kind": "testnet",
     "fee_model": "eip1559", "alchemy": "base-sepolia",
     "fallbacks": ["https://sepolia.base.org", "https://base-sepolia-rpc.publicnode.com"]},
    {"id": 43113, "key": "avalancheFuji", "display_name": "Avalanche Fuji", "symbol": "AVAX", "kind": "testnet",
     "fee_model": "eip1559", "alchemy": "avax-fuji",
     "fallbacks": ["https://avalanche-fuji-c-chain-rpc.publicnode.com", "https://api.avax-test.network/ext/bc/C/rpc"]},
]

# Non-EVM chains shown on the dashboard without fee data.
NON_EVM_PLACEHOLDERS: List[Dict[str, str]] = [
    {"key": "solana", "display_name": "Solana", "symbol": "SOL", "kind": "mainnet"},
    {"key": "bitcoin", "display_name": "Bitcoin", "symbol": "BTC", "kind": "mainnet"},
]

# Typical standard fee rate in gwei, used only to seed synthetic history.
BASELINE_RATES: Dict[int, float] = {
    1: 25.0,
    137: 50.0,
    56: 3.0,
    42161: 0.1,
    10: 0.05,
    8453: 0.05,
    43114: 25.0,
    11155111: 1.5,
    17000: 1.0,
    80002: 30.0,
    97: 5.0,
    421614: 0.1,
    11155420: 0.05,
    84532: 0.05,
    43113: 25.0,
}
DEFAULT_BASELINE_RATE = 10.0

def baseline_rate(chain_id: int) -> float:
    return BASELINE_RATES.get(chain_id, DEFAULT_BASELINE_RATE)

class ChainRegistry:
    """
    Read-only, insertion-ordered set of ChainDescriptors keyed by chain id.
    """
    def __init__(self, descriptors: Iterable[ChainDescriptor]):
        self._chains: Dict[int, ChainDescriptor] = {}
        keys = set()
        for descriptor in descriptors:
            if descriptor.id in self._chains:
                raise ConfigurationError(f"Duplicate chain id {descriptor.id} ({descriptor.key})")
            if descriptor.key in keys:
                raise ConfigurationError(f"Duplicate chain key '{descriptor.key}'")
            self._chains[descriptor.id] = descriptor
            keys.add(descriptor.key)
        log.info("CHAIN_REGISTRY_LOADED", chain_count=len(self._chains))

    @classmethod
    def from_entries(cls, entries: Iterable[Dict[str, Any]]) -> "ChainRegistry":
        descriptors = []
        for index, entry in enumerate(entries):
            try:
                descriptors.append(ChainDescriptor.model_validate(entry))
            except ValidationError as e:
                label = entry.get("key") or entry.get("id") or f"#{index}"
                raise ConfigurationError(f"Invalid chain entry {label}: {e}") from e
        return cls(descriptors)

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "ChainRegistry":
        """
        Builds the registry from the built-in NETWORKS table plus any EXTRA_CHAINS.

        Without ALCHEMY_API_KEY the first public fallback becomes the primary
        endpoint; RPC_URL_OVERRIDES takes precedence over both.
        """
        config = config or default_settings
        api_key = config.ALCHEMY_API_KEY.get_secret_value() if config.ALCHEMY_API_KEY else None
        entries = []
        for network in NETWORKS:
            fallbacks = list(network.get("fallbacks", []))
            endpoint = config.RPC_URL_OVERRIDES.get(network["id"])
            if not endpoint and api_key:
                endpoint = ALCHEMY_URL_TEMPLATE.format(slug=network["alchemy"], api_key=api_key)
            if not endpoint and fallbacks:
                endpoint = fallbacks.pop(0)
            entry = {k: v for k, v in network.items() if k not in ("alchemy", "fallbacks")}
            entries.append({**entry, "endpoint": endpoint or "", "fallback_endpoints": tuple(fallbacks)})

        for extra in config.EXTRA_CHAINS:
            extra = dict(extra)
            extra.setdefault("fallback_endpoints", tuple(extra.pop("fallbacks", ())))
            entries.append(extra)

        if not api_key:
            log.warning("ALCHEMY_API_KEY_MISSING_USING_PUBLIC_RPCS")
        return cls.from_entries(entries)

    def list_chains(self, kind: Optional[ChainKind] = None) -> List[ChainDescriptor]:
        chains = list(self._chains.values())
        if kind is None:
            return chains
        return [c for c in chains if c.kind == kind]

    def get(self, chain_id: int) -> Optional[ChainDescriptor]:
        return self._chains.get(chain_id)

    def baseline_rate(self, chain_id: int) -> float:
        return baseline_rate(chain_id)

    def __len__(self) -> int:
        return len(self._chains)
