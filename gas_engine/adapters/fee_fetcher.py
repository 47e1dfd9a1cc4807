# /gas_engine/adapters/fee_fetcher.py
# Per-chain fee estimation: eth_feeHistory first on EIP-1559 chains, eth_gasPrice otherwise.

from decimal import Decimal
from typing import Any, Callable, List, Optional, Sequence

from web3 import Web3

from gas_engine.adapters.rpc import FetchError, JsonRpcClient, endpoint_host
from gas_engine.core.config import settings
from gas_engine.core.logger import get_logger, FEE_MODEL_FALLBACKS
from gas_engine.core.registry import ChainDescriptor, FeeModel
from gas_engine.core.snapshot import FEE_PRECISION, FeeSnapshot, FetchOutcome, now_ms

log = get_logger(__name__)

# Legacy chains expose one price; tiers are fixed multiples of it.
LEGACY_SLOW_MULTIPLIER = Decimal("0.85")
LEGACY_FAST_MULTIPLIER = Decimal("1.2")

GWEI = Decimal(10**9)

def to_gwei(wei: Decimal) -> float:
    return round(float(wei / GWEI), FEE_PRECISION)

def parse_quantity(value: Any) -> int:
    """JSON-RPC quantities are hex strings; tolerate plain ints from lenient nodes."""
    if isinstance(value, str):
        return Web3.to_int(hexstr=value)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise ValueError(f"Not a quantity: {value!r}")

class FeeFetcher:
    """
    Produces one FeeSnapshot per call for a ChainDescriptor.

    Both strategies return a FetchOutcome instead of raising, so the single
    deliberate fallback in fetch_fees() is plain control flow.
    """
    def __init__(
        self,
        rpc: JsonRpcClient,
        block_count: Optional[int] = None,
        percentiles: Optional[Sequence[int]] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.rpc = rpc
        self.block_count = block_count or settings.FEE_HISTORY_BLOCKS
        self.percentiles = list(percentiles or settings.FEE_HISTORY_PERCENTILES)
        if len(self.percentiles) != 3:
            raise ValueError("Exactly three percentiles are needed for slow/standard/fast")
        self.clock = clock
        log.info("FEE_FETCHER_INITIALIZED", block_count=self.block_count, percentiles=self.percentiles)

    async def _request(self, descriptor: ChainDescriptor, method: str, params: Optional[List[Any]] = None) -> Any:
        """Tries the primary endpoint, then each fallback endpoint in order."""
        errors = []
        for endpoint in descriptor.endpoints:
            try:
                return await self.rpc.call(endpoint, method, params)
            except FetchError as e:
                log.warning("RPC_ENDPOINT_FAILED", chain=descriptor.key, endpoint=endpoint_host(endpoint),
                            method=method, error=str(e))
                errors.append(str(e))
        raise FetchError("; ".join(errors) or f"No endpoint configured for {descriptor.key}")

    async def fetch_eip1559(self, descriptor: ChainDescriptor) -> FetchOutcome:
        try:
            history = await self._request(
                descriptor, "eth_feeHistory", [hex(self.block_count), "latest", self.percentiles]
            )
            base_fees = history["baseFeePerGas"]
            if not base_fees:
                raise ValueError("empty baseFeePerGas")
            # The trailing entry is the node's prediction for the next block.
            base_fee = Decimal(parse_quantity(base_fees[-1]))
            tips = self._average_tips(history.get("reward") or [])
        except FetchError as e:
            return FetchOutcome.failure(str(e), FeeModel.EIP1559.value)
        except (KeyError, TypeError, ValueError) as e:
            return FetchOutcome.failure(f"Malformed eth_feeHistory response: {e!r}", FeeModel.EIP1559.value)

        slow, standard, fast = (base_fee + tip for tip in tips)
        return FetchOutcome.success(FeeSnapshot(
            chain_id=descriptor.id,
            timestamp=self.clock(),
            slow=to_gwei(slow),
            standard=to_gwei(standard),
            fast=to_gwei(fast),
            base_fee=to_gwei(base_fee),
        ), FeeModel.EIP1559.value)

    def _average_tips(self, rewards: Sequence[Any]) -> List[Decimal]:
        """Mean priority fee per percentile; missing rows or entries count as zero."""
        totals = [Decimal(0)] * len(self.percentiles)
        for row in rewards:
            for i in range(len(totals)):
                if row and i < len(row) and row[i] is not None:
                    totals[i] += parse_quantity(row[i])
        if not rewards:
            return totals
        return [total / len(rewards) for total in totals]

    async def fetch_legacy(self, descriptor: ChainDescriptor) -> FetchOutcome:
        try:
            gas_price = Decimal(parse_quantity(await self._request(descriptor, "eth_gasPrice")))
        except FetchError as e:
            return FetchOutcome.failure(str(e), FeeModel.LEGACY.value)
        except (TypeError, ValueError) as e:
            return FetchOutcome.failure(f"Malformed eth_gasPrice response: {e!r}", FeeModel.LEGACY.value)

        return FetchOutcome.success(FeeSnapshot(
            chain_id=descriptor.id,
            timestamp=self.clock(),
            slow=to_gwei(gas_price * LEGACY_SLOW_MULTIPLIER),
            standard=to_gwei(gas_price),
            fast=to_gwei(gas_price * LEGACY_FAST_MULTIPLIER),
            base_fee=0.0,
        ), FeeModel.LEGACY.value)

    async def fetch_fees(self, descriptor: ChainDescriptor) -> FetchOutcome:
        """
        Current fees for one chain.

        Returns:
            A successful FetchOutcome, or a failed one when the legacy call
            failed (after the EIP-1559 attempt, on EIP-1559 chains).
        """
        if descriptor.fee_model == FeeModel.LEGACY:
            return await self.fetch_legacy(descriptor)

        primary = await self.fetch_eip1559(descriptor)
        if primary.ok:
            return primary

        log.warning("FEE_HISTORY_UNAVAILABLE_FALLING_BACK", chain=descriptor.key, error=primary.error)
        FEE_MODEL_FALLBACKS.labels(descriptor.key).inc()
        fallback = await self.fetch_legacy(descriptor)
        if fallback.ok:
            return fallback
        return FetchOutcome.failure(
            f"eth_feeHistory: {primary.error}; eth_gasPrice: {fallback.error}", FeeModel.LEGACY.value
        )
