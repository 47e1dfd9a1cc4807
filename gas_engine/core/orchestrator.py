# /gas_engine/core/orchestrator.py
# Fan-out/fan-in over every registered chain. Stateless across cycles;
# the only state it touches is the HistoryStore it is given.

import asyncio
import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from gas_engine.adapters.fee_fetcher import FeeFetcher
from gas_engine.core.config import settings
from gas_engine.core.history import HistoryStore
from gas_engine.core.logger import get_logger, set_cycle_id, FEE_FETCHES, CYCLES_COMPLETED
from gas_engine.core.registry import ChainDescriptor, ChainKind, ChainRegistry, NON_EVM_PLACEHOLDERS
from gas_engine.core.snapshot import FeeSnapshot, now_ms

log = get_logger(__name__)

class OrchestrationError(Exception):
    """A cycle could not run at all, as opposed to individual chains failing."""
    pass

class ChainReport(BaseModel):
    """Per-chain entry of an aggregation result, serialised with the dashboard's field names."""
    chain_id: Optional[int] = Field(None, alias="chainId")
    chain_name: str = Field(alias="chainName")
    symbol: str
    type: str
    slow: Optional[float] = None
    standard: Optional[float] = None
    fast: Optional[float] = None
    suggest_base_fee: Optional[float] = Field(None, alias="suggestBaseFee")
    timestamp: int
    supported: bool
    history: Optional[List[Dict[str, Any]]] = None
    error: Optional[str] = None
    status: Optional[str] = None

    class Config:
        populate_by_name = True

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def from_snapshot(cls, descriptor: ChainDescriptor, snapshot: FeeSnapshot, history: List[FeeSnapshot]) -> "ChainReport":
        return cls(
            chain_id=descriptor.id,
            chain_name=descriptor.display_name,
            symbol=descriptor.symbol,
            type=descriptor.kind.value,
            slow=snapshot.slow,
            standard=snapshot.standard,
            fast=snapshot.fast,
            suggest_base_fee=snapshot.base_fee,
            timestamp=snapshot.timestamp,
            supported=True,
            history=[s.to_history_point() for s in history],
        )

    @classmethod
    def from_error(cls, descriptor: ChainDescriptor, error: str, history: List[FeeSnapshot]) -> "ChainReport":
        # Zeroed fees plus `error` mean "temporarily unavailable", never "free".
        return cls(
            chain_id=descriptor.id,
            chain_name=descriptor.display_name,
            symbol=descriptor.symbol,
            type=descriptor.kind.value,
            slow=0.0,
            standard=0.0,
            fast=0.0,
            suggest_base_fee=0.0,
            timestamp=now_ms(),
            supported=True,
            history=[s.to_history_point() for s in history],
            error=error,
        )

    @classmethod
    def placeholder(cls, entry: Dict[str, str]) -> "ChainReport":
        return cls(
            chain_name=entry["display_name"],
            symbol=entry["symbol"],
            type=entry.get("kind", ChainKind.MAINNET.value),
            timestamp=now_ms(),
            supported=False,
            status="not-supported",
        )

class GasAggregator:
    """
    Runs one polling cycle across all registered chains and returns a
    complete result map, whatever individual chains do.
    """
    def __init__(
        self,
        registry: ChainRegistry,
        fetcher: FeeFetcher,
        history: HistoryStore,
        placeholders: Optional[List[Dict[str, str]]] = None,
        poll_budget_seconds: Optional[float] = None,
    ):
        self.registry = registry
        self.fetcher = fetcher
        self.history = history
        self.placeholders = NON_EVM_PLACEHOLDERS if placeholders is None else placeholders
        self.poll_budget_seconds = poll_budget_seconds or settings.CHAIN_POLL_BUDGET_SECONDS

    async def poll_chain(self, descriptor: ChainDescriptor) -> ChainReport:
        """Seed, fetch, append. Failures come back as an error report, never raised."""
        try:
            await self.history.ensure_seeded(descriptor.id)
            outcome = await asyncio.wait_for(self.fetcher.fetch_fees(descriptor), self.poll_budget_seconds)
        except asyncio.TimeoutError:
            log.warning("CHAIN_POLL_BUDGET_EXCEEDED", chain=descriptor.key, budget=self.poll_budget_seconds)
            FEE_FETCHES.labels(descriptor.key, "error").inc()
            return ChainReport.from_error(
                descriptor, f"Timed out after {self.poll_budget_seconds}s", self.history.get(descriptor.id)
            )
        except Exception as e:
            log.error("CHAIN_POLL_CRASHED", chain=descriptor.key, error=str(e), exc_info=True)
            FEE_FETCHES.labels(descriptor.key, "error").inc()
            return ChainReport.from_error(descriptor, f"Unexpected error: {e}", self.history.get(descriptor.id))

        if not outcome.ok:
            log.warning("CHAIN_FEE_FETCH_FAILED", chain=descriptor.key, error=outcome.error)
            FEE_FETCHES.labels(descriptor.key, "error").inc()
            return ChainReport.from_error(descriptor, outcome.error, self.history.get(descriptor.id))

        await self.history.append(descriptor.id, outcome.snapshot)
        FEE_FETCHES.labels(descriptor.key, "ok").inc()
        log.debug("CHAIN_FEES_FETCHED", chain=descriptor.key, strategy=outcome.strategy,
                  standard=outcome.snapshot.standard)
        return ChainReport.from_snapshot(descriptor, outcome.snapshot, self.history.get(descriptor.id))

    async def run_cycle(self, kind: Optional[ChainKind] = None) -> Dict[str, ChainReport]:
        set_cycle_id(uuid.uuid4().hex[:12])
        try:
            chains = self.registry.list_chains(kind)
        except Exception as e:
            raise OrchestrationError(f"Chain registry unavailable: {e}") from e

        log.info("AGGREGATION_CYCLE_STARTED", chain_count=len(chains), mode=kind.value if kind else "all")
        # Barrier: every chain settles before the map is built.
        reports = await asyncio.gather(*(self.poll_chain(d) for d in chains), return_exceptions=True)

        results: Dict[str, ChainReport] = {}
        for descriptor, report in zip(chains, reports):
            if isinstance(report, BaseException):
                log.error("CHAIN_TASK_FAILED", chain=descriptor.key, error=str(report))
                report = ChainReport.from_error(descriptor, str(report), self.history.get(descriptor.id))
            results[descriptor.key] = report

        for entry in self.placeholders:
            results[entry["key"]] = ChainReport.placeholder(entry)

        failed = sum(1 for r in results.values() if r.error)
        CYCLES_COMPLETED.inc()
        log.info("AGGREGATION_CYCLE_COMPLETED", chains=len(chains), failed=failed)
        return results
