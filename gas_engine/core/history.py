# /gas_engine/core/history.py
# Bounded, per-chain rolling fee history. In-memory, process lifetime only.

import asyncio
import random
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, List, Optional, Sequence

from gas_engine.core.config import settings
from gas_engine.core.logger import get_logger
from gas_engine.core.registry import baseline_rate
from gas_engine.core.snapshot import FEE_PRECISION, FeeSnapshot, now_ms

log = get_logger(__name__)

# slow / standard / fast / baseFee as a fraction of the chain's baseline rate
SEED_RATIOS = (0.85, 1.0, 1.2, 0.80)
SEED_JITTER = 0.15

# (chain_id, now_ms, count) -> snapshots, oldest first
SeedGenerator = Callable[[int, int, int], Sequence[FeeSnapshot]]

def jittered_seed(
    chain_id: int,
    end_ms: int,
    count: int,
    interval_ms: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> List[FeeSnapshot]:
    """
    Synthesises `count` snapshots spaced `interval_ms` apart and ending at
    `end_ms`, each value within +/-15% of the chain's baseline rate.
    """
    interval_ms = interval_ms or settings.history_interval_ms
    rng = rng or random.Random()
    baseline = baseline_rate(chain_id)

    def jitter(ratio: float) -> float:
        return round(baseline * ratio * rng.uniform(1 - SEED_JITTER, 1 + SEED_JITTER), FEE_PRECISION)

    snapshots = []
    for i in range(count):
        slow, standard, fast, base_fee = (jitter(r) for r in SEED_RATIOS)
        snapshots.append(FeeSnapshot(
            chain_id=chain_id,
            timestamp=end_ms - (count - 1 - i) * interval_ms,
            slow=slow,
            standard=standard,
            fast=fast,
            base_fee=base_fee,
        ))
    return snapshots

class HistoryStore:
    """
    Holds at most `size` snapshots per chain, oldest first.

    Seeding and appending for one chain are serialised by that chain's lock,
    so overlapping aggregation cycles cannot break the length bound.
    """
    def __init__(
        self,
        size: Optional[int] = None,
        seed: Optional[SeedGenerator] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.size = settings.HISTORY_SIZE if size is None else size
        if self.size < 1:
            raise ValueError("History size must be at least 1")
        self.seed = seed or jittered_seed
        self.clock = clock
        self._series: Dict[int, Deque[FeeSnapshot]] = {}
        self._locks: Dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def ensure_seeded(self, chain_id: int) -> bool:
        """Seeds the chain if it has no history. Returns True if it seeded."""
        async with self._locks[chain_id]:
            if chain_id in self._series:
                return False
            snapshots = list(self.seed(chain_id, self.clock(), self.size))
            if not snapshots:
                raise ValueError(f"Seed generator returned no snapshots for chain {chain_id}")
            self._series[chain_id] = deque(snapshots, maxlen=self.size)
            log.debug("HISTORY_SEEDED", chain_id=chain_id, points=len(self._series[chain_id]))
            return True

    async def append(self, chain_id: int, snapshot: FeeSnapshot) -> bool:
        """
        Adds a snapshot at the tail, evicting the oldest entry past `size`.
        A snapshot older than the current tail is dropped and False returned.
        """
        if snapshot.chain_id != chain_id:
            raise ValueError(f"Snapshot for chain {snapshot.chain_id} appended to chain {chain_id}")
        async with self._locks[chain_id]:
            series = self._series.get(chain_id)
            if series is None:
                series = self._series[chain_id] = deque(maxlen=self.size)
            elif series[-1].timestamp > snapshot.timestamp:
                log.warning("HISTORY_STALE_SNAPSHOT_DROPPED", chain_id=chain_id,
                            tail=series[-1].timestamp, timestamp=snapshot.timestamp)
                return False
            series.append(snapshot)
            return True

    def get(self, chain_id: int) -> List[FeeSnapshot]:
        return list(self._series.get(chain_id, ()))

    def __contains__(self, chain_id: int) -> bool:
        return chain_id in self._series
