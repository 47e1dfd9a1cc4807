# /gas_engine/core/snapshot.py
import time
from typing import Any, Dict, Optional
from pydantic import BaseModel

# Decimal places kept on every fee value handed downstream.
FEE_PRECISION = 6

def now_ms() -> int:
    return int(time.time() * 1000)

class FeeSnapshot(BaseModel):
    """
    One observation of fee rates for one chain, in gwei.
    slow <= standard <= fast is intended but not validated: nodes can return anything.
    """
    chain_id: int
    timestamp: int
    slow: float
    standard: float
    fast: float
    base_fee: float = 0.0

    class Config:
        frozen = True

    def to_history_point(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "slow": self.slow,
            "standard": self.standard,
            "fast": self.fast,
            "suggestBaseFee": self.base_fee,
        }

class FetchOutcome(BaseModel):
    """Tagged result of one fetch strategy: a snapshot or the reason there is none."""
    snapshot: Optional[FeeSnapshot] = None
    error: Optional[str] = None
    strategy: Optional[str] = None

    class Config:
        frozen = True

    @property
    def ok(self) -> bool:
        return self.snapshot is not None

    @classmethod
    def success(cls, snapshot: FeeSnapshot, strategy: str) -> "FetchOutcome":
        return cls(snapshot=snapshot, strategy=strategy)

    @classmethod
    def failure(cls, error: str, strategy: Optional[str] = None) -> "FetchOutcome":
        return cls(error=error, strategy=strategy)
