# /gas_engine/adapters/mock.py
# In-process stand-in for JsonRpcClient so fetcher and orchestrator tests
# never touch a real node.

from typing import Any, Dict, List, Optional, Tuple

from gas_engine.adapters.rpc import FetchError
from gas_engine.core.logger import get_logger

log = get_logger(__name__)

class MockRpcClient:
    """
    Answers JSON-RPC calls from a table keyed by (endpoint, method).

    A value that is an Exception instance is raised instead of returned;
    a missing entry fails like a node that does not support the method.
    """
    def __init__(self):
        self.responses: Dict[Tuple[str, str], Any] = {}
        self.calls: List[Tuple[str, str, Optional[List[Any]]]] = []

    def set_response(self, endpoint: str, method: str, result: Any):
        self.responses[(endpoint, method)] = result

    def set_failure(self, endpoint: str, method: str, message: str = "forced failure"):
        self.responses[(endpoint, method)] = FetchError(message)

    def methods_called(self, endpoint: Optional[str] = None) -> List[str]:
        return [m for e, m, _ in self.calls if endpoint is None or e == endpoint]

    async def call(self, endpoint: str, method: str, params: Optional[List[Any]] = None) -> Any:
        self.calls.append((endpoint, method, params))
        if (endpoint, method) not in self.responses:
            raise FetchError(f"{method} returned RPC error: the method {method} does not exist/is not available")
        result = self.responses[(endpoint, method)]
        if isinstance(result, Exception):
            log.info("MOCK_RPC_FORCED_FAILURE", endpoint=endpoint, method=method)
            raise result
        return result

    async def close(self):
        pass
