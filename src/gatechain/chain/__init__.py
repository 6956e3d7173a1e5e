"""Sequential gate chain with locked progression."""

from gatechain.chain.runner import ChainRunner, CycleReport, GateOutcome, GateStatus
from gatechain.chain.state import (
    ChainState,
    ChainStateStore,
    JsonChainStateStore,
    MemoryChainStateStore,
)

__all__ = [
    "ChainRunner",
    "ChainState",
    "ChainStateStore",
    "CycleReport",
    "GateOutcome",
    "GateStatus",
    "JsonChainStateStore",
    "MemoryChainStateStore",
]
