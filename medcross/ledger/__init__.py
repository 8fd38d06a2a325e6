"""Ledger adapters: chain-specific raw events in, IngestEvent out. No I/O."""

from typing import Dict

from medcross.domain.models.record import ChainId
from medcross.ledger.chain_a_adapter import ChainAAdapter
from medcross.ledger.chain_b_adapter import ChainBAdapter
from medcross.ledger.interface import LedgerAdapter

_ADAPTERS: Dict[ChainId, LedgerAdapter] = {
    ChainId.CHAIN_A: ChainAAdapter(),
    ChainId.CHAIN_B: ChainBAdapter(),
}


def adapter_for(chain: ChainId) -> LedgerAdapter:
    """Adapters are stateless, so one shared instance per chain."""
    return _ADAPTERS[chain]


__all__ = [
    "ChainAAdapter",
    "ChainBAdapter",
    "LedgerAdapter",
    "adapter_for",
]
