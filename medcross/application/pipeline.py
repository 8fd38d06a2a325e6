"""Per-chain ingestion pipeline: blocks in, normalized events through the reconciler, checkpoints out."""

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from medcross.application.reconciler import IngestionReconciler, IngestOutcome
from medcross.application.record_index import RecordIndex
from medcross.core.context import chain_ctx
from medcross.domain.exceptions import MalformedEventError
from medcross.domain.models.record import ChainId
from medcross.ledger.interface import LedgerAdapter


@dataclass(frozen=True)
class RawBlock:
    """A block as delivered by a chain listener: its height and raw events."""

    block_height: int
    events: List[Dict[str, Any]] = field(default_factory=list)


class ChainEventSource(Protocol):
    """Delivers blocks of one chain in head order, starting at start_height."""

    def blocks(self, start_height: int) -> AsyncIterator[RawBlock]:
        ...


class IngestionPipeline:
    """
    One per chain. For each block: normalize (malformed events are dropped),
    buffer in the reconciler, advance the reconciler to the block height minus
    the confirmation depth, and move the checkpoint up to the highest block
    with nothing left buffered or pending at or below it.
    A block at or below the checkpoint was already applied and is skipped;
    a block at or below the last seen head is a reorg replay.
    """

    def __init__(
        self,
        chain: ChainId,
        adapter: LedgerAdapter,
        reconciler: IngestionReconciler,
        record_index: RecordIndex,
        confirmation_depth: int = 0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if adapter.chain != chain:
            raise ValueError(f"Adapter for {adapter.chain.value} cannot feed the {chain.value} pipeline")
        self._chain = chain
        self._adapter = adapter
        self._reconciler = reconciler
        self._index = record_index
        self._depth = confirmation_depth
        self._logger = logger or logging.getLogger(__name__)
        self._checkpoint: Optional[int] = None
        self._head: Optional[int] = None
        self._dropped = 0

    @property
    def chain(self) -> ChainId:
        return self._chain

    @property
    def checkpoint(self) -> Optional[int]:
        return self._checkpoint

    @property
    def dropped_events(self) -> int:
        return self._dropped

    async def resume(self) -> int:
        """Load the stored checkpoint. Returns the first block height to request."""
        self._checkpoint = await self._index.get_checkpoint(self._chain)
        start = 0 if self._checkpoint is None else self._checkpoint + 1
        self._logger.info(
            "ingestion_resumed",
            extra={"origin_chain": self._chain.value, "checkpoint": self._checkpoint, "start_height": start},
        )
        return start

    async def process_block(self, block: RawBlock) -> List[IngestOutcome]:
        chain_ctx.set(self._chain.value)
        if self._checkpoint is not None and block.block_height <= self._checkpoint:
            self._logger.debug(
                "block_skipped",
                extra={"block_height": block.block_height, "checkpoint": self._checkpoint},
            )
            return []
        if self._head is not None and block.block_height <= self._head:
            self._reconciler.rewind(self._chain, block.block_height)
        self._head = block.block_height

        for raw in block.events:
            try:
                event = self._adapter.normalize(raw)
            except MalformedEventError as e:
                self._dropped += 1
                self._logger.error(
                    "malformed_event_dropped",
                    extra={"block_height": block.block_height, "reason": e.message, "raw_event": e.raw},
                )
                continue
            await self._reconciler.submit(event)

        finalized = block.block_height - self._depth
        if finalized < 0:
            return []
        outcomes = await self._reconciler.advance(self._chain, finalized)
        await self._save_checkpoint(finalized)
        return outcomes

    async def _save_checkpoint(self, finalized: int) -> None:
        lowest = self._reconciler.lowest_unapplied_height(self._chain)
        candidate = finalized if lowest is None else min(finalized, lowest - 1)
        if candidate < 0 or (self._checkpoint is not None and candidate <= self._checkpoint):
            return
        await self._index.save_checkpoint(self._chain, candidate)
        self._checkpoint = candidate

    async def run(self, source: ChainEventSource) -> None:
        """Consume the source until it ends. Audit storage failures propagate and stop the pipeline."""
        start = await self.resume()
        async for block in source.blocks(start):
            await self.process_block(block)
