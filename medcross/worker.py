"""Ingestion worker: one pipeline per chain sharing a single reconciler, index and audit log."""

import asyncio
import logging
from typing import Dict, List, Optional

from medcross.application.audit_log import AuditLog
from medcross.application.pipeline import ChainEventSource, IngestionPipeline
from medcross.application.reconciler import IngestionReconciler
from medcross.application.record_index import RecordIndex
from medcross.config.settings import AppSettings
from medcross.domain.models.record import ChainId
from medcross.ledger import adapter_for

logger = logging.getLogger(__name__)


def confirmation_depth(settings: AppSettings, chain: ChainId) -> int:
    if chain == ChainId.CHAIN_A:
        return settings.chain_a_confirmation_depth
    return settings.chain_b_confirmation_depth


def build_pipelines(
    settings: AppSettings,
    record_index: RecordIndex,
    audit_log: AuditLog,
    chains: Optional[List[ChainId]] = None,
) -> Dict[ChainId, IngestionPipeline]:
    """Pipelines share one reconciler so per-record serialization holds across chains."""
    reconciler = IngestionReconciler(
        record_index=record_index,
        audit_log=audit_log,
        retry_window_blocks=settings.orphan_retry_blocks,
        logger=logging.getLogger("medcross.reconciler"),
    )
    return {
        chain: IngestionPipeline(
            chain=chain,
            adapter=adapter_for(chain),
            reconciler=reconciler,
            record_index=record_index,
            confirmation_depth=confirmation_depth(settings, chain),
            logger=logging.getLogger(f"medcross.pipeline.{chain.value}"),
        )
        for chain in (chains or list(ChainId))
    }


async def run_pipelines(
    pipelines: Dict[ChainId, IngestionPipeline],
    sources: Dict[ChainId, ChainEventSource],
) -> None:
    """
    Run every pipeline until its source ends. The first failure (e.g. audit
    storage) cancels the rest, so no checkpoint moves past unaudited work.
    """
    tasks = [
        asyncio.create_task(pipeline.run(sources[chain]), name=f"ingest-{chain.value}")
        for chain, pipeline in pipelines.items()
    ]
    try:
        await asyncio.gather(*tasks)
    except Exception:
        logger.critical("ingestion_stopped", exc_info=True)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
