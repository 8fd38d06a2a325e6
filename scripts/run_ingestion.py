# scripts/run_ingestion.py

import sys
from pathlib import Path

# Ensure project root is on the path when running this script directly
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import asyncio
import logging

from medcross.application.audit_log import AuditLog
from medcross.application.record_index import RecordIndex
from medcross.config.logging import configure_logging
from medcross.config.settings import get_settings
from medcross.infrastructure.messaging.rabbitmq_block_source import RabbitMQBlockSource
from medcross.infrastructure.storage import build_repositories
from medcross.worker import build_pipelines, run_pipelines


async def main():
    settings = get_settings()
    configure_logging(settings.log_level)
    if settings.storage_backend == "database":
        from medcross.infrastructure.database.session import init_models

        await init_models()

    record_repository, audit_repository = build_repositories(settings)
    record_index = RecordIndex(record_repository)
    audit_log = AuditLog(audit_repository, logger=logging.getLogger("medcross.audit"))

    pipelines = build_pipelines(settings, record_index, audit_log)
    sources = {chain: RabbitMQBlockSource(chain) for chain in pipelines}
    await run_pipelines(pipelines, sources)


asyncio.run(main())
