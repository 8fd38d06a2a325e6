# medcross/infrastructure/storage.py

from typing import Tuple

from medcross.application.audit_log import AuditRepository
from medcross.application.record_index import RecordIndexRepository
from medcross.config.settings import AppSettings


def build_repositories(settings: AppSettings) -> Tuple[RecordIndexRepository, AuditRepository]:
    """Record index and audit repositories for the configured storage backend."""
    if settings.storage_backend == "database":
        # Imported here so the memory backend never loads the database driver.
        from medcross.infrastructure.database.audit_repository_db import DbAuditRepository
        from medcross.infrastructure.database.record_index_db import DbRecordIndexRepository
        from medcross.infrastructure.database.session import get_sessionmaker

        session_factory = get_sessionmaker()
        return DbRecordIndexRepository(session_factory), DbAuditRepository(session_factory)

    from medcross.infrastructure.memory.audit_repository_memory import InMemoryAuditRepository
    from medcross.infrastructure.memory.record_index_memory import InMemoryRecordIndexRepository

    return InMemoryRecordIndexRepository(), InMemoryAuditRepository()
