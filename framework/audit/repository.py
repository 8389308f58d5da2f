"""Audit log repository implementation."""

from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select, func, delete
from framework.repository.base import BaseRepository
from .models import AuditLog


class AuditLogRepository(BaseRepository[AuditLog]):
    """Audit log repository."""

    def __init__(self, session, logger=None):
        super().__init__(session, AuditLog, logger)

    async def log_operation(
        self,
        operation: str,
        user_id: Optional[str],
        table_names: str = "",
        entity_count: int = 0,
        changes: Optional[List[Dict]] = None,
    ) -> AuditLog:
        """Stage a hand-written audit entry (saved with the next save_changes)."""
        entry = AuditLog(
            operation=operation,
            user_id=user_id,
            table_names=table_names,
            entity_count=entity_count,
            changes=changes or [],
        )
        return await self.add(entry)

    async def get_user_activity(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[AuditLog]:
        """Audit entries of one user, newest first, optionally within [start, end]."""
        criteria = [AuditLog.user_id == user_id]
        if start is not None:
            criteria.append(AuditLog.created_date >= start)
        if end is not None:
            criteria.append(AuditLog.created_date <= end)
        return await self.get_paged(1, 1000, filter=criteria, order_by=AuditLog.created_date.desc())

    async def get_audits_by_date_range(self, start: datetime, end: datetime) -> List[AuditLog]:
        return await self.find([AuditLog.created_date >= start, AuditLog.created_date <= end])

    async def get_table_audit_history(self, table_name: str) -> List[AuditLog]:
        return await self.find(AuditLog.table_names.contains(table_name))

    async def get_operation_statistics(self, start: datetime, end: datetime) -> Dict[str, int]:
        """Number of audit entries per operation within [start, end]."""
        try:
            statement = (
                select(AuditLog.operation, func.count(AuditLog.id))
                .where(AuditLog.created_date >= start, AuditLog.created_date <= end)
                .group_by(AuditLog.operation)
            )
            result = await self.session.exec(statement)
            return {operation: count for operation, count in result.all()}
        except SQLAlchemyError as exc:
            raise self._failure("computing operation statistics of", exc) from exc

    async def purge_old_audit_logs(self, older_than: datetime) -> int:
        """Delete entries created before older_than directly in the store.

        Bypasses the change tracker and runs in the session's transaction, so
        call it between begin_transaction() and commit_transaction(). Entries
        already loaded in this unit of work are not evicted.
        """
        try:
            statement = (
                delete(AuditLog)
                .where(AuditLog.created_date < older_than)
                .execution_options(synchronize_session=False)
            )
            result = await self.session.execute(statement)
            self.logger.info(f"Purged {result.rowcount} audit log entries older than {older_than}")
            return result.rowcount
        except SQLAlchemyError as exc:
            raise self._failure("purging", exc) from exc
