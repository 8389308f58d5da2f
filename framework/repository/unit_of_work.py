"""
Unit of Work: manages repositories and transaction boundaries.

One unit of work owns exactly one session (the persistence context). Every
repository it hands out shares that session, so changes staged through
different repositories see each other and are saved in one atomic flush.
"""

from typing import Any, Callable, Dict, Optional, Type
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError
from sqlmodel.ext.asyncio.session import AsyncSession
from framework.audit.entries import build_audit_batch
from framework.config import settings as app_settings
from framework.exceptions.errors import (
    ArgumentError,
    ConcurrencyError,
    DataAccessError,
    InvalidOperationError,
)
from framework.logging.logger import get_logger
from .base import BaseRepository
from .query import bind_positional


class UnitOfWork:
    """Manages related repositories with a shared session and transaction commit/rollback."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        *,
        session: Optional[AsyncSession] = None,
        logger=None,
        settings=None,
    ):
        """Initialize UnitOfWork from a session factory, or adopt an existing session."""
        if session is None and session_factory is None:
            raise ArgumentError(
                "A session factory or a session must be provided. Use UnitOfWork.from_session() to adopt one.",
                argument="session_factory",
            )

        self.session = session if session is not None else session_factory()
        self.settings = settings or app_settings
        self._log_sink = logger
        self.logger = logger.bind(name="unit_of_work") if logger is not None else get_logger("unit_of_work")
        self._repositories: Dict[str, Any] = {}
        self._transaction = None
        self._disposed = False

    @classmethod
    async def from_session(cls, session: AsyncSession, logger=None) -> "UnitOfWork":
        """Create UnitOfWork that takes ownership of an existing session."""
        return cls(session=session, logger=logger)

    def __repr__(self) -> str:
        return f"{type(self).__name__}[repositories={len(self._repositories)}, transaction={self.has_active_transaction}]"

    def _ensure_not_disposed(self) -> None:
        if self._disposed:
            raise InvalidOperationError(f"{type(self).__name__} has been disposed")

    # --- Introspection ---

    @property
    def has_active_transaction(self) -> bool:
        return self._transaction is not None

    @property
    def pending_changes_count(self) -> int:
        """Staged inserts, updates and deletes not yet flushed."""
        self._ensure_not_disposed()
        session = self.session
        modified = sum(1 for entity in session.dirty if session.is_modified(entity))
        return len(session.new) + modified + len(session.deleted)

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    # --- Repositories ---

    def _cached(self, cache_key: str, factory: Callable[[], Any]):
        self._ensure_not_disposed()
        if cache_key not in self._repositories:
            self._repositories[cache_key] = factory()
            self.logger.debug(f"Repository {cache_key} created")
        return self._repositories[cache_key]

    def get_repository(self, repo_class, model_class):
        """Get or create a repository instance (cached)."""
        cache_key = f"{repo_class.__name__}_{model_class.__name__}"
        if repo_class is BaseRepository:
            return self._cached(cache_key, lambda: BaseRepository(self.session, model_class, self._log_sink))
        return self._cached(cache_key, lambda: repo_class(self.session, logger=self._log_sink))

    def repository(self, model_class: Type) -> BaseRepository:
        """Generic repository for any mapped model."""
        return self.get_repository(BaseRepository, model_class)

    @property
    def audit_logs(self):
        from framework.audit.models import AuditLog
        from framework.audit.repository import AuditLogRepository

        return self.get_repository(AuditLogRepository, AuditLog)

    # --- Saving ---

    async def save_changes(self, user_id: Optional[str] = None) -> int:
        """Flush all staged changes atomically; with user_id also record an audit entry.

        Returns the number of persisted state changes.
        """
        if user_id is not None:
            return await self.save_changes_with_audit(user_id)

        self._ensure_not_disposed()
        change_count = self.pending_changes_count
        if change_count == 0:
            self.logger.debug("No pending changes to save")
            return 0

        acting_user = self.settings.AUDIT_SYSTEM_USER
        self.logger.debug(f"Saving {change_count} pending changes for user {acting_user}")
        saved = await self._persist(acting_user)
        self.logger.info(f"Successfully saved {saved} changes to database for user {acting_user}")
        return saved

    async def save_changes_with_audit(self, user_id: str, operation: Optional[str] = None) -> int:
        """Save staged changes and one audit entry for them in the same flush."""
        self._ensure_not_disposed()
        if not user_id:
            raise ArgumentError("user_id is required for an audited save", argument="user_id")
        operation = operation or self.settings.AUDIT_DEFAULT_OPERATION

        if self.pending_changes_count == 0:
            self.logger.debug(f"No pending changes to save for audit operation {operation}")
            return 0

        batch = build_audit_batch(self.session.sync_session, user_id, operation)
        self.session.add(batch.to_audit_log())
        self.logger.debug(f"Created audit entry covering {batch.entity_count} changes for operation {operation}")

        saved = await self._persist(user_id)
        self.logger.info(
            f"Successfully saved {saved} changes with audit for operation {operation} by user {user_id}"
        )
        return saved

    async def _persist(self, user_id: str) -> int:
        change_count = self.pending_changes_count
        try:
            if self._transaction is not None:
                await self.session.flush()
            else:
                await self.session.commit()
            return change_count
        except StaleDataError as exc:
            self.logger.opt(exception=True).error(
                f"Concurrency conflict occurred while saving changes for user {user_id}"
            )
            await self._discard_failed_save()
            raise ConcurrencyError(
                "The data was modified by another operation since it was loaded",
                detail=str(exc),
            ) from exc
        except SQLAlchemyError as exc:
            self.logger.opt(exception=True).error(
                f"Database error occurred while saving changes for user {user_id}"
            )
            await self._discard_failed_save()
            raise DataAccessError("Failed to save changes", detail=str(exc)) from exc

    async def _discard_failed_save(self) -> None:
        # Inside an explicit transaction the caller decides when to roll back
        if self._transaction is None:
            await self._rollback_quietly()

    # --- Explicit transactions ---

    async def begin_transaction(self) -> None:
        self._ensure_not_disposed()
        if self._transaction is not None:
            self.logger.warning("Attempted to begin transaction when one is already active")
            raise InvalidOperationError("A transaction is already active")

        try:
            if self.session.in_transaction():
                # Outside explicit transactions writes are committed eagerly, so an
                # already-begun session transaction holds reads only
                self._transaction = self.session.get_transaction()
            else:
                self._transaction = await self.session.begin()
        except SQLAlchemyError as exc:
            self.logger.opt(exception=True).error("Failed to begin database transaction")
            raise DataAccessError("Failed to begin transaction", detail=str(exc)) from exc
        self.logger.debug("Database transaction started")

    async def commit_transaction(self) -> None:
        """Commit the active transaction; anything still staged is flushed first."""
        self._ensure_not_disposed()
        if self._transaction is None:
            self.logger.warning("Attempted to commit transaction when none is active")
            raise InvalidOperationError("No active transaction to commit")

        try:
            await self.session.commit()
            self.logger.debug("Database transaction committed successfully")
        except StaleDataError as exc:
            self.logger.opt(exception=True).error("Concurrency conflict while committing database transaction")
            await self._rollback_quietly()
            raise ConcurrencyError(
                "The data was modified by another operation since it was loaded",
                detail=str(exc),
            ) from exc
        except SQLAlchemyError as exc:
            self.logger.opt(exception=True).error("Failed to commit database transaction")
            await self._rollback_quietly()
            raise DataAccessError("Failed to commit transaction", detail=str(exc)) from exc
        finally:
            self._transaction = None

    async def _rollback_quietly(self) -> None:
        # Keeps the write failure as the raised error
        try:
            await self.session.rollback()
        except SQLAlchemyError:
            self.logger.opt(exception=True).error("Rollback after a failed write also failed")

    async def rollback_transaction(self) -> None:
        """Roll back the active transaction and discard everything staged."""
        self._ensure_not_disposed()
        if self._transaction is None:
            self.logger.warning("Attempted to roll back transaction when none is active")
            raise InvalidOperationError("No active transaction to roll back")

        try:
            await self.session.rollback()
            self.logger.warning("Database transaction rolled back")
        except SQLAlchemyError as exc:
            self.logger.opt(exception=True).error("Failed to rollback database transaction")
            raise DataAccessError("Failed to roll back transaction", detail=str(exc)) from exc
        finally:
            self._transaction = None

    # --- Bulk operations ---

    async def execute_sql_raw(self, sql: str, *parameters: Any) -> int:
        """Run a statement outside the change tracker; returns affected rows.

        Positional values bind to {0}, {1}... placeholders. Inside an explicit
        transaction the statement joins it; otherwise it commits on its own.
        """
        self._ensure_not_disposed()
        if not sql or not sql.strip():
            raise ArgumentError("sql must not be empty", argument="sql")
        statement, binds = bind_positional(sql, parameters)

        self.logger.debug(f"Executing raw SQL command with {len(parameters)} parameters")
        try:
            if self._transaction is not None:
                result = await self.session.execute(statement, binds)
                affected = result.rowcount
            else:
                async with self.session.bind.begin() as connection:
                    result = await connection.execute(statement, binds)
                    affected = result.rowcount
        except SQLAlchemyError as exc:
            self.logger.opt(exception=True).error(f"Failed to execute raw SQL command: {sql}")
            raise DataAccessError("Failed to execute raw SQL command", detail=str(exc)) from exc

        self.logger.debug(f"Raw SQL command executed successfully, {affected} rows affected")
        return affected

    # --- Disposal ---

    async def dispose(self) -> None:
        """Release the session; an uncommitted transaction is rolled back. Safe to call twice."""
        if self._disposed:
            return
        rollback_error = None
        try:
            if self._transaction is not None:
                self.logger.warning("Disposing unit of work with an active transaction; rolling back")
                await self.session.rollback()
        except SQLAlchemyError as exc:
            self.logger.opt(exception=True).error("Failed to roll back active transaction during dispose")
            rollback_error = exc
        finally:
            self._repositories.clear()
            self._transaction = None
            self._disposed = True
            # Always release the connection, even after a failed rollback
            await self.session.close()

        if rollback_error is not None:
            raise DataAccessError(
                "Failed to roll back transaction during dispose", detail=str(rollback_error)
            ) from rollback_error
        self.logger.debug("UnitOfWork disposed successfully")

    async def __aenter__(self):
        self._ensure_not_disposed()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.dispose()
